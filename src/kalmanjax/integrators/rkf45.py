"""Runge-Kutta-Fehlberg 4(5) adaptive integrator (RKF45).

Six stages per attempt produce a 5th-order solution, which is propagated,
and an embedded 4th-order solution, which only estimates the local error.
Rejected attempts are retried with a smaller step inside a
``jax.lax.while_loop``, so the stepper stays traceable under ``jax.jit``,
``jax.vmap`` and forward-mode differentiation (``jax.jacfwd``).  Reverse
mode (``jax.grad``) is not supported through the loop.
"""

from __future__ import annotations

from collections.abc import Callable

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.config import get_dtype
from kalmanjax.integrators._adaptive import error_norm, next_step_size
from kalmanjax.integrators._butcher import RKF45, evaluate_stages, weighted_increment
from kalmanjax.integrators._types import AdaptiveConfig, StepResult


def rkf45_step(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t: ArrayLike,
    state: ArrayLike,
    dt: ArrayLike,
    config: AdaptiveConfig | None = None,
) -> StepResult:
    """Perform a single adaptive RKF45 integration step.

    Advances the state from ``t`` by at most ``dt``. While the normalized
    error exceeds one the attempt is rejected and retried with the step
    predicted by the error controller, up to ``config.max_step_attempts``
    attempts or until the step reaches ``config.min_step``.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t: Current time.
        state: Current state vector.
        dt: Requested timestep. May be negative for backward integration.
        config: Step-size control. Uses :class:`AdaptiveConfig` defaults
            if ``None``.

    Returns:
        StepResult: State at ``t + dt_used`` with ``|dt_used| <= |dt|``,
            the normalized error of the accepted attempt and the suggested
            next timestep.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.integrators import rkf45_step
        def decay(t, x):
            return -x
        result = rkf45_step(decay, 0.0, jnp.array([1.0]), 0.5)
        ```
    """
    if config is None:
        config = AdaptiveConfig()

    dtype = get_dtype()
    t = jnp.asarray(t, dtype=dtype)
    state = jnp.asarray(state, dtype=dtype)
    dt = jnp.asarray(dt, dtype=dtype)

    def attempt(h):
        stages = evaluate_stages(dynamics, t, state, h, RKF45)
        high = weighted_increment(RKF45.b, stages)
        low = weighted_increment(RKF45.b_error, stages)
        state_high = state + h * high
        return state_high, error_norm(h * (high - low), state_high, state, config)

    # Carry: (h, h_used, attempts, accepted, state_out, error_out)
    def cond_fn(carry):
        _h, _h_used, attempts, accepted, _state_out, _error_out = carry
        return (~accepted) & (attempts < config.max_step_attempts)

    def body_fn(carry):
        h, _h_used, attempts, _accepted, _state_out, _error_out = carry
        state_new, error = attempt(h)
        accepted = (error <= 1.0) | (jnp.abs(h) <= config.min_step)
        h_next = jnp.where(accepted, h, next_step_size(error, h, RKF45.error_order, config))
        return (h_next, h, attempts + 1, accepted, state_new, error)

    init_carry = (
        dt,
        dt,
        jnp.asarray(0, dtype=jnp.int32),
        jnp.asarray(False),
        state,
        jnp.asarray(jnp.inf, dtype=dtype),
    )
    _h, h_used, _attempts, _accepted, state_out, error_out = jax.lax.while_loop(
        cond_fn, body_fn, init_carry
    )

    return StepResult(
        state=state_out,
        dt_used=h_used,
        error_estimate=error_out,
        dt_next=next_step_size(error_out, h_used, RKF45.error_order, config),
    )
