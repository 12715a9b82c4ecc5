"""Integrate a state over a time interval with the configured stepper.

Filters use :func:`integrate` to carry a state from the time of the
previous estimate to the current measurement time when they were given
:class:`~kalmanjax.integrators.IntegratorSettings`.

The interval end points must be concrete Python scalars; the state may be
traced.  Fixed-step methods run a ``jax.lax.fori_loop`` over equal steps
and the adaptive method runs a ``jax.lax.while_loop`` that clips its last
step onto the end time, so the result can be differentiated with
``jax.jacfwd`` or mapped with ``jax.vmap``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.config import get_dtype, get_epsilon
from kalmanjax.errors import ConfigurationError
from kalmanjax.integrators._types import IntegratorSettings
from kalmanjax.integrators.fixed_step import euler_step, rk4_step
from kalmanjax.integrators.rkf45 import rkf45_step

logger = logging.getLogger(__name__)

_FIXED_STEPPERS = {
    "euler": euler_step,
    "rk4": rk4_step,
}


def integrate(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t0: float,
    state: ArrayLike,
    t1: float,
    settings: IntegratorSettings | None = None,
) -> Array:
    """Integrate ``dx/dt = dynamics(t, x)`` from *t0* to *t1*.

    Args:
        dynamics: ODE right-hand side ``f(t, x) -> dx/dt``.
        t0: Start time (concrete scalar).
        state: State at *t0*.
        t1: End time (concrete scalar). May precede *t0*.
        settings: Stepper selection. Defaults to RK4 with unit steps.

    Returns:
        jax.Array: State at *t1*. Returned unchanged when ``t1 == t0``.

    Raises:
        ConfigurationError: If a fixed-step run would need more than
            ``settings.max_steps`` steps.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.integrators import IntegratorSettings, integrate
        def decay(t, x):
            return -x
        x1 = integrate(decay, 0.0, jnp.array([1.0]), 1.0,
                       IntegratorSettings(method="rk4", step_size=0.01))
        # x1 ~ exp(-1)
        ```
    """
    if settings is None:
        settings = IntegratorSettings()

    dtype = get_dtype()
    state = jnp.asarray(state, dtype=dtype)
    t0 = float(t0)
    t1 = float(t1)
    span = t1 - t0
    if span == 0.0:
        return state

    if settings.is_adaptive:
        return _integrate_adaptive(dynamics, t0, state, t1, settings)

    n_steps = max(1, math.ceil(abs(span) / settings.step_size - 1e-9))
    if n_steps > settings.max_steps:
        raise ConfigurationError(
            f"Integrating from {t0} to {t1} with step_size {settings.step_size} "
            f"needs {n_steps} steps, more than max_steps={settings.max_steps}"
        )
    h = span / n_steps
    step = _FIXED_STEPPERS[settings.method]
    logger.debug("Integrating [%s, %s] with %d %s steps of %s", t0, t1, n_steps, settings.method, h)

    def body(i, x):
        t = t0 + jnp.asarray(i, dtype=dtype) * h
        return step(dynamics, t, x, h).state

    return jax.lax.fori_loop(0, n_steps, body, state)


def _integrate_adaptive(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t0: float,
    state: Array,
    t1: float,
    settings: IntegratorSettings,
) -> Array:
    dtype = get_dtype()
    config = settings.adaptive
    direction = 1.0 if t1 > t0 else -1.0
    t_end = jnp.asarray(t1, dtype=dtype)
    # Remaining intervals below this are round-off from the clipped last step.
    time_tol = 10.0 * get_epsilon() * max(abs(t0), abs(t1), 1.0)
    h0 = direction * min(settings.step_size, abs(t1 - t0))
    logger.debug("Integrating [%s, %s] with rkf45, initial step %s", t0, t1, h0)

    def cond_fn(carry):
        t, _x, _h, count = carry
        return (direction * (t_end - t) > time_tol) & (count < settings.max_steps)

    def body_fn(carry):
        t, x, h, count = carry
        h_try = direction * jnp.minimum(jnp.abs(h), jnp.abs(t_end - t))
        result = rkf45_step(dynamics, t, x, h_try, config)
        return (t + result.dt_used, result.state, result.dt_next, count + 1)

    init_carry = (
        jnp.asarray(t0, dtype=dtype),
        state,
        jnp.asarray(h0, dtype=dtype),
        jnp.asarray(0, dtype=jnp.int32),
    )
    _t, state_out, _h, _count = jax.lax.while_loop(cond_fn, body_fn, init_carry)
    return state_out
