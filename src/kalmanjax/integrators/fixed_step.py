"""Fixed-step explicit Runge-Kutta integrators (Euler and classic RK4).

Both methods take exactly the requested timestep and report a zero error
estimate.  RK4 has local truncation error :math:`O(h^5)` and is exact for
polynomial solutions up to degree four; forward Euler is first order and
is mainly useful for cheap, coarse models.
"""

from __future__ import annotations

from collections.abc import Callable

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.config import get_dtype
from kalmanjax.integrators._butcher import (
    EULER,
    RK4,
    ButcherTableau,
    evaluate_stages,
    weighted_increment,
)
from kalmanjax.integrators._types import StepResult


def _fixed_step(
    tableau: ButcherTableau,
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t: ArrayLike,
    state: ArrayLike,
    dt: ArrayLike,
) -> StepResult:
    dtype = get_dtype()
    t = jnp.asarray(t, dtype=dtype)
    state = jnp.asarray(state, dtype=dtype)
    dt = jnp.asarray(dt, dtype=dtype)

    stages = evaluate_stages(dynamics, t, state, dt, tableau)
    state_new = state + dt * weighted_increment(tableau.b, stages)

    return StepResult(
        state=state_new,
        dt_used=dt,
        error_estimate=jnp.asarray(0.0, dtype=dtype),
        dt_next=dt,
    )


def euler_step(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t: ArrayLike,
    state: ArrayLike,
    dt: ArrayLike,
) -> StepResult:
    """Perform a single forward Euler step ``x + dt * f(t, x)``.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t: Current time.
        state: Current state vector.
        dt: Timestep. May be negative for backward integration.

    Returns:
        StepResult: State at ``t + dt``; ``dt_used`` and ``dt_next`` equal
            ``dt`` and ``error_estimate`` is 0.0.
    """
    return _fixed_step(EULER, dynamics, t, state, dt)


def rk4_step(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t: ArrayLike,
    state: ArrayLike,
    dt: ArrayLike,
) -> StepResult:
    """Perform a single classic 4th-order Runge-Kutta step.

    Compatible with ``jax.jit``, ``jax.vmap`` and ``jax.jacfwd``.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t: Current time.
        state: Current state vector.
        dt: Timestep. May be negative for backward integration.

    Returns:
        StepResult: State at ``t + dt``; ``dt_used`` and ``dt_next`` equal
            ``dt`` and ``error_estimate`` is 0.0.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.integrators import rk4_step
        def harmonic(t, x):
            return jnp.array([x[1], -x[0]])
        result = rk4_step(harmonic, 0.0, jnp.array([1.0, 0.0]), 0.01)
        result.state  # ~[cos(0.01), -sin(0.01)]
        ```
    """
    return _fixed_step(RK4, dynamics, t, state, dt)
