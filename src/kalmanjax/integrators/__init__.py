"""Numerical ODE integrators used to propagate filter system models.

Provides fixed-step and adaptive explicit Runge-Kutta integrators, all
implemented in JAX for compatibility with ``jax.jit``, ``jax.vmap`` and
forward-mode automatic differentiation.

Available integrators:

- :func:`euler_step` -- Forward Euler (fixed step)
- :func:`rk4_step` -- Classic 4th-order Runge-Kutta (fixed step)
- :func:`rkf45_step` -- Runge-Kutta-Fehlberg 4(5) (adaptive step)
- :func:`integrate` -- Integrate over an interval with
  :class:`IntegratorSettings`

All step functions share a common interface::

    result = step_fn(dynamics, t, state, dt)

where ``dynamics(t, x) -> dx`` defines the ODE right-hand side, and the
result is a :class:`StepResult` named tuple.
"""

from kalmanjax.integrators._types import (
    INTEGRATION_METHODS,
    AdaptiveConfig,
    IntegratorSettings,
    StepResult,
)
from kalmanjax.integrators.fixed_step import euler_step, rk4_step
from kalmanjax.integrators.propagate import integrate
from kalmanjax.integrators.rkf45 import rkf45_step

__all__ = [
    "INTEGRATION_METHODS",
    "AdaptiveConfig",
    "IntegratorSettings",
    "StepResult",
    "euler_step",
    "rk4_step",
    "rkf45_step",
    "integrate",
]
