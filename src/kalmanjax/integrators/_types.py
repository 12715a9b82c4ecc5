"""Type definitions for numerical integrators.

- :class:`StepResult`: Output of every step function.
- :class:`AdaptiveConfig`: Error control for the adaptive RKF45 stepper.
- :class:`IntegratorSettings`: Which stepper a filter uses to propagate
  its system model between measurement times, and how.

``StepResult`` and ``AdaptiveConfig`` are :class:`~typing.NamedTuple`
instances, which JAX treats as pytrees. ``IntegratorSettings`` is static
configuration and is validated on construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

from jax import Array

from kalmanjax.errors import ConfigurationError

INTEGRATION_METHODS = ("euler", "rk4", "rkf45")


class StepResult(NamedTuple):
    """Result of a single integrator step.

    Attributes:
        state: State vector at time ``t + dt_used``.
        dt_used: Timestep actually taken. Adaptive steps may shrink the
            requested timestep after rejected attempts.
        error_estimate: Normalized local error (<= 1.0 means the step met
            the tolerance). Always 0.0 for fixed-step methods.
        dt_next: Suggested timestep for the following step.
    """

    state: Array
    dt_used: Array
    error_estimate: Array
    dt_next: Array


class AdaptiveConfig(NamedTuple):
    """Step-size control for :func:`~kalmanjax.integrators.rkf45_step`.

    Attributes:
        abs_tol: Absolute error tolerance per component.
        rel_tol: Relative error tolerance per component.
        safety_factor: Factor (< 1) applied to every predicted step size.
        min_scale_factor: Lower bound on ``|dt_next| / |dt_used|``.
        max_scale_factor: Upper bound on ``|dt_next| / |dt_used|``.
        min_step: Smallest step magnitude. A step this small is accepted
            whatever its error.
        max_step: Largest step magnitude.
        max_step_attempts: Rejections allowed before a step is accepted
            regardless of its error.
    """

    abs_tol: float = 1e-8
    rel_tol: float = 1e-6
    safety_factor: float = 0.9
    min_scale_factor: float = 0.2
    max_scale_factor: float = 5.0
    min_step: float = 1e-10
    max_step: float = 3600.0
    max_step_attempts: int = 12


@dataclass(frozen=True)
class IntegratorSettings:
    """Settings for integrating a filter's system model.

    When a filter receives integrator settings its ``system_function`` is
    interpreted as the right-hand side ``dx/dt = f(t, x, u)`` and the
    state is integrated from the time of the previous estimate to the
    current measurement time.

    Args:
        method: ``"euler"``, ``"rk4"`` or ``"rkf45"``.
        step_size: Largest fixed step, or the initial step of the adaptive
            method. Must be positive.
        adaptive: Error control used when *method* is ``"rkf45"``.
        max_steps: Upper bound on the number of steps in one interval.

    Raises:
        ConfigurationError: If *method* is unknown or a numeric setting is
            not positive.

    Examples:
        ```python
        from kalmanjax.integrators import IntegratorSettings
        settings = IntegratorSettings(method="rk4", step_size=10.0)
        ```
    """

    method: str = "rk4"
    step_size: float = 1.0
    adaptive: AdaptiveConfig = field(default_factory=AdaptiveConfig)
    max_steps: int = 100_000

    def __post_init__(self) -> None:
        if self.method not in INTEGRATION_METHODS:
            raise ConfigurationError(
                f"method must be one of {', '.join(repr(m) for m in INTEGRATION_METHODS)}, "
                f"got '{self.method}'"
            )
        if not self.step_size > 0.0:
            raise ConfigurationError(f"step_size must be positive, got {self.step_size}")
        if self.max_steps < 1:
            raise ConfigurationError(f"max_steps must be at least 1, got {self.max_steps}")

    @property
    def is_adaptive(self) -> bool:
        """Whether the configured method controls its own step size."""
        return self.method == "rkf45"
