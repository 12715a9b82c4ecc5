"""Construction of estimators by name.

Maps a filter kind to its :class:`~kalmanjax.estimation.StateEstimator`
subclass so that callers (and configuration files) can pick the variant
with a string.
"""

from __future__ import annotations

from typing import Any

from kalmanjax.errors import ConfigurationError
from kalmanjax.estimation.base import StateEstimator
from kalmanjax.estimation.extended import ExtendedKalmanFilter
from kalmanjax.estimation.linear import LinearKalmanFilter
from kalmanjax.estimation.unscented import UnscentedKalmanFilter

ESTIMATORS: dict[str, type[StateEstimator]] = {
    "linear": LinearKalmanFilter,
    "extended": ExtendedKalmanFilter,
    "unscented": UnscentedKalmanFilter,
}


def create_state_estimator(kind: str, **options: Any) -> StateEstimator:
    """Create an estimator of the given kind.

    Args:
        kind: ``"linear"``, ``"extended"`` or ``"unscented"``.
        **options: Constructor arguments of the selected class.

    Returns:
        StateEstimator: The constructed filter.

    Raises:
        ConfigurationError: If *kind* is unknown, or the selected
            constructor rejects *options*.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.estimation import create_state_estimator

        ukf = create_state_estimator(
            "unscented",
            system_function=lambda t, x, u: x,
            measurement_function=lambda t, x: x,
            process_noise_covariance=jnp.eye(1),
            measurement_noise_covariance=jnp.eye(1),
            initial_time=0.0,
            initial_state=jnp.zeros(1),
            initial_covariance=jnp.eye(1),
        )
        ```
    """
    try:
        cls = ESTIMATORS[kind]
    except KeyError:
        raise ConfigurationError(
            f"Unknown estimator kind '{kind}', expected one of {', '.join(repr(k) for k in ESTIMATORS)}"
        ) from None
    try:
        return cls(**options)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid options for {cls.__name__}: {exc}") from exc
