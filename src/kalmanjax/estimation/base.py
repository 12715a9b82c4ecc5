"""Recursive filter base shared by all estimator variants.

:class:`StateEstimator` implements the predict/correct skeleton of a
recursive Kalman-type filter and owns the time-indexed histories of the
accepted estimates.  Concrete variants supply two hooks:

- :meth:`StateEstimator.predict` builds the a-priori estimate for the
  current time from the previous a-posteriori estimate.
- :meth:`StateEstimator.predict_measurement` computes the predicted
  measurement, innovation covariance, cross-covariance and Kalman gain.

Both hooks are free of side effects.  :meth:`StateEstimator.update_filter`
only mutates the filter after both have returned, so an exception raised
anywhere in them leaves the state, covariance and histories exactly as
they were.

The system model ``f(t, x, u)`` is either evaluated directly or, when
:class:`~kalmanjax.integrators.IntegratorSettings` are supplied, treated
as the right-hand side ``dx/dt = f(t, x, u)`` and integrated from the time
of the previous estimate to the current time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.config import get_dtype, get_singular_rcond
from kalmanjax.errors import ConfigurationError, NumericalError
from kalmanjax.estimation._types import (
    FilterResult,
    FilterState,
    MeasurementPrediction,
    Prediction,
)
from kalmanjax.estimation.history import TimeHistory
from kalmanjax.integrators import IntegratorSettings, integrate

logger = logging.getLogger(__name__)

SystemFunction = Callable[[float, Array, Array], ArrayLike]
MeasurementFunction = Callable[[float, Array], ArrayLike]


def kalman_gain(cross_covariance: ArrayLike, innovation_covariance: ArrayLike) -> Array:
    """Compute ``K = P_xz @ inv(S)`` after checking that ``S`` is invertible.

    Args:
        cross_covariance: State/measurement cross-covariance ``P_xz`` of
            shape ``(n, m)``.
        innovation_covariance: Innovation covariance ``S`` of shape
            ``(m, m)``.

    Returns:
        jax.Array: Kalman gain of shape ``(n, m)``.

    Raises:
        NumericalError: If ``S`` has non-finite entries or its reciprocal
            condition number is below :func:`~kalmanjax.config.get_singular_rcond`.
    """
    S = jnp.asarray(innovation_covariance)
    P_xz = jnp.asarray(cross_covariance)
    if not bool(jnp.all(jnp.isfinite(S))):
        raise NumericalError("Innovation covariance has non-finite entries")

    s = jnp.linalg.svd(S, compute_uv=False)
    s_max = float(s[0])
    s_min = float(s[-1])
    if s_max == 0.0 or s_min <= s_max * get_singular_rcond():
        rcond = 0.0 if s_max == 0.0 else s_min / s_max
        raise NumericalError(
            f"Innovation covariance is singular (reciprocal condition number {rcond:.3e}), "
            f"Kalman gain undefined"
        )

    # K^T = S^{-1} P_xz^T since S is symmetric
    return jnp.linalg.solve(S, P_xz.T).T


def _as_square_matrix(name: str, value: ArrayLike, size: int | None = None) -> Array:
    matrix = jnp.asarray(value, dtype=get_dtype())
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1] or matrix.shape[0] == 0:
        raise ConfigurationError(f"{name} must be a non-empty square matrix, got shape {matrix.shape}")
    if size is not None and matrix.shape[0] != size:
        raise ConfigurationError(
            f"{name} must have shape ({size}, {size}) to match the state, got {matrix.shape}"
        )
    return matrix


class StateEstimator(ABC):
    """Abstract recursive state estimator.

    Args:
        system_function: ``f(t, x, u) -> x`` (or ``dx/dt`` when integrating).
        measurement_function: ``h(t, x) -> z``.
        process_noise_covariance: ``Q`` of shape ``(n, n)``.
        measurement_noise_covariance: ``R`` of shape ``(m, m)``.
        initial_time: Time of the initial estimate.
        initial_state: Initial state estimate of shape ``(n,)``.
        initial_covariance: Initial covariance of shape ``(n, n)``.
        integrator_settings: Integrate ``system_function`` instead of
            evaluating it directly when given.
        history_length: Keep at most this many history entries, or the
            full archive when ``None``.

    Raises:
        ConfigurationError: If the dimensions of the initial state,
            initial covariance and noise covariances disagree.
    """

    def __init__(
        self,
        system_function: SystemFunction,
        measurement_function: MeasurementFunction,
        process_noise_covariance: ArrayLike,
        measurement_noise_covariance: ArrayLike,
        initial_time: float,
        initial_state: ArrayLike,
        initial_covariance: ArrayLike,
        integrator_settings: IntegratorSettings | None = None,
        history_length: int | None = None,
    ):
        dtype = get_dtype()
        x0 = jnp.asarray(initial_state, dtype=dtype)
        if x0.ndim != 1 or x0.shape[0] == 0:
            raise ConfigurationError(f"initial_state must be a non-empty vector, got shape {x0.shape}")
        n = x0.shape[0]

        self._P = _as_square_matrix("initial_covariance", initial_covariance, n)
        self._Q = _as_square_matrix("process_noise_covariance", process_noise_covariance, n)
        self._R = _as_square_matrix("measurement_noise_covariance", measurement_noise_covariance)
        if integrator_settings is not None and not isinstance(integrator_settings, IntegratorSettings):
            raise ConfigurationError(
                f"integrator_settings must be IntegratorSettings or None, got {type(integrator_settings).__name__}"
            )

        self._system_function = system_function
        self._measurement_function = measurement_function
        self._integrator_settings = integrator_settings
        self._state_dimension = n
        self._measurement_dimension = self._R.shape[0]

        self._time = float(initial_time)
        self._x = x0
        self._state_history: TimeHistory[Array] = TimeHistory(history_length)
        self._covariance_history: TimeHistory[Array] = TimeHistory(history_length)
        self._state_history.record(self._time, self._x)
        self._covariance_history.record(self._time, self._P)

    # ── Accessors ────────────────────────────────────────────────────────

    @property
    def time(self) -> float:
        """Time of the current a-posteriori estimate."""
        return self._time

    @property
    def state(self) -> Array:
        """Current a-posteriori state estimate."""
        return self._x

    @property
    def covariance(self) -> Array:
        """Current a-posteriori covariance estimate."""
        return self._P

    @property
    def filter_state(self) -> FilterState:
        return FilterState(x=self._x, P=self._P)

    @property
    def state_dimension(self) -> int:
        return self._state_dimension

    @property
    def measurement_dimension(self) -> int:
        return self._measurement_dimension

    @property
    def process_noise_covariance(self) -> Array:
        return self._Q

    @property
    def measurement_noise_covariance(self) -> Array:
        return self._R

    @property
    def integrator_settings(self) -> IntegratorSettings | None:
        return self._integrator_settings

    @property
    def state_history(self) -> dict[float, Array]:
        """Accepted state estimates by time, in insertion order."""
        return self._state_history.as_dict()

    @property
    def covariance_history(self) -> dict[float, Array]:
        """Accepted covariance estimates by time, in insertion order."""
        return self._covariance_history.as_dict()

    # ── Model evaluation ─────────────────────────────────────────────────

    def predict_state(self, time: float, previous_state: ArrayLike, control: ArrayLike) -> Array:
        """Propagate a state from the previous estimate time to *time*.

        Evaluates ``system_function(time, previous_state, control)``
        directly, or integrates it from :attr:`time` to *time* when the
        filter has integrator settings. Does not modify the filter.

        Args:
            time: Current time.
            previous_state: State at the previous estimate time.
            control: Control input, held constant over the interval.

        Returns:
            jax.Array: Predicted state of shape ``(n,)``.

        Raises:
            ConfigurationError: If the system model returns a state of the
                wrong shape.
        """
        dtype = get_dtype()
        if self._integrator_settings is None:
            predicted = jnp.asarray(self._system_function(time, previous_state, control), dtype=dtype)
        else:

            def dynamics(t, x):
                return jnp.asarray(self._system_function(t, x, control), dtype=dtype)

            predicted = integrate(dynamics, self._time, previous_state, time, self._integrator_settings)
        return self._check_shape("system_function output", predicted, (self._state_dimension,))

    def evaluate_measurement(self, time: float, state: ArrayLike) -> Array:
        """Evaluate ``measurement_function(time, state)`` and check its shape."""
        measurement = jnp.asarray(self._measurement_function(time, state), dtype=get_dtype())
        return self._check_shape("measurement_function output", measurement, (self._measurement_dimension,))

    # ── Correction ───────────────────────────────────────────────────────

    def correct_state(
        self,
        time: float,
        prior_state: ArrayLike,
        measurement: ArrayLike,
        predicted_measurement: ArrayLike,
        gain: ArrayLike,
    ) -> Array:
        """Apply the measurement correction and store the a-posteriori state.

        Computes ``prior_state + gain @ (measurement - predicted_measurement)``,
        makes it the current estimate and records it in the state history
        under *time*.

        This is the state half of the commit performed by
        :meth:`update_filter`. It does not touch the covariance, its
        history or :attr:`time`, so calling it on its own leaves the state
        and covariance histories with different times. Use
        :meth:`update_filter` for a complete step.

        Returns:
            jax.Array: A-posteriori state of shape ``(n,)``.
        """
        x = jnp.asarray(prior_state) + jnp.asarray(gain) @ (
            jnp.asarray(measurement) - jnp.asarray(predicted_measurement)
        )
        self._x = x
        self._state_history.record(time, x)
        return x

    def correct_covariance(
        self,
        time: float,
        prior_covariance: ArrayLike,
        gain_terms: MeasurementPrediction,
    ) -> Array:
        """Apply the variant's covariance correction and store the result.

        The covariance half of the commit performed by
        :meth:`update_filter`. Like :meth:`correct_state` it leaves the
        state, its history and :attr:`time` alone.

        Returns:
            jax.Array: A-posteriori covariance of shape ``(n, n)``.
        """
        P = self.posterior_covariance(jnp.asarray(prior_covariance), gain_terms)
        self._accept_covariance(time, P)
        return self._P

    def _accept_covariance(self, time: float, covariance: Array) -> None:
        # Round-off in the correction breaks exact symmetry.
        self._P = 0.5 * (covariance + covariance.T)
        self._covariance_history.record(time, self._P)

    # ── Strategy hooks ───────────────────────────────────────────────────

    @abstractmethod
    def predict(self, time: float, control: Array) -> Prediction:
        """Compute the a-priori estimate at *time* without modifying the filter."""

    @abstractmethod
    def predict_measurement(self, time: float, prediction: Prediction) -> MeasurementPrediction:
        """Compute the measurement prediction and Kalman gain for *prediction*."""

    @abstractmethod
    def posterior_covariance(self, prior_covariance: Array, gain_terms: MeasurementPrediction) -> Array:
        """Return the a-posteriori covariance for the variant's update form."""

    def _archive(self, time: float, prediction: Prediction) -> None:
        """Store variant-specific data of an accepted update."""

    # ── Update cycle ─────────────────────────────────────────────────────

    def update_filter(
        self,
        current_time: float,
        control_vector: ArrayLike | None,
        measurement_vector: ArrayLike,
    ) -> FilterResult:
        """Advance the filter by one prediction and correction step.

        Args:
            current_time: Time of the measurement.
            control_vector: Control input applied since the previous
                estimate, or ``None`` for no control.
            measurement_vector: Measurement of shape ``(m,)``.

        Returns:
            FilterResult: A-posteriori state plus innovation diagnostics.

        Raises:
            ConfigurationError: If an input or model output has the wrong
                shape.
            NumericalError: If a covariance square root or the innovation
                inverse is undefined. The filter is left unchanged.
        """
        time = float(current_time)
        control = self._as_control(control_vector)
        measurement = self._as_measurement(measurement_vector)

        prediction = self.predict(time, control)
        gain_terms = self.predict_measurement(time, prediction)
        P = self.posterior_covariance(prediction.state.P, gain_terms)

        # Nothing above modifies the filter; commit the accepted update.
        x = self.correct_state(
            time,
            prediction.state.x,
            measurement,
            gain_terms.predicted_measurement,
            gain_terms.kalman_gain,
        )
        self._accept_covariance(time, P)
        self._archive(time, prediction)
        self._time = time

        logger.debug(
            "%s accepted update at t=%s (trace P: %.6e -> %.6e)",
            type(self).__name__,
            time,
            float(jnp.trace(prediction.state.P)),
            float(jnp.trace(self._P)),
        )

        return FilterResult(
            state=FilterState(x=x, P=self._P),
            innovation=measurement - gain_terms.predicted_measurement,
            innovation_covariance=gain_terms.innovation_covariance,
            kalman_gain=gain_terms.kalman_gain,
        )

    # ── Validation helpers ───────────────────────────────────────────────

    def _as_control(self, control: ArrayLike | None) -> Array:
        dtype = get_dtype()
        if control is None:
            return jnp.zeros(0, dtype=dtype)
        control = jnp.atleast_1d(jnp.asarray(control, dtype=dtype))
        if control.ndim != 1:
            raise ConfigurationError(f"control_vector must be a vector, got shape {control.shape}")
        return control

    def _as_measurement(self, measurement: ArrayLike) -> Array:
        measurement = jnp.atleast_1d(jnp.asarray(measurement, dtype=get_dtype()))
        return self._check_shape("measurement_vector", measurement, (self._measurement_dimension,))

    @staticmethod
    def _check_shape(name: str, value: Array, shape: tuple[int, ...]) -> Array:
        if value.shape != shape:
            raise ConfigurationError(f"{name} must have shape {shape}, got {value.shape}")
        return value

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(n={self._state_dimension}, m={self._measurement_dimension}, "
            f"t={self._time})"
        )
