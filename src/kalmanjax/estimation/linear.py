"""Linear Kalman filter.

For the linear-Gaussian model

.. math::

    x_k = A(t_k) x_{k-1} + B(t_k) u_k + w_k, \\qquad
    z_k = H(t_k) x_k + v_k

the Kalman filter is the exact recursive estimator.  The system, input and
measurement matrices may be constant arrays or callables of time.  The
covariance correction uses the Joseph form
``(I - KH) P (I - KH)^T + K R K^T``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.config import get_dtype
from kalmanjax.errors import ConfigurationError
from kalmanjax.estimation._types import FilterState, MeasurementPrediction, Prediction
from kalmanjax.estimation.base import StateEstimator, kalman_gain
from kalmanjax.integrators import IntegratorSettings

logger = logging.getLogger(__name__)

MatrixSpec = ArrayLike | Callable[[float], ArrayLike]


def _matrix_at(matrix: MatrixSpec, time: float) -> Array:
    value = matrix(time) if callable(matrix) else matrix
    return jnp.asarray(value, dtype=get_dtype())


class LinearKalmanFilter(StateEstimator):
    """Kalman filter for linear system and measurement models.

    Args:
        system_matrix: ``A`` of shape ``(n, n)``, or ``A(t)``.
        measurement_matrix: ``H`` of shape ``(m, n)``, or ``H(t)``.
        process_noise_covariance: ``Q`` of shape ``(n, n)``.
        measurement_noise_covariance: ``R`` of shape ``(m, m)``.
        initial_time: Time of the initial estimate.
        initial_state: Initial state estimate of shape ``(n,)``.
        initial_covariance: Initial covariance of shape ``(n, n)``.
        input_matrix: ``B`` of shape ``(n, k)``, or ``B(t)``. Required
            when control inputs are passed to :meth:`update_filter`.
        history_length: Keep at most this many history entries, or the
            full archive when ``None``.
        integrator_settings: Must be ``None``.

    Raises:
        ConfigurationError: If a constant matrix has the wrong shape or
            integrator settings are given.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.estimation import LinearKalmanFilter

        kf = LinearKalmanFilter(
            system_matrix=jnp.array([[1.0, 1.0], [0.0, 1.0]]),
            measurement_matrix=jnp.array([[1.0, 0.0]]),
            process_noise_covariance=jnp.eye(2) * 0.01,
            measurement_noise_covariance=jnp.array([[0.1]]),
            initial_time=0.0,
            initial_state=jnp.array([0.0, 1.0]),
            initial_covariance=jnp.eye(2),
        )
        result = kf.update_filter(1.0, None, jnp.array([1.05]))
        ```
    """

    def __init__(
        self,
        system_matrix: MatrixSpec,
        measurement_matrix: MatrixSpec,
        process_noise_covariance: ArrayLike,
        measurement_noise_covariance: ArrayLike,
        initial_time: float,
        initial_state: ArrayLike,
        initial_covariance: ArrayLike,
        input_matrix: MatrixSpec | None = None,
        history_length: int | None = None,
        integrator_settings: IntegratorSettings | None = None,
    ):
        if integrator_settings is not None:
            raise ConfigurationError("LinearKalmanFilter propagates with its system matrix and takes no integrator")
        self._system_matrix = system_matrix
        self._measurement_matrix = measurement_matrix
        self._input_matrix = input_matrix
        super().__init__(
            self._linear_system,
            self._linear_measurement,
            process_noise_covariance,
            measurement_noise_covariance,
            initial_time,
            initial_state,
            initial_covariance,
            history_length=history_length,
        )
        n = self.state_dimension
        m = self.measurement_dimension
        if not callable(system_matrix):
            self._check_matrix("system_matrix", _matrix_at(system_matrix, self.time), (n, n))
        if not callable(measurement_matrix):
            self._check_matrix("measurement_matrix", _matrix_at(measurement_matrix, self.time), (m, n))

        logger.info("LinearKalmanFilter initialized: n=%d, m=%d", n, m)

    @staticmethod
    def _check_matrix(name: str, matrix: Array, shape: tuple[int, int]) -> Array:
        if matrix.shape != shape:
            raise ConfigurationError(f"{name} must have shape {shape}, got {matrix.shape}")
        return matrix

    def system_matrix(self, time: float) -> Array:
        """System matrix ``A`` at *time*."""
        n = self.state_dimension
        return self._check_matrix("system_matrix", _matrix_at(self._system_matrix, time), (n, n))

    def measurement_matrix(self, time: float) -> Array:
        """Measurement matrix ``H`` at *time*."""
        shape = (self.measurement_dimension, self.state_dimension)
        return self._check_matrix("measurement_matrix", _matrix_at(self._measurement_matrix, time), shape)

    def _linear_system(self, time: float, state: Array, control: Array) -> Array:
        x = self.system_matrix(time) @ state
        if control.shape[0] == 0:
            return x
        if self._input_matrix is None:
            raise ConfigurationError("A control vector was given but the filter has no input_matrix")
        B = _matrix_at(self._input_matrix, time)
        self._check_matrix("input_matrix", B, (self.state_dimension, control.shape[0]))
        return x + B @ control

    def _linear_measurement(self, time: float, state: Array) -> Array:
        return self.measurement_matrix(time) @ state

    def predict(self, time: float, control: Array) -> Prediction:
        A = self.system_matrix(time)
        x_prior = self.predict_state(time, self._x, control)
        P_prior = A @ self._P @ A.T + self._Q
        return Prediction(state=FilterState(x=x_prior, P=P_prior), state_transition=A)

    def predict_measurement(self, time: float, prediction: Prediction) -> MeasurementPrediction:
        x_prior, P_prior = prediction.state
        H = self.measurement_matrix(time)
        S = H @ P_prior @ H.T + self._R
        P_xz = P_prior @ H.T
        return MeasurementPrediction(
            predicted_measurement=self.evaluate_measurement(time, x_prior),
            innovation_covariance=S,
            cross_covariance=P_xz,
            kalman_gain=kalman_gain(P_xz, S),
            measurement_jacobian=H,
        )

    def posterior_covariance(self, prior_covariance: Array, gain_terms: MeasurementPrediction) -> Array:
        return joseph_covariance(prior_covariance, gain_terms.kalman_gain, gain_terms.measurement_jacobian, self._R)


def joseph_covariance(covariance: Array, gain: Array, measurement_matrix: Array, measurement_noise: Array) -> Array:
    """Joseph-form update ``(I - KH) P (I - KH)^T + K R K^T``.

    Symmetric and positive semi-definite for any gain, which matters for
    float32 stability.
    """
    IKH = jnp.eye(covariance.shape[0], dtype=covariance.dtype) - gain @ measurement_matrix
    return IKH @ covariance @ IKH.T + gain @ measurement_noise @ gain.T
