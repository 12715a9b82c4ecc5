"""Extended Kalman filter (EKF).

Linearizes the system and measurement models about the current estimate
using automatic differentiation: the state transition matrix is
``jax.jacfwd`` of the propagation (through the integrator when one is
configured) and the measurement matrix is ``jax.jacfwd`` of the
measurement model.  Both models must therefore be composed of JAX
operations.

The covariance update uses the Joseph form for guaranteed symmetry and
positive semi-definiteness, which is important for float32 stability.
"""

from __future__ import annotations

import logging

import jax
from jax import Array

from kalmanjax.estimation._types import FilterState, MeasurementPrediction, Prediction
from kalmanjax.estimation.base import StateEstimator, kalman_gain
from kalmanjax.estimation.linear import joseph_covariance

logger = logging.getLogger(__name__)


class ExtendedKalmanFilter(StateEstimator):
    """Kalman filter linearized about the running estimate.

    Takes the same arguments as :class:`~kalmanjax.estimation.StateEstimator`.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.estimation import ExtendedKalmanFilter

        ekf = ExtendedKalmanFilter(
            system_function=lambda t, x, u: x + jnp.array([x[1], -x[0]]) * 0.01,
            measurement_function=lambda t, x: jnp.array([x[0] ** 2]),
            process_noise_covariance=jnp.eye(2) * 1e-6,
            measurement_noise_covariance=jnp.array([[0.01]]),
            initial_time=0.0,
            initial_state=jnp.array([1.0, 0.0]),
            initial_covariance=jnp.eye(2) * 0.01,
        )
        result = ekf.update_filter(1.0, None, jnp.array([0.99]))
        ```
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        logger.info(
            "ExtendedKalmanFilter initialized: n=%d, m=%d, integrator=%s",
            self.state_dimension,
            self.measurement_dimension,
            "none" if self.integrator_settings is None else self.integrator_settings.method,
        )

    def predict(self, time: float, control: Array) -> Prediction:
        def propagate(x):
            return self.predict_state(time, x, control)

        x_prior = propagate(self._x)
        # State transition matrix via autodiff
        Phi = jax.jacfwd(propagate)(self._x)
        P_prior = Phi @ self._P @ Phi.T + self._Q
        return Prediction(state=FilterState(x=x_prior, P=P_prior), state_transition=Phi)

    def predict_measurement(self, time: float, prediction: Prediction) -> MeasurementPrediction:
        x_prior, P_prior = prediction.state

        def measure(x):
            return self.evaluate_measurement(time, x)

        z_pred = measure(x_prior)
        H = jax.jacfwd(measure)(x_prior)
        S = H @ P_prior @ H.T + self._R
        P_xz = P_prior @ H.T
        return MeasurementPrediction(
            predicted_measurement=z_pred,
            innovation_covariance=S,
            cross_covariance=P_xz,
            kalman_gain=kalman_gain(P_xz, S),
            measurement_jacobian=H,
        )

    def posterior_covariance(self, prior_covariance: Array, gain_terms: MeasurementPrediction) -> Array:
        return joseph_covariance(prior_covariance, gain_terms.kalman_gain, gain_terms.measurement_jacobian, self._R)
