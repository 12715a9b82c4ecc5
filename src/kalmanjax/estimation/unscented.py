"""Augmented unscented Kalman filter.

The filter represents the estimate with ``2L + 1`` sigma points drawn from
the augmented state ``[x, w, v]`` of length ``L = 2n + m``, where ``w`` is
the process noise and ``v`` the measurement noise.  Each update runs
the following steps:

1. Draw sigma points from ``[x, 0, 0]`` and ``blockdiag(P, Q, R)``.
2. Propagate the state segment of every point through the system model
   and add its process-noise segment.
3. Combine the propagated points into the a-priori mean and covariance.
4. Redraw sigma points around the a-priori estimate.
5. Pass the state segment of every redrawn point through the measurement
   model and add its measurement-noise segment.
6. Combine them into the predicted measurement, the innovation covariance
   ``S`` and the cross-covariance ``P_xz``.
7. Correct with the Kalman gain ``K = P_xz S^{-1}``:
   ``x = x^- + K (z - z^-)`` and ``P = P^- - K S K^T``.

Unlike the EKF, no Jacobians are needed, so the system and measurement
models may be arbitrary Python callables.  With ``vectorized=True`` they
are mapped over the sigma points with :func:`jax.vmap` and must then be
composed of JAX operations.
"""

from __future__ import annotations

import logging

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.estimation._types import (
    ConstantParameters,
    EstimationWeights,
    FilterState,
    MeasurementPrediction,
    Prediction,
)
from kalmanjax.estimation.base import (
    MeasurementFunction,
    StateEstimator,
    SystemFunction,
    kalman_gain,
)
from kalmanjax.estimation.history import TimeHistory
from kalmanjax.estimation.parameters import (
    augmented_dimension,
    constant_parameters,
    estimation_weights,
    number_of_sigma_points,
)
from kalmanjax.estimation.sigma_points import (
    augment_state,
    augmented_covariance,
    augmented_square_root,
    matrix_square_root,
    sigma_points_from_square_root,
    weighted_covariance,
    weighted_cross_covariance,
    weighted_mean,
)
from kalmanjax.integrators import IntegratorSettings

logger = logging.getLogger(__name__)


class UnscentedKalmanFilter(StateEstimator):
    """Unscented Kalman filter on the noise-augmented state.

    Args:
        system_function: ``f(t, x, u) -> x`` (or ``dx/dt`` when
            integrating).
        measurement_function: ``h(t, x) -> z``.
        process_noise_covariance: ``Q`` of shape ``(n, n)``.
        measurement_noise_covariance: ``R`` of shape ``(m, m)``.
        initial_time: Time of the initial estimate.
        initial_state: Initial state estimate of shape ``(n,)``.
        initial_covariance: Initial covariance of shape ``(n, n)``.
        integrator_settings: Integrate ``system_function`` instead of
            evaluating it directly when given.
        constant_parameter_reference: One of ``"wan_van_der_merwe"``,
            ``"lisano_born_axelrad"``, ``"challa_moore_rogers"`` or
            ``"custom"``.
        custom_constant_parameters: ``(alpha, kappa)`` for ``"custom"``.
        vectorized: Evaluate the models on all sigma points at once with
            :func:`jax.vmap`.
        history_length: Keep at most this many history entries, or the
            full archive when ``None``.

    Raises:
        ConfigurationError: If dimensions disagree or the constant
            parameter reference or custom values are invalid.
        NumericalError: If ``Q`` or ``R`` is not positive semi-definite.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.estimation import UnscentedKalmanFilter

        ukf = UnscentedKalmanFilter(
            system_function=lambda t, x, u: jnp.array([x[0] + x[1], x[1]]),
            measurement_function=lambda t, x: x[:1],
            process_noise_covariance=jnp.eye(2) * 0.01,
            measurement_noise_covariance=jnp.array([[0.1]]),
            initial_time=0.0,
            initial_state=jnp.array([0.0, 1.0]),
            initial_covariance=jnp.eye(2),
        )
        result = ukf.update_filter(1.0, None, jnp.array([1.05]))
        ```
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
        constant_parameter_reference: str = "wan_van_der_merwe",
        custom_constant_parameters: tuple[float, float] | None = None,
        vectorized: bool = False,
        history_length: int | None = None,
    ):
        super().__init__(
            system_function,
            measurement_function,
            process_noise_covariance,
            measurement_noise_covariance,
            initial_time,
            initial_state,
            initial_covariance,
            integrator_settings=integrator_settings,
            history_length=history_length,
        )
        n = self.state_dimension
        m = self.measurement_dimension

        self._constant_parameter_reference = constant_parameter_reference
        self._parameters = constant_parameters(
            constant_parameter_reference, n, m, custom_constant_parameters
        )
        self._augmented_dimension = augmented_dimension(n, m)
        self._number_of_sigma_points = number_of_sigma_points(self._augmented_dimension)
        self._weights = estimation_weights(self._parameters, self._augmented_dimension)
        self._noise_roots = (matrix_square_root(self._Q), matrix_square_root(self._R))
        self._vectorized = bool(vectorized)
        self._sigma_point_history: TimeHistory[dict[int, Array]] = TimeHistory(history_length)

        logger.info(
            "UnscentedKalmanFilter initialized: n=%d, m=%d, L=%d, %d sigma points, "
            "reference=%s (alpha=%g, kappa=%g), integrator=%s",
            n,
            m,
            self._augmented_dimension,
            self._number_of_sigma_points,
            constant_parameter_reference,
            self._parameters.alpha,
            self._parameters.kappa,
            "none" if integrator_settings is None else integrator_settings.method,
        )

    # ── Accessors ────────────────────────────────────────────────────────

    @property
    def constant_parameters(self) -> ConstantParameters:
        return self._parameters

    @property
    def constant_parameter_reference(self) -> str:
        return self._constant_parameter_reference

    @property
    def weights(self) -> EstimationWeights:
        return self._weights

    @property
    def augmented_dimension(self) -> int:
        """Augmented state length ``L = 2n + m``."""
        return self._augmented_dimension

    @property
    def number_of_sigma_points(self) -> int:
        """Number of sigma points ``2L + 1``."""
        return self._number_of_sigma_points

    @property
    def vectorized(self) -> bool:
        return self._vectorized

    @property
    def augmented_covariance(self) -> Array:
        """``blockdiag(P, Q, R)`` of the current estimate."""
        return augmented_covariance(self._P, self._Q, self._R)

    def sigma_point_history(self) -> dict[float, Array]:
        """Sigma points of every accepted update, keyed by update time.

        Returns:
            dict[float, jax.Array]: For each time, a matrix of shape
                ``(L, 2L+1)`` whose column ``i`` is sigma point ``i`` drawn
                from the previous a-posteriori estimate.
        """
        return {
            time: jnp.stack([points[i] for i in range(len(points))], axis=1)
            for time, points in self._sigma_point_history.items()
        }

    # ── Sigma points ─────────────────────────────────────────────────────

    def sigma_points(self, state: ArrayLike, covariance: ArrayLike) -> Array:
        """Draw augmented sigma points around a state estimate.

        Args:
            state: State of shape ``(n,)``; the noise segments have zero mean.
            covariance: State covariance of shape ``(n, n)``.

        Returns:
            jax.Array: Sigma points of shape ``(2L+1, L)``.

        Raises:
            NumericalError: If *covariance* is not positive semi-definite.
        """
        root = augmented_square_root(covariance, self._noise_roots)
        mean = augment_state(state, self._augmented_dimension)
        return sigma_points_from_square_root(mean, root, self._parameters.gamma)

    def _evaluate_system(self, time: float, state: Array, process_noise: Array, control: Array) -> Array:
        return self.predict_state(time, state, control) + process_noise

    def _evaluate_measurement(self, time: float, state: Array, measurement_noise: Array) -> Array:
        return self.evaluate_measurement(time, state) + measurement_noise

    def _map_points(self, fn, points: Array) -> Array:
        if self._vectorized:
            return jax.vmap(fn)(points)
        return jnp.stack([fn(points[i]) for i in range(points.shape[0])])

    # ── Strategy hooks ───────────────────────────────────────────────────

    def predict(self, time: float, control: Array) -> Prediction:
        n = self.state_dimension
        points = self.sigma_points(self._x, self._P)

        def propagate(point):
            return self._evaluate_system(time, point[:n], point[n : 2 * n], control)

        propagated = self._map_points(propagate, points)
        w = self._weights
        x_prior = weighted_mean(w.mean, propagated, w.mean_sum)
        P_prior = weighted_covariance(w.covariance, propagated, x_prior, w.covariance_sum)
        return Prediction(
            state=FilterState(x=x_prior, P=P_prior),
            sigma_points=points,
            propagated_points=propagated,
        )

    def predict_measurement(self, time: float, prediction: Prediction) -> MeasurementPrediction:
        n = self.state_dimension
        x_prior, P_prior = prediction.state
        points = self.sigma_points(x_prior, P_prior)

        def measure(point):
            return self._evaluate_measurement(time, point[:n], point[2 * n :])

        measured = self._map_points(measure, points)
        w = self._weights
        z_pred = weighted_mean(w.mean, measured, w.mean_sum)
        S = weighted_covariance(w.covariance, measured, z_pred, w.covariance_sum)
        P_xz = weighted_cross_covariance(
            w.covariance, points[:, :n], x_prior, measured, z_pred, w.covariance_sum
        )
        return MeasurementPrediction(
            predicted_measurement=z_pred,
            innovation_covariance=S,
            cross_covariance=P_xz,
            kalman_gain=kalman_gain(P_xz, S),
        )

    def posterior_covariance(self, prior_covariance: Array, gain_terms: MeasurementPrediction) -> Array:
        K = gain_terms.kalman_gain
        return prior_covariance - K @ gain_terms.innovation_covariance @ K.T

    def _archive(self, time: float, prediction: Prediction) -> None:
        points = prediction.sigma_points
        self._sigma_point_history.record(time, {i: points[i] for i in range(points.shape[0])})
