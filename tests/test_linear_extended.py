"""Tests for the linear and extended Kalman filters and the estimator factory.

Tests cover:
- Linear Kalman filter against hand-computed updates
- Time-varying matrices, control inputs and configuration checks
- Joseph-form covariance update
- EKF agreement with the linear filter on linear models
- EKF linearization through the integrators
- EKF on a nonlinear measurement model
- create_state_estimator dispatch and errors
"""

import jax.numpy as jnp
import pytest

from kalmanjax.errors import ConfigurationError, NumericalError
from kalmanjax.estimation import (
    ESTIMATORS,
    ExtendedKalmanFilter,
    LinearKalmanFilter,
    StateEstimator,
    UnscentedKalmanFilter,
    create_state_estimator,
    joseph_covariance,
    kalman_gain,
)
from kalmanjax.integrators import IntegratorSettings

# ──────────────────────────────────────────────
# Helper functions
# ──────────────────────────────────────────────

_A = jnp.array([[1.0, 1.0], [0.0, 1.0]])
_H = jnp.array([[1.0, 0.0]])
_Q = jnp.diag(jnp.array([0.01, 0.01]))
_R = jnp.array([[0.1]])


def _constant_velocity(t, x, u):
    return _A @ x


def _constant_velocity_rate(t, x, u):
    return jnp.array([x[1], 0.0])


def _position(t, x):
    return x[:1]


def _common(**overrides):
    options = dict(
        process_noise_covariance=_Q,
        measurement_noise_covariance=_R,
        initial_time=0.0,
        initial_state=jnp.array([0.0, 1.0]),
        initial_covariance=jnp.eye(2),
    )
    options.update(overrides)
    return options


def _make_linear(**overrides):
    return LinearKalmanFilter(system_matrix=_A, measurement_matrix=_H, **_common(**overrides))


def _make_ekf(**overrides):
    options = dict(system_function=_constant_velocity, measurement_function=_position)
    options.update(_common(**overrides))
    return ExtendedKalmanFilter(**options)


# ──────────────────────────────────────────────
# Shared helpers
# ──────────────────────────────────────────────


class TestKalmanGain:
    def test_scalar(self):
        K = kalman_gain(jnp.array([[2.0], [1.0]]), jnp.array([[4.0]]))
        assert jnp.allclose(K, jnp.array([[0.5], [0.25]]))

    def test_singular_raises(self):
        with pytest.raises(NumericalError, match="singular"):
            kalman_gain(jnp.ones((2, 2)), jnp.array([[1.0, 0.0], [0.0, 0.0]]))

    def test_zero_raises(self):
        with pytest.raises(NumericalError, match="singular"):
            kalman_gain(jnp.ones((2, 1)), jnp.zeros((1, 1)))

    def test_non_finite_raises(self):
        with pytest.raises(NumericalError, match="non-finite"):
            kalman_gain(jnp.ones((2, 1)), jnp.array([[jnp.inf]]))


class TestJosephCovariance:
    def test_matches_short_form_for_optimal_gain(self):
        """With the optimal gain the Joseph form equals (I - KH) P."""
        P = jnp.array([[2.01, 1.0], [1.0, 1.01]])
        S = _H @ P @ _H.T + _R
        K = P @ _H.T / S[0, 0]
        short = (jnp.eye(2) - K @ _H) @ P
        assert jnp.allclose(joseph_covariance(P, K, _H, _R), short, atol=1e-12)

    def test_symmetric_for_any_gain(self):
        P = jnp.array([[2.0, 0.3], [0.3, 1.0]])
        K = jnp.array([[0.7], [-0.2]])
        result = joseph_covariance(P, K, _H, _R)
        assert jnp.allclose(result, result.T, atol=1e-14)


# ──────────────────────────────────────────────
# Linear Kalman filter
# ──────────────────────────────────────────────


class TestLinearKalmanFilter:
    def test_single_update(self):
        """Hand-computed update of the constant-velocity model."""
        kf = _make_linear()
        result = kf.update_filter(1.0, None, jnp.array([1.05]))
        s = 2.11
        expected = jnp.array([1.0 + 0.05 * 2.01 / s, 1.0 + 0.05 * 1.0 / s])
        assert jnp.allclose(kf.state, expected, atol=1e-12)
        assert float(result.innovation_covariance[0, 0]) == pytest.approx(s)
        assert jnp.allclose(result.kalman_gain[:, 0], jnp.array([2.01 / s, 1.0 / s]))

    def test_is_state_estimator(self):
        assert isinstance(_make_linear(), StateEstimator)

    def test_time_varying_matrices(self):
        """Callable matrices are evaluated at the update time."""
        kf = LinearKalmanFilter(
            system_matrix=lambda t: jnp.array([[1.0, t], [0.0, 1.0]]),
            measurement_matrix=lambda t: _H,
            **_common(),
        )
        kf.update_filter(2.0, None, jnp.array([2.0]))
        reference = LinearKalmanFilter(
            system_matrix=jnp.array([[1.0, 2.0], [0.0, 1.0]]), measurement_matrix=_H, **_common()
        )
        reference.update_filter(2.0, None, jnp.array([2.0]))
        assert jnp.allclose(kf.state, reference.state, atol=1e-12)

    def test_control_input(self):
        kf = _make_linear(input_matrix=jnp.array([[0.5], [1.0]]))
        prediction = kf.predict(1.0, jnp.array([2.0]))
        assert jnp.allclose(prediction.state.x, jnp.array([2.0, 3.0]))

    def test_control_without_input_matrix_raises(self):
        kf = _make_linear()
        with pytest.raises(ConfigurationError, match="input_matrix"):
            kf.update_filter(1.0, jnp.array([1.0]), jnp.array([1.0]))

    def test_wrong_input_matrix_shape_raises(self):
        kf = _make_linear(input_matrix=jnp.eye(2))
        with pytest.raises(ConfigurationError, match="input_matrix"):
            kf.update_filter(1.0, jnp.array([1.0]), jnp.array([1.0]))

    def test_wrong_system_matrix_raises(self):
        with pytest.raises(ConfigurationError, match="system_matrix"):
            LinearKalmanFilter(system_matrix=jnp.eye(3), measurement_matrix=_H, **_common())

    def test_wrong_measurement_matrix_raises(self):
        with pytest.raises(ConfigurationError, match="measurement_matrix"):
            LinearKalmanFilter(system_matrix=_A, measurement_matrix=jnp.eye(2), **_common())

    def test_integrator_settings_rejected(self):
        with pytest.raises(ConfigurationError, match="integrator"):
            _make_linear(integrator_settings=IntegratorSettings())

    def test_singular_innovation_leaves_filter_unchanged(self):
        kf = LinearKalmanFilter(
            system_matrix=_A,
            measurement_matrix=jnp.array([[1.0, 0.0], [0.0, 0.0]]),
            **_common(measurement_noise_covariance=jnp.diag(jnp.array([0.1, 0.0]))),
        )
        state, covariance = kf.state, kf.covariance
        with pytest.raises(NumericalError):
            kf.update_filter(1.0, None, jnp.array([1.0, 0.0]))
        assert kf.time == 0.0
        assert jnp.array_equal(kf.state, state)
        assert jnp.array_equal(kf.covariance, covariance)
        assert list(kf.state_history) == [0.0]

    def test_correct_state_records(self):
        """correct_state stores the corrected state under the given time."""
        kf = _make_linear()
        x = kf.correct_state(
            3.0, jnp.array([1.0, 1.0]), jnp.array([2.0]), jnp.array([1.0]), jnp.array([[0.5], [0.1]])
        )
        assert jnp.allclose(x, jnp.array([1.5, 1.1]))
        assert jnp.array_equal(kf.state, x)
        assert jnp.array_equal(kf.state_history[3.0], x)

    def test_correct_covariance_records(self):
        kf = _make_linear()
        prediction = kf.predict(1.0, jnp.zeros(0))
        gain_terms = kf.predict_measurement(1.0, prediction)
        P = kf.correct_covariance(1.0, prediction.state.P, gain_terms)
        assert jnp.array_equal(kf.covariance_history[1.0], P)
        assert jnp.allclose(P, P.T)

    def test_correct_state_alone_is_half_a_commit(self):
        """Only the state side moves; time and covariance stay at the last update."""
        kf = _make_linear()
        covariance = kf.covariance
        kf.correct_state(
            3.0, jnp.array([1.0, 1.0]), jnp.array([2.0]), jnp.array([1.0]), jnp.array([[0.5], [0.1]])
        )
        assert kf.time == 0.0
        assert jnp.array_equal(kf.covariance, covariance)
        assert list(kf.covariance_history) == [0.0]

    def test_update_filter_keeps_histories_aligned(self):
        kf = _make_linear()
        for k, z in enumerate([1.05, 2.1, 2.9], start=1):
            kf.update_filter(float(k), None, jnp.array([z]))
        assert list(kf.state_history) == list(kf.covariance_history) == [0.0, 1.0, 2.0, 3.0]
        assert kf.time == 3.0


# ──────────────────────────────────────────────
# Extended Kalman filter
# ──────────────────────────────────────────────


class TestExtendedKalmanFilter:
    def test_matches_linear_filter(self):
        ekf = _make_ekf()
        kf = _make_linear()
        for k, z in enumerate([1.05, 2.1, 2.9, 4.2], start=1):
            ekf.update_filter(float(k), None, jnp.array([z]))
            kf.update_filter(float(k), None, jnp.array([z]))
        assert jnp.allclose(ekf.state, kf.state, atol=1e-12)
        assert jnp.allclose(ekf.covariance, kf.covariance, atol=1e-12)

    def test_state_transition_from_autodiff(self):
        ekf = _make_ekf()
        prediction = ekf.predict(1.0, jnp.zeros(0))
        assert jnp.allclose(prediction.state_transition, _A)

    @pytest.mark.parametrize("method", ["euler", "rk4", "rkf45"])
    def test_linearizes_through_integrator(self, method):
        """Integrating dx/dt = [v, 0] gives the same state transition as A."""
        ekf = _make_ekf(
            system_function=_constant_velocity_rate,
            integrator_settings=IntegratorSettings(method=method, step_size=0.25),
        )
        prediction = ekf.predict(1.0, jnp.zeros(0))
        assert jnp.allclose(prediction.state_transition, _A, atol=1e-10)
        assert jnp.allclose(prediction.state.x, jnp.array([1.0, 1.0]), atol=1e-10)

    def test_nonlinear_measurement(self):
        """Range from a fixed point reduces uncertainty along the line of sight."""
        ekf = _make_ekf(measurement_function=lambda t, x: jnp.array([jnp.sqrt(x[0] ** 2 + 4.0)]))
        prediction = ekf.predict(1.0, jnp.zeros(0))
        gain_terms = ekf.predict_measurement(1.0, prediction)
        assert jnp.allclose(gain_terms.measurement_jacobian, jnp.array([[1.0 / jnp.sqrt(5.0), 0.0]]))
        result = ekf.update_filter(1.0, None, jnp.array([2.3]))
        assert float(jnp.trace(result.state.P)) < float(jnp.trace(prediction.state.P))

    def test_logs_construction(self, caplog):
        with caplog.at_level("INFO", logger="kalmanjax.estimation.extended"):
            _make_ekf()
        assert "ExtendedKalmanFilter initialized" in caplog.text


# ──────────────────────────────────────────────
# Factory
# ──────────────────────────────────────────────


class TestFactory:
    def test_kinds(self):
        assert set(ESTIMATORS) == {"linear", "extended", "unscented"}

    def test_create_unscented(self):
        estimator = create_state_estimator(
            "unscented",
            system_function=_constant_velocity,
            measurement_function=_position,
            constant_parameter_reference="lisano_born_axelrad",
            **_common(),
        )
        assert isinstance(estimator, UnscentedKalmanFilter)
        assert estimator.augmented_dimension == 5

    def test_create_extended(self):
        estimator = create_state_estimator(
            "extended", system_function=_constant_velocity, measurement_function=_position, **_common()
        )
        assert isinstance(estimator, ExtendedKalmanFilter)

    def test_create_linear(self):
        estimator = create_state_estimator("linear", system_matrix=_A, measurement_matrix=_H, **_common())
        assert isinstance(estimator, LinearKalmanFilter)

    def test_variants_agree_on_linear_model(self):
        """All variants built by the factory give the same linear-Gaussian estimate."""
        z = jnp.array([1.05])
        states = []
        for kind in ("linear", "extended", "unscented"):
            if kind == "linear":
                options = dict(system_matrix=_A, measurement_matrix=_H)
            else:
                options = dict(system_function=_constant_velocity, measurement_function=_position)
            estimator = create_state_estimator(kind, **options, **_common())
            estimator.update_filter(1.0, None, z)
            states.append(estimator.state)
        assert jnp.allclose(states[0], states[1], atol=1e-10)
        assert jnp.allclose(states[0], states[2], atol=1e-8)

    def test_unknown_kind_raises(self):
        with pytest.raises(ConfigurationError, match="Unknown estimator kind"):
            create_state_estimator("particle")

    def test_invalid_options_raise(self):
        with pytest.raises(ConfigurationError, match="Invalid options"):
            create_state_estimator("linear", system_function=_constant_velocity)
