"""Tests for the kalmanjax.config and kalmanjax.errors modules."""

import jax
import jax.numpy as jnp
import pytest

from kalmanjax.config import (
    get_dtype,
    get_epsilon,
    get_psd_tolerance,
    get_singular_rcond,
    set_dtype,
)
from kalmanjax.errors import ConfigurationError, EstimationError, NumericalError
from kalmanjax.estimation import UnscentedKalmanFilter

pytestmark = pytest.mark.order("first")


@pytest.fixture(autouse=True)
def reset_dtype():
    """Reset dtype to float32 before and after each test."""
    set_dtype(jnp.float32)
    yield
    set_dtype(jnp.float32)


class TestGetSetDtype:
    def test_default_dtype(self):
        assert get_dtype() == jnp.float32

    def test_set_float64(self):
        set_dtype(jnp.float64)
        assert get_dtype() == jnp.float64

    def test_set_float16(self):
        set_dtype(jnp.float16)
        assert get_dtype() == jnp.float16

    def test_set_bfloat16(self):
        set_dtype(jnp.bfloat16)
        assert get_dtype() == jnp.bfloat16

    def test_roundtrip(self):
        for dtype in (jnp.float16, jnp.bfloat16, jnp.float32, jnp.float64):
            set_dtype(dtype)
            assert get_dtype() == dtype

    def test_invalid_dtype_raises(self):
        with pytest.raises(ValueError, match="Unsupported dtype"):
            set_dtype(jnp.int32)

    def test_invalid_dtype_string_raises(self):
        with pytest.raises(ValueError, match="Unsupported dtype"):
            set_dtype("float32")

    def test_float64_enables_x64(self):
        set_dtype(jnp.float64)
        assert jax.config.jax_enable_x64 is True


class TestTolerances:
    def test_epsilon_float32(self):
        assert get_epsilon() == pytest.approx(float(jnp.finfo(jnp.float32).eps))

    def test_epsilon_float64(self):
        set_dtype(jnp.float64)
        assert get_epsilon() == pytest.approx(2.220446049250313e-16)

    def test_psd_tolerance_scales_with_epsilon(self):
        set_dtype(jnp.float64)
        assert get_psd_tolerance() == pytest.approx(100.0 * get_epsilon())

    def test_singular_rcond_scales_with_epsilon(self):
        assert get_singular_rcond() == pytest.approx(1000.0 * get_epsilon())

    def test_float32_looser_than_float64(self):
        tol32 = get_singular_rcond()
        set_dtype(jnp.float64)
        assert get_singular_rcond() < tol32


class TestErrors:
    def test_configuration_error_is_value_error(self):
        """Callers catching ValueError also catch configuration errors."""
        assert issubclass(ConfigurationError, ValueError)
        assert issubclass(ConfigurationError, EstimationError)

    def test_numerical_error_is_arithmetic_error(self):
        assert issubclass(NumericalError, ArithmeticError)
        assert issubclass(NumericalError, EstimationError)


class TestFilterDtype:
    def test_filter_state_follows_active_dtype(self):
        """Filters store their estimates in the dtype active at construction."""
        ukf = UnscentedKalmanFilter(
            system_function=lambda t, x, u: x,
            measurement_function=lambda t, x: x,
            process_noise_covariance=jnp.eye(1) * 0.1,
            measurement_noise_covariance=jnp.eye(1) * 0.1,
            initial_time=0.0,
            initial_state=[1.0],
            initial_covariance=jnp.eye(1),
            constant_parameter_reference="lisano_born_axelrad",
        )
        assert ukf.state.dtype == jnp.float32
        assert ukf.covariance.dtype == jnp.float32
        assert ukf.weights.mean.dtype == jnp.float32

    def test_ill_conditioned_weights_warn_in_float32(self, caplog):
        """A tiny alpha gives weights too large for float32 precision."""
        with caplog.at_level("WARNING", logger="kalmanjax.estimation.parameters"):
            UnscentedKalmanFilter(
                system_function=lambda t, x, u: x,
                measurement_function=lambda t, x: x,
                process_noise_covariance=jnp.eye(1) * 0.1,
                measurement_noise_covariance=jnp.eye(1) * 0.1,
                initial_time=0.0,
                initial_state=[1.0],
                initial_covariance=jnp.eye(1),
            )
        assert "poorly conditioned" in caplog.text
