"""Tests for the kalmanjax.estimation.parameters module.

Tests cover:
- Preset lookup of alpha and kappa
- Custom parameters and their validation
- Derived constants lambda and gamma
- Mean and covariance weights
"""

import math

import jax.numpy as jnp
import pytest

from kalmanjax.errors import ConfigurationError
from kalmanjax.estimation import (
    BETA,
    CONSTANT_PARAMETER_REFERENCES,
    PARAMETER_PRESETS,
    augmented_dimension,
    constant_parameters,
    estimation_weights,
    number_of_sigma_points,
    resolve_alpha_kappa,
)

# ──────────────────────────────────────────────
# Dimensions
# ──────────────────────────────────────────────


class TestDimensions:
    def test_augmented_dimension(self):
        """L = 2n + m."""
        assert augmented_dimension(2, 1) == 5
        assert augmented_dimension(6, 3) == 15

    def test_number_of_sigma_points(self):
        """N = 2L + 1."""
        assert number_of_sigma_points(5) == 11
        assert number_of_sigma_points(1) == 3


# ──────────────────────────────────────────────
# Presets
# ──────────────────────────────────────────────


class TestPresets:
    def test_references_include_custom(self):
        assert set(CONSTANT_PARAMETER_REFERENCES) == {*PARAMETER_PRESETS, "custom"}

    def test_wan_van_der_merwe(self):
        assert resolve_alpha_kappa("wan_van_der_merwe", 4) == (pytest.approx(0.003), pytest.approx(0.0))

    def test_lisano_born_axelrad_depends_on_state_dimension(self):
        """kappa = 3 - n."""
        assert resolve_alpha_kappa("lisano_born_axelrad", 2) == (pytest.approx(1.0), pytest.approx(1.0))
        assert resolve_alpha_kappa("lisano_born_axelrad", 6) == (pytest.approx(1.0), pytest.approx(-3.0))

    def test_challa_moore_rogers(self):
        assert resolve_alpha_kappa("challa_moore_rogers", 3) == (pytest.approx(0.001), pytest.approx(1.0))

    def test_unknown_reference_raises(self):
        with pytest.raises(ConfigurationError, match="constant_parameter_reference"):
            resolve_alpha_kappa("julier_uhlmann", 2)

    def test_beta_is_two_for_every_preset(self):
        for reference in PARAMETER_PRESETS:
            assert constant_parameters(reference, 2, 1).beta == BETA == 2.0


# ──────────────────────────────────────────────
# Custom parameters
# ──────────────────────────────────────────────


class TestCustomParameters:
    def test_custom_values_used(self):
        assert resolve_alpha_kappa("custom", 2, (0.5, 2.0)) == (0.5, 2.0)

    def test_custom_without_values_raises(self):
        with pytest.raises(ConfigurationError, match="have not been specified"):
            resolve_alpha_kappa("custom", 2)

    @pytest.mark.parametrize("custom", [(float("nan"), 1.0), (0.5, float("nan")), (None, 1.0)])
    def test_custom_unset_value_raises(self, custom):
        """A missing or NaN alpha or kappa is rejected."""
        with pytest.raises(ConfigurationError):
            constant_parameters("custom", 2, 1, custom)

    def test_custom_ignored_for_presets(self):
        params = constant_parameters("challa_moore_rogers", 2, 1, (0.5, 5.0))
        assert params.alpha == pytest.approx(0.001)

    def test_non_positive_scale_raises(self):
        """alpha = 0 makes L + lambda zero."""
        with pytest.raises(ConfigurationError, match="L \\+ lambda"):
            constant_parameters("custom", 2, 1, (0.0, 0.0))


# ──────────────────────────────────────────────
# Derived constants
# ──────────────────────────────────────────────


class TestConstantParameters:
    def test_lisano_born_axelrad_two_states_one_measurement(self):
        """n=2, m=1: L=5, lambda=1, gamma=sqrt(6)."""
        params = constant_parameters("lisano_born_axelrad", 2, 1)
        assert params.alpha == pytest.approx(1.0)
        assert params.kappa == pytest.approx(1.0)
        assert params.lam == pytest.approx(1.0)
        assert params.gamma == pytest.approx(math.sqrt(6.0))

    def test_wan_van_der_merwe_lambda(self):
        params = constant_parameters("wan_van_der_merwe", 2, 1)
        L = 5
        assert params.lam == pytest.approx(0.003**2 * L - L)
        assert params.gamma == pytest.approx(math.sqrt(0.003**2 * L))

    def test_gamma_squared_is_l_plus_lambda(self):
        params = constant_parameters("challa_moore_rogers", 3, 2)
        assert params.gamma**2 == pytest.approx(augmented_dimension(3, 2) + params.lam)


# ──────────────────────────────────────────────
# Weights
# ──────────────────────────────────────────────


class TestEstimationWeights:
    def test_lisano_born_axelrad_weights(self):
        """n=2, m=1: W0 = 1/6, Wc0 = 1/6 + 2, Wi = 1/12."""
        params = constant_parameters("lisano_born_axelrad", 2, 1)
        weights = estimation_weights(params, 5)
        assert weights.mean.shape == (11,)
        assert weights.covariance.shape == (11,)
        assert float(weights.mean[0]) == pytest.approx(1.0 / 6.0)
        assert float(weights.covariance[0]) == pytest.approx(1.0 / 6.0 + 2.0)
        assert jnp.allclose(weights.mean[1:], 1.0 / 12.0)
        assert jnp.allclose(weights.covariance[1:], 1.0 / 12.0)

    @pytest.mark.parametrize("reference", list(PARAMETER_PRESETS))
    @pytest.mark.parametrize("n,m", [(1, 1), (2, 1), (6, 3)])
    def test_mean_weights_sum_to_one(self, reference, n, m):
        params = constant_parameters(reference, n, m)
        weights = estimation_weights(params, augmented_dimension(n, m))
        assert float(jnp.sum(weights.mean)) == pytest.approx(1.0, abs=1e-7)

    @pytest.mark.parametrize("reference", list(PARAMETER_PRESETS))
    def test_covariance_weights_differ_only_at_zero(self, reference):
        params = constant_parameters(reference, 2, 2)
        weights = estimation_weights(params, augmented_dimension(2, 2))
        assert jnp.array_equal(weights.mean[1:], weights.covariance[1:])
        diff = float(weights.covariance[0] - weights.mean[0])
        assert diff == pytest.approx(1.0 - params.alpha**2 + params.beta)

    @pytest.mark.parametrize("reference", list(PARAMETER_PRESETS))
    def test_exact_weight_sums(self, reference):
        params = constant_parameters(reference, 2, 1)
        weights = estimation_weights(params, 5)
        assert weights.mean_sum == 1.0
        assert weights.covariance_sum == pytest.approx(2.0 - params.alpha**2 + params.beta)
        assert float(jnp.sum(weights.covariance)) == pytest.approx(weights.covariance_sum, abs=1e-8)

    def test_weights_in_active_dtype(self):
        params = constant_parameters("lisano_born_axelrad", 2, 1)
        weights = estimation_weights(params, 5)
        assert weights.mean.dtype == jnp.float64
