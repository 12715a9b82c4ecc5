"""Tuning constants and sigma-point weights of the unscented transform.

The unscented filter is tuned by ``alpha`` and ``kappa``; ``beta`` is fixed
at 2, the optimal value for Gaussian priors.  Three literature presets are
available by name, or both values can be given explicitly with the
``"custom"`` reference:

=========================  ========  ==============  ==========================
Reference                  alpha     kappa           Source
=========================  ========  ==============  ==========================
``wan_van_der_merwe``      0.003     0               Wan and Van der Merwe (2000)
``lisano_born_axelrad``    1         3 - n           Jah, Lisano, Born and Axelrad (2008)
``challa_moore_rogers``    0.001     1               Challa, Moore and Rogers (2016)
=========================  ========  ==============  ==========================

where ``n`` is the state dimension.  With the augmented length
``L = 2n + m`` the derived constants are ``lambda = alpha^2 (L + kappa) - L``
and ``gamma = sqrt(L + lambda)``, and the ``2L + 1`` weights are

.. math::

    W^m_0 = \\frac{\\lambda}{L + \\lambda}, \\quad
    W^c_0 = W^m_0 + 1 - \\alpha^2 + \\beta, \\quad
    W^m_i = W^c_i = \\frac{1}{2 (L + \\lambda)}.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable

import jax.numpy as jnp

from kalmanjax.config import get_dtype, get_epsilon
from kalmanjax.errors import ConfigurationError
from kalmanjax.estimation._types import ConstantParameters, EstimationWeights

logger = logging.getLogger(__name__)

BETA = 2.0

CUSTOM_PARAMETERS = "custom"

# Preset name -> rule mapping the state dimension to (alpha, kappa).
PARAMETER_PRESETS: dict[str, Callable[[int], tuple[float, float]]] = {
    "wan_van_der_merwe": lambda n: (0.003, 0.0),
    "lisano_born_axelrad": lambda n: (1.0, 3.0 - n),
    "challa_moore_rogers": lambda n: (0.001, 1.0),
}

CONSTANT_PARAMETER_REFERENCES = (*PARAMETER_PRESETS, CUSTOM_PARAMETERS)

# Largest |W_0| * eps accepted without a conditioning warning.
_WEIGHT_PRECISION_LIMIT = 1e-6


def augmented_dimension(state_dimension: int, measurement_dimension: int) -> int:
    """Length ``L = 2n + m`` of the augmented state vector."""
    return 2 * state_dimension + measurement_dimension


def number_of_sigma_points(augmented_dim: int) -> int:
    """Number of sigma points ``2L + 1`` for an augmented length ``L``."""
    return 2 * augmented_dim + 1


def _is_unset(value) -> bool:
    if value is None:
        return True
    try:
        return math.isnan(float(value))
    except (TypeError, ValueError):
        return True


def resolve_alpha_kappa(
    reference: str,
    state_dimension: int,
    custom: tuple[float, float] | None = None,
) -> tuple[float, float]:
    """Look up ``(alpha, kappa)`` for a preset, or validate custom values.

    Args:
        reference: A key of :data:`PARAMETER_PRESETS` or ``"custom"``.
        state_dimension: Length ``n`` of the state vector.
        custom: ``(alpha, kappa)`` pair, required for ``"custom"`` and
            ignored otherwise.

    Returns:
        tuple[float, float]: ``(alpha, kappa)``.

    Raises:
        ConfigurationError: If *reference* is unknown, or it is
            ``"custom"`` and either value is missing or NaN.
    """
    if reference == CUSTOM_PARAMETERS:
        if custom is None or len(custom) != 2 or any(_is_unset(v) for v in custom):
            raise ConfigurationError(
                "The values of the alpha and kappa parameters have not been specified, "
                "but the selected constant parameter reference is 'custom'"
            )
        return float(custom[0]), float(custom[1])

    try:
        rule = PARAMETER_PRESETS[reference]
    except KeyError:
        raise ConfigurationError(
            f"constant_parameter_reference must be one of "
            f"{', '.join(repr(r) for r in CONSTANT_PARAMETER_REFERENCES)}, got '{reference}'"
        ) from None
    return rule(state_dimension)


def constant_parameters(
    reference: str,
    state_dimension: int,
    measurement_dimension: int,
    custom: tuple[float, float] | None = None,
) -> ConstantParameters:
    """Derive the unscented transform constants.

    Args:
        reference: A key of :data:`PARAMETER_PRESETS` or ``"custom"``.
        state_dimension: Length ``n`` of the state vector.
        measurement_dimension: Length ``m`` of the measurement vector.
        custom: ``(alpha, kappa)`` pair for the ``"custom"`` reference.

    Returns:
        ConstantParameters: ``alpha``, ``beta``, ``kappa``, ``lam`` and
            ``gamma`` for the augmented length ``L = 2n + m``.

    Raises:
        ConfigurationError: If the reference or custom values are invalid,
            or ``L + lambda`` is not positive.

    Examples:
        ```python
        from kalmanjax.estimation import constant_parameters
        params = constant_parameters("lisano_born_axelrad", 2, 1)
        params.gamma  # sqrt(6)
        ```
    """
    alpha, kappa = resolve_alpha_kappa(reference, state_dimension, custom)
    L = augmented_dimension(state_dimension, measurement_dimension)
    # L + lambda, formed without the cancellation in (alpha^2 (L + kappa) - L) + L
    scale = alpha**2 * (L + kappa)
    if not scale > 0.0:
        raise ConfigurationError(
            f"L + lambda must be positive, got {scale} for alpha={alpha}, kappa={kappa}, L={L}"
        )
    return ConstantParameters(
        alpha=alpha,
        beta=BETA,
        kappa=kappa,
        lam=scale - L,
        gamma=math.sqrt(scale),
    )


def estimation_weights(parameters: ConstantParameters, augmented_dim: int) -> EstimationWeights:
    """Compute the mean and covariance weights of the sigma points.

    Args:
        parameters: Constants from :func:`constant_parameters`.
        augmented_dim: Augmented state length ``L``.

    Returns:
        EstimationWeights: Two arrays of shape ``(2L+1,)`` in the active
            dtype, plus their exact sums as Python floats. The arrays
            are rounded once from double precision; the sums are not
            rounded, since a float32 zeroth weight of order
            ``-1 / alpha**2`` cannot resolve them.
    """
    dtype = get_dtype()
    L = augmented_dim
    n_points = number_of_sigma_points(L)
    scale = parameters.alpha**2 * (L + parameters.kappa)

    w0_mean = parameters.lam / scale
    w0_cov = w0_mean + (1.0 - parameters.alpha**2 + parameters.beta)
    wi = 1.0 / (2.0 * scale)

    if abs(w0_mean) * get_epsilon() > _WEIGHT_PRECISION_LIMIT:
        logger.warning(
            "Zeroth sigma-point weight %.3e is poorly conditioned for %s and amplifies "
            "round-off in the estimated moments; consider set_dtype(jnp.float64) or a larger alpha",
            w0_mean,
            jnp.dtype(dtype).name,
        )

    rest = jnp.full(n_points - 1, wi, dtype=dtype)
    mean = jnp.concatenate([jnp.array([w0_mean], dtype=dtype), rest])
    covariance = jnp.concatenate([jnp.array([w0_cov], dtype=dtype), rest])
    return EstimationWeights(
        mean=mean,
        covariance=covariance,
        mean_sum=1.0,
        covariance_sum=2.0 - parameters.alpha**2 + parameters.beta,
    )
