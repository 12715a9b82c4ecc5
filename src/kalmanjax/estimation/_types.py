"""Type definitions for state estimation filters.

Provides the data types shared by all estimator variants:

- :class:`FilterState`: State estimate and covariance matrix.
- :class:`ConstantParameters`: Sigma-point tuning scalars
  ``alpha``, ``beta``, ``kappa``, ``lambda`` and ``gamma``.
- :class:`EstimationWeights`: Mean and covariance weights of the
  sigma points.
- :class:`Prediction`: A-priori estimate produced by a filter's
  ``predict`` step.
- :class:`MeasurementPrediction`: Predicted measurement, innovation
  covariance and Kalman gain produced before the correction step.
- :class:`FilterResult`: Output of an ``update_filter`` call, containing
  the a-posteriori state plus diagnostics for filter tuning.

All types are :class:`~typing.NamedTuple` instances, which JAX treats as
pytrees automatically.
"""

from __future__ import annotations

from typing import NamedTuple

from jax import Array


class FilterState(NamedTuple):
    """State of a Kalman filter.

    Attributes:
        x: State estimate vector of shape ``(n,)``.
        P: Error covariance matrix of shape ``(n, n)``. Must be symmetric
            positive semi-definite.
    """

    x: Array
    P: Array


class ConstantParameters(NamedTuple):
    """Scaling constants of the unscented transform.

    For an augmented state of length ``L``:

    .. math::

        \\lambda = \\alpha^2 (L + \\kappa) - L, \\qquad
        \\gamma = \\sqrt{L + \\lambda}

    Attributes:
        alpha: Spread of the sigma points around the mean.
        beta: Prior knowledge of the distribution (2 is optimal for
            Gaussians).
        kappa: Secondary scaling parameter.
        lam: Composite scaling parameter ``lambda``.
        gamma: Sigma-point offset scale ``sqrt(L + lambda)``.
    """

    alpha: float
    beta: float
    kappa: float
    lam: float
    gamma: float


class EstimationWeights(NamedTuple):
    """Weights combining ``2L + 1`` sigma points into moments.

    Attributes:
        mean: Weights for means, shape ``(2L+1,)``. Sums to one.
        covariance: Weights for covariances, shape ``(2L+1,)``. Equal to
            ``mean`` except for the zeroth entry.
        mean_sum: Exact sum of the mean weights (one).
        covariance_sum: Exact sum of the covariance weights,
            ``2 - alpha^2 + beta``.
    """

    mean: Array
    covariance: Array
    mean_sum: float
    covariance_sum: float


class Prediction(NamedTuple):
    """A-priori estimate for the current time.

    Attributes:
        state: A-priori :class:`FilterState`.
        sigma_points: Sigma points drawn from the previous a-posteriori
            estimate, shape ``(2L+1, L)``, or ``None`` for filters that do
            not sample. Archived only if the update is accepted.
        propagated_points: Sigma points after the system model, shape
            ``(2L+1, n)``, or ``None``.
        state_transition: Linearized state transition matrix, or ``None``
            for filters that do not linearize.
    """

    state: FilterState
    sigma_points: Array | None = None
    propagated_points: Array | None = None
    state_transition: Array | None = None


class MeasurementPrediction(NamedTuple):
    """Quantities computed between the a-priori estimate and the correction.

    Attributes:
        predicted_measurement: Expected measurement, shape ``(m,)``.
        innovation_covariance: Innovation covariance ``S``, shape
            ``(m, m)``.
        cross_covariance: State/measurement cross-covariance, shape
            ``(n, m)``.
        kalman_gain: Kalman gain ``K``, shape ``(n, m)``.
        measurement_jacobian: Measurement matrix ``H``, shape ``(m, n)``,
            or ``None`` for filters that do not linearize.
    """

    predicted_measurement: Array
    innovation_covariance: Array
    cross_covariance: Array
    kalman_gain: Array
    measurement_jacobian: Array | None = None


class FilterResult(NamedTuple):
    """Result of a filter update step.

    Returned by ``update_filter`` on every estimator variant.

    Attributes:
        state: A-posteriori :class:`FilterState` after incorporating the
            measurement.
        innovation: Measurement residual ``z - z_pred`` of shape ``(m,)``.
            Should be zero-mean and consistent with ``innovation_covariance``
            for a healthy filter.
        innovation_covariance: Innovation covariance ``S`` of shape
            ``(m, m)``. The normalized innovation squared
            ``innovation.T @ S^{-1} @ innovation`` should follow a
            chi-squared distribution with ``m`` degrees of freedom.
        kalman_gain: Kalman gain matrix ``K`` of shape ``(n, m)``.
    """

    state: FilterState
    innovation: Array
    innovation_covariance: Array
    kalman_gain: Array
