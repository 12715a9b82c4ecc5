"""Recursive state estimation filters.

Provides linear, extended and unscented Kalman filters behind the common
:class:`StateEstimator` interface, plus the sigma-point building blocks of
the unscented transform.

Available components:

- :class:`StateEstimator` -- Recursive predict/correct base with histories
- :class:`UnscentedKalmanFilter` -- Augmented sigma-point filter
- :class:`ExtendedKalmanFilter` -- Autodiff-linearized filter (Joseph form)
- :class:`LinearKalmanFilter` -- Filter for linear models (Joseph form)
- :func:`create_state_estimator` -- Construct a filter by name
- :func:`constant_parameters` -- Unscented transform constants from a preset
- :func:`estimation_weights` -- Sigma-point mean and covariance weights
- :func:`generate_sigma_points` -- Sigma points of a mean and covariance
- :func:`matrix_square_root` -- PSD matrix square root
- :class:`TimeHistory` -- Time-indexed archive with optional bound
"""

from kalmanjax.estimation._types import (
    ConstantParameters,
    EstimationWeights,
    FilterResult,
    FilterState,
    MeasurementPrediction,
    Prediction,
)
from kalmanjax.estimation.base import StateEstimator, kalman_gain
from kalmanjax.estimation.extended import ExtendedKalmanFilter
from kalmanjax.estimation.factory import ESTIMATORS, create_state_estimator
from kalmanjax.estimation.history import TimeHistory
from kalmanjax.estimation.linear import LinearKalmanFilter, joseph_covariance
from kalmanjax.estimation.parameters import (
    BETA,
    CONSTANT_PARAMETER_REFERENCES,
    CUSTOM_PARAMETERS,
    PARAMETER_PRESETS,
    augmented_dimension,
    constant_parameters,
    estimation_weights,
    number_of_sigma_points,
    resolve_alpha_kappa,
)
from kalmanjax.estimation.sigma_points import (
    augment,
    augment_state,
    augmented_covariance,
    augmented_square_root,
    generate_sigma_points,
    matrix_square_root,
    sigma_points_from_square_root,
    weighted_covariance,
    weighted_cross_covariance,
    weighted_mean,
)
from kalmanjax.estimation.unscented import UnscentedKalmanFilter

__all__ = [
    "FilterState",
    "ConstantParameters",
    "EstimationWeights",
    "Prediction",
    "MeasurementPrediction",
    "FilterResult",
    "StateEstimator",
    "kalman_gain",
    "UnscentedKalmanFilter",
    "ExtendedKalmanFilter",
    "LinearKalmanFilter",
    "joseph_covariance",
    "ESTIMATORS",
    "create_state_estimator",
    "TimeHistory",
    "BETA",
    "CUSTOM_PARAMETERS",
    "PARAMETER_PRESETS",
    "CONSTANT_PARAMETER_REFERENCES",
    "augmented_dimension",
    "number_of_sigma_points",
    "resolve_alpha_kappa",
    "constant_parameters",
    "estimation_weights",
    "matrix_square_root",
    "augment",
    "augmented_covariance",
    "augment_state",
    "augmented_square_root",
    "sigma_points_from_square_root",
    "generate_sigma_points",
    "weighted_mean",
    "weighted_covariance",
    "weighted_cross_covariance",
]
