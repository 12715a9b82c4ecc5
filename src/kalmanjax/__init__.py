"""
kalmanjax is a recursive state estimation library implemented in JAX, built around an augmented unscented Kalman filter.
"""

from .config import set_dtype, get_dtype

from .errors import (
    EstimationError,
    ConfigurationError,
    NumericalError,
)

from .integrators import (
    IntegratorSettings,
    AdaptiveConfig,
    integrate,
)

from .estimation import (
    FilterState,
    FilterResult,
    StateEstimator,
    UnscentedKalmanFilter,
    ExtendedKalmanFilter,
    LinearKalmanFilter,
    create_state_estimator,
    constant_parameters,
    estimation_weights,
    generate_sigma_points,
)
