"""Exception types raised by kalmanjax.

- :class:`ConfigurationError`: the filter, its tuning parameters or an
  input vector is inconsistent.  Subclasses :class:`ValueError` so callers
  that already guard against bad arguments keep working.
- :class:`NumericalError`: a matrix operation is undefined for the
  current estimate, e.g. the square root of a covariance that is not
  positive semi-definite or the inverse of a singular innovation
  covariance.

A failed ``update_filter`` call leaves the filter exactly as it was before
the call, so the caller can skip the measurement or stop the run.
"""

from __future__ import annotations


class EstimationError(Exception):
    """Base class for all kalmanjax errors."""


class ConfigurationError(EstimationError, ValueError):
    """Invalid filter configuration or mismatched dimensions."""


class NumericalError(EstimationError, ArithmeticError):
    """A covariance operation is undefined for the current estimate."""
