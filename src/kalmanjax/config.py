"""Module-wide floating-point precision configuration.

Provides ``set_dtype`` and ``get_dtype`` to control the float dtype used
throughout kalmanjax.  The default is ``jnp.float32`` for GPU/TPU
compatibility.  Switching to ``jnp.float64`` automatically enables
JAX's 64-bit mode (``jax_enable_x64``).

Sigma-point filters with small ``alpha`` produce zeroth weights of order
``1 / alpha**2``, so long-running estimation should normally use
``jnp.float64``.

The numerical thresholds used to reject non positive semi-definite
covariances and singular innovation matrices scale with the machine
epsilon of the active dtype (see :func:`get_psd_tolerance` and
:func:`get_singular_rcond`).
"""

from __future__ import annotations

import jax
import jax.numpy as jnp

_VALID_DTYPES = (jnp.float16, jnp.bfloat16, jnp.float32, jnp.float64)

_dtype = jnp.float32


def set_dtype(dtype) -> None:
    """Set the module-wide float dtype for kalmanjax.

    Must be called **before** any ``jax.jit`` compilation.  In eager mode
    the change takes effect immediately, so filters constructed afterwards
    store their state in the new dtype.

    If *dtype* is ``jnp.float64``, JAX's 64-bit mode is automatically
    enabled via ``jax.config.update("jax_enable_x64", True)``.

    Args:
        dtype: One of ``jnp.float16``, ``jnp.bfloat16``, ``jnp.float32``,
            or ``jnp.float64``.

    Raises:
        ValueError: If *dtype* is not a supported float type.
    """
    global _dtype
    if dtype not in _VALID_DTYPES:
        raise ValueError(
            f"Unsupported dtype {dtype}. Must be one of: "
            f"jnp.float16, jnp.bfloat16, jnp.float32, jnp.float64"
        )
    if dtype == jnp.float64:
        jax.config.update("jax_enable_x64", True)
    _dtype = dtype


def get_dtype():
    """Return the current module-wide float dtype.

    Returns:
        The active float dtype (default ``jnp.float32``).
    """
    return _dtype


def get_epsilon() -> float:
    """Return the machine epsilon of the active dtype."""
    return float(jnp.finfo(_dtype).eps)


def get_psd_tolerance() -> float:
    """Return the relative tolerance for positive semi-definiteness checks.

    An eigenvalue ``w`` of a covariance matrix is accepted when
    ``w >= -tol * max(|w|)``.  Eigenvalues inside the band are treated as
    round-off and clipped to zero before taking square roots.

    - ``float64``: ``100 * eps`` (about 2.2e-14)
    - ``float32``: ``100 * eps`` (about 1.2e-5)
    - ``float16`` / ``bfloat16``: ``100 * eps``

    Returns:
        float: Relative eigenvalue tolerance.
    """
    return 100.0 * get_epsilon()


def get_singular_rcond() -> float:
    """Return the reciprocal condition number below which a matrix is singular.

    Used before inverting the innovation covariance.  A matrix whose
    smallest-to-largest singular value ratio falls below this threshold
    is reported as singular instead of being inverted.

    Returns:
        float: ``1000 * eps`` of the active dtype.
    """
    return 1000.0 * get_epsilon()
