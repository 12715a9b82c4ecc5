"""Sigma-point generation and weighted moments.

A set of ``2L + 1`` sigma points is spread around a mean vector of length
``L`` along the columns of a matrix square root ``A`` of its covariance
(``A @ A.T == covariance``):

.. math::

    \\chi_0 = \\bar{x}, \\quad
    \\chi_i = \\bar{x} + \\gamma A_{:, i}, \\quad
    \\chi_{L+i} = \\bar{x} - \\gamma A_{:, i}, \\qquad i = 1 \\ldots L

The square root is the symmetric principal root obtained from an
eigendecomposition, so semi-definite covariances (e.g. a measurement
channel without noise) are supported.  Covariances with eigenvalues
below ``-get_psd_tolerance() * max|eigenvalue|`` raise
:class:`~kalmanjax.errors.NumericalError`.

The augmented covariance of the unscented filter is block diagonal,
``blockdiag(P, Q, R)``, so its square root is the block diagonal of the
roots of the blocks.  :func:`augmented_square_root` uses this to take the
root of the state covariance only, reusing precomputed noise roots.

Functions in this module check their inputs eagerly and are meant to be
called outside ``jax.jit``.
"""

from __future__ import annotations

from collections.abc import Sequence

import jax.numpy as jnp
import jax.scipy.linalg
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.config import get_dtype, get_psd_tolerance
from kalmanjax.errors import ConfigurationError, NumericalError


def matrix_square_root(covariance: ArrayLike) -> Array:
    """Compute the symmetric square root of a positive semi-definite matrix.

    Args:
        covariance: Symmetric matrix of shape ``(k, k)``. Only its
            symmetric part is used.

    Returns:
        jax.Array: Symmetric matrix ``A`` of shape ``(k, k)`` with
            ``A @ A.T`` equal to *covariance*.

    Raises:
        ConfigurationError: If *covariance* is not a square matrix.
        NumericalError: If *covariance* has non-finite entries or is not
            positive semi-definite.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.estimation import matrix_square_root
        A = matrix_square_root(jnp.diag(jnp.array([4.0, 9.0])))
        # diag([2.0, 3.0])
        ```
    """
    C = jnp.asarray(covariance, dtype=get_dtype())
    if C.ndim != 2 or C.shape[0] != C.shape[1]:
        raise ConfigurationError(f"Covariance must be a square matrix, got shape {C.shape}")
    if C.shape[0] == 0:
        return C
    if not bool(jnp.all(jnp.isfinite(C))):
        raise NumericalError("Covariance matrix has non-finite entries")

    C = 0.5 * (C + C.T)
    w, V = jnp.linalg.eigh(C)
    tol = get_psd_tolerance() * float(jnp.max(jnp.abs(w)))
    smallest = float(jnp.min(w))
    if smallest < -tol:
        raise NumericalError(
            f"Covariance matrix is not positive semi-definite "
            f"(smallest eigenvalue {smallest:.6e}), square root undefined"
        )

    return (V * jnp.sqrt(jnp.clip(w, 0.0))) @ V.T


def augmented_covariance(
    covariance: ArrayLike,
    process_noise: ArrayLike,
    measurement_noise: ArrayLike,
) -> Array:
    """Assemble ``blockdiag(P, Q, R)``.

    The blocks coupling process and measurement noise are always zero.
    """
    dtype = get_dtype()
    return jax.scipy.linalg.block_diag(
        jnp.asarray(covariance, dtype=dtype),
        jnp.asarray(process_noise, dtype=dtype),
        jnp.asarray(measurement_noise, dtype=dtype),
    )


def augment_state(state: ArrayLike, augmented_dim: int) -> Array:
    """Pad *state* with zero noise means up to length *augmented_dim*."""
    dtype = get_dtype()
    state = jnp.asarray(state, dtype=dtype)
    return jnp.concatenate([state, jnp.zeros(augmented_dim - state.shape[0], dtype=dtype)])


def augment(
    state: ArrayLike,
    covariance: ArrayLike,
    process_noise: ArrayLike,
    measurement_noise: ArrayLike,
) -> tuple[Array, Array]:
    """Build the augmented mean and covariance of a state estimate.

    Args:
        state: State estimate of shape ``(n,)``.
        covariance: State covariance ``P`` of shape ``(n, n)``.
        process_noise: Process noise covariance ``Q`` of shape ``(n, n)``.
        measurement_noise: Measurement noise covariance ``R`` of shape
            ``(m, m)``.

    Returns:
        tuple[jax.Array, jax.Array]: ``[x, 0, 0]`` of shape ``(L,)`` and
            ``blockdiag(P, Q, R)`` of shape ``(L, L)`` with ``L = 2n + m``.
    """
    augmented = augmented_covariance(covariance, process_noise, measurement_noise)
    return augment_state(state, augmented.shape[0]), augmented


def augmented_square_root(covariance: ArrayLike, noise_roots: Sequence[ArrayLike]) -> Array:
    """Square root of ``blockdiag(covariance, *noise)`` from precomputed noise roots.

    Args:
        covariance: State covariance ``P`` of shape ``(n, n)``.
        noise_roots: Square roots of the remaining diagonal blocks, in
            order, e.g. ``(sqrt(Q), sqrt(R))``.

    Returns:
        jax.Array: Block-diagonal square root of shape ``(L, L)``.

    Raises:
        NumericalError: If *covariance* is not positive semi-definite.
    """
    dtype = get_dtype()
    return jax.scipy.linalg.block_diag(
        matrix_square_root(covariance),
        *(jnp.asarray(root, dtype=dtype) for root in noise_roots),
    )


def sigma_points_from_square_root(mean: ArrayLike, square_root: ArrayLike, gamma: float) -> Array:
    """Spread ``2L + 1`` points around *mean* along the columns of *square_root*.

    Args:
        mean: Mean vector of shape ``(L,)``.
        square_root: Matrix ``A`` of shape ``(L, L)``.
        gamma: Offset scale ``sqrt(L + lambda)``.

    Returns:
        jax.Array: Sigma points of shape ``(2L+1, L)``; row 0 is the mean,
            rows ``1..L`` add and rows ``L+1..2L`` subtract ``gamma``
            times the matching column of *square_root*.
    """
    dtype = get_dtype()
    mean = jnp.asarray(mean, dtype=dtype)
    A = jnp.asarray(square_root, dtype=dtype)
    if A.shape != (mean.shape[0], mean.shape[0]):
        raise ConfigurationError(
            f"Square root shape {A.shape} does not match mean of length {mean.shape[0]}"
        )

    offsets = gamma * A.T  # row i = gamma * column i
    return jnp.concatenate([mean[None, :], mean[None, :] + offsets, mean[None, :] - offsets], axis=0)


def generate_sigma_points(mean: ArrayLike, covariance: ArrayLike, gamma: float) -> Array:
    """Generate the sigma points of a mean and covariance.

    A pure function of its inputs: identical arguments always give
    identical sigma points.

    Args:
        mean: Mean vector of shape ``(L,)``.
        covariance: Covariance of shape ``(L, L)``, symmetric positive
            semi-definite.
        gamma: Offset scale ``sqrt(L + lambda)``.

    Returns:
        jax.Array: Sigma points of shape ``(2L+1, L)``.

    Raises:
        NumericalError: If *covariance* is not positive semi-definite.

    Examples:
        ```python
        import jax.numpy as jnp
        from kalmanjax.estimation import generate_sigma_points
        points = generate_sigma_points(jnp.zeros(2), jnp.eye(2), 1.0)
        points.shape  # (5, 2)
        ```
    """
    return sigma_points_from_square_root(mean, matrix_square_root(covariance), gamma)


def _weight_sum(weights: Array, weight_sum: float | None) -> float | Array:
    return jnp.sum(weights) if weight_sum is None else weight_sum


def weighted_mean(weights: ArrayLike, points: ArrayLike, weight_sum: float | None = None) -> Array:
    """Weighted mean ``sum_i w_i * points[i]`` of points stacked by row.

    The sum is evaluated about the zeroth point,
    ``(sum_i w_i) p_0 + sum_{i>0} w_i (p_i - p_0)``, so the zeroth weight
    only enters through *weight_sum*.  Small-alpha presets have a zeroth
    weight of order ``-1 / alpha**2`` that cancels against the others;
    the raw sum would lose that cancellation to round-off in float32.

    Args:
        weights: Weights of shape ``(N,)``.
        points: Points of shape ``(N, k)``.
        weight_sum: Exact ``sum_i w_i``. Computed from *weights* when
            ``None``.

    Returns:
        jax.Array: Mean of shape ``(k,)``.
    """
    w = jnp.asarray(weights)
    points = jnp.asarray(points)
    origin = points[0]
    return _weight_sum(w, weight_sum) * origin + jnp.einsum("i,ij->j", w[1:], points[1:] - origin)


def weighted_cross_covariance(
    weights: ArrayLike,
    points_a: ArrayLike,
    mean_a: ArrayLike,
    points_b: ArrayLike,
    mean_b: ArrayLike,
    weight_sum: float | None = None,
) -> Array:
    """Weighted cross covariance ``sum_i w_i (a_i - mean_a)(b_i - mean_b)^T``.

    With deviations ``d_i = a_i - a_0``, ``e_i = b_i - b_0`` and mean
    offsets ``u = mean_a - a_0``, ``v = mean_b - b_0`` the sum is expanded
    as

    .. math::

        \\sum_{i>0} w_i d_i e_i^T - s_a v^T - u s_b^T + (\\sum_i w_i) u v^T,
        \\qquad s_a = \\sum_{i>0} w_i d_i, \\quad s_b = \\sum_{i>0} w_i e_i

    which, like :func:`weighted_mean`, never multiplies by the zeroth
    weight directly.

    Args:
        weights: Weights of shape ``(N,)``.
        points_a: Points of shape ``(N, j)``.
        mean_a: Mean of *points_a*, shape ``(j,)``.
        points_b: Points of shape ``(N, k)``.
        mean_b: Mean of *points_b*, shape ``(k,)``.
        weight_sum: Exact ``sum_i w_i``. Computed from *weights* when
            ``None``.

    Returns:
        jax.Array: Cross covariance of shape ``(j, k)``.
    """
    w = jnp.asarray(weights)
    points_a = jnp.asarray(points_a)
    points_b = jnp.asarray(points_b)
    d = points_a[1:] - points_a[0]
    e = points_b[1:] - points_b[0]
    u = jnp.asarray(mean_a) - points_a[0]
    v = jnp.asarray(mean_b) - points_b[0]
    s_a = jnp.einsum("i,ij->j", w[1:], d)
    s_b = jnp.einsum("i,ij->j", w[1:], e)
    return (
        jnp.einsum("i,ij,ik->jk", w[1:], d, e)
        - jnp.outer(s_a, v)
        - jnp.outer(u, s_b)
        + _weight_sum(w, weight_sum) * jnp.outer(u, v)
    )


def weighted_covariance(
    weights: ArrayLike,
    points: ArrayLike,
    mean: ArrayLike,
    weight_sum: float | None = None,
) -> Array:
    """Weighted covariance ``sum_i w_i (p_i - mean)(p_i - mean)^T``.

    Evaluated like :func:`weighted_cross_covariance` and symmetrized.
    """
    cov = weighted_cross_covariance(weights, points, mean, points, mean, weight_sum)
    return 0.5 * (cov + cov.T)
