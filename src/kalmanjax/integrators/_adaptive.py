"""Error norm and step-size prediction for embedded Runge-Kutta pairs.

A trial step is accepted when the mixed absolute/relative error norm is
at most one.  The next step size follows the usual
``h * S * (1 / err) ** (1 / (p + 1))`` rule, clamped by the scale-factor
and step-size bounds of :class:`~kalmanjax.integrators.AdaptiveConfig`.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from kalmanjax.integrators._types import AdaptiveConfig


def error_norm(
    error_vec: ArrayLike,
    state_new: ArrayLike,
    state_old: ArrayLike,
    config: AdaptiveConfig,
) -> Array:
    """Infinity norm of the local error scaled by the per-component tolerance.

    The tolerance of component ``i`` is
    ``abs_tol + rel_tol * max(|new_i|, |old_i|)``.

    Returns:
        jax.Array: Scalar; the step meets the tolerance when it is <= 1.0.
    """
    scale = config.abs_tol + config.rel_tol * jnp.maximum(jnp.abs(state_new), jnp.abs(state_old))
    return jnp.max(jnp.abs(error_vec) / scale)


def next_step_size(error: ArrayLike, h: ArrayLike, order: float, config: AdaptiveConfig) -> Array:
    """Predict the next step size from the error of the current one.

    The sign of *h* is preserved so backward integration keeps its
    direction.
    """
    error = jnp.asarray(error)
    h = jnp.asarray(h)

    # A zero error allows the largest growth.
    safe_error = jnp.where(error > 0.0, error, 1.0)
    raw_scale = jnp.where(
        error > 0.0,
        jnp.power(1.0 / safe_error, 1.0 / (order + 1.0)),
        config.max_scale_factor,
    )
    scale = jnp.clip(config.safety_factor * raw_scale, config.min_scale_factor, config.max_scale_factor)
    abs_h_next = jnp.clip(jnp.abs(h) * scale, config.min_step, config.max_step)

    return jnp.sign(h) * abs_h_next
