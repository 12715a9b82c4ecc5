"""Butcher tableaux and stage evaluation for explicit Runge-Kutta methods.

Every stepper in :mod:`kalmanjax.integrators` is an explicit Runge-Kutta
method described by a :class:`ButcherTableau`.  Coefficients are stored as
Python tuples and combined with JAX arrays at call time, so zero
coefficients are skipped while tracing instead of producing dead
multiplications in the compiled graph.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import NamedTuple

from jax import Array


class ButcherTableau(NamedTuple):
    """Coefficients of an explicit (optionally embedded) Runge-Kutta method.

    Attributes:
        c: Stage nodes, one per stage.
        a: Coupling coefficients. Row ``i`` holds the ``i`` coefficients
            of stage ``i``; the first row is empty.
        b: Weights of the propagated solution.
        b_error: Weights of the embedded lower-order solution, or ``None``
            for methods without an error estimate.
        error_order: Order of the embedded solution, used by step-size
            control.
    """

    c: tuple[float, ...]
    a: tuple[tuple[float, ...], ...]
    b: tuple[float, ...]
    b_error: tuple[float, ...] | None = None
    error_order: float = 0.0


EULER = ButcherTableau(c=(0.0,), a=((),), b=(1.0,))

RK4 = ButcherTableau(
    c=(0.0, 0.5, 0.5, 1.0),
    a=((), (0.5,), (0.0, 0.5), (0.0, 0.0, 1.0)),
    b=(1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0),
)

# Fehlberg 4(5): the 5th-order solution is propagated, the 4th-order one
# only estimates the local error.
RKF45 = ButcherTableau(
    c=(0.0, 1.0 / 4.0, 3.0 / 8.0, 12.0 / 13.0, 1.0, 1.0 / 2.0),
    a=(
        (),
        (1.0 / 4.0,),
        (3.0 / 32.0, 9.0 / 32.0),
        (1932.0 / 2197.0, -7200.0 / 2197.0, 7296.0 / 2197.0),
        (439.0 / 216.0, -8.0, 3680.0 / 513.0, -845.0 / 4104.0),
        (-8.0 / 27.0, 2.0, -3544.0 / 2565.0, 1859.0 / 4104.0, -11.0 / 40.0),
    ),
    b=(16.0 / 135.0, 0.0, 6656.0 / 12825.0, 28561.0 / 56430.0, -9.0 / 50.0, 2.0 / 55.0),
    b_error=(25.0 / 216.0, 0.0, 1408.0 / 2565.0, 2197.0 / 4104.0, -1.0 / 5.0, 0.0),
    error_order=4.0,
)


def weighted_increment(coefficients: Sequence[float], stages: Sequence[Array]) -> Array | None:
    """Return ``sum(c_i * k_i)`` over the non-zero coefficients, or ``None``."""
    total = None
    for coefficient, stage in zip(coefficients, stages):
        if coefficient == 0.0:
            continue
        term = coefficient * stage
        total = term if total is None else total + term
    return total


def evaluate_stages(
    dynamics: Callable[[Array, Array], Array],
    t: Array,
    state: Array,
    h: Array,
    tableau: ButcherTableau,
) -> list[Array]:
    """Evaluate the derivative at every stage of *tableau*.

    Args:
        dynamics: ODE right-hand side ``f(t, x) -> dx/dt``.
        t: Time at the start of the step.
        state: State at the start of the step.
        h: Step size.
        tableau: Method coefficients.

    Returns:
        list[jax.Array]: Stage derivatives ``k_0 .. k_{s-1}``.
    """
    stages: list[Array] = []
    for node, row in zip(tableau.c, tableau.a):
        increment = weighted_increment(row, stages)
        stage_state = state if increment is None else state + h * increment
        stages.append(dynamics(t + node * h, stage_state))
    return stages
