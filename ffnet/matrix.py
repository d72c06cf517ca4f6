"""
matrix.py
~~~~~~~~~

Dense matrix primitives used by the network.

Matrices are 2-D ``numpy.ndarray`` values of float64. Every function here
allocates a new result and never mutates its operands. Shape checks raise
:class:`DimensionMismatch` instead of relying on numpy broadcasting, so a
column vector can never silently be added to a row vector.
"""

from typing import Callable, Optional, Sequence

import numpy as np

from .errors import DimensionMismatch, InvalidDataSize

Matrix = np.ndarray
ElementFunc = Callable[[int, int, float], float]


def _require_2d(m: Matrix, name: str) -> None:
    if m.ndim != 2:
        raise DimensionMismatch(f"{name} must be 2-D, got shape {m.shape}")


def _require_same_shape(m: Matrix, n: Matrix, op: str) -> None:
    _require_2d(m, op)
    _require_2d(n, op)
    if m.shape != n.shape:
        raise DimensionMismatch(
            f"{op}: operand shapes {m.shape} and {n.shape} differ"
        )


def lerp(x: float, in_low: float, in_high: float,
         out_low: float, out_high: float) -> float:
    """Map ``x`` from ``[in_low, in_high]`` onto ``[out_low, out_high]``."""
    return ((x - in_low) / (in_high - in_low)) * (out_high - out_low) + out_low


def sigmoid(_i: int, _j: int, v: float) -> float:
    """Logistic activation, in the ``apply`` callback signature."""
    return 1.0 / (1.0 + np.exp(-v))


def d_sigmoid(_i: int, _j: int, v: float) -> float:
    """Derivative of :func:`sigmoid`, evaluated on the pre-activation."""
    s = sigmoid(0, 0, v)
    return s * (1.0 - s)


def apply(fn: ElementFunc, m: Matrix) -> Matrix:
    """
    Compute ``result[i, j] = fn(i, j, m[i, j])`` for every entry of ``m``.

    ``fn`` is called once per entry with plain scalars.

    Args:
        fn: Element function receiving the row, column and value
        m: Source matrix

    Returns:
        A new matrix of the same shape holding the results
    """
    _require_2d(m, "apply")
    rows, cols = np.indices(m.shape)
    return np.vectorize(fn, otypes=[np.float64])(rows, cols, m)


def activate(m: Matrix) -> Matrix:
    """Vectorized ``apply(sigmoid, m)``."""
    _require_2d(m, "activate")
    return np.asarray(sigmoid(0, 0, m), dtype=np.float64)


def activate_prime(m: Matrix) -> Matrix:
    """Vectorized ``apply(d_sigmoid, m)``."""
    _require_2d(m, "activate_prime")
    return np.asarray(d_sigmoid(0, 0, m), dtype=np.float64)


def hadamard(m: Matrix, n: Matrix) -> Matrix:
    """Elementwise product."""
    _require_same_shape(m, n, "hadamard")
    return np.multiply(m, n)


def matmul(m: Matrix, n: Matrix) -> Matrix:
    """Standard matrix product ``m . n``."""
    _require_2d(m, "matmul")
    _require_2d(n, "matmul")
    if m.shape[1] != n.shape[0]:
        raise DimensionMismatch(
            f"matmul: cannot multiply {m.shape} by {n.shape}"
        )
    return np.matmul(m, n)


def scale(k: float, m: Matrix) -> Matrix:
    _require_2d(m, "scale")
    return np.multiply(k, m)


def add(m: Matrix, n: Matrix) -> Matrix:
    _require_same_shape(m, n, "add")
    return np.add(m, n)


def sub(m: Matrix, n: Matrix) -> Matrix:
    _require_same_shape(m, n, "sub")
    return np.subtract(m, n)


def transpose(m: Matrix) -> Matrix:
    # .T is a view; copy so callers never alias the operand
    _require_2d(m, "transpose")
    return m.T.copy()


def column(data: Sequence[float]) -> Matrix:
    """Turn a flat sequence of floats into an ``n x 1`` column matrix."""
    return np.asarray(data, dtype=np.float64).reshape(-1, 1).copy()


def random_array(size: int, low: float, high: float,
                 rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Draw ``size`` uniform samples mapped into ``(low, high)``.

    Args:
        size: Number of samples
        low: Lower bound of the output range
        high: Upper bound of the output range
        rng: Random source; a fresh unseeded generator when omitted

    Returns:
        1-D array of samples
    """
    if rng is None:
        rng = np.random.default_rng()
    return lerp(rng.random(size), 0.0, 1.0, low, high)


def total_cost(expected: Sequence[float], got: Sequence[float]) -> float:
    """Sum of squared differences between two equal-length vectors."""
    expected = np.asarray(expected, dtype=np.float64).ravel()
    got = np.asarray(got, dtype=np.float64).ravel()
    if expected.size != got.size:
        raise InvalidDataSize(
            f"cannot compare {got.size} outputs against {expected.size} expected"
        )
    return float(np.sum((expected - got) ** 2))
