"""
Quadrature rules on the reference edge and the reference triangle.

Edge rules live on [-1, +1]. Triangle rules are given in area coordinates
``[1 - r - s, r, s]`` of the unit triangle (0,0), (1,0), (0,1), with the
weights already multiplied by its area (1/2).
"""
from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


_EDGE_RULES: dict[int, tuple[list[float], list[float]]] = {
    1: ([0.0], [2.0]),
    2: ([-1.0 / np.sqrt(3.0), 1.0 / np.sqrt(3.0)], [1.0, 1.0]),
    3: ([-np.sqrt(3.0 / 5.0), 0.0, np.sqrt(3.0 / 5.0)], [5.0 / 9.0, 8.0 / 9.0, 5.0 / 9.0]),
}

_TRIANGLE_RULES: dict[int, tuple[list[list[float]], list[float]]] = {
    1: ([[1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0]], [1.0]),
    3: (
        [
            [2.0 / 3.0, 1.0 / 6.0, 1.0 / 6.0],
            [1.0 / 6.0, 2.0 / 3.0, 1.0 / 6.0],
            [1.0 / 6.0, 1.0 / 6.0, 2.0 / 3.0],
        ],
        [1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0],
    ),
}


def gauss_points_weights_edge(n_points: int) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Gauss-Legendre points and weights on [-1, +1].

    Raises:
        ValueError: If `n_points` is not 1, 2, or 3.
    """
    if n_points not in _EDGE_RULES:
        raise ValueError(f"Unsupported number of Gauss points: {n_points}. "
                         f"'n_points' must be one of {sorted(_EDGE_RULES)}.")
    points, weights = _EDGE_RULES[n_points]
    return np.array(points, dtype=np.float64), np.array(weights, dtype=np.float64)


def gauss_points_weights_triangle(n_points: int) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Symmetric Gauss points (area coordinates) and weights on the unit triangle.

    Raises:
        ValueError: If `n_points` is not 1 or 3.
    """
    if n_points not in _TRIANGLE_RULES:
        raise ValueError(f"Unsupported number of Gauss points: {n_points}. "
                         f"'n_points' must be one of {sorted(_TRIANGLE_RULES)}.")
    points, weights = _TRIANGLE_RULES[n_points]
    return np.array(points, dtype=np.float64), 0.5 * np.array(weights, dtype=np.float64)
