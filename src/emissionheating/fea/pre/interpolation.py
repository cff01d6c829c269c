# interpolation.py
"""
Interpolation of tabulated physical data.

Two kinds of tables are supported:
    - ScalarTable: 1-D (x, y) samples, strictly increasing in x.
    - InterpolationGrid: 2-D values on a uniform structured grid.

The kernels are numba-compiled scalar and batched functions working on plain
arrays; the wrappers below accept the table dataclasses.
"""
from __future__ import annotations

from dataclasses import dataclass

from typing import TYPE_CHECKING

import numpy as np
import numba as nb

if TYPE_CHECKING:
    import numpy.typing as npt

# Nudge used to keep a query inside the last cell / away from the first key
INTERP_EPSILON = 1e-10


@dataclass(frozen=True, eq=False)
class InterpolationGrid:
    """
    Values sampled on a uniform 2-D grid.

    Attributes:
        xmin, xmax, xnum: Bounds and number of samples along the first axis.
        ymin, ymax, ynum: Bounds and number of samples along the second axis.
        values: Row-major samples, ``values[x_index * ynum + y_index]``.
    """
    xmin: float
    xmax: float
    xnum: int
    ymin: float
    ymax: float
    ynum: int
    values: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        if self.xnum < 2 or self.ynum < 2:
            raise ValueError(f"Grid needs at least 2 samples per axis, got xnum={self.xnum}, ynum={self.ynum}.")
        if not (self.xmax > self.xmin and self.ymax > self.ymin):
            raise ValueError("Grid bounds must satisfy xmin < xmax and ymin < ymax.")

        values = np.array(self.values, dtype=np.float64).ravel()
        if values.size != self.xnum * self.ynum:
            raise ValueError(
                f"Grid expects {self.xnum} x {self.ynum} = {self.xnum * self.ynum} values, got {values.size}."
            )
        values.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "xnum", int(self.xnum))
        object.__setattr__(self, "ynum", int(self.ynum))

    @property
    def dx(self) -> float:
        """Sample spacing along the first axis."""
        return (self.xmax - self.xmin) / (self.xnum - 1)

    @property
    def dy(self) -> float:
        """Sample spacing along the second axis."""
        return (self.ymax - self.ymin) / (self.ynum - 1)

    def node_value(self, x_index: int, y_index: int) -> float:
        """Stored value at grid node (x_index, y_index)."""
        return float(self.values[x_index * self.ynum + y_index])

    def node_coordinates(self, x_index: int, y_index: int) -> tuple[float, float]:
        """Coordinates of grid node (x_index, y_index)."""
        return self.xmin + x_index * self.dx, self.ymin + y_index * self.dy


@dataclass(frozen=True, eq=False)
class ScalarTable:
    """
    1-D table of (x, y) samples with strictly increasing x.
    """
    x: npt.NDArray[np.float64]
    y: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        x = np.array(self.x, dtype=np.float64).ravel()
        y = np.array(self.y, dtype=np.float64).ravel()

        if x.size != y.size:
            raise ValueError("Both columns of the table must have the same length.")
        if x.size < 2:
            raise ValueError("Table needs at least 2 points.")
        if not np.all(np.diff(x) > 0):
            raise ValueError("Table keys must be strictly increasing.")

        x.setflags(write=False)
        y.setflags(write=False)
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)

    @classmethod
    def from_pairs(cls, pairs: list[tuple[float, float]]) -> ScalarTable:
        """Build a table from a list of (x, y) pairs."""
        data = np.asarray(pairs, dtype=np.float64).reshape(-1, 2)
        return cls(x=data[:, 0], y=data[:, 1])

    def __len__(self) -> int:
        return self.x.size


# ---- JIT'd interpolation kernels (scalar + batched) ----

@nb.njit(cache=True)
def bilinear_interp_kernel(
    x: float,
    y: float,
    xmin: float,
    xmax: float,
    xnum: int,
    ymin: float,
    ymax: float,
    ynum: int,
    values: npt.NDArray[np.float64],
) -> float:
    """
    Bilinear interpolation on a uniform grid, clamped to the grid bounds.

    Queries at or above the upper bound are moved just inside the last cell,
    queries at or below the lower bound are moved onto it.
    """
    if x <= xmin:
        x = xmin
    if x >= xmax:
        x = xmax - INTERP_EPSILON
    if y <= ymin:
        y = ymin
    if y >= ymax:
        y = ymax - INTERP_EPSILON

    # number of cells = number of samples - 1
    dx = (xmax - xmin) / (xnum - 1)
    dy = (ymax - ymin) / (ynum - 1)

    xi = int((x - xmin) / dx)
    yi = int((y - ymin) / dy)
    if xi > xnum - 2:
        xi = xnum - 2
    if yi > ynum - 2:
        yi = ynum - 2

    # coordinates of (x, y) inside the unit cell
    xc = (x - xmin) / dx - xi
    yc = (y - ymin) / dy - yi

    v00 = values[xi * ynum + yi]
    v10 = values[(xi + 1) * ynum + yi]
    v01 = values[xi * ynum + yi + 1]
    v11 = values[(xi + 1) * ynum + yi + 1]

    return v00 * (1.0 - xc) * (1.0 - yc) + v10 * xc * (1.0 - yc) + v01 * (1.0 - xc) * yc + v11 * xc * yc


@nb.njit(cache=True)
def linear_interp_kernel(x: float, xp: npt.NDArray[np.float64], fp: npt.NDArray[np.float64]) -> float:
    """Piecewise-linear interpolation with flat extrapolation outside [xp[0], xp[-1]]."""
    if x <= xp[0]:
        return fp[0]
    if x >= xp[-1]:
        return fp[-1]
    i = np.searchsorted(xp, x)  # first key >= x
    x0, x1 = xp[i - 1], xp[i]
    return fp[i - 1] + (fp[i] - fp[i - 1]) * (x - x0) / (x1 - x0)


@nb.njit(cache=True)
def _local_derivative(i: int, xp: npt.NDArray[np.float64], fp: npt.NDArray[np.float64]) -> float:
    """Finite-difference derivative at sample i: one-sided at the ends, central inside."""
    n = xp.size
    if i == 0:
        return (fp[1] - fp[0]) / (xp[1] - xp[0])
    if i == n - 1:
        return (fp[n - 1] - fp[n - 2]) / (xp[n - 1] - xp[n - 2])
    return (fp[i + 1] - fp[i - 1]) / (xp[i + 1] - xp[i - 1])


@nb.njit(cache=True)
def deriv_linear_interp_kernel(x: float, xp: npt.NDArray[np.float64], fp: npt.NDArray[np.float64]) -> float:
    """
    Derivative estimate interpolated linearly between the local derivatives of
    the two bracketing samples.

    Outside the table the boundary estimate is returned, although the derivative
    of the saturated interpolant is zero there.
    """
    if x <= xp[0]:
        x = xp[0] + INTERP_EPSILON
    if x >= xp[-1]:
        x = xp[-1]
    i = np.searchsorted(xp, x)
    d1 = _local_derivative(i, xp, fp)
    d0 = _local_derivative(i - 1, xp, fp)
    return d0 + (d1 - d0) * (x - xp[i - 1]) / (xp[i] - xp[i - 1])


@nb.njit(cache=True)
def linear_interp_batch_kernel(
    x: npt.NDArray[np.float64],
    xp: npt.NDArray[np.float64],
    fp: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Batched ``linear_interp_kernel``."""
    out = np.empty(x.size, np.float64)
    for i in range(x.size):
        out[i] = linear_interp_kernel(x[i], xp, fp)
    return out


@nb.njit(cache=True)
def deriv_linear_interp_batch_kernel(
    x: npt.NDArray[np.float64],
    xp: npt.NDArray[np.float64],
    fp: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Batched ``deriv_linear_interp_kernel``."""
    out = np.empty(x.size, np.float64)
    for i in range(x.size):
        out[i] = deriv_linear_interp_kernel(x[i], xp, fp)
    return out


@nb.njit(cache=True)
def bilinear_interp_batch_kernel(
    x: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64],
    xmin: float,
    xmax: float,
    xnum: int,
    ymin: float,
    ymax: float,
    ynum: int,
    values: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Batched ``bilinear_interp_kernel`` over paired query points."""
    out = np.empty(x.size, np.float64)
    for i in range(x.size):
        out[i] = bilinear_interp_kernel(x[i], y[i], xmin, xmax, xnum, ymin, ymax, ynum, values)
    return out


# ---- Wrappers on the table dataclasses ----

def bilinear_interp(x: float, y: float, grid: InterpolationGrid) -> float:
    """Bilinear interpolation of ``grid`` at (x, y), clamped to the grid bounds."""
    return float(bilinear_interp_kernel(
        float(x), float(y),
        grid.xmin, grid.xmax, grid.xnum,
        grid.ymin, grid.ymax, grid.ynum,
        grid.values,
    ))


def bilinear_interp_batch(
    x: npt.ArrayLike,
    y: npt.ArrayLike,
    grid: InterpolationGrid,
) -> npt.NDArray[np.float64]:
    """Bilinear interpolation of ``grid`` at the paired points (x[i], y[i])."""
    x_arr, y_arr = np.broadcast_arrays(
        np.asarray(x, dtype=np.float64),
        np.asarray(y, dtype=np.float64),
    )
    out = bilinear_interp_batch_kernel(
        np.ascontiguousarray(x_arr).ravel(), np.ascontiguousarray(y_arr).ravel(),
        grid.xmin, grid.xmax, grid.xnum,
        grid.ymin, grid.ymax, grid.ynum,
        grid.values,
    )
    return out.reshape(x_arr.shape)


def linear_interp(x: float, table: ScalarTable) -> float:
    """Linear interpolation in ``table``; saturates to the end values outside the table."""
    return float(linear_interp_kernel(float(x), table.x, table.y))


def linear_interp_batch(x: npt.ArrayLike, table: ScalarTable) -> npt.NDArray[np.float64]:
    """Batched ``linear_interp``."""
    x_arr = np.asarray(x, dtype=np.float64)
    return linear_interp_batch_kernel(np.ascontiguousarray(x_arr).ravel(), table.x, table.y).reshape(x_arr.shape)


def deriv_linear_interp(x: float, table: ScalarTable) -> float:
    """
    Estimate dy/dx of ``table`` at x.

    Callers must not trust the value outside the table domain: the estimate is
    extrapolated from the boundary samples instead of being zero.
    """
    return float(deriv_linear_interp_kernel(float(x), table.x, table.y))


def deriv_linear_interp_batch(x: npt.ArrayLike, table: ScalarTable) -> npt.NDArray[np.float64]:
    """Batched ``deriv_linear_interp``."""
    x_arr = np.asarray(x, dtype=np.float64)
    return deriv_linear_interp_batch_kernel(
        np.ascontiguousarray(x_arr).ravel(), table.x, table.y
    ).reshape(x_arr.shape)
