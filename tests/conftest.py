import logging
import os

os.environ.setdefault("MPLBACKEND", "Agg")

import numpy as np
import pytest

from emissionheating.config import SimulationConfig
from emissionheating.fea.analysis.model import Model
from emissionheating.fea.pre.interpolation import InterpolationGrid, ScalarTable
from emissionheating.fea.pre.mesh import Mesh
from emissionheating.fea.pre.physical_quantities import PhysicalQuantities


def make_rectangle_arrays(nx: int, ny: int, width: float, height: float) -> tuple[np.ndarray, np.ndarray]:
    """Structured triangulation of [0, width] x [0, height], two counter-clockwise triangles per cell."""
    xs = np.linspace(0.0, width, nx + 1)
    ys = np.linspace(0.0, height, ny + 1)
    points = np.array([[x, y] for y in ys for x in xs])

    triangles = []
    for j in range(ny):
        for i in range(nx):
            v0 = j * (nx + 1) + i
            v1 = v0 + 1
            v2 = v0 + nx + 1
            v3 = v2 + 1
            triangles.append([v0, v1, v3])
            triangles.append([v0, v3, v2])
    return points, np.array(triangles)


@pytest.fixture
def rectangle_arrays():
    return make_rectangle_arrays


@pytest.fixture
def rectangle_mesh():
    """4 x 3 nm conductor, 4 x 3 cells."""
    points, triangles = make_rectangle_arrays(4, 3, 4.0, 3.0)
    return Mesh.from_arrays(points, triangles)


@pytest.fixture
def resistivity_table():
    # Copper-like linear resistivity [Ohm m]
    temperatures = np.arange(100.0, 1600.0, 100.0)
    return ScalarTable(x=temperatures, y=1.7e-8 * (1.0 + 0.004 * (temperatures - 300.0)))


def make_emission_grid(offset: float = 20.0) -> InterpolationGrid:
    """ln(j) over (ln F, T), linear in both so bilinear interpolation is exact."""
    xmin, xmax, xnum = np.log(0.5), np.log(10.0), 6
    ymin, ymax, ynum = 200.0, 1400.0, 7
    x = np.linspace(xmin, xmax, xnum)
    y = np.linspace(ymin, ymax, ynum)
    values = np.array([[offset + 2.0 * xi + 1e-3 * yj for yj in y] for xi in x])
    return InterpolationGrid(xmin=xmin, xmax=xmax, xnum=xnum, ymin=ymin, ymax=ymax, ynum=ynum, values=values.ravel())


def make_nottingham_grid(offset: float = -0.1) -> InterpolationGrid:
    xmin, xmax, xnum = np.log(0.5), np.log(10.0), 6
    ymin, ymax, ynum = 200.0, 1400.0, 7
    x = np.linspace(xmin, xmax, xnum)
    y = np.linspace(ymin, ymax, ynum)
    values = np.array([[offset + 0.05 * xi + 1e-4 * yj for yj in y] for xi in x])
    return InterpolationGrid(xmin=xmin, xmax=xmax, xnum=xnum, ymin=ymin, ymax=ymax, ynum=ynum, values=values.ravel())


@pytest.fixture
def emission_grid():
    return make_emission_grid()


@pytest.fixture
def nottingham_grid():
    return make_nottingham_grid()


@pytest.fixture
def pq(resistivity_table, emission_grid, nottingham_grid):
    return PhysicalQuantities(
        resistivity_table=resistivity_table,
        emission_grid=emission_grid,
        nottingham_grid=nottingham_grid,
    )


@pytest.fixture
def model(rectangle_mesh):
    return Model(mesh=rectangle_mesh)


@pytest.fixture
def config():
    return SimulationConfig()


@pytest.fixture(autouse=True)
def reset_package_logging():
    """Undo ``setup_logging`` so handlers don't outlive the test's captured streams."""
    yield
    logging.captureWarnings(False)
    for name in ("emissionheating", "py.warnings"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)
