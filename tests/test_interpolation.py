import numpy as np
import pytest

from emissionheating.fea.pre.interpolation import (
    InterpolationGrid,
    ScalarTable,
    bilinear_interp,
    bilinear_interp_batch,
    deriv_linear_interp,
    deriv_linear_interp_batch,
    linear_interp,
    linear_interp_batch,
)


@pytest.fixture
def grid():
    # f(x, y) = 3x + 2y + x*y sampled on x in [0, 2] (3 samples), y in [1, 4] (4 samples)
    x = np.linspace(0.0, 2.0, 3)
    y = np.linspace(1.0, 4.0, 4)
    values = np.array([[3 * xi + 2 * yj + xi * yj for yj in y] for xi in x])
    return InterpolationGrid(xmin=0.0, xmax=2.0, xnum=3, ymin=1.0, ymax=4.0, ynum=4, values=values.ravel())


def test_bilinear_center_of_unit_grid_is_mean():
    grid = InterpolationGrid(xmin=0.0, xmax=1.0, xnum=2, ymin=0.0, ymax=1.0, ynum=2, values=[0.0, 1.0, 2.0, 3.0])
    assert bilinear_interp(0.5, 0.5, grid) == pytest.approx(1.5)


def test_bilinear_exact_at_interior_and_lower_nodes(grid):
    for i in range(grid.xnum - 1):
        for j in range(grid.ynum - 1):
            x, y = grid.node_coordinates(i, j)
            assert bilinear_interp(x, y, grid) == pytest.approx(grid.node_value(i, j))


def test_bilinear_upper_bound_is_within_tolerance(grid):
    assert bilinear_interp(2.0, 4.0, grid) == pytest.approx(grid.node_value(2, 3), abs=1e-8)


def test_bilinear_reproduces_bilinear_function(grid):
    x, y = 1.3, 2.7
    assert bilinear_interp(x, y, grid) == pytest.approx(3 * x + 2 * y + x * y)


def test_bilinear_clamps_outside_the_grid(grid):
    assert bilinear_interp(-5.0, 1.0, grid) == pytest.approx(grid.node_value(0, 0))
    assert bilinear_interp(0.0, -10.0, grid) == pytest.approx(grid.node_value(0, 0))
    assert bilinear_interp(100.0, 100.0, grid) == pytest.approx(grid.node_value(2, 3), abs=1e-8)


def test_bilinear_batch_matches_scalar(grid):
    x = np.array([0.1, 0.9, 1.5, 3.0])
    y = np.array([1.2, 2.5, 3.9, 0.0])
    expected = [bilinear_interp(xi, yi, grid) for xi, yi in zip(x, y)]
    np.testing.assert_allclose(bilinear_interp_batch(x, y, grid), expected)


def test_grid_rejects_wrong_number_of_values():
    with pytest.raises(ValueError):
        InterpolationGrid(xmin=0.0, xmax=1.0, xnum=2, ymin=0.0, ymax=1.0, ynum=2, values=[1.0, 2.0, 3.0])


def test_grid_rejects_single_sample_axis():
    with pytest.raises(ValueError):
        InterpolationGrid(xmin=0.0, xmax=1.0, xnum=1, ymin=0.0, ymax=1.0, ynum=2, values=[1.0, 2.0])


def test_grid_values_are_read_only(grid):
    with pytest.raises(ValueError):
        grid.values[0] = 1.0


def test_linear_interp_inside():
    table = ScalarTable.from_pairs([(200.0, 1.0), (1400.0, 2.0)])
    assert linear_interp(800.0, table) == pytest.approx(1.5)


def test_linear_interp_flat_extrapolation():
    table = ScalarTable.from_pairs([(1.0, 10.0), (2.0, 20.0), (4.0, 0.0)])
    assert linear_interp(-3.0, table) == 10.0
    assert linear_interp(1.0, table) == 10.0
    assert linear_interp(4.0, table) == 0.0
    assert linear_interp(1e6, table) == 0.0


def test_linear_interp_at_keys():
    table = ScalarTable.from_pairs([(1.0, 10.0), (2.0, 20.0), (4.0, 0.0)])
    assert linear_interp(2.0, table) == pytest.approx(20.0)
    assert linear_interp(3.0, table) == pytest.approx(10.0)


def test_linear_interp_batch_matches_scalar():
    table = ScalarTable.from_pairs([(1.0, 10.0), (2.0, 20.0), (4.0, 0.0)])
    x = np.array([0.0, 1.5, 2.0, 3.5, 9.0])
    np.testing.assert_allclose(linear_interp_batch(x, table), [linear_interp(v, table) for v in x])


def test_derivative_of_linear_table_is_its_slope():
    table = ScalarTable(x=np.arange(0.0, 10.0), y=3.0 * np.arange(0.0, 10.0) + 1.0)
    for x in [0.0, 0.5, 4.2, 8.9, 9.0]:
        assert deriv_linear_interp(x, table) == pytest.approx(3.0)


def test_derivative_outside_returns_boundary_estimate():
    table = ScalarTable(x=np.arange(0.0, 10.0), y=3.0 * np.arange(0.0, 10.0))
    assert deriv_linear_interp(-100.0, table) == pytest.approx(3.0)
    assert deriv_linear_interp(100.0, table) == pytest.approx(3.0)


def test_derivative_uses_central_differences_inside():
    x = np.arange(0.0, 5.0)
    table = ScalarTable(x=x, y=x ** 2)
    # central difference of x^2 is exact at interior keys
    assert deriv_linear_interp(2.0, table) == pytest.approx(4.0)
    # halfway between keys 1 and 2: mean of the two central estimates
    assert deriv_linear_interp(1.5, table) == pytest.approx(3.0)
    # one-sided at the last key
    assert deriv_linear_interp(4.0, table) == pytest.approx(7.0)


def test_derivative_batch_matches_scalar():
    x = np.arange(0.0, 5.0)
    table = ScalarTable(x=x, y=x ** 3)
    queries = np.array([-1.0, 0.3, 2.0, 3.7, 6.0])
    np.testing.assert_allclose(
        deriv_linear_interp_batch(queries, table),
        [deriv_linear_interp(q, table) for q in queries],
    )


def test_table_requires_increasing_keys():
    with pytest.raises(ValueError):
        ScalarTable.from_pairs([(1.0, 1.0), (1.0, 2.0)])
    with pytest.raises(ValueError):
        ScalarTable.from_pairs([(2.0, 1.0), (1.0, 2.0)])


def test_table_requires_two_points():
    with pytest.raises(ValueError):
        ScalarTable.from_pairs([(1.0, 1.0)])
