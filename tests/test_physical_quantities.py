import os

import numpy as np
import pytest

from emissionheating.config import LORENZ_NUMBER, MaterialConstants
from emissionheating.fea.pre.interpolation import ScalarTable
from emissionheating.fea.pre.physical_quantities import PhysicalQuantities
from emissionheating.fea.pre.tables import save_compact_grid


def test_resistivity_is_scaled_linear_interpolation():
    pq = PhysicalQuantities(resistivity_table=ScalarTable.from_pairs([(200.0, 1.0), (1400.0, 2.0)]))
    assert pq.resistivity(800.0) == pytest.approx(1.5e9)


def test_resistivity_derivative(resistivity_table):
    pq = PhysicalQuantities(resistivity_table=resistivity_table)
    assert pq.resistivity_derivative(650.0) == pytest.approx(1.7e-8 * 0.004 * 1e9)


def test_sigma_is_positive_on_the_valid_range(pq):
    temperatures = np.linspace(200.0, 1400.0, 50)
    assert all(pq.sigma(t) > 0.0 for t in temperatures)
    assert np.all(pq.sigma_batch(temperatures) > 0.0)


def test_sigma_saturates_outside_the_valid_range(pq):
    assert pq.sigma(50.0) == pq.sigma(200.0)
    assert pq.sigma(5000.0) == pq.sigma(1400.0)
    assert pq.kappa(5000.0) == pq.kappa(1400.0)


def test_sigma_batch_matches_scalar(pq):
    temperatures = np.array([100.0, 300.0, 777.0, 1400.0, 2000.0])
    np.testing.assert_allclose(pq.sigma_batch(temperatures), [pq.sigma(t) for t in temperatures])
    np.testing.assert_allclose(pq.kappa_batch(temperatures), [pq.kappa(t) for t in temperatures])
    np.testing.assert_allclose(pq.dsigma_batch(temperatures), [pq.dsigma(t) for t in temperatures])


def test_kappa_follows_wiedemann_franz(pq):
    assert pq.kappa(600.0) == pytest.approx(LORENZ_NUMBER * 600.0 * pq.sigma(600.0))


def test_dsigma_and_dkappa(pq):
    t = 650.0
    rho = pq.resistivity(t)
    assert pq.dsigma(t) == pytest.approx(-pq.resistivity_derivative(t) / rho ** 2)
    assert pq.dkappa(t) == pytest.approx(LORENZ_NUMBER * (pq.sigma(t) + t * pq.dsigma(t)))


def test_dsigma_matches_finite_difference(pq):
    t, h = 650.0, 1e-3
    finite_difference = (pq.sigma(t + h) - pq.sigma(t - h)) / (2 * h)
    assert pq.dsigma(t) == pytest.approx(finite_difference, rel=1e-6)


def test_emission_current_at_grid_node(pq, emission_grid):
    # node (1, 2) of the grid
    log_field, temperature = emission_grid.node_coordinates(1, 2)
    expected = np.exp(emission_grid.node_value(1, 2)) * 1e-18
    assert pq.emission_current(np.exp(log_field), temperature) == pytest.approx(expected)


def test_emission_current_uses_log_of_field(pq):
    # ln j = 20 + 2 ln F + 1e-3 T is linear, so the interpolation is exact
    field, temperature = 2.0, 500.0
    expected = np.exp(20.0 + 2.0 * np.log(field) + 1e-3 * temperature) * 1e-18
    assert pq.emission_current(field, temperature) == pytest.approx(expected)


def test_nottingham_deviation(pq):
    field, temperature = 3.0, 800.0
    assert pq.nottingham_deviation(field, temperature) == pytest.approx(-0.1 + 0.05 * np.log(field) + 1e-4 * temperature)


def test_emission_batch_matches_scalar(pq):
    fields = np.array([0.6, 1.0, 4.0, 20.0])
    temperatures = np.array([250.0, 300.0, 900.0, 1500.0])
    np.testing.assert_allclose(
        pq.emission_current_batch(fields, temperatures),
        [pq.emission_current(f, t) for f, t in zip(fields, temperatures)],
    )
    np.testing.assert_allclose(
        pq.nottingham_deviation_batch(fields, temperatures),
        [pq.nottingham_deviation(f, t) for f, t in zip(fields, temperatures)],
    )


@pytest.mark.parametrize("field", [0.0, -1.0, np.nan, np.inf])
def test_emission_rejects_invalid_field(pq, field):
    with pytest.raises(ValueError, match="Electric field"):
        pq.emission_current(field, 300.0)
    with pytest.raises(ValueError, match="Electric field"):
        pq.nottingham_deviation(field, 300.0)


def test_emission_batch_rejects_invalid_field(pq):
    fields = np.array([1.0, 2.0, -0.5])
    temperatures = np.full(3, 300.0)
    with pytest.raises(ValueError, match="Electric field"):
        pq.emission_current_batch(fields, temperatures)
    with pytest.raises(ValueError, match="Electric field"):
        pq.nottingham_deviation_batch(fields, temperatures)


def test_custom_constants_are_used(resistivity_table):
    constants = MaterialConstants(lorenz_number=1.0, temperature_bounds=(250.0, 1000.0), resistivity_scale=1.0)
    pq = PhysicalQuantities(constants=constants, resistivity_table=resistivity_table)
    assert pq.resistivity(300.0) == pytest.approx(1.7e-8)
    assert pq.sigma(100.0) == pq.sigma(250.0)
    assert pq.kappa(400.0) == pytest.approx(400.0 * pq.sigma(400.0))


def test_missing_tables_raise_runtime_error():
    pq = PhysicalQuantities()
    with pytest.raises(RuntimeError):
        pq.sigma(300.0)
    with pytest.raises(RuntimeError):
        pq.emission_current(1.0, 300.0)
    with pytest.raises(RuntimeError):
        pq.nottingham_deviation(1.0, 300.0)


def test_loaders_report_missing_files(tmp_path):
    pq = PhysicalQuantities()
    assert not pq.load_resistivity_data(tmp_path / "missing.txt")
    assert not pq.load_emission_data(tmp_path / "missing.dat")
    assert not pq.load_nottingham_data(tmp_path / "missing.dat")
    assert pq.resistivity_table is None


def test_loaders_read_files(tmp_path, emission_grid, nottingham_grid):
    resistivity_file = tmp_path / "rho.txt"
    resistivity_file.write_text("% T rho\n200 1.0\n1400 2.0\n")
    save_compact_grid(tmp_path / "emission.dat", emission_grid)
    save_compact_grid(tmp_path / "nottingham.dat", nottingham_grid)

    pq = PhysicalQuantities()
    assert pq.load_resistivity_data(resistivity_file)
    assert pq.load_emission_data(tmp_path / "emission.dat")
    assert pq.load_nottingham_data(tmp_path / "nottingham.dat")

    assert pq.resistivity(800.0) == pytest.approx(1.5e9)
    assert pq.emission_current(2.0, 500.0) == pytest.approx(
        PhysicalQuantities(emission_grid=emission_grid).emission_current(2.0, 500.0)
    )


def test_output_to_files(tmp_path, pq):
    assert pq.output_to_files(tmp_path)

    for name in ("rho_file.txt", "sigma_file.txt", "kappa_file.txt", "emission_file.txt", "nottingham_file.txt"):
        assert os.path.isfile(tmp_path / name)

    rho = np.loadtxt(tmp_path / "rho_file.txt")
    assert rho.shape == (280, 3)
    assert rho[0, 0] == pytest.approx(100.0)

    emission = np.loadtxt(tmp_path / "emission_file.txt")
    assert emission.shape == (999, 3)
    np.testing.assert_allclose(emission[:, 1], 500.0)


def test_output_to_missing_directory_is_a_warning(tmp_path, pq, caplog):
    assert not pq.output_to_files(tmp_path / "does-not-exist")
    assert "physical quantities are not written" in caplog.text
