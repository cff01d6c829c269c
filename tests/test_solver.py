import logging

import numpy as np
import pytest

from conftest import make_emission_grid, make_nottingham_grid
from emissionheating.config import SimulationConfig
from emissionheating.fea.analysis.boundary import InterfaceMatch, InterfaceSource
from emissionheating.fea.analysis.model import Model
from emissionheating.fea.pre.mesh import BoundaryId, Mesh
from emissionheating.fea.pre.physical_quantities import PhysicalQuantities
from emissionheating.fea.solvers.solver import CurrentsAndHeatingSolver, StepState
from emissionheating.fea.solvers.time_integration import ImplicitEuler

HEIGHT = 3.0
# σ(300 K) of the test resistivity table, 1 / (1.7e-8 Ohm m * 1e9)
SIGMA_300 = 1.0 / 17.0


@pytest.fixture
def solver(model, pq, config):
    return CurrentsAndHeatingSolver(model, pq, config)


def top_emission(mesh, j0):
    """Emission current j0 through the top faces, nothing through the sides."""
    on_top = np.isclose([face.centroid[1] for face in mesh.get_surface_faces()], HEIGHT)
    return np.where(on_top, j0, 0.0)


def test_initial_state(solver, model):
    assert solver.state is StepState.INIT
    assert solver.timestep == 0
    assert solver.time == 0.0
    assert solver.get_max_temperature() == pytest.approx(300.0)
    assert solver.get_surface_nodes().shape == (10, 2)
    assert solver.get_temperature([0, 5], [0, 2]) == [300.0, 300.0]


def test_out_of_order_calls(solver):
    with pytest.raises(RuntimeError):
        solver.solve_current()
    with pytest.raises(RuntimeError):
        solver.assemble_heating_system()
    with pytest.raises(RuntimeError):
        solver.advance()

    solver.assemble_current_system()
    with pytest.raises(RuntimeError):
        solver.solve_heat()
    solver.solve_current()
    with pytest.raises(RuntimeError):
        solver.advance()
    solver.assemble_heating_system()
    solver.solve_heat()
    with pytest.raises(RuntimeError):
        solver.assemble_current_system()
    solver.advance()
    assert solver.state is StepState.ADVANCED


def test_zero_emission_leaves_temperature_unchanged(solver, model):
    n = len(solver.get_surface_nodes())
    solver.set_emission_bc(np.zeros(n), np.zeros(n))

    report = solver.step()

    np.testing.assert_allclose(model.solution_current, 0.0, atol=1e-12)
    np.testing.assert_allclose(model.solution_heat, 300.0, rtol=1e-10)
    assert report.max_heating_power == 0.0
    assert report.step == 1
    assert report.time == pytest.approx(solver.config.time_step)


def test_uniform_emission_gives_linear_potential(solver, model):
    j0 = 0.02
    solver.set_emission_bc(top_emission(solver.model.mesh, j0), np.zeros(10))

    solver.assemble_current_system()
    solver.solve_current(tol=1e-14)

    y = model.mesh.points[:, 1]
    np.testing.assert_allclose(model.solution_current, j0 * y / SIGMA_300, rtol=1e-5, atol=1e-6)

    np.testing.assert_allclose(solver.get_current([0, 7], [0, 1]), [[0.0, -j0], [0.0, -j0]], rtol=1e-5, atol=1e-7)


def test_bottom_is_grounded_and_ambient(solver, model):
    solver.set_emission_bc(top_emission(solver.model.mesh, 1e-5), np.zeros(10))
    solver.step()

    bottom = model.mesh.boundary_dofs(BoundaryId.BOTTOM)
    np.testing.assert_allclose(model.solution_current[bottom], 0.0, atol=1e-9)
    np.testing.assert_allclose(model.solution_heat[bottom], 300.0)
    assert solver.get_max_temperature() > 300.0


def test_crank_nicolson_averages_the_heating_power(solver):
    j0 = 1e-5
    solver.set_emission_bc(top_emission(solver.model.mesh, j0), np.zeros(10))
    solver.assemble_current_system()
    solver.solve_current(tol=1e-15)

    solver.assemble_heating_system_crank_nicolson()
    crank_nicolson = solver.max_heating_power
    solver.assemble_heating_system_euler_implicit()
    euler = solver.max_heating_power

    # the previous potential is zero on the first step
    assert euler == pytest.approx(SIGMA_300 * (j0 / SIGMA_300) ** 2, rel=1e-6)
    assert crank_nicolson == pytest.approx(0.5 * euler, rel=1e-9)


@pytest.mark.parametrize("scheme", ["crank_nicolson", "implicit_euler"])
def test_joule_heating_raises_the_temperature(rectangle_mesh, pq, scheme):
    model = Model(mesh=rectangle_mesh)
    solver = CurrentsAndHeatingSolver(model, pq, SimulationConfig(time_integration=scheme))
    solver.set_emission_bc(top_emission(solver.model.mesh, 1e-5), np.zeros(10))

    reports = solver.run(2)

    temperatures = [report.max_temperature for report in reports]
    assert 300.0 < temperatures[0] < temperatures[1] < 301.0
    # hotter towards the emitting top
    top = np.isclose(model.mesh.points[:, 1], HEIGHT)
    assert model.solution_heat[top].mean() > model.solution_heat.mean()


def test_overrides_make_the_result_independent_of_emission_tables(rectangle_mesh, resistivity_table):
    emission = top_emission(rectangle_mesh, 1e-5)
    heats = np.full(10, 1e-12)

    results = []
    for offset in (20.0, 5.0):
        pq = PhysicalQuantities(
            resistivity_table=resistivity_table,
            emission_grid=make_emission_grid(offset),
            nottingham_grid=make_nottingham_grid(-offset / 100.0),
        )
        model = Model(mesh=rectangle_mesh)
        solver = CurrentsAndHeatingSolver(model, pq)
        solver.set_emission_bc(emission, heats)
        solver.run(2)
        results.append((model.solution_current.copy(), model.solution_heat.copy()))

    np.testing.assert_array_equal(results[0][0], results[1][0])
    np.testing.assert_array_equal(results[0][1], results[1][1])


def test_on_the_fly_emission_uses_the_tables(model, pq):
    def with_emission(offset):
        return PhysicalQuantities(
            resistivity_table=pq.resistivity_table,
            emission_grid=make_emission_grid(offset),
            nottingham_grid=pq.nottingham_grid,
        )

    solver = CurrentsAndHeatingSolver(model, with_emission(30.0))
    solver.set_uniform_electric_field_bc(2.0)
    solver.assemble_current_system()
    solver.solve_current()
    # current leaves through every surface face
    weak = model.solution_current.max()
    assert weak > 0.0

    solver.set_physical_quantities(with_emission(35.0))
    solver.assemble_current_system()
    solver.solve_current()
    assert model.solution_current.max() > 10.0 * weak


def map_partial_field(solver, model, n_matched=4):
    """Map a uniform field of 2 onto the first surface faces only."""
    potential = 2.0 * model.mesh.points[:, 1]
    source = InterfaceSource.from_potential(model.mesh, potential)
    partial = InterfaceSource(centroids=source.centroids[:n_matched], values=source.values[:n_matched])
    return solver.map_electric_field_bc(partial)


def split_dofs(faces, match):
    matched = [face for face in faces if face.key in match.values]
    matched_dofs = {int(dof) for face in matched for dof in face.global_dofs}
    unmatched_dofs = {int(dof) for face in faces if face.key in match.unmatched for dof in face.global_dofs}
    return matched, sorted(matched_dofs), sorted(unmatched_dofs - matched_dofs)


def test_unmatched_faces_are_skipped(solver, model, pq):
    match = map_partial_field(solver, model)
    assert isinstance(match, InterfaceMatch)
    assert len(match.unmatched) == 6

    faces = model.mesh.get_surface_faces()
    matched, matched_dofs, unmatched_only = split_dofs(faces, match)
    assert unmatched_only

    temperature = model.solution_heat
    F_emission = solver._surface_load(solver.bc.emission_current, solver.bc.emission_skipped, temperature)
    j = pq.emission_current(2.0, model.ambient_temperature)
    np.testing.assert_array_equal(F_emission[unmatched_only], 0.0)
    assert F_emission.sum() == pytest.approx(j * sum(face.length for face in matched))

    F_heat = solver._surface_load(solver.bc.nottingham_heat, solver.bc.nottingham_skipped, temperature)
    np.testing.assert_array_equal(F_heat[unmatched_only], 0.0)
    assert np.all(F_heat[matched_dofs] != 0.0)

    solver.step()
    assert solver.state is StepState.ADVANCED


def test_emission_overrides_cover_unmatched_faces(solver, model):
    match = map_partial_field(solver, model)
    faces = model.mesh.get_surface_faces()
    _, _, unmatched_only = split_dofs(faces, match)
    total_length = sum(face.length for face in faces)
    temperature = model.solution_heat

    solver.set_emission_bc(np.full(len(faces), 1e-3), np.full(len(faces), 2e-3))
    F_emission = solver._surface_load(solver.bc.emission_current, solver.bc.emission_skipped, temperature)
    F_heat = solver._surface_load(solver.bc.nottingham_heat, solver.bc.nottingham_skipped, temperature)
    assert total_length == pytest.approx(10.0)
    assert F_emission.sum() == pytest.approx(1e-3 * total_length)
    assert F_heat.sum() == pytest.approx(2e-3 * total_length)
    assert np.all(F_emission[unmatched_only] > 0.0)

    # back to the mapped field, the unmatched faces are skipped again
    solver.clear_emission_bc()
    F_emission = solver._surface_load(solver.bc.emission_current, solver.bc.emission_skipped, temperature)
    np.testing.assert_array_equal(F_emission[unmatched_only], 0.0)


def test_run_reports(solver):
    reports = solver.run(3)
    assert [report.step for report in reports] == [1, 2, 3]
    assert reports[-1].time == pytest.approx(3 * solver.config.time_step)
    assert solver.timestep == 3


def test_run_calls_back_after_every_step(solver, model):
    seen = []

    def on_step(report):
        seen.append((report, solver.state, model.solution_heat.copy()))

    reports = solver.run(2, callback=on_step)
    assert [report for report, _, _ in seen] == reports
    assert all(state is StepState.ADVANCED for _, state, _ in seen)
    np.testing.assert_array_equal(seen[-1][2], model.solution_heat)


def test_setters(solver):
    solver.set_timestep(5e-14)
    assert solver.config.time_step == 5e-14

    solver.set_time_integration("implicit_euler")
    assert isinstance(solver.scheme, ImplicitEuler)
    assert solver.config.time_integration == "implicit_euler"
    with pytest.raises(KeyError):
        solver.set_time_integration("leapfrog")


def test_solver_overrides(solver):
    solver.set_emission_bc(top_emission(solver.model.mesh, 0.02), np.zeros(10))
    solver.assemble_current_system()
    iterations = solver.solve_current(max_iter=1, pc_ssor=False)
    assert iterations == 1


def test_mesh_without_bottom_is_reported(rectangle_arrays, pq, caplog):
    points, triangles = rectangle_arrays(2, 2, 2.0, 2.0)
    mesh = Mesh.from_arrays(points, triangles, boundary_ids={})
    with caplog.at_level(logging.WARNING):
        CurrentsAndHeatingSolver(Model(mesh), pq)
    assert "no BOTTOM faces" in caplog.text
