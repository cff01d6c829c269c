from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum, auto

from typing import TYPE_CHECKING, Callable, Sequence

import numpy as np
import scipy as sp

from emissionheating.config import SimulationConfig
from emissionheating.fea.analysis.boundary import BoundaryConditions, InterfaceMatch, InterfaceSource
from emissionheating.fea.pre.mesh import BoundaryId, FaceKey
from emissionheating.fea.solvers.linear import apply_dirichlet, solve_cg
from emissionheating.fea.solvers.time_integration import (
    CrankNicolson,
    ImplicitEuler,
    TimeIntegrationScheme,
    create_scheme,
)

if TYPE_CHECKING:
    import numpy.typing as npt

    from emissionheating.config import LinearSolverSettings
    from emissionheating.fea.analysis.finite_elements.finite_element import FiniteElement
    from emissionheating.fea.analysis.model import Model
    from emissionheating.fea.pre.physical_quantities import PhysicalQuantities

logger = logging.getLogger(__name__)


class StepState(Enum):
    """Position inside one coupled time step."""
    INIT = auto()
    CURRENT_ASSEMBLED = auto()
    CURRENT_SOLVED = auto()
    HEAT_ASSEMBLED = auto()
    HEAT_SOLVED = auto()
    ADVANCED = auto()


@dataclass(frozen=True)
class StepReport:
    """Summary of one completed time step."""
    step: int
    time: float
    current_iterations: int
    heat_iterations: int
    max_temperature: float
    max_heating_power: float


class CurrentsAndHeatingSolver:
    """
    Lagged coupling of steady current flow and transient heat conduction.

    Every time step first solves the current continuity with the conductivity
    taken at the last temperature, then advances the temperature with the
    Joule heating of that current and the Nottingham heat on the conductor
    surface. The bottom of the conductor is grounded and kept at the ambient
    temperature.
    """

    def __init__(
        self,
        model: Model,
        physical_quantities: PhysicalQuantities,
        config: SimulationConfig | None = None,
    ) -> None:
        """
        Initialize the solver.

        Args:
            model: Mesh and field state.
            physical_quantities: Evaluator of the tabulated material data.
            config: Time step, constants and linear solver settings.
        """
        self.model = model
        self.pq = physical_quantities
        self.config = config or SimulationConfig(ambient_temperature=model.ambient_temperature)
        self.scheme: TimeIntegrationScheme = create_scheme(self.config.time_integration)

        mesh = self.model.mesh
        self._elements = mesh.elements
        self._surface_faces = mesh.get_surface_faces()
        self._bottom_dofs = mesh.boundary_dofs(BoundaryId.BOTTOM)
        if self._bottom_dofs.size == 0:
            logger.warning("The mesh has no BOTTOM faces, the current and heat systems are not anchored.")

        self.bc = BoundaryConditions(
            surface_faces=self._surface_faces,
            uniform_efield=self.config.uniform_efield,
            tolerance=self.config.interface_tolerance,
        )

        self.neq = self.model.number_of_equations

        # Precompute sparsity pattern and scatter vectors for the cells (shared by K and M)
        self._A_struct, self._A_scatter = self._precompute_pattern_and_scatter(elements=self._elements)
        self._K = self._A_struct.copy()
        self._M = self._assemble_global_matrix_fast(
            A=self._A_struct.copy(),
            elements=self._elements,
            scatter_list=self._A_scatter,
            get_local_matrix=lambda element: element.get_mass_matrix(),
        )

        self._system: tuple[sp.sparse.csr_matrix, npt.NDArray[np.float64]] | None = None
        self.state = StepState.INIT
        self.timestep = 0
        self.time = 0.0
        self.max_heating_power = 0.0
        self.current_iterations = 0
        self.heat_iterations = 0

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(neq={self.neq}, scheme={self.scheme!r}, "
            f"time_step={self.config.time_step:g}, state={self.state.name})"
        )

    # ---- assembly helpers ----

    def _precompute_pattern_and_scatter(self, elements: list) -> tuple[sp.sparse.csr_matrix, list[npt.NDArray[np.int64]]]:
        """
        Precompute the sparsity pattern of the global matrices and the scatter vectors for each element.

        Returns:
            A_template: csr_matrix with correct indptr/indices (float64 data, zeros).
            scatter_list: for element e, the positions in A_template.data where
                          Ke.ravel(order="C") is added.
        """
        row_parts: list[npt.NDArray[np.int64]] = []
        col_parts: list[npt.NDArray[np.int64]] = []

        element_dofs: list[npt.NDArray[np.int64]] = []
        for element in elements:
            dofs = element.global_dofs
            element_dofs.append(dofs)
            n_dofs = dofs.size

            row_parts.append(np.repeat(dofs, n_dofs))
            col_parts.append(np.tile(dofs, n_dofs))

        if not element_dofs:
            raise ValueError("No elements found in the model mesh.")

        rows = np.concatenate(row_parts)
        cols = np.concatenate(col_parts)

        pattern = sp.sparse.coo_matrix(
            (
                np.ones_like(rows, dtype=np.int8),
                (rows, cols),
            ),
            shape=(self.neq, self.neq)
        ).tocsr()
        pattern.sort_indices()

        # Cast to float64 data with zeros, keep structure
        A_template = pattern.astype(np.float64, copy=True)
        A_template.data[:] = 0.0

        indptr, indices = A_template.indptr, A_template.indices
        scatter_list: list[npt.NDArray[np.int64]] = []

        for dofs in element_dofs:
            n_dofs = dofs.size
            scatter_e = np.empty(n_dofs * n_dofs, dtype=np.int64)

            pos = 0
            for r in dofs:
                a, b = indptr[r], indptr[r + 1]  # indices[a:b] sorted
                scatter_e[pos:pos + n_dofs] = a + np.searchsorted(indices[a:b], dofs)
                pos += n_dofs
            scatter_list.append(scatter_e)

        return A_template, scatter_list

    @staticmethod
    def _assemble_global_matrix_fast(
        A: sp.sparse.csr_matrix,
        elements: list[FiniteElement],
        scatter_list: list[npt.NDArray[np.int64]],
        get_local_matrix: Callable[[FiniteElement], npt.NDArray[np.float64]]
    ) -> sp.sparse.csr_matrix:
        """
        Assemble a global CSR matrix in place from element matrices.

        Args:
            A: The global matrix to assemble into (its data is overwritten).
            elements: List of finite elements to assemble from.
            scatter_list: Precomputed scatter list for the elements.
            get_local_matrix: Function to get the local element matrix.

        Returns:
            The assembled global matrix.
        """
        A.data[:] = 0.0
        for i, element in enumerate(elements):
            Ke = np.asarray(get_local_matrix(element), dtype=np.float64)
            A.data[scatter_list[i]] += Ke.ravel(order="C")
        return A

    def _gauss_point_values(self, element: FiniteElement, field: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return element.values_at_gauss_points(field[element.global_dofs])

    def _surface_load(
        self,
        flux: Callable[..., npt.NDArray[np.float64]],
        skipped: Callable[[FaceKey], bool],
        temperature: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        """Neumann load of a per-face flux evaluated at the face temperatures."""
        F = np.zeros(self.neq, dtype=np.float64)
        for face in self._surface_faces:
            if skipped(face.key):
                continue
            t_gp = face.values_at_gauss_points(temperature[face.global_dofs])
            F[face.global_dofs] += face.get_load_vector(flux(face.key, t_gp, self.pq))
        return F

    def _require_state(self, operation: str, allowed: Sequence[StepState]) -> None:
        if self.state not in allowed:
            expected = ", ".join(state.name for state in allowed)
            raise RuntimeError(f"Can't {operation} in state {self.state.name}; expected one of: {expected}.")

    def _solve_system(self, solution: npt.NDArray[np.float64], settings: LinearSolverSettings, max_iter: int | None,
                      tol: float | None, pc_ssor: bool | None, ssor_param: float | None) -> int:
        assert self._system is not None
        A, b = self._system
        x, iterations = solve_cg(
            A, b,
            x0=solution.copy(),
            max_iter=settings.max_iterations if max_iter is None else max_iter,
            tol=settings.tolerance if tol is None else tol,
            pc_ssor=settings.use_preconditioner if pc_ssor is None else pc_ssor,
            ssor_param=settings.ssor_parameter if ssor_param is None else ssor_param,
        )
        solution[:] = x
        self._system = None
        return iterations

    # ---- current ----

    def assemble_current_system(self) -> None:
        """
        Assemble σ(T)-weighted Laplace system of the potential.

        The emission current leaving the conductor surface enters as a Neumann
        source; the bottom is grounded.
        """
        self._require_state(
            "assemble the current system",
            (StepState.INIT, StepState.ADVANCED, StepState.CURRENT_ASSEMBLED, StepState.CURRENT_SOLVED),
        )
        temperature = self.model.solution_heat

        K = self._assemble_global_matrix_fast(
            A=self._K,
            elements=self._elements,
            scatter_list=self._A_scatter,
            get_local_matrix=lambda element: element.get_stiffness_matrix(
                self.pq.sigma_batch(self._gauss_point_values(element, temperature))
            ),
        )
        F = self._surface_load(self.bc.emission_current, self.bc.emission_skipped, temperature)

        self._system = apply_dirichlet(K, F, self._bottom_dofs, 0.0)
        self.state = StepState.CURRENT_ASSEMBLED
        logger.debug(f"Current system assembled, |F| = {np.linalg.norm(F):.3e}")

    def solve_current(
        self,
        max_iter: int | None = None,
        tol: float | None = None,
        pc_ssor: bool | None = None,
        ssor_param: float | None = None,
    ) -> int:
        """
        Solve the assembled current system, starting from the last potential.

        Arguments left as None take their value from ``config.current_solver``.

        Returns:
            Number of CG iterations; equal to the cap if the solve didn't converge.
        """
        self._require_state("solve the current system", (StepState.CURRENT_ASSEMBLED,))
        self.model.old_solution_current[:] = self.model.solution_current
        self.current_iterations = self._solve_system(
            self.model.solution_current, self.config.current_solver, max_iter, tol, pc_ssor, ssor_param
        )
        self.state = StepState.CURRENT_SOLVED
        return self.current_iterations

    # ---- heat ----

    def assemble_heating_system(self) -> None:
        """Assemble the heat system with the configured time integration scheme."""
        self._assemble_heating_system(self.scheme)

    def assemble_heating_system_crank_nicolson(self) -> None:
        """Assemble the heat system with the Crank-Nicolson scheme."""
        self._assemble_heating_system(CrankNicolson())

    def assemble_heating_system_euler_implicit(self) -> None:
        """Assemble the heat system with the implicit Euler scheme."""
        self._assemble_heating_system(ImplicitEuler())

    def _assemble_heating_system(self, scheme: TimeIntegrationScheme) -> None:
        self._require_state("assemble the heating system", (StepState.CURRENT_SOLVED, StepState.HEAT_ASSEMBLED))

        weights = scheme.weights(self.config.time_step, self.config.heat_capacity)
        temperature = self.model.solution_heat
        potential = self.model.solution_current
        old_potential = self.model.old_solution_current

        F_joule = np.zeros(self.neq, dtype=np.float64)
        max_power = 0.0

        def local_kappa_matrix(element: FiniteElement) -> npt.NDArray[np.float64]:
            nonlocal max_power
            dofs = element.global_dofs
            t_gp = self._gauss_point_values(element, temperature)

            grad_v_sq = float(np.sum(element.gradient(potential[dofs]) ** 2))
            grad_v_old_sq = float(np.sum(element.gradient(old_potential[dofs]) ** 2))
            power = scheme.heating_power(
                self.pq.sigma_batch(t_gp),
                np.full(t_gp.shape, grad_v_sq),
                np.full(t_gp.shape, grad_v_old_sq),
            )
            max_power = max(max_power, float(np.max(power)))
            F_joule[dofs] += element.get_load_vector(power)

            return element.get_stiffness_matrix(self.pq.kappa_batch(t_gp))

        K = self._assemble_global_matrix_fast(
            A=self._K,
            elements=self._elements,
            scatter_list=self._A_scatter,
            get_local_matrix=local_kappa_matrix,
        )
        F_boundary = self._surface_load(self.bc.nottingham_heat, self.bc.nottingham_skipped, temperature)

        A = (self._M + weights.implicit * K).tocsr()
        b = self._M @ temperature
        if weights.explicit:
            b -= weights.explicit * (K @ temperature)
        b += weights.source * (F_joule + F_boundary)

        self._system = apply_dirichlet(A, b, self._bottom_dofs, self.config.ambient_temperature)
        self.max_heating_power = max_power
        self.state = StepState.HEAT_ASSEMBLED
        logger.debug(f"Heating system assembled ({scheme.KEY}), max heating power {max_power:.3e}")

    def solve_heat(
        self,
        max_iter: int | None = None,
        tol: float | None = None,
        pc_ssor: bool | None = None,
        ssor_param: float | None = None,
    ) -> int:
        """
        Solve the assembled heat system, starting from the last temperature.

        Arguments left as None take their value from ``config.heat_solver``.

        Returns:
            Number of CG iterations; equal to the cap if the solve didn't converge.
        """
        self._require_state("solve the heat system", (StepState.HEAT_ASSEMBLED,))
        self.model.old_solution_heat[:] = self.model.solution_heat
        self.heat_iterations = self._solve_system(
            self.model.solution_heat, self.config.heat_solver, max_iter, tol, pc_ssor, ssor_param
        )
        self.state = StepState.HEAT_SOLVED
        return self.heat_iterations

    # ---- time stepping ----

    def advance(self) -> None:
        """Accept the step: the solved fields become the old fields."""
        self._require_state("advance", (StepState.HEAT_SOLVED,))
        self.model.old_solution_current[:] = self.model.solution_current
        self.model.old_solution_heat[:] = self.model.solution_heat
        self.timestep += 1
        self.time += self.config.time_step
        self.state = StepState.ADVANCED

    def step(self) -> StepReport:
        """Run one full current/heat cycle and advance."""
        self.assemble_current_system()
        current_iterations = self.solve_current()
        self.assemble_heating_system()
        heat_iterations = self.solve_heat()
        self.advance()
        return StepReport(
            step=self.timestep,
            time=self.time,
            current_iterations=current_iterations,
            heat_iterations=heat_iterations,
            max_temperature=self.get_max_temperature(),
            max_heating_power=self.max_heating_power,
        )

    def run(
        self,
        n_steps: int,
        callback: Callable[[StepReport], None] | None = None,
    ) -> list[StepReport]:
        """
        Run a number of time steps with a fixed time step.

        Args:
            n_steps: Number of steps.
            callback: Called with the report of every step, after the step and
                before its progress is logged (snapshots, live plots).

        Returns:
            The reports of all steps, in order.
        """
        reports: list[StepReport] = []
        for i in range(n_steps):
            report = self.step()
            reports.append(report)
            if callback is not None:
                callback(report)
            progress = int((i + 1) / n_steps * 100)
            logger.info(
                f"Progress: {progress} % - Time: {report.time:.3e} s - Step: {report.step} - "
                f"Iterations: {report.current_iterations}/{report.heat_iterations} - "
                f"Max temperature: {report.max_temperature:.2f} K"
            )
        return reports

    # ---- setters ----

    def set_timestep(self, time_step: float) -> None:
        self.config = self.config.with_time_step(time_step)

    def set_time_integration(self, key: str) -> None:
        """Switch the scheme used by ``assemble_heating_system``."""
        self.scheme = create_scheme(key)
        self.config = replace(self.config, time_integration=key)

    def set_physical_quantities(self, physical_quantities: PhysicalQuantities) -> None:
        self.pq = physical_quantities

    def set_uniform_electric_field_bc(self, efield: float) -> None:
        self.bc.set_uniform_electric_field_bc(efield)

    def set_electric_field_bc(self, values: Sequence[float] | npt.NDArray[np.float64]) -> None:
        self.bc.set_electric_field_bc(values)

    def map_electric_field_bc(self, source: InterfaceSource) -> InterfaceMatch:
        return self.bc.map_electric_field_bc(source)

    def set_emission_bc(
        self,
        currents: Sequence[float] | npt.NDArray[np.float64],
        heats: Sequence[float] | npt.NDArray[np.float64],
    ) -> None:
        self.bc.set_emission_bc(currents, heats)

    def clear_emission_bc(self) -> None:
        self.bc.clear_emission_bc()

    # ---- queries ----

    def get_surface_nodes(self) -> npt.NDArray[np.float64]:
        """(n, 2) centroids of the conductor surface faces, in the order explicit lists use."""
        return np.array([face.centroid for face in self._surface_faces], dtype=np.float64).reshape(-1, 2)

    def get_temperature(self, cell_indexes: Sequence[int], vert_indexes: Sequence[int]) -> list[float]:
        """Temperatures at (cell, local vertex) pairs."""
        temperature = self.model.solution_heat
        return [
            float(temperature[self.model.mesh.elements[cell].global_dofs[vertex]])
            for cell, vertex in zip(cell_indexes, vert_indexes)
        ]

    def get_current(self, cell_indexes: Sequence[int], vert_indexes: Sequence[int]) -> npt.NDArray[np.float64]:
        """Current density vectors j = -σ(T) ∇V at (cell, local vertex) pairs, shape (n, 2)."""
        potential = self.model.solution_current
        temperature = self.model.solution_heat
        currents = np.empty((len(cell_indexes), 2), dtype=np.float64)
        for i, (cell, vertex) in enumerate(zip(cell_indexes, vert_indexes)):
            element = self.model.mesh.elements[cell]
            dofs = element.global_dofs
            currents[i] = -self.pq.sigma(temperature[dofs[vertex]]) * element.gradient(potential[dofs])
        return currents

    def get_max_temperature(self) -> float:
        """Max-norm of the temperature field."""
        return float(np.linalg.norm(self.model.solution_heat, ord=np.inf))
