from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from emissionheating.config import AMBIENT_TEMPERATURE

if TYPE_CHECKING:
    import numpy.typing as npt
    from emissionheating.fea.pre.mesh import Mesh


class Model:
    """
    Mesh of the conductor together with the current and heat field state.

    Both fields are discretized with linear triangles on the same mesh, so the
    degree of freedom of a field is the vertex index.

    The ``old_*`` vectors hold the values of the previous solve; they are only
    written when a solve starts and when the time step is advanced.
    """
    def __init__(
        self,
        mesh: Mesh,
        ambient_temperature: float = AMBIENT_TEMPERATURE,
    ) -> None:
        """
        Initialize the model.

        Args:
            mesh: Mesh of the conductor.
            ambient_temperature: Initial temperature of the whole conductor [K].
        """
        self.mesh = mesh
        self.ambient_temperature = float(ambient_temperature)

        neq = self.number_of_equations
        self.solution_current: npt.NDArray[np.float64] = np.zeros(neq, dtype=np.float64)
        self.old_solution_current: npt.NDArray[np.float64] = np.zeros(neq, dtype=np.float64)
        self.solution_heat: npt.NDArray[np.float64] = np.full(neq, self.ambient_temperature, dtype=np.float64)
        self.old_solution_heat: npt.NDArray[np.float64] = self.solution_heat.copy()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(mesh={self.mesh!r})"

    @property
    def number_of_nodes(self) -> int:
        """Return the number of nodes in the model."""
        return self.mesh.number_of_nodes

    @property
    def number_of_elements(self) -> int:
        """Return the number of elements in the model."""
        return self.mesh.number_of_elements

    @property
    def number_of_equations(self) -> int:
        """Return the number of equations of either field (one DOF per node)."""
        return self.number_of_nodes
