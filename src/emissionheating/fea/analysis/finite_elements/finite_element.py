from __future__ import annotations

from abc import ABC, abstractmethod

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt
    from emissionheating.fea.analysis.node import Node


class FiniteElement(ABC):
    """
    Abstract base class for the cells of the conductor mesh.

    Elements don't own any material: every coefficient is passed in as values at
    the integration points, so the same element serves the current and the heat
    problem.
    """

    def __init__(
        self,
        index: int,
        nodes: list[Node],
        n_integration_points: int,
    ) -> None:
        """
        Initialize the finite element.

        Args:
            index: Cell index in the mesh.
            nodes: List of nodes.
            n_integration_points: Number of integration points for numerical integration.
        """
        self.id = index
        self.nodes = nodes
        self.n_integration_points = n_integration_points
        self.global_dofs: npt.NDArray[np.int64] = np.array([node.uid for node in nodes], dtype=np.int64)

        self.x = np.array([node.coords[0] for node in nodes], dtype=np.float64)
        self.y = np.array([node.coords[1] for node in nodes], dtype=np.float64)

    def __repr__(self) -> str:
        """String representation of the finite element."""
        return f"{self.__class__.__name__}(id={self.id}, nodes={[node.uid for node in self.nodes]})"

    @property
    def number_of_nodes(self) -> int:
        """Number of nodes in the finite element."""
        return len(self.nodes)

    @property
    def centroid(self) -> npt.NDArray[np.float64]:
        """Arithmetic mean of the vertex coordinates."""
        return np.array([self.x.mean(), self.y.mean()], dtype=np.float64)

    @staticmethod
    @abstractmethod
    def shape_functions(iso_coords: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Calculate the shape functions at given local coordinates, shape (1, n)."""
        pass

    @property
    @abstractmethod
    def area(self) -> float:
        """Calculate the area of the finite element."""
        pass

    @property
    @abstractmethod
    def jacobian_determinant(self) -> float:
        """Absolute determinant of the Jacobian of the reference map."""
        pass

    @property
    @abstractmethod
    def b_matrix(self) -> npt.NDArray[np.float64]:
        """Calculate the [B] matrix (shape function gradients) for the finite element."""
        pass

    @abstractmethod
    def get_integration_scheme(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """
        Get the integration scheme for the finite element.

        Returns:
            Tuple of Gauss points and weights for numerical integration.
        """
        pass

    def values_at_gauss_points(self, nodal_values: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Interpolate a nodal field to the integration points.

        Args:
            nodal_values: Values of the global field restricted to the element nodes.

        Returns:
            Array of interpolated values, one per integration point.
        """
        gauss_points, _ = self.get_integration_scheme()
        return np.array(
            [(self.shape_functions(gp_i) @ nodal_values)[0] for gp_i in gauss_points],
            dtype=np.float64,
        )

    def gradient(self, nodal_values: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Gradient of the interpolated nodal field, shape (2,)."""
        return self.b_matrix @ nodal_values

    def get_stiffness_matrix(self, coefficients: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Calculate the stiffness matrix [K] = ∑ (Bᵀ B * c_gp * |detJ| * w).

        Args:
            coefficients: Diffusion coefficient at each integration point.

        Returns:
            (n, n) stiffness matrix of the element.
        """
        k_e = np.zeros((self.number_of_nodes, self.number_of_nodes), dtype=np.float64)

        _, weights = self.get_integration_scheme()

        b_e = self.b_matrix
        det_j = self.jacobian_determinant

        for c_i, w_i in zip(coefficients, weights):
            k_e += b_e.T @ b_e * det_j * c_i * w_i

        return k_e

    def get_mass_matrix(self) -> npt.NDArray[np.float64]:
        """
        Calculate the mass matrix [M] = ∑ (Nᵀ N * |detJ| * w).

        Returns:
            (n, n) mass matrix of the element.
        """
        m_e = np.zeros((self.number_of_nodes, self.number_of_nodes), dtype=np.float64)

        gauss_points, weights = self.get_integration_scheme()

        det_j = self.jacobian_determinant

        for gp_i, w_i in zip(gauss_points, weights):
            n_ei = self.shape_functions(iso_coords=gp_i)
            m_e += n_ei.T @ n_ei * det_j * w_i

        return m_e

    def get_load_vector(self, source: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Calculate the volume load vector {f} = ∑ (Nᵀ * s_gp * |detJ| * w).

        Args:
            source: Volumetric source at each integration point.

        Returns:
            (n,) load vector of the element.
        """
        f_e = np.zeros(self.number_of_nodes, dtype=np.float64)

        gauss_points, weights = self.get_integration_scheme()

        det_j = self.jacobian_determinant

        for gp_i, w_i, s_i in zip(gauss_points, weights, source):
            n_ei = self.shape_functions(iso_coords=gp_i)
            f_e += n_ei[0] * s_i * det_j * w_i

        return f_e
