from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

import emissionheating.fea.analysis.gauss as gauss

if TYPE_CHECKING:
    import numpy.typing as npt
    from emissionheating.fea.analysis.node import Node
    from emissionheating.fea.pre.mesh import BoundaryId, FaceKey


class Line2:
    """
    Two-node boundary face of a Tri3 cell.

    The face is identified by the owning cell and its local face index, so the
    same face can be looked up in per-face value maps independently of this object.
    """

    def __init__(
        self,
        key: FaceKey,
        nodes: list[Node],
        boundary_id: BoundaryId,
        number_of_integration_points: int = 2,
    ) -> None:
        """
        Initialize the boundary face.

        Args:
            key: (cell index, local face index) of the face.
            nodes: The two nodes of the face.
            boundary_id: Boundary the face belongs to.
            number_of_integration_points: Number of Gauss points along the face.
        """
        self.key = key
        self.nodes = nodes
        self.boundary_id = boundary_id
        self.number_of_integration_points = number_of_integration_points
        self.global_dofs: npt.NDArray[np.int64] = np.array([node.uid for node in nodes], dtype=np.int64)

        self._gp, self._w = gauss.gauss_points_weights_edge(n_points=number_of_integration_points)

    def __repr__(self) -> str:
        """String representation of the line element."""
        return (
            f"{self.__class__.__name__}(cell={self.key.cell_index}, face={self.key.local_face_index}, "
            f"boundary={self.boundary_id}, nodes={[node.uid for node in self.nodes]})"
        )

    @property
    def number_of_nodes(self) -> int:
        """Return the number of nodes in the edge element."""
        return len(self.nodes)

    @property
    def x(self) -> npt.NDArray[np.float64]:
        """Return the x-coordinates of the nodes in the edge element."""
        return np.array([node.x for node in self.nodes], dtype=np.float64)

    @property
    def y(self) -> npt.NDArray[np.float64]:
        """Return the y-coordinates of the nodes in the edge element."""
        return np.array([node.y for node in self.nodes], dtype=np.float64)

    @property
    def centroid(self) -> npt.NDArray[np.float64]:
        """Midpoint of the face."""
        return 0.5 * (self.nodes[0].coords + self.nodes[1].coords)

    @property
    def length(self) -> float:
        """Length of the face."""
        return float(np.linalg.norm(self.nodes[1].coords - self.nodes[0].coords))

    @property
    def jacobian_determinant(self) -> float:
        """Jacobian of the map from [-1, 1] onto the face (half its length)."""
        return 0.5 * self.length

    @staticmethod
    def shape_functions(iso_coord: float) -> npt.NDArray[np.float64]:
        """Shape functions for a linear line element at a local coordinate in [-1, 1]."""
        return np.array([(1 - iso_coord) / 2, (1 + iso_coord) / 2], dtype=np.float64)

    def get_integration_scheme(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """
        Get the integration scheme for the line element.

        Returns:
            A tuple containing the integration points and weights.
        """
        return self._gp, self._w

    def values_at_gauss_points(self, nodal_values: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Interpolate nodal values of the face to its integration points."""
        return np.array(
            [float(self.shape_functions(gp_i) @ nodal_values) for gp_i in self._gp],
            dtype=np.float64,
        )

    def get_load_vector(self, flux: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Calculate the Neumann load vector {f} = ∑ (N * q_gp * |J| * w).

        Args:
            flux: Normal flux at each integration point.

        Returns:
            (2,) load vector for the face.
        """
        f_e = np.zeros(self.number_of_nodes, dtype=np.float64)

        det_j = self.jacobian_determinant

        for gp_i, w_i, q_i in zip(self._gp, self._w, flux):
            f_e += self.shape_functions(iso_coord=gp_i) * q_i * w_i * det_j

        return f_e
