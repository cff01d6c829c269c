from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import numba as nb

from emissionheating.fea.analysis.finite_elements.finite_element import FiniteElement
import emissionheating.fea.analysis.gauss as gauss

if TYPE_CHECKING:
    import numpy.typing as npt
    from emissionheating.fea.analysis.node import Node


# B_N = [
#   [dN1(r,s)/dr, dN2(r,s)/dr, dN3(r,s)/dr],
#   [dN1(r,s)/ds, dN2(r,s)/ds, dN3(r,s)/ds]
# ]
B_N = np.array([
    [-1.0, 1.0, 0.0],
    [-1.0, 0.0, 1.0],
])

# Local face f joins local vertices (f, f + 1 mod 3)
FACE_VERTICES = ((0, 1), (1, 2), (2, 0))


@nb.njit(cache=True, fastmath=True)
def _tri3_B_and_detJ(
    x: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64]
) -> tuple[npt.NDArray[np.float64], float]:
    """
    Build the constant B matrix and |det(J)| for a Tri3 element.

    Args:
        x: (3, ) array of x-coordinates of the element's nodes.
        y: (3, ) array of y-coordinates of the element's nodes.

    Returns:
        B: (2, 3) array of the shape function gradients.
        detJ_abs: Absolute value of the Jacobian determinant.
    """
    # J = B_N @ [[x], [y]].T
    J00 = x[1] - x[0]
    J01 = y[1] - y[0]
    J10 = x[2] - x[0]
    J11 = y[2] - y[0]

    detJ = J00 * J11 - J01 * J10
    i00, i01 = J11 / detJ, -J01 / detJ
    i10, i11 = -J10 / detJ, J00 / detJ

    # B = inv(J) @ B_N
    B = np.empty((2, 3), dtype=np.float64)
    for j in range(3):
        b0, b1 = B_N[0, j], B_N[1, j]
        B[0, j] = i00 * b0 + i01 * b1
        B[1, j] = i10 * b0 + i11 * b1

    return B, abs(detJ)


class Tri3(FiniteElement):
    """
    Represents a three-node linear triangular finite element (Tri3).
    """
    def __init__(
        self,
        index: int,
        nodes: list[Node],
    ) -> None:
        """
        Initialize the Tri3 element.

        Args:
            index: Cell index.
            nodes: The three nodes that form the element.

        Raises:
            ValueError: If the triangle is degenerate.
        """
        super().__init__(
            index=index,
            nodes=nodes,
            n_integration_points=3
        )

        twice_area = (self.x[1] - self.x[0]) * (self.y[2] - self.y[0]) - (self.y[1] - self.y[0]) * (self.x[2] - self.x[0])
        if twice_area == 0.0:
            raise ValueError(f"Degenerate triangle {index} with nodes {[node.uid for node in nodes]}.")

        self._B, self._detJ = _tri3_B_and_detJ(self.x, self.y)
        self._gp, self._w = gauss.gauss_points_weights_triangle(self.n_integration_points)
        self._M: npt.NDArray[np.float64] | None = None

    @staticmethod
    def shape_functions(iso_coords: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Calculate the shape functions for the Tri3 element.

        Args:
            iso_coords: Isoparametric coordinates [1 - r - s, r, s] in the range [0, 1].

        Returns:
            Shape function values at the given coordinates ``[[N1, N2, N3]]``.
        """
        # For Tri3, the shape functions are the isoparametric coordinates
        return np.array([iso_coords])

    @property
    def area(self) -> float:
        """Area of the triangle."""
        return 0.5 * self._detJ

    @property
    def b_matrix(self) -> npt.NDArray[np.float64]:
        """
        Cached [B] matrix, constant for Tri3.

        [B] = ∇[N] = [J]⁻¹ [B_N]
        """
        return self._B

    @property
    def jacobian_determinant(self) -> float:
        """|det(J)|, constant for Tri3."""
        return self._detJ

    def get_integration_scheme(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """Return cached Gauss points and weights for the 3-point triangle rule."""
        return self._gp, self._w

    def face_nodes(self, local_face_index: int) -> list[Node]:
        """The two nodes of a local face, in the vertex order of the cell."""
        a, b = FACE_VERTICES[local_face_index]
        return [self.nodes[a], self.nodes[b]]

    def get_stiffness_matrix(self, coefficients: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Element stiffness matrix [K] = Bᵀ B * |detJ| * ∑ (c_gp * w).

        B and |detJ| are constant on a Tri3, so only the weighted coefficient sum
        varies between calls.
        """
        c_weight_sum = float(np.dot(coefficients, self._w))
        return (self._B.T @ self._B) * (self._detJ * c_weight_sum)

    def get_mass_matrix(self) -> npt.NDArray[np.float64]:
        """Element mass matrix, computed once and reused."""
        if self._M is None:
            self._M = super().get_mass_matrix()
        return self._M
