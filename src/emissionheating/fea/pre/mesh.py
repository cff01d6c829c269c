from __future__ import annotations

import logging
import os
from collections import defaultdict
from enum import StrEnum
from typing import TYPE_CHECKING, Mapping, NamedTuple

import numpy as np
import matplotlib.pyplot as plt

from emissionheating.fea.analysis.node import Node
from emissionheating.fea.analysis.finite_elements.tri3 import FACE_VERTICES, Tri3
from emissionheating.fea.analysis.finite_elements.edges import Line2

if TYPE_CHECKING:
    import numpy.typing as npt
    from matplotlib.axes import Axes

logger = logging.getLogger(__name__)

GMSH_LINE_TYPE = 1  # 2-node line
GMSH_TRIANGLE_TYPE = 2  # 3-node triangle


class FaceKey(NamedTuple):
    """Identity of a cell face: owning cell and local face index (0, 1 or 2)."""
    cell_index: int
    local_face_index: int


class BoundaryId(StrEnum):
    """Boundary tags, named as the gmsh physical lines."""
    CONDUCTOR_SURFACE = "CONDUCTOR SURFACE"
    BOTTOM = "BOTTOM"
    OTHER = "OTHER"


class Mesh:
    """
    Triangular mesh of the conductor with tagged boundary faces.

    Nodes are numbered 0..n-1 and double as degrees of freedom of the linear
    elements. Boundary faces are kept per boundary id, ordered by their FaceKey.
    """
    def __init__(
        self,
        nodes: list[Node],
        elements: list[Tri3],
        boundary_elements: dict[BoundaryId, list[Line2]],
    ) -> None:
        """
        Initialize the Mesh class.
        """
        nodes.sort(key=lambda node: node.uid)
        self.nodes = nodes
        self.elements = elements
        self.boundary_elements = {
            boundary_id: sorted(faces, key=lambda face: face.key)
            for boundary_id, faces in boundary_elements.items()
        }
        self._faces_by_key: dict[FaceKey, Line2] = {
            face.key: face
            for faces in self.boundary_elements.values()
            for face in faces
        }

    def __repr__(self) -> str:
        counts = {str(boundary_id): len(faces) for boundary_id, faces in self.boundary_elements.items()}
        return f"{self.__class__.__name__}(nodes={len(self.nodes)}, cells={len(self.elements)}, faces={counts})"

    @classmethod
    def from_arrays(
        cls,
        points: npt.ArrayLike,
        triangles: npt.ArrayLike,
        boundary_ids: Mapping[FaceKey, BoundaryId] | None = None,
    ) -> Mesh:
        """
        Build a mesh from vertex coordinates and triangle connectivity.

        Args:
            points: (n, 2) vertex coordinates (extra columns are ignored).
            triangles: (m, 3) zero-based vertex indices of each cell.
            boundary_ids: Tags of the boundary faces. Faces not listed are tagged
                OTHER. Without a mapping, faces lying on the minimum y are tagged
                BOTTOM and every other boundary face CONDUCTOR_SURFACE.

        Raises:
            ValueError: On malformed arrays or a degenerate triangle.
        """
        points = np.asarray(points, dtype=np.float64)
        triangles = np.asarray(triangles, dtype=np.int64)
        if points.ndim != 2 or points.shape[1] < 2:
            raise ValueError(f"Points must have shape (n, 2), got {points.shape}.")
        if triangles.ndim != 2 or triangles.shape[1] != 3:
            raise ValueError(f"Triangles must have shape (m, 3), got {triangles.shape}.")
        if triangles.size and (triangles.min() < 0 or triangles.max() >= len(points)):
            raise ValueError("Triangle connectivity refers to a vertex that doesn't exist.")

        nodes = [Node(index=i, coords=xy) for i, xy in enumerate(points[:, :2])]
        elements = [
            Tri3(index=i, nodes=[nodes[v] for v in vertices])
            for i, vertices in enumerate(triangles)
        ]

        face_keys = _find_boundary_faces(triangles)

        if boundary_ids is None:
            boundary_ids = _tag_by_lowest_y(elements, face_keys)

        boundary_elements: dict[BoundaryId, list[Line2]] = defaultdict(list)
        for key in face_keys:
            boundary_id = BoundaryId(boundary_ids.get(key, BoundaryId.OTHER))
            face = Line2(
                key=key,
                nodes=elements[key.cell_index].face_nodes(key.local_face_index),
                boundary_id=boundary_id,
            )
            boundary_elements[boundary_id].append(face)

        mesh = cls(nodes=nodes, elements=elements, boundary_elements=dict(boundary_elements))
        logger.debug(f"Built {mesh}")
        return mesh

    @classmethod
    def from_file(cls, filename: str | os.PathLike) -> Mesh:
        """
        Load a triangular mesh from a gmsh file.

        Boundary faces are tagged with the physical lines ``CONDUCTOR SURFACE``
        and ``BOTTOM``; other physical lines tag faces as OTHER. A file without
        physical lines falls back to the geometric tagging of ``from_arrays``.
        """
        import gmsh

        logger.info(f"Loading mesh from: {filename}")
        gmsh.initialize()
        try:
            gmsh.option.set_number("General.Terminal", 0)
            gmsh.open(os.fspath(filename))

            # 1) Read all nodes once, gmsh tags aren't necessarily contiguous
            node_tags, flat_coords, _ = gmsh.model.mesh.get_nodes()
            coords = np.asarray(flat_coords, dtype=np.float64).reshape(-1, 3)
            tag_to_index = {int(tag): i for i, tag in enumerate(node_tags)}

            # 2) Triangles of all surfaces, lines of named physical groups
            triangles: list[list[int]] = []
            tagged_lines: dict[tuple[int, int], BoundaryId] = {}
            has_physical_lines = False

            for dim, entity_tag in gmsh.model.get_entities():
                physical_names = [
                    gmsh.model.get_physical_name(dim, physical_tag)
                    for physical_tag in gmsh.model.get_physical_groups_for_entity(dim, entity_tag)
                ]
                element_types, _, node_tags_list = gmsh.model.mesh.get_elements(dim, entity_tag)

                for element_type, flat_node_tags in zip(element_types, node_tags_list):
                    if element_type == GMSH_TRIANGLE_TYPE:
                        for tags in np.asarray(flat_node_tags).reshape(-1, 3):
                            triangles.append([tag_to_index[int(tag)] for tag in tags])
                    elif element_type == GMSH_LINE_TYPE and physical_names:
                        has_physical_lines = True
                        boundary_id = _boundary_id_from_name(physical_names[0])
                        for tags in np.asarray(flat_node_tags).reshape(-1, 2):
                            a, b = (tag_to_index[int(tag)] for tag in tags)
                            tagged_lines[(min(a, b), max(a, b))] = boundary_id
        finally:
            gmsh.finalize()

        if not triangles:
            raise ValueError(f"No triangles found in '{filename}'.")

        triangles_arr = np.asarray(triangles, dtype=np.int64)
        boundary_ids: dict[FaceKey, BoundaryId] | None = None
        if has_physical_lines:
            boundary_ids = {}
            for key in _find_boundary_faces(triangles_arr):
                a, b = (int(triangles_arr[key.cell_index, v]) for v in FACE_VERTICES[key.local_face_index])
                boundary_ids[key] = tagged_lines.get((min(a, b), max(a, b)), BoundaryId.OTHER)

        return cls.from_arrays(coords[:, :2], triangles_arr, boundary_ids=boundary_ids)

    @property
    def number_of_nodes(self) -> int:
        """Number of vertices, equal to the number of degrees of freedom."""
        return len(self.nodes)

    @property
    def number_of_elements(self) -> int:
        """Number of cells."""
        return len(self.elements)

    @property
    def points(self) -> npt.NDArray[np.float64]:
        """(n, 2) array of vertex coordinates."""
        return np.array([node.coords for node in self.nodes], dtype=np.float64)

    @property
    def triangles(self) -> npt.NDArray[np.int64]:
        """(m, 3) array of cell connectivity."""
        return np.array([element.global_dofs for element in self.elements], dtype=np.int64).reshape(-1, 3)

    def get_faces(self, boundary_id: BoundaryId) -> list[Line2]:
        """Faces with the given tag, ordered by cell index then local face index."""
        return list(self.boundary_elements.get(boundary_id, []))

    def get_surface_faces(self) -> list[Line2]:
        """Faces of the conductor surface (the vacuum interface) in FaceKey order."""
        return self.get_faces(BoundaryId.CONDUCTOR_SURFACE)

    def get_face(self, key: FaceKey) -> Line2:
        """Boundary face by key; raises KeyError for interior or unknown faces."""
        return self._faces_by_key[key]

    def boundary_dofs(self, boundary_id: BoundaryId) -> npt.NDArray[np.int64]:
        """Sorted unique vertex indices lying on the faces with the given tag."""
        faces = self.get_faces(boundary_id)
        if not faces:
            return np.empty(0, dtype=np.int64)
        return np.unique(np.concatenate([face.global_dofs for face in faces]))

    def plot(self, ax: Axes | None = None, show: bool = False) -> Axes:
        """Plot the cells and the tagged boundary faces."""
        if ax is None:
            _, ax = plt.subplots(constrained_layout=True)
        ax.set_aspect("equal")

        for element in self.elements:
            coords = np.vstack((np.column_stack((element.x, element.y)), [element.x[0], element.y[0]]))
            ax.plot(coords[:, 0], coords[:, 1], color="gray", lw=0.5)

        cmap = plt.get_cmap("gist_rainbow", max(len(self.boundary_elements), 1))
        for i, (boundary_id, faces) in enumerate(sorted(self.boundary_elements.items())):
            color = cmap(i % cmap.N)
            for j, face in enumerate(faces):
                label = str(boundary_id) if j == 0 else "_nolegend_"
                ax.plot(face.x, face.y, color=color, lw=2, label=label)

        ax.grid(visible=True, which="major", axis="both", linestyle="-", color="gray", lw=0.5)
        ax.set_xlabel("X Coordinate")
        ax.set_ylabel("Y Coordinate")
        if self.boundary_elements:
            ax.legend(loc="best")
        if show:
            plt.show()
        return ax


def _boundary_id_from_name(name: str) -> BoundaryId:
    try:
        return BoundaryId(name.strip().upper())
    except ValueError:
        return BoundaryId.OTHER


def _find_boundary_faces(triangles: npt.NDArray[np.int64]) -> list[FaceKey]:
    """Faces that belong to exactly one cell, in FaceKey order."""
    owners: dict[tuple[int, int], list[FaceKey]] = defaultdict(list)
    for cell_index, vertices in enumerate(triangles):
        for local_face_index, (a, b) in enumerate(FACE_VERTICES):
            u, v = int(vertices[a]), int(vertices[b])
            owners[(min(u, v), max(u, v))].append(FaceKey(cell_index, local_face_index))

    return sorted(keys[0] for keys in owners.values() if len(keys) == 1)


def _tag_by_lowest_y(elements: list[Tri3], face_keys: list[FaceKey]) -> dict[FaceKey, BoundaryId]:
    if not face_keys:
        return {}
    y_values = np.concatenate([element.y for element in elements])
    y_min = float(y_values.min())
    tolerance = 1e-12 * max(float(y_values.max()) - y_min, 1.0)

    boundary_ids: dict[FaceKey, BoundaryId] = {}
    for key in face_keys:
        face_y = elements[key.cell_index].y[list(FACE_VERTICES[key.local_face_index])]
        on_bottom = bool(np.all(np.abs(face_y - y_min) <= tolerance))
        boundary_ids[key] = BoundaryId.BOTTOM if on_bottom else BoundaryId.CONDUCTOR_SURFACE
    return boundary_ids
