"""
Boundary values on the conductor surface.

The surface of the conductor is the interface towards the vacuum. Three per-face
quantities live on it: the local electric field, the emission current density
and the Nottingham heat flux. Each of them may be supplied explicitly (as a
list in surface-face order, or mapped from a separately meshed vacuum
solution) or computed on the fly:

    field     : explicit values -> uniform fallback
    emission  : explicit values -> j(F, T) from the property tables
    nottingham: explicit values -> -dE(F, T) * emission

The per-face maps are immutable snapshots, replaced wholesale on every update.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, Sequence

import numpy as np

from emissionheating.config import INTERFACE_TOLERANCE
from emissionheating.fea.pre.mesh import BoundaryId, FaceKey

if TYPE_CHECKING:
    import numpy.typing as npt
    from emissionheating.fea.analysis.finite_elements.edges import Line2
    from emissionheating.fea.pre.mesh import Mesh
    from emissionheating.fea.pre.physical_quantities import PhysicalQuantities

logger = logging.getLogger(__name__)

EMPTY_MAP: Mapping[FaceKey, float] = MappingProxyType({})


class BoundaryValueError(KeyError):
    """A face is missing from a non-empty value map: boundary data and geometry are out of sync."""


@dataclass(frozen=True, eq=False)
class InterfaceSource:
    """
    Values carried by the faces of the source side of an interface.

    Attributes:
        centroids: (n, 2) face centroids.
        values: (n,) scalar per face.
    """
    centroids: npt.NDArray[np.float64]
    values: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        centroids = np.array(self.centroids, dtype=np.float64).reshape(-1, 2)
        values = np.array(self.values, dtype=np.float64).ravel()
        if centroids.shape[0] != values.size:
            raise ValueError(f"Got {centroids.shape[0]} centroids but {values.size} values.")
        centroids.setflags(write=False)
        values.setflags(write=False)
        object.__setattr__(self, "centroids", centroids)
        object.__setattr__(self, "values", values)

    def __len__(self) -> int:
        return self.values.size

    @classmethod
    def from_potential(
        cls,
        mesh: Mesh,
        potential: npt.NDArray[np.float64],
        boundary_id: BoundaryId = BoundaryId.CONDUCTOR_SURFACE,
    ) -> InterfaceSource:
        """
        Field norms |∇φ| on the tagged faces of a solved potential.

        The gradient of a linear triangle is constant, so each face takes the value
        of the cell it belongs to.
        """
        potential = np.asarray(potential, dtype=np.float64)
        if potential.size != mesh.number_of_nodes:
            raise ValueError(f"Potential has {potential.size} values, mesh has {mesh.number_of_nodes} nodes.")

        faces = mesh.get_faces(boundary_id)
        centroids = np.empty((len(faces), 2), dtype=np.float64)
        values = np.empty(len(faces), dtype=np.float64)
        for i, face in enumerate(faces):
            element = mesh.elements[face.key.cell_index]
            centroids[i] = face.centroid
            values[i] = np.linalg.norm(element.gradient(potential[element.global_dofs]))
        return cls(centroids=centroids, values=values)


@dataclass(frozen=True)
class InterfaceMatch:
    """Result of mapping source values onto target faces."""
    values: Mapping[FaceKey, float]
    unmatched: tuple[FaceKey, ...] = ()

    @property
    def complete(self) -> bool:
        """True if every target face found its source."""
        return not self.unmatched


def match_interface(
    source: InterfaceSource,
    target_faces: Sequence[Line2],
    tolerance: float = INTERFACE_TOLERANCE,
) -> InterfaceMatch:
    """
    Assign to every target face the value of the source face with the same centroid.

    For each target face the source centroids are scanned in order and the first
    one closer than ``tolerance`` is taken. Faces without a partner are logged and
    left out of the returned map.
    """
    values: dict[FaceKey, float] = {}
    unmatched: list[FaceKey] = []

    for face in target_faces:
        centroid = face.centroid
        match = None
        for j in range(len(source)):
            if np.linalg.norm(source.centroids[j] - centroid) < tolerance:
                match = j
                break

        if match is None:
            logger.error(
                f"No source face within {tolerance:g} of face {tuple(face.key)} at "
                f"({centroid[0]:g}, {centroid[1]:g}): probable mesh mismatch."
            )
            unmatched.append(face.key)
        else:
            values[face.key] = float(source.values[match])

    return InterfaceMatch(values=MappingProxyType(values), unmatched=tuple(unmatched))


@dataclass
class BoundaryConditions:
    """
    Resolves per-face boundary values of the conductor surface.

    Attributes:
        surface_faces: Faces of the conductor surface, in the order explicit lists refer to.
        uniform_efield: Field used when no per-face field is set [V/nm].
        tolerance: Centroid distance accepted when mapping interface values [nm].
    """
    surface_faces: Sequence[Line2]
    uniform_efield: float = 1.0
    tolerance: float = INTERFACE_TOLERANCE
    efield_map: Mapping[FaceKey, float] = field(default_factory=lambda: EMPTY_MAP)
    emission_map: Mapping[FaceKey, float] = field(default_factory=lambda: EMPTY_MAP)
    nottingham_map: Mapping[FaceKey, float] = field(default_factory=lambda: EMPTY_MAP)
    unmatched: frozenset[FaceKey] = frozenset()

    def _snapshot(self, values: Sequence[float] | npt.NDArray[np.float64], name: str) -> Mapping[FaceKey, float]:
        values = np.asarray(values, dtype=np.float64).ravel()
        if values.size != len(self.surface_faces):
            raise ValueError(
                f"Got {values.size} {name} values for {len(self.surface_faces)} conductor surface faces."
            )
        return MappingProxyType({face.key: float(v) for face, v in zip(self.surface_faces, values)})

    # ---- setters ----

    def set_uniform_electric_field_bc(self, efield: float) -> None:
        """Use one field value on every face and drop any per-face field."""
        self.uniform_efield = float(efield)
        self.efield_map = EMPTY_MAP
        self.unmatched = frozenset()

    def set_electric_field_bc(self, values: Sequence[float] | npt.NDArray[np.float64]) -> None:
        """Per-face field, ordered as the conductor surface faces."""
        self.efield_map = self._snapshot(values, "electric field")
        self.unmatched = frozenset()

    def map_electric_field_bc(self, source: InterfaceSource) -> InterfaceMatch:
        """Per-face field taken from the matching faces of a vacuum solution."""
        match = match_interface(source, self.surface_faces, self.tolerance)
        self.efield_map = match.values
        self.unmatched = frozenset(match.unmatched)
        logger.debug(f"Mapped {len(match.values)} field values, {len(match.unmatched)} faces unmatched.")
        return match

    def set_emission_bc(
        self,
        currents: Sequence[float] | npt.NDArray[np.float64],
        heats: Sequence[float] | npt.NDArray[np.float64],
    ) -> None:
        """Per-face emission current density and Nottingham heat, ordered as the surface faces."""
        emission_map = self._snapshot(currents, "emission current")
        nottingham_map = self._snapshot(heats, "Nottingham heat")
        self.emission_map = emission_map
        self.nottingham_map = nottingham_map

    def clear_emission_bc(self) -> None:
        """Return to on-the-fly evaluation of emission and Nottingham heat."""
        self.emission_map = EMPTY_MAP
        self.nottingham_map = EMPTY_MAP

    # ---- getters ----

    def is_skipped(self, key: FaceKey) -> bool:
        """True for faces left without a field by the last interface mapping."""
        return key in self.unmatched

    def emission_skipped(self, key: FaceKey) -> bool:
        """True if the emission current of the face would need a field it doesn't have."""
        return not self.emission_map and self.is_skipped(key)

    def nottingham_skipped(self, key: FaceKey) -> bool:
        """True if the Nottingham heat of the face would need a field it doesn't have."""
        return not self.nottingham_map and self.is_skipped(key)

    @staticmethod
    def _lookup(values: Mapping[FaceKey, float], key: FaceKey, name: str) -> float:
        try:
            return values[key]
        except KeyError:
            raise BoundaryValueError(f"No {name} value for face {tuple(key)}.") from None

    def efield(self, key: FaceKey) -> float:
        """Local field of a surface face."""
        if self.efield_map:
            return self._lookup(self.efield_map, key, "electric field")
        return self.uniform_efield

    def emission_current(
        self,
        key: FaceKey,
        temperatures: npt.ArrayLike,
        pq: PhysicalQuantities,
    ) -> npt.NDArray[np.float64]:
        """Emission current density at the given face temperatures."""
        temperatures = np.asarray(temperatures, dtype=np.float64)
        if self.emission_map:
            return np.full(temperatures.shape, self._lookup(self.emission_map, key, "emission current"))
        return pq.emission_current_batch(np.full(temperatures.shape, self.efield(key)), temperatures)

    def nottingham_heat(
        self,
        key: FaceKey,
        temperatures: npt.ArrayLike,
        pq: PhysicalQuantities,
    ) -> npt.NDArray[np.float64]:
        """Nottingham heat flux at the given face temperatures."""
        temperatures = np.asarray(temperatures, dtype=np.float64)
        if self.nottingham_map:
            return np.full(temperatures.shape, self._lookup(self.nottingham_map, key, "Nottingham heat"))
        deviation = pq.nottingham_deviation_batch(np.full(temperatures.shape, self.efield(key)), temperatures)
        return -deviation * self.emission_current(key, temperatures, pq)
