"""
Result export.

Field snapshots are written through meshio (``.vtu``/``.vtk``, anything meshio
infers from the extension) and grouped for ParaView in a ``.pvd`` collection;
the time history of a run goes to HDF5 through h5py.

Writers never raise on an unwritable path: the failure is logged and reported
by returning False.
"""
from __future__ import annotations

import logging
import os

from typing import TYPE_CHECKING, Sequence

import h5py
import meshio
import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

    from emissionheating.fea.analysis.model import Model
    from emissionheating.fea.pre.physical_quantities import PhysicalQuantities
    from emissionheating.fea.solvers.solver import StepReport

logger = logging.getLogger(__name__)


def _to_meshio(model: Model) -> tuple[npt.NDArray[np.float64], list[tuple[str, npt.NDArray[np.int64]]]]:
    points = model.mesh.points
    # VTK expects 3-D points
    points_3d = np.column_stack((points, np.zeros(len(points), dtype=np.float64)))
    return points_3d, [("triangle", model.mesh.triangles)]


def _write(filepath: str | os.PathLike, mesh: meshio.Mesh) -> bool:
    try:
        meshio.write(os.fspath(filepath), mesh)
    except OSError as e:
        logger.warning(f"Can't write '{filepath}': {e}")
        return False
    logger.debug(f"Wrote '{filepath}'")
    return True


def electric_field(model: Model) -> npt.NDArray[np.float64]:
    """Cell-wise electric field E = -∇V, shape (cells, 2)."""
    potential = model.solution_current
    return np.array(
        [-element.gradient(potential[element.global_dofs]) for element in model.mesh.elements],
        dtype=np.float64,
    ).reshape(-1, 2)


def write_current_results(filepath: str | os.PathLike, model: Model) -> bool:
    """
    Write the potential (per node) and the electric field (per cell).

    Returns:
        False if the file couldn't be written.
    """
    points, cells = _to_meshio(model)
    field = electric_field(model)
    mesh = meshio.Mesh(
        points,
        cells,
        point_data={"potential": model.solution_current.copy()},
        cell_data={"electric_field": [np.column_stack((field, np.zeros(len(field))))]},
    )
    return _write(filepath, mesh)


def write_heating_results(filepath: str | os.PathLike, model: Model, pq: PhysicalQuantities) -> bool:
    """
    Write the temperature and the electrical conductivity, both per node.

    Returns:
        False if the file couldn't be written.
    """
    points, cells = _to_meshio(model)
    temperature = model.solution_heat.copy()
    mesh = meshio.Mesh(
        points,
        cells,
        point_data={
            "temperature": temperature,
            "sigma": pq.sigma_batch(temperature),
        },
    )
    return _write(filepath, mesh)


def write_collection(filepath: str | os.PathLike, files: Sequence[str], times: Sequence[float]) -> bool:
    """Write a ParaView ``.pvd`` file linking a series of snapshots to their times."""
    lines = [
        '<?xml version="1.0"?>',
        '<VTKFile type="Collection" version="0.1" byte_order="LittleEndian">',
        '  <Collection>',
    ]
    for time, filename in zip(times, files):
        lines.append(f'    <DataSet timestep="{time!r}" group="" part="0" file="{filename}"/>')
    lines.append('  </Collection>')
    lines.append('</VTKFile>')

    try:
        with open(filepath, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
    except OSError as e:
        logger.warning(f"Can't write '{filepath}': {e}")
        return False
    return True


def save_history(
    filepath: str | os.PathLike,
    reports: Sequence[StepReport],
    temperatures: Sequence[npt.NDArray[np.float64]] | None = None,
) -> bool:
    """
    Store the per-step history of a run in HDF5.

    Layout: group ``history`` with one dataset per StepReport field, and
    ``temperatures`` (steps x nodes, gzip) if frames are given.

    Returns:
        False if the file couldn't be written.
    """
    try:
        with h5py.File(filepath, "w") as f:
            grp = f.create_group("history")
            grp.attrs["number_of_steps"] = len(reports)
            grp.create_dataset("step", data=np.array([r.step for r in reports], dtype=np.int64))
            grp.create_dataset("time", data=np.array([r.time for r in reports], dtype=np.float64))
            grp.create_dataset("current_iterations", data=np.array([r.current_iterations for r in reports], dtype=np.int64))
            grp.create_dataset("heat_iterations", data=np.array([r.heat_iterations for r in reports], dtype=np.int64))
            grp.create_dataset("max_temperature", data=np.array([r.max_temperature for r in reports], dtype=np.float64))
            grp.create_dataset("max_heating_power", data=np.array([r.max_heating_power for r in reports], dtype=np.float64))

            if temperatures:
                # Stack: (T, N), fixed mesh
                data_matrix = np.vstack(temperatures)
                grp.create_dataset("temperatures", data=data_matrix, compression="gzip")
                logger.debug(f"Saved {len(temperatures)} temperature frames.")
    except OSError as e:
        logger.warning(f"Can't write history to '{filepath}': {e}")
        return False

    logger.info(f"History saved to: {filepath}")
    return True


def load_history(filepath: str | os.PathLike) -> dict[str, npt.NDArray]:
    """Read back a file written by ``save_history``."""
    with h5py.File(filepath, "r") as f:
        grp = f["history"]
        return {name: grp[name][()] for name in grp.keys()}
