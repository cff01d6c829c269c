"""
Command-line runner
===================
Loads a conductor mesh and the tabulated material data, runs the coupled
current/heat time stepping and writes the results.

Why is this file needed?
------------------------
It is the composition root: it builds the configuration, the physical
quantities, the model and the solver, and wires the export functions to the
time loop. The library modules never read command-line input themselves.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace

from typing import Sequence

from emissionheating.config import SimulationConfig
from emissionheating.fea.analysis.model import Model
from emissionheating.fea.post import export
from emissionheating.fea.pre.mesh import Mesh
from emissionheating.fea.pre.physical_quantities import PhysicalQuantities
from emissionheating.fea.pre.tables import load_spreadsheet_grid
from emissionheating.fea.solvers.solver import CurrentsAndHeatingSolver
from emissionheating.fea.solvers.time_integration import list_schemes
from emissionheating.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="emissionheating",
        description="Coupled current flow and heating of a field-emitting conductor",
        allow_abbrev=False,
    )
    parser.add_argument("mesh", help="gmsh mesh of the conductor with CONDUCTOR SURFACE and BOTTOM physical lines")
    parser.add_argument("--resistivity", required=True,
                        help="Two-column table: temperature [K], resistivity [Ohm m]")
    parser.add_argument("--emission", required=True,
                        help="Grid of ln(emission current density) over (ln field, temperature)")
    parser.add_argument("--nottingham", required=True,
                        help="Grid of the Nottingham energy deviation over (ln field, temperature)")
    parser.add_argument("--spreadsheet", action="store_true",
                        help="Emission and Nottingham grids are 'x y z' rows instead of the compact format")
    parser.add_argument("--config", help="JSON file overriding the simulation settings")
    parser.add_argument("--steps", type=int, default=10, help="Number of time steps (default: 10)")
    parser.add_argument("--time-step", type=float, help="Time step [s], overrides the configuration")
    parser.add_argument("--scheme", choices=list_schemes(), help="Time integration scheme, overrides the configuration")
    parser.add_argument("--efield", type=float, help="Uniform surface field [V/nm], overrides the configuration")
    parser.add_argument("--output", help="Directory for VTU snapshots, history and property dumps")
    parser.add_argument("--write-every", type=int, default=1,
                        help="Write a snapshot every N steps (default: 1)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level (default: INFO)")
    parser.add_argument("--log-file", help="Also write the log to this file")
    return parser.parse_args(argv)


def _load_physical_quantities(args: argparse.Namespace, config: SimulationConfig) -> PhysicalQuantities | None:
    pq = PhysicalQuantities(constants=config.material)

    if not pq.load_resistivity_data(args.resistivity):
        return None

    if args.spreadsheet:
        pq.emission_grid = load_spreadsheet_grid(args.emission)
        pq.nottingham_grid = load_spreadsheet_grid(args.nottingham)
        if pq.emission_grid is None or pq.nottingham_grid is None:
            return None
    elif not (pq.load_emission_data(args.emission) and pq.load_nottingham_data(args.nottingham)):
        return None

    return pq


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(level=args.log_level, log_file=args.log_file)

    config = SimulationConfig.from_json(args.config) if args.config else SimulationConfig()
    overrides = {}
    if args.time_step is not None:
        overrides["time_step"] = args.time_step
    if args.scheme is not None:
        overrides["time_integration"] = args.scheme
    if args.efield is not None:
        overrides["uniform_efield"] = args.efield
    if overrides:
        config = replace(config, **overrides)

    pq = _load_physical_quantities(args, config)
    if pq is None:
        logger.error("Couldn't load the material tables, aborting.")
        return 1

    mesh = Mesh.from_file(args.mesh)
    model = Model(mesh=mesh, ambient_temperature=config.ambient_temperature)
    solver = CurrentsAndHeatingSolver(model, pq, config)
    logger.info(f"{mesh}, {solver}")

    if args.output:
        os.makedirs(args.output, exist_ok=True)
        pq.output_to_files(args.output)

    frames = []
    snapshots: list[str] = []
    times: list[float] = []

    def on_step(report):
        frames.append(model.solution_heat.copy())
        if args.output and report.step % args.write_every == 0:
            filename = f"heating_{report.step:05d}.vtu"
            if export.write_heating_results(os.path.join(args.output, filename), model, pq):
                snapshots.append(filename)
                times.append(report.time)

    reports = solver.run(args.steps, callback=on_step)

    logger.info(f"Finished {solver.timestep} steps, max temperature {solver.get_max_temperature():.2f} K")

    if args.output:
        export.write_current_results(os.path.join(args.output, "current.vtu"), model)
        export.write_collection(os.path.join(args.output, "heating.pvd"), snapshots, times)
        export.save_history(os.path.join(args.output, "history.h5"), reports, frames)

    return 0


if __name__ == "__main__":
    sys.exit(main())
