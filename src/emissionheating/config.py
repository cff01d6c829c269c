"""
Configuration & Constants
=========================
This module serves as the central registry for the physical constants and
numerical settings of a coupled current/heat simulation.

Why is this file needed?
------------------------
1. Abstraction: It prevents magic numbers (Lorenz constant, clamp bounds,
   heat capacity, ...) from being scattered through the assembly code.
2. Testing: The constants are threaded through constructors, so synthetic
   tables and toy meshes can be run with convenient values.

Exports:
    MaterialConstants: Constants used by the physical property evaluator.
    LinearSolverSettings: Conjugate-gradient budget and preconditioner choice.
    SimulationConfig: Everything the time-stepping driver needs.

Units follow the tabulated data: lengths in nm, fields in V/nm,
current densities in A/nm², temperatures in K.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any

logger = logging.getLogger(__name__)

LORENZ_NUMBER = 2.443e-8  # W Ohm K^(-2)
RESISTIVITY_SCALE = 1.0e9  # Ohm*m -> Ohm*nm
EMISSION_CURRENT_SCALE = 1.0e-18  # A/m^2 -> A/nm^2
COPPER_VOLUMETRIC_HEAT_CAPACITY = 3.4496e-21  # J/(K*nm^3)
AMBIENT_TEMPERATURE = 300.0  # K

TEMPERATURE_LOWER_BOUND = 200.0  # K, lower limit of the tabulated data
TEMPERATURE_UPPER_BOUND = 1400.0  # K, upper limit of the tabulated data

INTERFACE_TOLERANCE = 1e-9  # nm, centroid distance accepted as the same face


@dataclass(frozen=True)
class MaterialConstants:
    """
    Constants used when turning tabulated data into material properties.

    Attributes:
        lorenz_number: Wiedemann-Franz proportionality constant.
        temperature_bounds: Validity range of the tables; temperatures outside are saturated.
        resistivity_scale: Unit scale applied to the tabulated resistivity.
        emission_current_scale: Unit scale applied to the tabulated emission current.
    """
    lorenz_number: float = LORENZ_NUMBER
    temperature_bounds: tuple[float, float] = (TEMPERATURE_LOWER_BOUND, TEMPERATURE_UPPER_BOUND)
    resistivity_scale: float = RESISTIVITY_SCALE
    emission_current_scale: float = EMISSION_CURRENT_SCALE

    def __post_init__(self) -> None:
        lower, upper = self.temperature_bounds
        if not lower < upper:
            raise ValueError(f"Invalid temperature bounds {self.temperature_bounds}: lower must be below upper.")


@dataclass(frozen=True)
class LinearSolverSettings:
    """
    Budget of the conjugate gradient solver.

    Attributes:
        max_iterations: Iteration cap, reaching it means non-convergence.
        tolerance: Absolute tolerance on the residual norm.
        use_preconditioner: Use SSOR preconditioning.
        ssor_parameter: Relaxation parameter of SSOR, 1.2 works well for Laplace-type matrices.
    """
    max_iterations: int = 2000
    tolerance: float = 1e-9
    use_preconditioner: bool = True
    ssor_parameter: float = 1.2

    def __post_init__(self) -> None:
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive.")
        if not 0.0 < self.ssor_parameter < 2.0:
            raise ValueError(f"SSOR parameter must lie in (0, 2), got {self.ssor_parameter}.")


@dataclass(frozen=True)
class SimulationConfig:
    """
    Settings of the coupled current/heat time stepping.

    Attributes:
        time_step: Time step of the heat equation integration [s].
        ambient_temperature: Temperature applied at the bottom boundary and used as initial condition [K].
        heat_capacity: Volumetric heat capacity of the conductor [J/(K nm^3)].
        uniform_efield: Fallback field on the conductor surface when no per-face values are set [V/nm].
        interface_tolerance: Distance under which two face centroids are considered the same face [nm].
        time_integration: Key of the heat time integration scheme.
        material: Constants of the physical property evaluator.
        current_solver: CG settings for the current system.
        heat_solver: CG settings for the heat system.
    """
    time_step: float = 1e-13
    ambient_temperature: float = AMBIENT_TEMPERATURE
    heat_capacity: float = COPPER_VOLUMETRIC_HEAT_CAPACITY
    uniform_efield: float = 1.0
    interface_tolerance: float = INTERFACE_TOLERANCE
    time_integration: str = "crank_nicolson"
    material: MaterialConstants = field(default_factory=MaterialConstants)
    current_solver: LinearSolverSettings = field(default_factory=LinearSolverSettings)
    heat_solver: LinearSolverSettings = field(default_factory=LinearSolverSettings)

    def __post_init__(self) -> None:
        if self.time_step <= 0.0:
            raise ValueError(f"Time step must be positive, got {self.time_step}.")
        if self.heat_capacity <= 0.0:
            raise ValueError(f"Heat capacity must be positive, got {self.heat_capacity}.")

    def with_time_step(self, time_step: float) -> SimulationConfig:
        """Return a copy with a different time step."""
        return replace(self, time_step=time_step)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SimulationConfig:
        """
        Build a configuration from a plain dictionary (e.g. parsed JSON).

        Nested sections ``material``, ``current_solver`` and ``heat_solver`` are
        dictionaries themselves. Missing keys keep their defaults.

        Raises:
            ValueError: If the dictionary contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

        kwargs = dict(data)
        if "material" in kwargs:
            material = dict(kwargs["material"])
            if "temperature_bounds" in material:
                material["temperature_bounds"] = tuple(material["temperature_bounds"])
            kwargs["material"] = _build_section(MaterialConstants, material)
        for key in ("current_solver", "heat_solver"):
            if key in kwargs:
                kwargs[key] = _build_section(LinearSolverSettings, kwargs[key])
        return cls(**kwargs)

    @classmethod
    def from_json(cls, filepath: str) -> SimulationConfig:
        """Load a configuration from a JSON file."""
        logger.info(f"Loading configuration from: {filepath}")
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)


def _build_section(section_cls: type, data: dict[str, Any]) -> Any:
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section_cls.__name__}' section: {sorted(unknown)}")
    return section_cls(**data)
