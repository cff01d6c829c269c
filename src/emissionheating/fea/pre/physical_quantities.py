from __future__ import annotations

import logging
import os

from typing import TYPE_CHECKING

import numpy as np

from emissionheating.config import MaterialConstants
from emissionheating.fea.pre.interpolation import (
    InterpolationGrid,
    ScalarTable,
    bilinear_interp,
    bilinear_interp_batch,
    deriv_linear_interp,
    deriv_linear_interp_batch,
    linear_interp,
    linear_interp_batch,
)
from emissionheating.fea.pre.tables import load_compact_grid, load_scalar_table

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


class PhysicalQuantities:
    """
    Evaluates the tabulated material response of the conductor.

    Resistivity is tabulated against temperature; emission current (as its
    logarithm) and Nottingham energy deviation are tabulated on a
    (ln(field), temperature) grid. Conductivities are derived from the
    resistivity with the temperature saturated to the validity range of the data.
    """

    def __init__(
        self,
        constants: MaterialConstants | None = None,
        resistivity_table: ScalarTable | None = None,
        emission_grid: InterpolationGrid | None = None,
        nottingham_grid: InterpolationGrid | None = None,
    ) -> None:
        """
        Initialize the evaluator.

        Args:
            constants: Lorenz number, clamp range and unit scales.
            resistivity_table: Resistivity [Ohm m] versus temperature [K].
            emission_grid: ln of the emission current density [A/m²] on (ln(field), temperature).
            nottingham_grid: Nottingham energy deviation [eV] on (ln(field), temperature).
        """
        self.constants = constants or MaterialConstants()
        self.resistivity_table = resistivity_table
        self.emission_grid = emission_grid
        self.nottingham_grid = nottingham_grid

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(resistivity={self.resistivity_table is not None}, "
            f"emission={self.emission_grid is not None}, nottingham={self.nottingham_grid is not None})"
        )

    # ---- loading ----

    def load_resistivity_data(self, filepath: str | os.PathLike) -> bool:
        """Load the resistivity table; returns False if the file couldn't be opened."""
        table = load_scalar_table(filepath)
        if table is None:
            return False
        self.resistivity_table = table
        return True

    def load_emission_data(self, filepath: str | os.PathLike) -> bool:
        """Load the emission current grid (compact format); returns False if the file couldn't be opened."""
        grid = load_compact_grid(filepath)
        if grid is None:
            return False
        self.emission_grid = grid
        return True

    def load_nottingham_data(self, filepath: str | os.PathLike) -> bool:
        """Load the Nottingham grid (compact format); returns False if the file couldn't be opened."""
        grid = load_compact_grid(filepath)
        if grid is None:
            return False
        self.nottingham_grid = grid
        return True

    # ---- helpers ----

    def _require_resistivity(self) -> ScalarTable:
        if self.resistivity_table is None:
            raise RuntimeError("Resistivity data has not been loaded.")
        return self.resistivity_table

    def _require_emission(self) -> InterpolationGrid:
        if self.emission_grid is None:
            raise RuntimeError("Emission current data has not been loaded.")
        return self.emission_grid

    def _require_nottingham(self) -> InterpolationGrid:
        if self.nottingham_grid is None:
            raise RuntimeError("Nottingham data has not been loaded.")
        return self.nottingham_grid

    def clamp_temperature(self, temperature: float) -> float:
        """Saturate the temperature to the validity range of the tables."""
        lower, upper = self.constants.temperature_bounds
        return min(max(float(temperature), lower), upper)

    # ---- resistivity & conductivities ----

    def resistivity(self, temperature: float) -> float:
        """Resistivity [Ohm nm] at the given temperature [K]."""
        table = self._require_resistivity()
        return linear_interp(temperature, table) * self.constants.resistivity_scale

    def resistivity_derivative(self, temperature: float) -> float:
        """Temperature derivative of the resistivity [Ohm nm / K]."""
        table = self._require_resistivity()
        return deriv_linear_interp(temperature, table) * self.constants.resistivity_scale

    def sigma(self, temperature: float) -> float:
        """Electrical conductivity [1/(Ohm nm)]."""
        return 1.0 / self.resistivity(self.clamp_temperature(temperature))

    def dsigma(self, temperature: float) -> float:
        """Temperature derivative of the electrical conductivity."""
        temperature = self.clamp_temperature(temperature)
        rho = self.resistivity(temperature)
        return -self.resistivity_derivative(temperature) / (rho * rho)

    def kappa(self, temperature: float) -> float:
        """Thermal conductivity [W/(nm K)] from the Wiedemann-Franz law."""
        temperature = self.clamp_temperature(temperature)
        return self.constants.lorenz_number * temperature * self.sigma(temperature)

    def dkappa(self, temperature: float) -> float:
        """Temperature derivative of the thermal conductivity."""
        temperature = self.clamp_temperature(temperature)
        return self.constants.lorenz_number * (self.sigma(temperature) + temperature * self.dsigma(temperature))

    def sigma_batch(self, temperatures: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Electrical conductivity at an array of temperatures."""
        table = self._require_resistivity()
        lower, upper = self.constants.temperature_bounds
        t = np.clip(np.asarray(temperatures, dtype=np.float64), lower, upper)
        return 1.0 / (linear_interp_batch(t, table) * self.constants.resistivity_scale)

    def kappa_batch(self, temperatures: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Thermal conductivity at an array of temperatures."""
        lower, upper = self.constants.temperature_bounds
        t = np.clip(np.asarray(temperatures, dtype=np.float64), lower, upper)
        return self.constants.lorenz_number * t * self.sigma_batch(t)

    def dsigma_batch(self, temperatures: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Temperature derivative of the electrical conductivity at an array of temperatures."""
        table = self._require_resistivity()
        lower, upper = self.constants.temperature_bounds
        t = np.clip(np.asarray(temperatures, dtype=np.float64), lower, upper)
        rho = linear_interp_batch(t, table) * self.constants.resistivity_scale
        drho = deriv_linear_interp_batch(t, table) * self.constants.resistivity_scale
        return -drho / (rho * rho)

    # ---- emission ----

    def emission_current(self, field: float, temperature: float) -> float:
        """Field emission current density [A/nm²] for a local field [V/nm] and temperature [K]."""
        grid = self._require_emission()
        return float(np.exp(bilinear_interp(_log_field(field), temperature, grid))) * self.constants.emission_current_scale

    def nottingham_deviation(self, field: float, temperature: float) -> float:
        """Mean energy deviation of the emitted electrons from the Fermi level [eV]."""
        grid = self._require_nottingham()
        return bilinear_interp(_log_field(field), temperature, grid)

    def emission_current_batch(self, field: npt.ArrayLike, temperature: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Batched ``emission_current`` over paired (field, temperature) points."""
        grid = self._require_emission()
        log_field = _log_field(np.asarray(field, dtype=np.float64))
        return np.exp(bilinear_interp_batch(log_field, temperature, grid)) * self.constants.emission_current_scale

    def nottingham_deviation_batch(self, field: npt.ArrayLike, temperature: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Batched ``nottingham_deviation`` over paired (field, temperature) points."""
        grid = self._require_nottingham()
        log_field = _log_field(np.asarray(field, dtype=np.float64))
        return bilinear_interp_batch(log_field, temperature, grid)

    # ---- diagnostics ----

    def output_to_files(self, directory: str | os.PathLike, temperature: float = 500.0) -> bool:
        """
        Dump the evaluated quantities to text files for inspection.

        Writes ``rho_file.txt``, ``sigma_file.txt`` and ``kappa_file.txt``
        (temperature, value, derivative) for 100 K <= T < 1500 K, and
        ``emission_file.txt`` and ``nottingham_file.txt`` (field, temperature, value)
        for 0.01 <= F < 10 V/nm at the given temperature.

        Returns:
            False if the directory doesn't exist or a file couldn't be written.
        """
        if not os.path.isdir(directory):
            logger.warning(f"Can't access '{directory}', physical quantities are not written.")
            return False

        logger.info(f"Outputting physical quantities to '{directory}'")

        temperatures = np.arange(100.0, 1500.0, 5.0)
        fields = np.arange(1, 1000) * 0.01
        fixed_t = np.full_like(fields, temperature)

        tables = {
            "rho_file.txt": np.column_stack((
                temperatures,
                [self.resistivity(t) for t in temperatures],
                [self.resistivity_derivative(t) for t in temperatures],
            )),
            "sigma_file.txt": np.column_stack((
                temperatures,
                [self.sigma(t) for t in temperatures],
                [self.dsigma(t) for t in temperatures],
            )),
            "kappa_file.txt": np.column_stack((
                temperatures,
                [self.kappa(t) for t in temperatures],
                [self.dkappa(t) for t in temperatures],
            )),
            "emission_file.txt": np.column_stack((fields, fixed_t, self.emission_current_batch(fields, fixed_t))),
            "nottingham_file.txt": np.column_stack((fields, fixed_t, self.nottingham_deviation_batch(fields, fixed_t))),
        }

        for filename, data in tables.items():
            filepath = os.path.join(directory, filename)
            fmt = "%.5e %.5e %.16e" if filename in ("emission_file.txt", "nottingham_file.txt") else "%.5e"
            try:
                np.savetxt(filepath, data, fmt=fmt)
            except OSError as e:
                logger.warning(f"Couldn't write '{filepath}': {e}")
                return False
        return True


def _log_field(field):
    # The tables are sampled in ln(F); a non-positive field has no grid cell
    if not (np.all(np.isfinite(field)) and np.all(np.greater(field, 0.0))):
        raise ValueError(f"Electric field must be positive and finite, got {field}.")
    return np.log(field)
