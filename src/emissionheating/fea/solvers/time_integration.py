"""
Time integration of the heat equation.

Both schemes lead to a system of the form

    (M + a K) T = M T_old - b K T_old + s (P + q)

where M is the mass matrix, K the thermal stiffness evaluated at T_old, P the
Joule heating power and q the Nottingham heat flux on the conductor surface.
A scheme provides the weights (a, b, s) and the heating power it integrates.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np
    import numpy.typing as npt


@dataclass(frozen=True)
class HeatSystemWeights:
    """
    Attributes:
        implicit: Weight of the stiffness matrix on the left-hand side.
        explicit: Weight of K T_old subtracted on the right-hand side.
        source: Weight of the heating power and of the boundary heat flux.
    """
    implicit: float
    explicit: float
    source: float


class TimeIntegrationScheme(ABC):
    """Strategy for one heat step of the lagged current/heat coupling."""

    KEY: str = ""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    @abstractmethod
    def weights(self, time_step: float, heat_capacity: float) -> HeatSystemWeights:
        """Weights of the heat system for the given step and volumetric heat capacity."""
        pass

    @abstractmethod
    def heating_power(
        self,
        sigma: npt.NDArray[np.float64],
        grad_v_sq: npt.NDArray[np.float64],
        grad_v_old_sq: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        """Joule heating power density from σ and the squared field of this and the previous step."""
        pass


TIME_INTEGRATION_SCHEMES: dict[str, type[TimeIntegrationScheme]] = {}


def register_scheme(cls: type[TimeIntegrationScheme]) -> type[TimeIntegrationScheme]:
    """Class decorator to register a time integration scheme by its KEY."""
    key = getattr(cls, "KEY", None)
    if not key:
        raise ValueError(f"{cls.__name__} must define KEY")
    TIME_INTEGRATION_SCHEMES[key] = cls
    return cls


def create_scheme(key: str) -> TimeIntegrationScheme:
    cls = TIME_INTEGRATION_SCHEMES.get(key)
    if not cls:
        raise KeyError(f"No time integration scheme registered for key '{key}'")
    return cls()


def list_schemes() -> list[str]:
    return list(TIME_INTEGRATION_SCHEMES.keys())


@register_scheme
class CrankNicolson(TimeIntegrationScheme):
    """
    Trapezoidal rule, second order in time.

    With k = Δt / (2C): matrix M + k K, right-hand side
    M T_old - k K T_old + k σ (|∇V|² + |∇V_old|²) + 2k q.
    """
    KEY = "crank_nicolson"

    def weights(self, time_step: float, heat_capacity: float) -> HeatSystemWeights:
        k = time_step / (2.0 * heat_capacity)
        return HeatSystemWeights(implicit=k, explicit=k, source=2.0 * k)

    def heating_power(
        self,
        sigma: npt.NDArray[np.float64],
        grad_v_sq: npt.NDArray[np.float64],
        grad_v_old_sq: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        return 0.5 * sigma * (grad_v_sq + grad_v_old_sq)


@register_scheme
class ImplicitEuler(TimeIntegrationScheme):
    """
    Backward Euler, first order in time.

    With γ = Δt / C: matrix M + γ K, right-hand side M T_old + γ σ |∇V|² + γ q.
    """
    KEY = "implicit_euler"

    def weights(self, time_step: float, heat_capacity: float) -> HeatSystemWeights:
        gamma = time_step / heat_capacity
        return HeatSystemWeights(implicit=gamma, explicit=0.0, source=gamma)

    def heating_power(
        self,
        sigma: npt.NDArray[np.float64],
        grad_v_sq: npt.NDArray[np.float64],
        grad_v_old_sq: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        return sigma * grad_v_sq
