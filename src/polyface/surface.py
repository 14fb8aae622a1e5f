'''Parametric surface interface used by PolyfaceBuilder.add_uv_grid().'''

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np
from datatrees import datatree, dtfield


class UVSurface(ABC):
    """A surface evaluated at (u, v) fractions in [0, 1] x [0, 1]."""

    @abstractmethod
    def uv_fraction_to_point(self, u: float, v: float) -> np.ndarray:
        ...

    @abstractmethod
    def uv_fraction_to_point_and_tangents(
            self, u: float, v: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Returns (point, d/du, d/dv)."""


@datatree
class PlanarPatch(UVSurface):
    """Parallelogram origin + u * vector_u + v * vector_v."""

    origin: np.ndarray = dtfield(default_factory=lambda: np.zeros(3))
    vector_u: np.ndarray = dtfield(default_factory=lambda: np.array([1.0, 0, 0]))
    vector_v: np.ndarray = dtfield(default_factory=lambda: np.array([0.0, 1, 0]))

    def uv_fraction_to_point(self, u: float, v: float) -> np.ndarray:
        return (np.asarray(self.origin, dtype=np.float64)
                + u * np.asarray(self.vector_u) + v * np.asarray(self.vector_v))

    def uv_fraction_to_point_and_tangents(self, u: float, v: float):
        return (self.uv_fraction_to_point(u, v),
                np.asarray(self.vector_u, dtype=np.float64),
                np.asarray(self.vector_v, dtype=np.float64))


@datatree
class FunctionSurface(UVSurface):
    """Wraps a callable f(u, v) -> point. Tangents by central differences."""

    func: Callable[[float, float], np.ndarray]
    step: float = dtfield(default=1e-6, doc="Finite difference step in fraction space.")

    def uv_fraction_to_point(self, u: float, v: float) -> np.ndarray:
        return np.asarray(self.func(u, v), dtype=np.float64)

    def uv_fraction_to_point_and_tangents(self, u: float, v: float):
        h = self.step
        du = (self.uv_fraction_to_point(u + h, v) - self.uv_fraction_to_point(u - h, v)) / (2 * h)
        dv = (self.uv_fraction_to_point(u, v + h) - self.uv_fraction_to_point(u, v - h)) / (2 * h)
        return self.uv_fraction_to_point(u, v), du, dv
