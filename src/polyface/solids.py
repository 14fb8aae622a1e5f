'''Sampled solid descriptions accepted by PolyfaceBuilder.add_geometry().

Each variant carries already sampled geometry; the builder only assembles
facets from it.
'''

from dataclasses import dataclass, field

import numpy as np

from polyface.linestring import LineString3d
from polyface.surface import UVSurface


@dataclass
class Box:
    """The unit cube [0, 1]^3 mapped through transform."""

    transform: np.ndarray = field(default_factory=lambda: np.eye(4))


@dataclass
class LinearSweep:
    """A planar contour swept along vector."""

    contour: LineString3d
    vector: np.ndarray
    capped: bool = True


@dataclass
class RotationalSweep:
    """A contour rotated about an axis."""

    contour: LineString3d
    axis_origin: np.ndarray = field(default_factory=lambda: np.zeros(3))
    axis_direction: np.ndarray = field(default_factory=lambda: np.array([0.0, 0, 1]))
    sweep_degrees: float = 360.0
    num_steps: int | None = None
    capped: bool = True


@dataclass
class RuledSweep:
    """Ruled surface through a sequence of cross sections."""

    sections: list[LineString3d]
    capped: bool = True


@dataclass
class MiteredPipe:
    """Circular tube of radius along a centerline polyline."""

    centerline: np.ndarray
    radius: float
    num_strokes: int | None = None


@dataclass
class UVPatch:
    """Grid of quads over a parametric surface. With reversed the facets
    and normals face along -(du x dv)."""

    surface: UVSurface
    num_u: int
    num_v: int
    create_fan_in_caps: bool = False
    reversed: bool = False


SOLID_VARIANTS = (Box, LinearSweep, RotationalSweep, RuledSweep, MiteredPipe, UVPatch)
