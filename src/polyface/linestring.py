'''Sampled curves: a point sequence with optional parallel per-point data.'''

import numpy as np

import polyface.linear as l


class LineString3d:
    """Stroked curve output.

    points is (N, 3). fractions (N,), params (N, 2), derivatives (N, 3) and
    normals (N, 3) are optional and, when present, parallel to points.
    """

    def __init__(self, points, fractions=None, params=None, derivatives=None,
                 normals=None):
        self.points = l.as_array(points, 3) if len(points) else np.zeros((0, 3))
        n = len(self.points)
        self.fractions = None if fractions is None else np.asarray(fractions, dtype=np.float64)
        self.params = None if params is None else l.as_array(params, 2)
        self.derivatives = None if derivatives is None else l.as_array(derivatives, 3)
        self.normals = None if normals is None else l.as_array(normals, 3)
        for name in ("fractions", "params", "derivatives", "normals"):
            value = getattr(self, name)
            if value is not None and len(value) != n:
                raise ValueError(f"{name} has {len(value)} entries, expected {n}")

    @classmethod
    def from_points_2d(cls, xy, z: float = 0.0) -> "LineString3d":
        xy = l.as_array(xy, 2)
        return cls(np.column_stack((xy, np.full(len(xy), z))))

    def __len__(self) -> int:
        return len(self.points)

    @property
    def num_points(self) -> int:
        return len(self.points)

    def point_at(self, i: int) -> np.ndarray:
        return self.points[i]

    def fraction_at(self, i: int) -> float:
        """Stored fraction, else i / (n - 1)."""
        if self.fractions is not None:
            return float(self.fractions[i])
        n = self.num_points
        return 0.0 if n < 2 else i / (n - 1)

    def derivative_at(self, i: int) -> np.ndarray | None:
        return None if self.derivatives is None else self.derivatives[i]

    def param_at(self, i: int) -> np.ndarray | None:
        return None if self.params is None else self.params[i]

    def normal_at(self, i: int) -> np.ndarray | None:
        return None if self.normals is None else self.normals[i]

    def segment_lengths(self) -> np.ndarray:
        return np.linalg.norm(np.diff(self.points, axis=0), axis=1)

    def quick_length(self) -> float:
        return float(np.sum(self.segment_lengths()))

    def is_closed(self, tol: float = l.SMALL_METRIC_DISTANCE) -> bool:
        return self.num_points > 2 and np.linalg.norm(self.points[0] - self.points[-1]) <= tol

    def quick_unit_normal(self) -> np.ndarray | None:
        """Unit Newell normal of the points as a closed loop."""
        if self.num_points < 3:
            return None
        return l.normalize(l.newell_normal(self.points))

    def fractions_by_length(self) -> np.ndarray:
        """Cumulative arc length fractions, i / (n - 1) for zero length."""
        lengths = self.segment_lengths()
        total = np.sum(lengths)
        n = self.num_points
        if n < 2:
            return np.zeros(n)
        if total == 0:
            return np.linspace(0.0, 1.0, n)
        return np.concatenate(([0.0], np.cumsum(lengths) / total))

    def transformed(self, transform) -> "LineString3d":
        normals = None
        if self.normals is not None:
            matrix = l.normal_matrix(transform)
            if matrix is not None:
                normals = l.normalize_rows(self.normals @ matrix.T)
        return LineString3d(
            l.transform_points(transform, self.points),
            fractions=self.fractions,
            params=self.params,
            derivatives=(None if self.derivatives is None
                         else l.transform_vectors(transform, self.derivatives)),
            normals=normals,
        )

    def reversed(self) -> "LineString3d":
        """Same curve walked backwards, fractions become 1 - f."""
        return LineString3d(
            self.points[::-1],
            fractions=None if self.fractions is None else 1.0 - self.fractions[::-1],
            params=None if self.params is None else self.params[::-1],
            derivatives=None if self.derivatives is None else -self.derivatives[::-1],
            normals=None if self.normals is None else self.normals[::-1],
        )
