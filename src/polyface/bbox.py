import numpy as np
from datatrees import datatree, dtfield


@datatree
class BoundingBox:
    """Axis aligned box with min and max points, any dimension.

    A null box has +inf min and -inf max so extending it by a point gives the
    point.
    """

    min_point: np.ndarray = dtfield(
        default_factory=lambda: np.array([float("inf")] * 3)
    )
    max_point: np.ndarray = dtfield(
        default_factory=lambda: np.array([float("-inf")] * 3)
    )

    @classmethod
    def null(cls, dims: int = 3) -> "BoundingBox":
        return cls(
            min_point=np.full(dims, float("inf")),
            max_point=np.full(dims, float("-inf")),
        )

    @classmethod
    def from_points(cls, points: np.ndarray, dims: int = 3) -> "BoundingBox":
        result = cls.null(dims)
        result.extend_points(points)
        return result

    @classmethod
    def from_corners(cls, low, high) -> "BoundingBox":
        return cls(
            min_point=np.array(low, dtype=np.float64),
            max_point=np.array(high, dtype=np.float64),
        )

    @property
    def dims(self) -> int:
        return len(self.min_point)

    @property
    def is_null(self) -> bool:
        return bool(np.any(self.min_point > self.max_point))

    def extend_point(self, point) -> None:
        point = np.asarray(point, dtype=np.float64)[: self.dims]
        self.min_point = np.minimum(self.min_point, point)
        self.max_point = np.maximum(self.max_point, point)

    def extend_points(self, points: np.ndarray) -> None:
        points = np.asarray(points, dtype=np.float64)
        if points.size == 0:
            return
        points = points.reshape((-1, points.shape[-1]))[:, : self.dims]
        self.min_point = np.minimum(self.min_point, points.min(axis=0))
        self.max_point = np.maximum(self.max_point, points.max(axis=0))

    @property
    def size(self) -> np.ndarray:
        """Extent along each axis, zero for a null box."""
        if self.is_null:
            return np.zeros(self.dims)
        return self.max_point - self.min_point

    @property
    def center(self) -> np.ndarray:
        if self.is_null:
            return np.zeros(self.dims)
        return (self.max_point + self.min_point) / 2.0

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.size))

    def union(self, other: "BoundingBox") -> "BoundingBox":
        if self.is_null:
            return other.clone()
        if other.is_null:
            return self.clone()
        return BoundingBox(
            min_point=np.minimum(self.min_point, other.min_point),
            max_point=np.maximum(self.max_point, other.max_point),
        )

    def contains_point(self, point) -> bool:
        if self.is_null:
            return False
        point = np.asarray(point)[: self.dims]
        return bool(np.all(point >= self.min_point) and np.all(point <= self.max_point))

    def scale_in_place(self, s: float) -> None:
        if not self.is_null:
            self.min_point = self.min_point * s
            self.max_point = self.max_point * s

    def clone(self) -> "BoundingBox":
        return BoundingBox(min_point=self.min_point.copy(), max_point=self.max_point.copy())

    def is_almost_equal(self, other: "BoundingBox", tol: float = 1e-10) -> bool:
        if self.is_null or other.is_null:
            return self.is_null and other.is_null
        return bool(
            np.allclose(self.min_point, other.min_point, atol=tol)
            and np.allclose(self.max_point, other.max_point, atol=tol)
        )
