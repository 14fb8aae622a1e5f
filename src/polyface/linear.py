'''Small numpy linear algebra helpers used by the mesh code.

Transforms are 4x4 matrices applied to column vectors (m @ p). 3x4 matrices
are promoted to 4x4.
'''

import numpy as np


EPSILON = 1e-12
SMALL_METRIC_DISTANCE = 1e-6

IDENTITY_TRANSFORM = np.eye(4)
IDENTITY_TRANSFORM.flags.writeable = False

X_AXIS = np.array([1.0, 0, 0])
Y_AXIS = np.array([0.0, 1, 0])
Z_AXIS = np.array([0.0, 0, 1])


def as_array(v, dims: int | None = None, dtype=np.float64) -> np.ndarray:
    """Condition v to be a C-style contiguous array of the given dtype.

    If dims is given the result is reshaped to (N, dims).
    """
    if not isinstance(v, np.ndarray) or not (v.flags.c_contiguous and v.dtype == dtype):
        v = np.array(v, dtype=dtype, order="C")
    if dims is not None:
        if v.size % dims != 0:
            raise ValueError(f"array of size {v.size} cannot be shaped to (N, {dims})")
        v = v.reshape((-1, dims))
    return v


def to_transform(m) -> np.ndarray:
    """Returns a 4x4 transform from a 4x4, 3x4 or 3x3 matrix."""
    m = np.asarray(m, dtype=np.float64)
    if m.shape == (4, 4):
        return m
    if m.shape == (3, 4):
        return np.vstack((m, [0.0, 0, 0, 1]))
    if m.shape == (3, 3):
        result = np.eye(4)
        result[:3, :3] = m
        return result
    raise ValueError(f"expected a 4x4, 3x4 or 3x3 matrix, got shape {m.shape}")


def transform_points(m, points: np.ndarray) -> np.ndarray:
    m = to_transform(m)
    points = np.asarray(points, dtype=np.float64)
    return points @ m[:3, :3].T + m[:3, 3]


def transform_point(m, point) -> np.ndarray:
    return transform_points(m, np.asarray(point, dtype=np.float64).reshape((1, 3)))[0]


def transform_vectors(m, vectors: np.ndarray) -> np.ndarray:
    """Applies only the 3x3 part of m."""
    m = to_transform(m)
    return np.asarray(vectors, dtype=np.float64) @ m[:3, :3].T


def determinant(m) -> float:
    return float(np.linalg.det(to_transform(m)[:3, :3]))


def normal_matrix(m) -> np.ndarray | None:
    """Returns the inverse transpose of the 3x3 part of m, None if singular."""
    m3 = to_transform(m)[:3, :3]
    if abs(np.linalg.det(m3)) < EPSILON:
        return None
    return np.linalg.inv(m3).T


def normalize(v, eps: float = EPSILON) -> np.ndarray | None:
    """Returns v scaled to unit length or None if v is (nearly) zero."""
    v = np.asarray(v, dtype=np.float64)
    n = np.linalg.norm(v)
    if n <= eps:
        return None
    return v / n


def normalize_rows(v: np.ndarray, eps: float = EPSILON) -> np.ndarray:
    """Normalizes each row of v, rows that are (nearly) zero are left as zero."""
    v = np.asarray(v, dtype=np.float64)
    norms = np.linalg.norm(v, axis=-1, keepdims=True)
    return np.divide(v, norms, out=np.zeros_like(v), where=norms > eps)


def safe_divide_fraction(numerator: float, denominator: float, default: float) -> float:
    """numerator / denominator, or default if the quotient would blow up."""
    if abs(denominator) <= EPSILON * max(1.0, abs(numerator)):
        return default
    return numerator / denominator


def newell_normal(points: np.ndarray) -> np.ndarray:
    """Area weighted normal of a closed loop of points (not normalized)."""
    v1 = np.asarray(points, dtype=np.float64)
    v2 = np.roll(v1, -1, axis=0)
    return np.array([
        np.sum((v1[:, 1] - v2[:, 1]) * (v1[:, 2] + v2[:, 2])),
        np.sum((v1[:, 2] - v2[:, 2]) * (v1[:, 0] + v2[:, 0])),
        np.sum((v1[:, 0] - v2[:, 0]) * (v1[:, 1] + v2[:, 1])),
    ]) * 0.5


def rigid_from_columns(vx, vy) -> np.ndarray | None:
    """Returns a 3x3 rotation whose first column is along vx and second is in
    the vx, vy plane. None if vx and vy are parallel or zero."""
    x = normalize(vx)
    z = normalize(np.cross(vx, vy))
    if x is None or z is None:
        return None
    y = np.cross(z, x)
    return np.column_stack((x, y, z))


def perpendicular_favor_xy(v) -> np.ndarray:
    """Returns a vector perpendicular to v, lying in the XY plane where possible."""
    v = np.asarray(v, dtype=np.float64)
    limit = np.linalg.norm(v) / 64.0
    if abs(v[0]) < limit and abs(v[1]) < limit:
        return np.cross(v, -Y_AXIS)
    return np.cross(Z_AXIS, v)


def rigid_heads_up(vz) -> np.ndarray | None:
    """Returns a 3x3 rotation whose third column is along vz with the first
    column kept horizontal when vz is not vertical."""
    z = normalize(vz)
    if z is None:
        return None
    x = normalize(perpendicular_favor_xy(z))
    y = np.cross(z, x)
    return np.column_stack((x, y, z))


def translate(v) -> np.ndarray:
    result = np.eye(4)
    result[:3, 3] = np.asarray(v, dtype=np.float64)[:3]
    return result


def scale(v) -> np.ndarray:
    if np.isscalar(v):
        v = (v, v, v)
    result = np.eye(4)
    result[0, 0], result[1, 1], result[2, 2] = v[:3]
    return result


def _exact_sin_cos(degs: float) -> tuple[float, float]:
    """Returns the sin and cos of an angle in degrees, exact at right angles."""
    degs = degs % 360
    if degs == 0:
        return 0.0, 1.0
    elif degs == 90:
        return 1.0, 0.0
    elif degs == 180:
        return 0.0, -1.0
    elif degs == 270:
        return -1.0, 0.0
    radians = degs * np.pi / 180
    return np.sin(radians), np.cos(radians)


def rotate(degrees: float, axis=Z_AXIS) -> np.ndarray:
    """Returns a 4x4 rotation about axis (through the origin) by degrees."""
    sinr, cosr = _exact_sin_cos(degrees)
    u = normalize(axis)
    if u is None:
        raise ValueError("rotation axis must be non-zero")
    ux, uy, uz = u
    lcosr = 1 - cosr
    return np.array([
        [cosr + ux * ux * lcosr, ux * uy * lcosr - uz * sinr, ux * uz * lcosr + uy * sinr, 0],
        [ux * uy * lcosr + uz * sinr, cosr + uy * uy * lcosr, uy * uz * lcosr - ux * sinr, 0],
        [ux * uz * lcosr - uy * sinr, uy * uz * lcosr + ux * sinr, cosr + uz * uz * lcosr, 0],
        [0.0, 0, 0, 1],
    ])


def rotate_about(degrees: float, origin, axis) -> np.ndarray:
    origin = np.asarray(origin, dtype=np.float64)
    return translate(origin) @ rotate(degrees, axis) @ translate(-origin)


def mirror(normal) -> np.ndarray:
    """Mirror at the origin about the plane with the given normal.

    Householder reflection: I - 2 * (n outer n).
    """
    n = normalize(normal)
    if n is None:
        raise ValueError("mirror normal must be non-zero")
    result = np.eye(4)
    result[:3, :3] = np.eye(3) - 2.0 * np.outer(n, n)
    return result
