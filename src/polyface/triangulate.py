'''Polygon and quad triangulation.'''

import mapbox_earcut
import numpy as np

import polyface.linear as l


def _earcut(verts_2d: np.ndarray, rings) -> np.ndarray:
    """mapbox_earcut entry point matching the dtype of verts_2d."""
    rings = np.asarray(rings, dtype=np.uint32)
    if verts_2d.dtype == np.float32:
        return mapbox_earcut.triangulate_float32(verts_2d, rings)
    elif verts_2d.dtype == np.float64:
        return mapbox_earcut.triangulate_float64(verts_2d, rings)
    raise ValueError("verts_2d must be a numpy array of float32 or float64")


def _rotation_to_z(normal: np.ndarray) -> np.ndarray:
    """Rotation taking unit normal onto +Z (Rodrigues)."""
    cos_theta = float(np.clip(normal[2], -1.0, 1.0))
    axis = np.cross(normal, l.Z_AXIS)
    axis_norm = np.linalg.norm(axis)
    if axis_norm < 1e-10:
        if cos_theta > 0:
            return np.eye(3)
        # Half turn about X.
        return np.diag([1.0, -1.0, -1.0])
    axis = axis / axis_norm
    sin_theta = axis_norm
    k = np.array([
        [0, -axis[2], axis[1]],
        [axis[2], 0, -axis[0]],
        [-axis[1], axis[0], 0],
    ])
    return np.eye(3) + sin_theta * k + (1 - cos_theta) * (k @ k)


def triangulate_3d_face(vertices: np.ndarray, face: list[list[int]]) -> list[list[int]]:
    """Triangulates a near planar face, possibly with holes.

    face is a list of loops of indices into vertices, the first being the
    outer boundary. The face is rotated so its Newell normal is +Z and
    triangulated with earcut. Triangles keep the winding of the outer loop.
    """
    if len(face) == 1 and len(face[0]) == 3:
        return [list(face[0])]
    flat = np.concatenate([np.asarray(loop, dtype=np.int64) for loop in face])
    face_verts = np.asarray(vertices, dtype=np.float64)[flat][:, :3]

    normal = l.normalize(l.newell_normal(face_verts))
    if normal is None:
        return []
    verts_2d = np.ascontiguousarray((face_verts @ _rotation_to_z(normal).T)[:, :2])

    rings = np.cumsum([len(loop) for loop in face])
    triangles = np.asarray(_earcut(verts_2d, rings), dtype=np.int64).reshape((-1, 3))
    # The outer loop is CCW in the rotated frame. Make every triangle CCW too.
    a, b, c = (verts_2d[triangles[:, k]] for k in range(3))
    cw = ((b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1])
          - (c[:, 0] - a[:, 0]) * (b[:, 1] - a[:, 1])) < 0
    triangles[cw] = triangles[cw][:, ::-1]
    return flat[triangles].tolist()


def get_polygon_signed_area(poly_verts: np.ndarray) -> float:
    """Shoelace area of an (N, 2) polygon, positive for CCW."""
    poly_verts = np.asarray(poly_verts)
    if poly_verts.shape[0] < 3:
        return 0.0
    x = poly_verts[:, 0]
    y = poly_verts[:, 1]
    return float(0.5 * np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def _cross_norm(v1: np.ndarray, v2: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """Row-wise normalized cross product, zero rows where it vanishes."""
    cp = np.cross(np.atleast_2d(v1), np.atleast_2d(v2), axisa=1, axisb=1)
    norm = np.linalg.norm(cp, axis=1, keepdims=True)
    return np.divide(cp, norm, out=np.zeros_like(cp), where=norm > eps)


def choose_quad_triangulation(quad_indices: np.ndarray, vertices: np.ndarray,
                              epsilon: float = 1e-9) -> np.ndarray:
    """Chooses a splitting diagonal for each quad.

    Args:
        quad_indices: (N, 4) integer indices into vertices, corners in order.
        vertices: (M, 3) coordinates.
        epsilon: tolerance for the side-of-diagonal tests.

    Returns:
        (N,) bool, True to split along 0-2 and False along 1-3.

    A diagonal is interior when the two corners it does not touch lie on
    opposite sides of the plane through it containing the quad normal. If
    exactly one diagonal is interior (non-convex quad) it is used. Otherwise
    the shorter diagonal is used, ties going to 0-2.
    """
    if quad_indices.ndim != 2 or quad_indices.shape[1] != 4:
        raise ValueError("quad_indices must have shape (N, 4)")
    if vertices.ndim != 2 or vertices.shape[1] != 3:
        raise ValueError("vertices must have shape (M, 3)")
    if not np.issubdtype(quad_indices.dtype, np.integer):
        raise TypeError("quad_indices must be an integer type array")
    if len(quad_indices) == 0:
        return np.array([], dtype=bool)

    p0, p1, p2, p3 = (vertices[quad_indices[:, k]] for k in range(4))

    quad_normal = (np.cross(p1 - p0, p2 - p0) + np.cross(p2 - p1, p3 - p1)
                   + np.cross(p3 - p2, p0 - p2) + np.cross(p0 - p3, p1 - p3))
    norms = np.linalg.norm(quad_normal, axis=1, keepdims=True)
    quad_normal = np.divide(quad_normal, norms, out=np.zeros_like(quad_normal),
                            where=norms > epsilon)
    quad_normal[norms[:, 0] <= epsilon] = l.Z_AXIS

    diag02 = p2 - p0
    plane02 = _cross_norm(diag02, quad_normal, eps=epsilon)
    diag02_interior = (np.sum((p1 - p0) * plane02, axis=1)
                       * np.sum((p3 - p0) * plane02, axis=1)) <= epsilon**2

    diag13 = p3 - p1
    plane13 = _cross_norm(diag13, quad_normal, eps=epsilon)
    diag13_interior = (np.sum((p0 - p1) * plane13, axis=1)
                       * np.sum((p2 - p1) * plane13, axis=1)) <= epsilon**2

    use_02 = np.sum(diag02**2, axis=1) <= np.sum(diag13**2, axis=1)
    use_02[diag02_interior & ~diag13_interior] = True
    use_02[~diag02_interior & diag13_interior] = False
    return use_02


def generate_triangle_indices(quad_indices: np.ndarray, use_02: np.ndarray) -> np.ndarray:
    """(N * 2, 3) triangles for the quads, split per the choose_quad_triangulation mask.

    0-2 split gives (0, 1, 2), (0, 2, 3); 1-3 split gives (0, 1, 3), (1, 2, 3).
    """
    n = quad_indices.shape[0]
    if n == 0:
        return np.empty((0, 3), dtype=quad_indices.dtype)
    i0, i1, i2, i3 = quad_indices.T
    first = np.where(use_02[:, None], np.stack((i0, i1, i2), axis=1),
                     np.stack((i0, i1, i3), axis=1))
    second = np.where(use_02[:, None], np.stack((i0, i2, i3), axis=1),
                      np.stack((i1, i2, i3), axis=1))
    result = np.empty((n * 2, 3), dtype=quad_indices.dtype)
    result[0::2] = first
    result[1::2] = second
    return result
