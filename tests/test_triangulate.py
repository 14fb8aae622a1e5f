import numpy as np
import pytest

from polyface.triangulate import (
    choose_quad_triangulation,
    generate_triangle_indices,
    get_polygon_signed_area,
    triangulate_3d_face,
)


def _edges(triangles):
    result = set()
    for a, b, c in triangles:
        result |= {(a, b), (b, c), (c, a), (b, a), (c, b), (a, c)}
    return result


def _area(verts, triangles):
    verts = np.asarray(verts, dtype=np.float64)
    return sum(np.linalg.norm(np.cross(verts[b] - verts[a], verts[c] - verts[a])) / 2
               for a, b, c in triangles)


def test_unit_square():
    verts = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=np.float32)
    face = [0, 1, 2, 3]
    triangles = triangulate_3d_face(verts, [face])
    assert len(triangles) == 2
    edges = _edges(triangles)
    for k in range(4):
        assert (face[k], face[(k + 1) % 4]) in edges


def test_triangle_passes_through():
    verts = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=np.float32)
    assert triangulate_3d_face(verts, [[0, 1, 2]]) == [[0, 1, 2]]


def test_vertical_and_slanted_faces():
    vertical = np.array([[0, 0, 0], [0, 1, 0], [0, 1, 1], [0, 0, 1]], dtype=np.float64)
    slanted = np.array([[0, 0, 0], [1, 0, 1], [1, 1, 2], [0, 1, 1]], dtype=np.float64)
    for verts in (vertical, slanted):
        triangles = triangulate_3d_face(verts, [[0, 1, 2, 3]])
        assert len(triangles) == 2
        assert all(0 <= i < 4 for tri in triangles for i in tri)


def test_downward_facing_square_keeps_winding():
    verts = np.array([[0, 0, 0], [0, 1, 0], [1, 1, 0], [1, 0, 0]], dtype=np.float64)
    for a, b, c in triangulate_3d_face(verts, [[0, 1, 2, 3]]):
        assert np.cross(verts[b] - verts[a], verts[c] - verts[a])[2] < 0


def test_concave_u_shape():
    verts = np.array([
        [0, 0, 0.5], [3, 0, -0.5], [3, 1, 0], [2, 1, 0.2],
        [2, 2, 0.3], [1, 2, 0.1], [1, 1, 0.2], [0, 1, 0],
    ])
    triangles = triangulate_3d_face(verts, [list(range(8))])
    assert len(triangles) == 6


def test_ccw_winding_and_area():
    verts = np.array([[0, 0, 0], [2, 0, 0], [2, 2, 0], [0, 2, 0]], dtype=np.float64)
    triangles = triangulate_3d_face(verts, [[0, 1, 2, 3]])
    for a, b, c in triangles:
        assert np.cross(verts[b] - verts[a], verts[c] - verts[a])[2] > 0
    assert _area(verts, triangles) == pytest.approx(4.0)


def test_square_with_hole():
    verts = np.array([
        [0, 0, 0], [4, 0, 0], [4, 4, 0], [0, 4, 0],
        [1, 1, 0], [1, 3, 0], [3, 3, 0], [3, 1, 0],
    ], dtype=np.float64)
    outer = [0, 1, 2, 3]
    inner = [4, 7, 6, 5]
    triangles = triangulate_3d_face(verts, [outer, inner])
    assert len(triangles) == 8
    edges = _edges(triangles)
    for loop in (outer, inner):
        for k in range(4):
            assert (loop[k], loop[(k + 1) % 4]) in edges
    assert _area(verts, triangles) == pytest.approx(12.0)


def test_degenerate_face_gives_nothing():
    verts = np.array([[0, 0, 0], [1, 0, 0], [2, 0, 0], [3, 0, 0]], dtype=np.float64)
    assert triangulate_3d_face(verts, [[0, 1, 2, 3]]) == []


def test_signed_area():
    square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]])
    assert get_polygon_signed_area(square) == pytest.approx(1.0)
    assert get_polygon_signed_area(square[::-1]) == pytest.approx(-1.0)
    assert get_polygon_signed_area(square[:2]) == 0.0


def test_square_tie_splits_on_02():
    verts = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=np.float64)
    quads = np.array([[0, 1, 2, 3]])
    assert choose_quad_triangulation(quads, verts).tolist() == [True]


def test_parallelogram_uses_shorter_diagonal():
    verts = np.array([[0, 0, 0], [2, 0, 0], [3, 1, 0], [1, 1, 0]], dtype=np.float64)
    quads = np.array([[0, 1, 2, 3], [1, 2, 3, 0]])
    assert choose_quad_triangulation(quads, verts).tolist() == [False, True]


def test_non_convex_quad_uses_interior_diagonal():
    # Reflex corner at 2: 1-3 is shorter but lies outside the quad.
    verts = np.array([[-10, 0, 0], [1, -3, 0], [0.8, 0, 0], [1, 3, 0]], dtype=np.float64)
    quads = np.array([[0, 1, 2, 3]])
    assert choose_quad_triangulation(quads, verts).tolist() == [True]


def test_choose_quad_triangulation_rejects_bad_shapes():
    verts = np.zeros((4, 3))
    with pytest.raises(ValueError):
        choose_quad_triangulation(np.array([[0, 1, 2]]), verts)
    with pytest.raises(ValueError):
        choose_quad_triangulation(np.array([[0, 1, 2, 3]]), np.zeros((4, 2)))
    with pytest.raises(TypeError):
        choose_quad_triangulation(np.array([[0.0, 1, 2, 3]]), verts)
    assert len(choose_quad_triangulation(np.zeros((0, 4), dtype=np.int64), verts)) == 0


def test_generate_triangle_indices():
    quads = np.array([[10, 11, 12, 13], [20, 21, 22, 23]])
    tris = generate_triangle_indices(quads, np.array([True, False]))
    assert tris.tolist() == [[10, 11, 12], [10, 12, 13], [20, 21, 23], [21, 22, 23]]
    assert generate_triangle_indices(np.zeros((0, 4), dtype=np.int64),
                                     np.array([], dtype=bool)).shape == (0, 3)
