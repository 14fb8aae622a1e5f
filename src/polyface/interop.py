'''Conversion of polyfaces to triangle soups and manifold3d objects.'''

import logging

import manifold3d as m3d
import numpy as np

from polyface.indexed import IndexedPolyface
from polyface.triangulate import (
    choose_quad_triangulation,
    generate_triangle_indices,
    triangulate_3d_face,
)

log = logging.getLogger(__name__)


def polyface_to_triangles(polyface: IndexedPolyface) -> tuple[np.ndarray, np.ndarray]:
    """Returns (vertices (N, 3) float64, tri_verts (M, 3) uint32).

    Triangles pass through, quads are split with choose_quad_triangulation
    and larger facets are triangulated with earcut. Winding is preserved.
    """
    vertices = polyface.data.point.view().copy()
    tri_verts = []
    quads = []
    for visitor in polyface.create_visitor(0):
        indices = visitor.point_index
        if len(indices) == 3:
            tri_verts.append(indices)
        elif len(indices) == 4:
            quads.append(indices)
        else:
            tri_verts.extend(triangulate_3d_face(vertices, [indices]))
    tris = np.asarray(tri_verts, dtype=np.int64).reshape((-1, 3))
    if quads:
        quads = np.array(quads, dtype=np.int64)
        choice = choose_quad_triangulation(quads, vertices)
        tris = np.concatenate((tris, generate_triangle_indices(quads, choice)))
    return vertices, tris.astype(np.uint32)


def polyface_to_m3d_mesh(polyface: IndexedPolyface) -> m3d.Mesh:
    vertices, tri_verts = polyface_to_triangles(polyface)
    return m3d.Mesh(
        vert_properties=np.ascontiguousarray(vertices, dtype=np.float32),
        tri_verts=np.ascontiguousarray(tri_verts, dtype=np.uint32),
    )


def polyface_to_manifold(polyface: IndexedPolyface) -> m3d.Manifold:
    """A manifold3d solid from a closed, outward wound polyface.

    manifold3d reports a non-manifold mesh through status(); that is logged
    and the (empty) manifold is returned.
    """
    manifold = m3d.Manifold(polyface_to_m3d_mesh(polyface))
    if manifold.status() != m3d.Error.NoError:
        log.warning("polyface is not a manifold: %s", manifold.status())
    return manifold
