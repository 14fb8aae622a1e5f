'''PolyfaceBuilder: assembles IndexedPolyface facets from sampled geometry.

The builder owns its mesh until claim_polyface(). Every facet goes through
_add_indexed_facet(), which drops zero length edges, applies the reversed
flag, fills in missing normals, params and colors and commits the facet as a
FacetTransaction. Geometric problems are soft: degenerate facets are dropped
and incompatible sections lose their stitching, never raising.
'''

import logging
import math

import numpy as np

from polyface.data import PolyfaceException
from polyface.halfedge import HalfEdge, HalfEdgeGraph
from polyface.indexed import IndexedPolyface
from polyface.linestring import LineString3d
from polyface.options import StrokeOptions
from polyface.sections import create_mitered_pipe_sections, resample_to_common_count
from polyface.solids import (
    Box,
    LinearSweep,
    MiteredPipe,
    RotationalSweep,
    RuledSweep,
    UVPatch,
)
from polyface.surface import UVSurface
from polyface.triangulate import (
    choose_quad_triangulation,
    get_polygon_signed_area,
    triangulate_3d_face,
)
import polyface.linear as l

log = logging.getLogger(__name__)


class BuilderClaimedException(PolyfaceException):
    '''The builder's polyface has already been claimed.'''


class UnsupportedGeometryException(PolyfaceException):
    '''add_geometry() was given something it cannot facet.'''


class BoxTopology:
    '''Corner and face tables of the unit cube.

    Corner i is at (i & 1, (i >> 1) & 1, (i >> 2) & 1). Faces are listed
    counter clockwise seen from outside.
    '''

    POINTS = np.array([(i & 1, (i >> 1) & 1, (i >> 2) & 1) for i in range(8)], dtype=np.float64)

    FACES = (
        (0, 2, 3, 1),  # z = 0
        (4, 5, 7, 6),  # z = 1
        (0, 1, 5, 4),  # y = 0
        (2, 6, 7, 3),  # y = 1
        (0, 4, 6, 2),  # x = 0
        (1, 3, 7, 5),  # x = 1
    )

    NORMALS = np.array([
        (0.0, 0, -1), (0, 0, 1), (0, -1, 0), (0, 1, 0), (-1, 0, 0), (1, 0, 0)])

    FACE_PARAMS = np.array([(0.0, 0), (1, 0), (1, 1), (0, 1)])


def _cyclic_distinct(indices: list) -> list[int]:
    """Positions k whose edge to corner k + 1 has non-zero length."""
    n = len(indices)
    return [k for k in range(n) if indices[k] != indices[(k + 1) % n]]


def _local_params(coords: np.ndarray) -> np.ndarray:
    """Distances in a frame with X along the first edge and Y in the facet plane."""
    frame = None
    normal = l.newell_normal(coords)
    for k in range(1, len(coords)):
        frame = l.rigid_from_columns(coords[k] - coords[0], np.cross(normal, coords[k] - coords[0]))
        if frame is not None:
            break
    if frame is None:
        return np.zeros((len(coords), 2))
    return ((coords - coords[0]) @ frame)[:, :2]


class PolyfaceBuilder:
    """Incremental mesh builder.

    The reversed flag flips the winding of every facet emitted while it is
    set. With options.need_colors every facet corner gets the current color.
    """

    def __init__(self, options: StrokeOptions | None = None):
        self.options = options if options is not None else StrokeOptions()
        self._polyface: IndexedPolyface | None = IndexedPolyface.create(
            self.options.need_normals, self.options.need_params, self.options.need_colors)
        self._reversed = False
        self._current_color = 0
        self._color_index: int | None = None

    @classmethod
    def create(cls, options: StrokeOptions | None = None) -> "PolyfaceBuilder":
        return cls(options)

    @property
    def _mesh(self) -> IndexedPolyface:
        if self._polyface is None:
            raise BuilderClaimedException("polyface already claimed from this builder")
        return self._polyface

    @property
    def polyface(self) -> IndexedPolyface:
        """The mesh under construction (still owned by the builder)."""
        return self._mesh

    @property
    def reversed_flag(self) -> bool:
        return self._reversed

    def toggle_reversed_facet_flag(self) -> None:
        self._reversed = not self._reversed

    def set_current_color(self, color: int) -> None:
        self._current_color = int(color)
        self._color_index = None

    def claim_polyface(self, compress: bool = True) -> IndexedPolyface:
        """Releases the mesh, merging coincident points first if compress.
        The builder is unusable afterwards."""
        mesh = self._mesh
        if compress:
            mesh.data.compress(self.options.clusterer)
        self._polyface = None
        return mesh

    def end_face(self) -> bool:
        """Groups the facets since the last end_face() into a face."""
        return self._mesh.set_new_face_data()

    # Find-or-add. Nothing is deduplicated here, claim_polyface() compresses.

    def find_or_add_point(self, point) -> int:
        return self._mesh.add_point(point)

    def find_or_add_point_xyz(self, x: float, y: float, z: float = 0.0) -> int:
        return self._mesh.add_point_xyz(x, y, z)

    def find_or_add_param_xy(self, u: float, v: float) -> int:
        return self._mesh.add_param_uv(u, v)

    def find_or_add_normal(self, normal) -> int:
        return self._mesh.add_normal(normal)

    def find_or_add_point_in_line_string(self, ls: LineString3d, i: int, transform=None) -> int:
        point = ls.point_at(i)
        if transform is not None:
            point = l.transform_point(transform, point)
        return self._mesh.add_point(point)

    def find_or_add_param_in_line_string(self, ls: LineString3d, i: int,
                                         v: float | None = None) -> int:
        """The linestring's own param at i, else (fraction at i, v)."""
        if v is None and ls.params is not None:
            return self._mesh.add_param(ls.params[i])
        return self._mesh.add_param_uv(ls.fraction_at(i), 0.0 if v is None else v)

    def find_or_add_normal_in_line_string(self, ls: LineString3d, i: int,
                                          transform=None, sign: float = 1.0) -> int | None:
        normal = ls.normal_at(i)
        if normal is None:
            return None
        if transform is not None:
            matrix = l.normal_matrix(transform)
            if matrix is None:
                return None
            normal = matrix @ normal
        normal = l.normalize(sign * np.asarray(normal, dtype=np.float64))
        return None if normal is None else self._mesh.add_normal(normal)

    def find_or_add_normal_in_line_string_pair(self, ls_a: LineString3d, ls_b: LineString3d,
                                               i: int, at_a: bool = True) -> int | None:
        """Normal at point i of rail a (or rail b if not at_a) for the stitch
        from a to b: the rail's derivative crossed with b[i] - a[i].

        Negated while the reversed flag is set. None if the rail has no
        derivatives or the cross product vanishes.
        """
        ls = ls_a if at_a else ls_b
        derivative = ls.derivative_at(i)
        if derivative is None:
            return None
        normal = l.normalize(np.cross(derivative, ls_b.point_at(i) - ls_a.point_at(i)))
        if normal is None:
            return None
        return self._mesh.add_normal(-normal if self._reversed else normal)

    # Facet emission.

    def _facet_color_index(self) -> int:
        if self._color_index is None:
            self._color_index = self._mesh.add_color(self._current_color)
        return self._color_index

    def _add_indexed_facet(self, point_indices, normal_indices=None, param_indices=None,
                           visible=None) -> bool:
        mesh = self._mesh
        data = mesh.data
        n = len(point_indices)
        if visible is None:
            visible = [True] * n
        keep = _cyclic_distinct(point_indices)
        if len(keep) < 3:
            log.debug("dropped degenerate facet %s", list(point_indices))
            return False
        if len(keep) < n:
            point_indices = [point_indices[k] for k in keep]
            normal_indices = None if normal_indices is None else [normal_indices[k] for k in keep]
            param_indices = None if param_indices is None else [param_indices[k] for k in keep]
            visible = [visible[k] for k in keep]
            n = len(keep)
        if self._reversed:
            perm = [0] + list(range(n - 1, 0, -1))
            point_indices = [point_indices[p] for p in perm]
            normal_indices = None if normal_indices is None else [normal_indices[p] for p in perm]
            param_indices = None if param_indices is None else [param_indices[p] for p in perm]
            visible = [visible[perm[(k + 1) % n]] for k in range(n)]

        # Synthesized data is added inside the transaction so a rejected
        # facet leaves none of it behind.
        with mesh.begin_facet() as facet:
            coords = None
            if (data.normal is not None and normal_indices is None) or (
                    data.param is not None and param_indices is None):
                coords = data.point.view()[point_indices]
            if data.normal is not None and normal_indices is None:
                normal = l.normalize(l.newell_normal(coords))
                normal_indices = [mesh.add_normal(l.Z_AXIS if normal is None else normal)] * n
            if data.param is not None and param_indices is None:
                param_indices = [mesh.add_param(uv) for uv in _local_params(coords)]
            color_index = self._facet_color_index() if data.color is not None else None
            for k in range(n):
                facet.add_corner(
                    point_indices[k],
                    None if normal_indices is None else normal_indices[k],
                    None if param_indices is None else param_indices[k],
                    color_index,
                    visible[k],
                )
        if facet.messages:
            log.warning("facet rejected: %s", "; ".join(facet.messages))
            if data.color is not None and not data.color.data.is_valid_index(self._color_index):
                self._color_index = None
            return False
        return True

    def _add_indexed_quad_corners(self, point_indices, normal_indices=None,
                                  param_indices=None, visible=None) -> int:
        """Emits a quad given in perimeter order. Returns the number of facets.

        A quad with 3 distinct corners becomes a triangle. When triangulating
        the shorter diagonal is used (0-2 on ties) and marked invisible.
        """
        if visible is None:
            visible = [True] * 4
        if len(_cyclic_distinct(point_indices)) != 4 or not self.options.should_triangulate:
            return int(self._add_indexed_facet(point_indices, normal_indices, param_indices,
                                               visible))
        use_02 = choose_quad_triangulation(
            np.array([point_indices], dtype=np.int64),
            self._mesh.data.point.view())[0]
        if use_02:
            tris = ((0, 1, 2), (0, 2, 3))
            tri_visible = ((visible[0], visible[1], False), (False, visible[2], visible[3]))
        else:
            tris = ((0, 1, 3), (1, 2, 3))
            tri_visible = ((visible[0], False, visible[3]), (visible[1], visible[2], False))
        count = 0
        for tri, vis in zip(tris, tri_visible):
            count += self._add_indexed_facet(
                [point_indices[k] for k in tri],
                None if normal_indices is None else [normal_indices[k] for k in tri],
                None if param_indices is None else [param_indices[k] for k in tri],
                list(vis))
        return count

    def add_indexed_triangle(self, i0: int, i1: int, i2: int, normal_indices=None,
                             param_indices=None) -> bool:
        return self._add_indexed_facet([i0, i1, i2], normal_indices, param_indices)

    def add_indexed_quad(self, i00: int, i10: int, i01: int, i11: int,
                         normal_indices=None, param_indices=None) -> int:
        """Quad on grid corners (0, 0), (1, 0), (0, 1), (1, 1), emitted as
        i00, i10, i11, i01. normal_indices and param_indices use the same
        grid order."""
        order = (0, 1, 3, 2)
        return self._add_indexed_quad_corners(
            [(i00, i10, i01, i11)[k] for k in order],
            None if normal_indices is None else [normal_indices[k] for k in order],
            None if param_indices is None else [param_indices[k] for k in order])

    def _add_point_facet(self, points, params=None, normals=None, quad: bool = False) -> int:
        points = l.as_array(points, 3)
        n = len(points)
        if n < 3:
            return 0
        keep = [k for k in range(n) if not np.array_equal(points[k], points[(k + 1) % n])]
        if len(keep) < 3:
            log.debug("dropped facet with coincident points")
            return 0
        mesh = self._mesh
        point_indices = [mesh.add_point(points[k]) for k in keep]
        param_indices = None
        normal_indices = None
        if params is not None and mesh.data.param is not None:
            params = l.as_array(params, 2)
            param_indices = [mesh.add_param(params[k]) for k in keep]
        if normals is not None and mesh.data.normal is not None:
            normals = l.as_array(normals, 3)
            normal_indices = [mesh.add_normal(normals[k]) for k in keep]
        if quad and len(keep) == 4:
            return self._add_indexed_quad_corners(point_indices, normal_indices, param_indices)
        return int(self._add_indexed_facet(point_indices, normal_indices, param_indices))

    def add_triangle_facet(self, points, params=None, normals=None) -> bool:
        """One triangle from the first three points. Missing normals and
        params are synthesized."""
        return self._add_point_facet(l.as_array(points, 3)[:3], params, normals) == 1

    def add_quad_facet(self, points, params=None, normals=None) -> int:
        """A quad from 4 points in perimeter order. Returns the facet count.

        Quads with an edge longer than options.max_edge_length are split into
        a grid of smaller quads.
        """
        points = l.as_array(points, 3)[:4]
        if len(points) < 4:
            return self._add_point_facet(points, params, normals)
        max_edge = self.options.max_edge_length
        if max_edge:
            nu = math.ceil(max(np.linalg.norm(points[1] - points[0]),
                               np.linalg.norm(points[2] - points[3])) / max_edge)
            nv = math.ceil(max(np.linalg.norm(points[3] - points[0]),
                               np.linalg.norm(points[2] - points[1])) / max_edge)
            if nu > 1 or nv > 1:
                return self._add_split_quad(points, params, normals, max(nu, 1), max(nv, 1))
        return self._add_point_facet(points, params, normals, quad=True)

    def _add_split_quad(self, points, params, normals, nu: int, nv: int) -> int:
        mesh = self._mesh
        s = np.linspace(0.0, 1.0, nu + 1)
        t = np.linspace(0.0, 1.0, nv + 1)

        def bilinear(corners):
            corners = np.asarray(corners, dtype=np.float64)
            return ((1 - s)[None, :, None] * (1 - t)[:, None, None] * corners[0]
                    + s[None, :, None] * (1 - t)[:, None, None] * corners[1]
                    + s[None, :, None] * t[:, None, None] * corners[2]
                    + (1 - s)[None, :, None] * t[:, None, None] * corners[3])

        grid_points = bilinear(points)
        point_rows = [[mesh.add_point(p) for p in row] for row in grid_points]
        param_rows = None
        normal_rows = None
        if params is not None and mesh.data.param is not None:
            param_rows = [[mesh.add_param(uv) for uv in row] for row in bilinear(l.as_array(params, 2))]
        if normals is not None and mesh.data.normal is not None:
            grid_normals = l.normalize_rows(bilinear(l.as_array(normals, 3)))
            normal_rows = [[mesh.add_normal(nrm) for nrm in row] for row in grid_normals]

        count = 0
        for j in range(nv):
            for i in range(nu):
                corners = ((j, i), (j, i + 1), (j + 1, i + 1), (j + 1, i))
                count += self._add_indexed_quad_corners(
                    [point_rows[a][b] for a, b in corners],
                    None if normal_rows is None else [normal_rows[a][b] for a, b in corners],
                    None if param_rows is None else [param_rows[a][b] for a, b in corners])
        return count

    def add_coordinate_facets(self, facets, params=None, normals=None,
                              end_face: bool = False) -> int:
        """One facet per point array in facets, with optional parallel lists
        of param and normal arrays.

        Triangles and quads go through add_triangle_facet and add_quad_facet
        so quads follow should_triangulate and max_edge_length. Longer
        arrays go through add_polygon, or become one facet when they carry
        params or normals.
        """
        count = 0
        for k, points in enumerate(facets):
            points = l.as_array(points, 3)
            p = None if params is None else params[k]
            n = None if normals is None else normals[k]
            if len(points) == 3:
                count += int(self.add_triangle_facet(points, p, n))
            elif len(points) == 4:
                count += self.add_quad_facet(points, p, n)
            elif p is None and n is None:
                count += self.add_polygon(points)
            else:
                count += self._add_point_facet(points, p, n)
        if end_face:
            self.end_face()
        return count

    # Fans and polygons.

    def add_triangle_fan(self, apex, ls: LineString3d, toggle: bool = False) -> int:
        """Triangles (apex, ls[i], ls[i + 1]), all sharing one apex point."""
        if ls.num_points < 2:
            return 0
        apex_index = self._mesh.add_point(apex)
        indices = [self._mesh.add_point(p) for p in ls.points]
        count = 0
        for i in range(len(indices) - 1):
            a, b = indices[i], indices[i + 1]
            if toggle:
                a, b = b, a
            count += self._add_indexed_facet([apex_index, a, b])
        return count

    def add_triangle_fan_from_index0(self, indices, toggle: bool = False,
                                     normal_indices=None, param_indices=None) -> int:
        """Fan of triangles (i0, i[k], i[k + 1]) over existing points."""
        count = 0
        for k in range(1, len(indices) - 1):
            tri = (0, k + 1, k) if toggle else (0, k, k + 1)
            count += self._add_indexed_facet(
                [indices[t] for t in tri],
                None if normal_indices is None else [normal_indices[t] for t in tri],
                None if param_indices is None else [param_indices[t] for t in tri])
        return count

    def add_triangles_in_unchecked_convex_polygon(self, ls: LineString3d,
                                                  toggle: bool = False) -> int:
        points = ls.points[:-1] if ls.is_closed() else ls.points
        if len(points) < 3:
            return 0
        indices = [self._mesh.add_point(p) for p in points]
        return self.add_triangle_fan_from_index0(indices, toggle)

    def add_polygon(self, points, num_points_to_use: int | None = None) -> int:
        """One facet from a planar loop, or triangles if should_triangulate.

        Trailing points equal to the first are dropped.
        """
        points = l.as_array(points, 3)
        if num_points_to_use is not None:
            points = points[:num_points_to_use]
        while len(points) > 1 and np.linalg.norm(points[-1] - points[0]) <= l.SMALL_METRIC_DISTANCE:
            points = points[:-1]
        n = len(points)
        if n < 3:
            return 0
        if not self.options.should_triangulate or n == 3:
            return self._add_point_facet(points)
        triangles = triangulate_3d_face(points, [list(range(n))])
        indices = [self._mesh.add_point(p) for p in points]
        count = 0
        for tri in triangles:
            # Only polygon boundary edges stay visible.
            visible = [(tri[(k + 1) % 3] - tri[k]) % n == 1 for k in range(3)]
            count += self._add_indexed_facet([indices[t] for t in tri], visible=visible)
        return count

    def _add_cap(self, ls: LineString3d, outward) -> int:
        """Polygon through the closed linestring, wound to face outward."""
        normal = ls.quick_unit_normal()
        if normal is None:
            return 0
        points = ls.points
        if np.dot(normal, outward) < 0:
            points = points[::-1]
        return self.add_polygon(points)

    # Stitching between linestrings.

    def _line_string_indices(self, ls: LineString3d, v: float | None = None,
                             pair: LineString3d | None = None, at_a: bool = True):
        """Point, normal and param indices for every point of ls.

        With pair given, ls and pair are the two rails of a stitch (ls is
        rail a when at_a) and normals come from the rail derivatives.
        Normals are negated while the reversed flag is set.
        """
        mesh = self._mesh
        points = [mesh.add_point(p) for p in ls.points]
        params = None
        if mesh.data.param is not None:
            params = [self.find_or_add_param_in_line_string(ls, i, v) for i in range(ls.num_points)]
        normals = None
        if mesh.data.normal is not None:
            if pair is not None and ls.derivatives is not None:
                a, b = (ls, pair) if at_a else (pair, ls)
                normals = [self.find_or_add_normal_in_line_string_pair(a, b, i, at_a)
                           for i in range(ls.num_points)]
            elif ls.normals is not None:
                sign = -1.0 if self._reversed else 1.0
                normals = [self.find_or_add_normal_in_line_string(ls, i, sign=sign)
                           for i in range(ls.num_points)]
            if normals is not None and any(n is None for n in normals):
                normals = None
        return points, normals, params

    def _stitch(self, a, b, add_closure: bool) -> int:
        points_a, normals_a, params_a = a
        points_b, normals_b, params_b = b
        n = len(points_a)
        pairs = [(i, i + 1) for i in range(n - 1)]
        if add_closure:
            pairs.append((n - 1, 0))
        count = 0
        for i, j in pairs:
            quad = [points_a[i], points_a[j], points_b[j], points_b[i]]
            normals = None
            if normals_a is not None and normals_b is not None:
                normals = [normals_a[i], normals_a[j], normals_b[j], normals_b[i]]
            params = None
            if params_a is not None and params_b is not None:
                params = [params_a[i], params_a[j], params_b[j], params_b[i]]
            count += self._add_indexed_quad_corners(quad, normals, params)
        return count

    def add_between_line_strings(self, a: LineString3d, b: LineString3d,
                                 add_closure: bool = False) -> int:
        """Quads (a[i], a[i + 1], b[i + 1], b[i]) between equal length
        linestrings. Returns the number of facets emitted."""
        if a.num_points != b.num_points or a.num_points < 2:
            log.debug("add_between_line_strings: point counts %d, %d", a.num_points, b.num_points)
            return 0
        if np.array_equal(a.points, b.points):
            return 0
        # Linestrings carrying their own params keep them, others get v = 0 and 1.
        v_a, v_b = (None, None) if a.params is not None and b.params is not None else (0.0, 1.0)
        return self._stitch(self._line_string_indices(a, v_a),
                            self._line_string_indices(b, v_b), add_closure)

    def add_between_line_strings_ext(self, a: LineString3d, b: LineString3d, v_a: float,
                                     v_b: float, add_closure: bool = False) -> int:
        """Like add_between_line_strings, with params (fraction, v_a) and
        (fraction, v_b) and normals from each linestring's derivatives
        crossed with the rail from a to b."""
        if a.num_points != b.num_points or a.num_points < 2:
            return 0
        if np.array_equal(a.points, b.points):
            return 0
        return self._stitch(
            self._line_string_indices(a, v_a, pair=b, at_a=True),
            self._line_string_indices(b, v_b, pair=a, at_a=False), add_closure)

    def add_between_transformed_line_strings(self, curves: LineString3d, transform_a,
                                             transform_b, add_closure: bool = False) -> int:
        return self.add_between_line_strings(
            curves.transformed(transform_a), curves.transformed(transform_b), add_closure)

    def add_between_stroked(self, a: LineString3d, b: LineString3d) -> int:
        """Stitches a and b, re-stroking them to a common count if needed."""
        if a.num_points != b.num_points:
            common = resample_to_common_count([a, b])
            if common is None:
                return 0
            a, b = common
        return self.add_between_line_strings(a, b)

    def add_linear_sweep_line_strings(self, contour: LineString3d, vector) -> int:
        vector = np.asarray(vector, dtype=np.float64)
        return self.add_between_line_strings(
            contour, contour.transformed(l.translate(vector)))

    def add_linear_sweep(self, sweep: LinearSweep) -> int:
        """Side walls along sweep.vector, plus both end caps for a closed
        contour when capped."""
        vector = np.asarray(sweep.vector, dtype=np.float64)
        contour = sweep.contour
        normal = contour.quick_unit_normal()
        if normal is not None and np.dot(normal, vector) < 0:
            contour = contour.reversed()
        count = self.add_linear_sweep_line_strings(contour, vector)
        if sweep.capped and contour.is_closed():
            count += self._add_cap(contour, -vector)
            count += self._add_cap(contour.transformed(l.translate(vector)), vector)
        return count

    def add_rotational_sweep(self, sweep: RotationalSweep) -> int:
        """Rotates the contour about the axis in equal steps and stitches
        neighbouring copies. Partial sweeps of a closed contour get caps."""
        axis_origin = np.asarray(sweep.axis_origin, dtype=np.float64)
        axis = l.normalize(sweep.axis_direction)
        if axis is None or sweep.sweep_degrees == 0:
            return 0
        contour = sweep.contour
        num_steps = sweep.num_steps or max(1, math.ceil(
            self.options.default_circle_strokes * abs(sweep.sweep_degrees) / 360.0))

        # Orient so the walls face away from the axis: the contour must run
        # clockwise in its (radial, axial) half plane for a positive sweep.
        relative = contour.points - axis_origin
        axial = relative @ axis
        radial = np.linalg.norm(relative - np.outer(axial, axis), axis=1)
        if get_polygon_signed_area(np.column_stack((radial, axial))) * sweep.sweep_degrees > 0:
            contour = contour.reversed()

        full_turn = abs(sweep.sweep_degrees) >= 360.0
        step = sweep.sweep_degrees / num_steps
        sections = [contour.transformed(l.rotate_about(step * k, axis_origin, axis))
                    for k in range(num_steps)]
        sections.append(contour if full_turn
                        else contour.transformed(l.rotate_about(sweep.sweep_degrees, axis_origin, axis)))
        count = 0
        for a, b in zip(sections[:-1], sections[1:]):
            count += self.add_between_line_strings(a, b)
        if sweep.capped and not full_turn and contour.is_closed():
            count += self._add_cap(sections[0], self._ruled_outward(sections[0], sections[1]))
            count += self._add_cap(sections[-1], self._ruled_outward(sections[-1], sections[-2]))
        return count

    @staticmethod
    def _ruled_outward(section: LineString3d, neighbour: LineString3d) -> np.ndarray:
        return section.points.mean(axis=0) - neighbour.points.mean(axis=0)

    def add_ruled_sections(self, sections: list[LineString3d], capped: bool = True,
                           compatibility=resample_to_common_count) -> int:
        """Ruled surface through the sections, with caps at both ends.

        Sections with differing point counts are passed to compatibility;
        if it returns None the walls are skipped but caps are still added.
        """
        if len(sections) < 2:
            return 0
        stitched = sections
        if len({s.num_points for s in sections}) > 1:
            stitched = compatibility(sections)
            if stitched is None:
                log.debug("ruled sections are incompatible, only caps are emitted")
        count = 0
        if stitched is not None:
            first_normal = stitched[0].quick_unit_normal()
            travel = self._ruled_outward(stitched[1], stitched[0])
            if (stitched[0].is_closed() and first_normal is not None
                    and np.dot(first_normal, travel) < 0):
                stitched = [s.reversed() for s in stitched]
            for a, b in zip(stitched[:-1], stitched[1:]):
                count += self.add_between_line_strings(a, b)
        # Caps follow the stitched sections so their edges match the walls.
        ends = stitched if stitched is not None else sections
        if capped and ends[0].is_closed() and ends[-1].is_closed():
            count += self._add_cap(ends[0], self._ruled_outward(ends[0], ends[1]))
            count += self._add_cap(ends[-1], self._ruled_outward(ends[-1], ends[-2]))
        return count

    def add_mitered_pipes(self, centerline, radius: float, num_strokes: int | None = None) -> int:
        """Tube of circular (mitered at the joints) sections along centerline."""
        sections = create_mitered_pipe_sections(centerline, radius)
        if len(sections) < 2:
            return 0
        strokes = [s.stroke(num_strokes or self.options.default_circle_strokes)
                   for s in sections]
        centers = np.array([s.center for s in sections])
        lengths = np.concatenate(([0.0], np.cumsum(np.linalg.norm(np.diff(centers, axis=0), axis=1))))
        v = lengths / lengths[-1]
        count = 0
        for k in range(len(strokes) - 1):
            count += self.add_between_line_strings_ext(strokes[k], strokes[k + 1], v[k], v[k + 1])
        return count

    def add_uv_grid(self, surface: UVSurface, num_u: int, num_v: int,
                    create_fan_in_caps: bool = False) -> int:
        """num_u x num_v quads over the surface at equal fraction steps.

        Each v row of (num_u + 1) points is indexed once; row j - 1 is kept
        as the previous row while row j is built. Normals come from the
        surface tangents, params are the (u, v) fractions.
        """
        num_u = max(1, num_u)
        num_v = max(1, num_v)
        mesh = self._mesh
        need_normals = mesh.data.normal is not None
        need_params = mesh.data.param is not None
        previous = None
        first_row = last_row = None
        count = 0
        for j in range(num_v + 1):
            v = j / num_v
            point_row, normal_row, param_row = [], [], []
            for i in range(num_u + 1):
                u = i / num_u
                if need_normals:
                    point, du, dv = surface.uv_fraction_to_point_and_tangents(u, v)
                    normal = l.normalize(np.cross(du, dv))
                    if normal is None:
                        normal = l.Z_AXIS
                    normal_row.append(mesh.add_normal(-normal if self._reversed else normal))
                else:
                    point = surface.uv_fraction_to_point(u, v)
                point_row.append(mesh.add_point(point))
                if need_params:
                    param_row.append(mesh.add_param_uv(u, v))
            current = (point_row, normal_row if need_normals else None,
                       param_row if need_params else None)
            if previous is not None:
                for i in range(num_u):
                    corners = ((0, i), (0, i + 1), (1, i + 1), (1, i))
                    rows = (previous, current)
                    count += self._add_indexed_quad_corners(
                        [rows[r][0][c] for r, c in corners],
                        None if not need_normals else [rows[r][1][c] for r, c in corners],
                        None if not need_params else [rows[r][2][c] for r, c in corners])
            else:
                first_row = current
            previous = current
            last_row = current

        if create_fan_in_caps:
            points = mesh.data.point.view()
            first_center = points[first_row[0]].mean(axis=0)
            last_center = points[last_row[0]].mean(axis=0)
            count += self._add_grid_cap(first_row[0], last_center)
            count += self._add_grid_cap(last_row[0], first_center)
        return count

    def _add_grid_cap(self, row: list[int], away_from) -> int:
        """Fan over a grid row, facing away from the point away_from."""
        points = self._mesh.data.point.view()
        indices = list(row)
        if len(indices) > 3 and np.linalg.norm(points[indices[0]] - points[indices[-1]]) <= l.SMALL_METRIC_DISTANCE:
            indices = indices[:-1]
        if len(indices) < 3:
            return 0
        coords = points[indices]
        normal = l.newell_normal(coords)
        outward = coords.mean(axis=0) - away_from
        return self.add_triangle_fan_from_index0(indices, toggle=bool(np.dot(normal, outward) < 0))

    def add_transformed_unit_box(self, transform) -> int:
        """The unit cube through transform, six outward facing quads."""
        transform = l.to_transform(transform)
        mesh = self._mesh
        indices = [mesh.add_point(p) for p in l.transform_points(transform, BoxTopology.POINTS)]
        mirrored = l.determinant(transform) < 0
        normal_matrix = l.normal_matrix(transform)
        count = 0
        for face, normal in zip(BoxTopology.FACES, BoxTopology.NORMALS):
            order = (0, 3, 2, 1) if mirrored else (0, 1, 2, 3)
            normal_indices = None
            if mesh.data.normal is not None and normal_matrix is not None:
                normal = l.normalize(normal_matrix @ normal)
                normal_index = mesh.add_normal(-normal if self._reversed else normal)
                normal_indices = [normal_index] * 4
            param_indices = None
            if mesh.data.param is not None:
                param_indices = [mesh.add_param(BoxTopology.FACE_PARAMS[k]) for k in order]
            count += self._add_indexed_quad_corners(
                [indices[face[k]] for k in order], normal_indices, param_indices)
        return count

    def add_box(self, box: Box) -> int:
        return self.add_transformed_unit_box(box.transform)

    def add_indexed_polyface(self, source: IndexedPolyface, reverse: bool = False,
                             transform=None) -> None:
        self._mesh.add_indexed_polyface(source, reverse != self._reversed, transform)

    # Topology import.

    def add_graph(self, graph: HalfEdgeGraph,
                  accept_face=HalfEdge.test_node_mask_not_exterior) -> int:
        """One facet per face loop of graph whose seed passes accept_face.
        With a param channel the (x, y) coordinates become the params."""
        mesh = self._mesh
        count = 0

        def announce(graph, seed):
            nonlocal count
            if not accept_face(seed):
                return True
            nodes = list(seed.face_loop())
            point_indices = [mesh.add_point_xyz(node.x, node.y, node.z) for node in nodes]
            param_indices = None
            if mesh.data.param is not None:
                param_indices = [mesh.add_param_uv(node.x, node.y) for node in nodes]
            count += self._add_indexed_facet(point_indices, param_indices=param_indices)
            return True

        graph.announce_face_loops(announce)
        return count

    # Dispatch over the sampled solid variants.

    def add_uv_patch(self, patch: UVPatch) -> int:
        """UV grid of the patch, flipped while building if patch.reversed."""
        if patch.reversed:
            self.toggle_reversed_facet_flag()
        try:
            return self.add_uv_grid(patch.surface, patch.num_u, patch.num_v,
                                    patch.create_fan_in_caps)
        finally:
            if patch.reversed:
                self.toggle_reversed_facet_flag()

    def add_geometry(self, geometry) -> int:
        """Facets for any solid variant, an IndexedPolyface or a closed
        LineString3d. Returns the number of facets added."""
        match geometry:
            case Box():
                return self.add_box(geometry)
            case LinearSweep():
                return self.add_linear_sweep(geometry)
            case RotationalSweep():
                return self.add_rotational_sweep(geometry)
            case RuledSweep(sections=sections, capped=capped):
                return self.add_ruled_sections(sections, capped)
            case MiteredPipe(centerline=centerline, radius=radius, num_strokes=num_strokes):
                return self.add_mitered_pipes(centerline, radius, num_strokes)
            case UVPatch():
                return self.add_uv_patch(geometry)
            case IndexedPolyface():
                before = self._mesh.facet_count
                self.add_indexed_polyface(geometry)
                return self._mesh.facet_count - before
            case LineString3d():
                return self.add_polygon(geometry.points)
            case _:
                raise UnsupportedGeometryException(
                    f"cannot build facets from {type(geometry).__name__}")


def graph_to_polyface(graph: HalfEdgeGraph, options: StrokeOptions | None = None,
                      accept_face=HalfEdge.test_node_mask_not_exterior) -> IndexedPolyface:
    """Builds and claims a polyface from the accepted faces of graph, all
    grouped into one face."""
    builder = PolyfaceBuilder.create(options)
    builder.add_graph(graph, accept_face)
    builder.end_face()
    return builder.claim_polyface(compress=True)
