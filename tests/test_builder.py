import logging

import numpy as np
import pytest

from polyface import (
    Box,
    BuilderClaimedException,
    FunctionSurface,
    IndexedPolyface,
    LinearSweep,
    LineString3d,
    PolyfaceBuilder,
    RotationalSweep,
    RuledSweep,
    StrokeOptions,
    UnsupportedGeometryException,
    UVPatch,
)
from polyface.surface import PlanarPatch
import polyface.linear as l


SQUARE_LOOP = [(0.0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0), (0, 0, 0)]


def signed_volume(mesh: IndexedPolyface) -> float:
    points = mesh.data.point.view()
    volume = 0.0
    for k in range(mesh.facet_count):
        p = points[mesh.facet_point_indices(k)]
        for j in range(1, len(p) - 1):
            volume += np.dot(p[0], np.cross(p[j], p[j + 1])) / 6.0
    return volume


def rails(n=5):
    a = LineString3d([(i, 0.0, 0) for i in range(n)])
    b = LineString3d([(i, 1.0, 0) for i in range(n)])
    return a, b


def test_between_line_strings_quads():
    builder = PolyfaceBuilder()
    assert builder.add_between_line_strings(*rails()) == 4
    mesh = builder.polyface
    assert mesh.facet_count == 4
    assert all(mesh.num_edge_in_facet(k) == 4 for k in range(4))


def test_between_line_strings_triangulated():
    builder = PolyfaceBuilder(StrokeOptions(should_triangulate=True))
    assert builder.add_between_line_strings(*rails()) == 8
    mesh = builder.polyface
    assert mesh.facet_count == 8
    assert all(mesh.num_edge_in_facet(k) == 3 for k in range(8))
    # Each split diagonal is hidden on both sides.
    assert mesh.data.edge_visible.count(False) == 8


def test_between_line_strings_skips_mismatch():
    a, _ = rails(5)
    _, b = rails(4)
    builder = PolyfaceBuilder()
    assert builder.add_between_line_strings(a, b) == 0
    assert builder.add_between_line_strings(a, a) == 0
    assert builder.polyface.facet_count == 0


def test_degenerate_triangle_is_dropped_quietly(caplog):
    builder = PolyfaceBuilder()
    with caplog.at_level(logging.WARNING):
        assert not builder.add_triangle_facet([(0.0, 0, 0), (0, 0, 0), (1, 0, 0)])
    assert builder.polyface.facet_count == 0
    assert not caplog.records


def test_triangle_normals_and_params_synthesized():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True, need_params=True))
    assert builder.add_triangle_facet([(0.0, 0, 0), (2, 0, 0), (0, 1, 0)])
    data = builder.polyface.data
    assert data.normal.index == [0, 0, 0]
    np.testing.assert_allclose(data.get_normal(0), [0, 0, 1])
    params = data.param.data.view()[data.param.index]
    np.testing.assert_allclose(params, [[0, 0], [2, 0], [0, 1]], atol=1e-12)


def test_reversed_flag_preserves_start():
    builder = PolyfaceBuilder()
    builder.toggle_reversed_facet_flag()
    assert builder.reversed_flag
    for p in [(0.0, 0, 0), (1, 0, 0), (0, 1, 0)]:
        builder.find_or_add_point(p)
    builder.add_indexed_triangle(0, 1, 2)
    assert builder.polyface.facet_point_indices(0) == [0, 2, 1]


def test_indexed_quad_grid_order():
    builder = PolyfaceBuilder()
    for p in [(0.0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 0)]:
        builder.find_or_add_point(p)
    assert builder.add_indexed_quad(0, 1, 2, 3) == 1
    assert builder.polyface.facet_point_indices(0) == [0, 1, 3, 2]


def test_uv_grid_counts():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True, need_params=True))
    assert builder.add_uv_grid(PlanarPatch(), 4, 3) == 12
    assert builder.polyface.data.point_count == 20
    mesh = builder.claim_polyface()
    assert mesh.facet_count == 12
    assert mesh.data.point_count == 20
    # All normals are +Z and compress to one.
    assert mesh.data.normal_count == 1


def test_uv_grid_zero_tolerance_claim():
    builder = PolyfaceBuilder(StrokeOptions(cluster_tolerance=0))
    builder.add_uv_grid(PlanarPatch(), 4, 3)
    assert builder.claim_polyface().data.point_count == 20


def test_closed_cylinder_with_fan_caps():
    def cylinder(u, v):
        angle = 2 * np.pi * u
        return np.array([np.cos(angle), np.sin(angle), v])

    builder = PolyfaceBuilder()
    patch = UVPatch(FunctionSurface(func=cylinder), num_u=8, num_v=2, create_fan_in_caps=True)
    assert builder.add_geometry(patch) == 28
    mesh = builder.claim_polyface()
    assert mesh.data.point_count == 24
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) > 0


def test_triangle_fan_shares_apex():
    builder = PolyfaceBuilder()
    ls = LineString3d([(1.0, 0, 0), (1, 1, 0), (0, 1, 0), (-1, 1, 0)])
    assert builder.add_triangle_fan((0.0, 0, 1), ls) == 3
    mesh = builder.polyface
    apex = mesh.facet_point_indices(0)[0]
    np.testing.assert_array_equal(mesh.data.get_point(apex), [0, 0, 1])
    assert all(mesh.facet_point_indices(k)[0] == apex for k in range(3))


def test_fan_from_index0_toggle():
    builder = PolyfaceBuilder()
    for p in SQUARE_LOOP[:4]:
        builder.find_or_add_point(p)
    assert builder.add_triangle_fan_from_index0([0, 1, 2, 3], toggle=True) == 2
    assert builder.polyface.facet_point_indices(0) == [0, 2, 1]


def test_unit_box_is_closed():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    assert builder.add_box(Box()) == 6
    mesh = builder.claim_polyface()
    assert mesh.facet_count == 6
    assert mesh.data.point_count == 8
    assert mesh.data.normal_count == 6
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) == pytest.approx(1.0)


def test_box_facet_normals_point_out():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    builder.add_box(Box())
    mesh = builder.polyface
    for visitor in mesh.create_visitor():
        normal = l.newell_normal(visitor.point)
        np.testing.assert_allclose(l.normalize(normal), visitor.normal[0], atol=1e-12)


def test_mirrored_box_is_outward():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    assert builder.add_geometry(Box(transform=l.scale([-2, 1, 1]))) == 6
    mesh = builder.claim_polyface()
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) == pytest.approx(2.0)
    for visitor in mesh.create_visitor():
        normal = l.normalize(l.newell_normal(visitor.point))
        np.testing.assert_allclose(normal, visitor.normal[0], atol=1e-12)


def test_claim_ends_builder():
    builder = PolyfaceBuilder.create()
    builder.add_box(Box())
    builder.claim_polyface()
    with pytest.raises(BuilderClaimedException):
        builder.add_box(Box())
    with pytest.raises(BuilderClaimedException):
        builder.claim_polyface()


def test_unsupported_geometry():
    builder = PolyfaceBuilder()
    with pytest.raises(UnsupportedGeometryException):
        builder.add_geometry("not geometry")


def test_facet_colors():
    builder = PolyfaceBuilder(StrokeOptions(need_colors=True))
    builder.set_current_color(5)
    builder.add_triangle_facet([(0.0, 0, 0), (1, 0, 0), (0, 1, 0)])
    builder.set_current_color(9)
    builder.add_triangle_facet([(1.0, 0, 0), (1, 1, 0), (0, 1, 0)])
    color = builder.polyface.data.color
    assert color.data.view().tolist() == [5, 9]
    assert color.index == [0, 0, 0, 1, 1, 1]


def test_polygon_drops_closure_point():
    builder = PolyfaceBuilder()
    assert builder.add_polygon(SQUARE_LOOP) == 1
    assert builder.polyface.num_edge_in_facet(0) == 4
    assert builder.add_polygon(SQUARE_LOOP, num_points_to_use=2) == 0


def test_polygon_triangulated_hides_interior_edges():
    builder = PolyfaceBuilder(StrokeOptions(should_triangulate=True))
    assert builder.add_polygon(SQUARE_LOOP) == 2
    assert builder.polyface.data.edge_visible.count(False) == 2


def test_quad_split_by_max_edge_length():
    builder = PolyfaceBuilder(StrokeOptions(max_edge_length=1.0, need_params=True))
    quad = [(0.0, 0, 0), (4, 0, 0), (4, 1, 0), (0, 1, 0)]
    params = [(0.0, 0), (1, 0), (1, 1), (0, 1)]
    assert builder.add_quad_facet(quad, params=params) == 4
    mesh = builder.polyface
    assert mesh.facet_count == 4
    np.testing.assert_allclose(mesh.range().size, [4, 1, 0])


def test_coordinate_facets_with_end_face():
    builder = PolyfaceBuilder(StrokeOptions(need_params=True))
    facets = [SQUARE_LOOP[:4], [(0.0, 0, 1), (1, 0, 1), (0, 1, 1)]]
    assert builder.add_coordinate_facets(facets, end_face=True) == 2
    mesh = builder.polyface
    assert mesh.face_count == 1
    assert mesh.facet_to_face_data == [0, 0]


def test_ruled_sections_incompatible_keeps_caps():
    a = LineString3d(SQUARE_LOOP)
    b = LineString3d([(x, y, 1.0) for x, y, _ in SQUARE_LOOP[:4]] + [(0, 0.5, 1), (0, 0, 1)])
    builder = PolyfaceBuilder()
    count = builder.add_ruled_sections([a, b], compatibility=lambda sections: None)
    assert count == 2


def test_ruled_sections_resampled():
    a = LineString3d(SQUARE_LOOP)
    b = LineString3d([(0.0, 0, 1), (0.5, 0, 1), (1, 0, 1), (1, 0.5, 1), (1, 1, 1),
                      (0.5, 1, 1), (0, 1, 1), (0, 0.5, 1), (0, 0, 1)])
    builder = PolyfaceBuilder()
    assert builder.add_geometry(RuledSweep([a, b])) == 10
    mesh = builder.claim_polyface()
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) == pytest.approx(1.0)


def test_linear_sweep_is_closed_solid():
    builder = PolyfaceBuilder()
    sweep = LinearSweep(LineString3d(SQUARE_LOOP), np.array([0.0, 0, 2]))
    assert builder.add_geometry(sweep) == 6
    mesh = builder.claim_polyface()
    assert mesh.data.point_count == 8
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) == pytest.approx(2.0)


def test_linear_sweep_clockwise_contour_still_outward():
    builder = PolyfaceBuilder()
    sweep = LinearSweep(LineString3d(SQUARE_LOOP[::-1]), np.array([0.0, 0, 2]))
    builder.add_linear_sweep(sweep)
    mesh = builder.claim_polyface()
    assert signed_volume(mesh) == pytest.approx(2.0)


def test_rotational_sweep_full_turn():
    contour = LineString3d([(1.0, 0, 0), (2, 0, 0), (2, 0, 1), (1, 0, 1), (1, 0, 0)])
    builder = PolyfaceBuilder()
    sweep = RotationalSweep(contour, num_steps=8)
    assert builder.add_geometry(sweep) == 32
    mesh = builder.claim_polyface()
    assert mesh.facet_count == 32
    assert mesh.data.point_count == 32
    assert mesh.is_closed_by_edge_pairing()
    # Octagonal annulus, area 2 * sqrt(2) * (2**2 - 1**2), height 1.
    assert signed_volume(mesh) == pytest.approx(2 * np.sqrt(2) * 3)


def test_rotational_sweep_partial_is_capped():
    contour = LineString3d([(1.0, 0, 0), (2, 0, 0), (2, 0, 1), (1, 0, 1), (1, 0, 0)])
    builder = PolyfaceBuilder()
    sweep = RotationalSweep(contour, sweep_degrees=90, num_steps=2)
    assert builder.add_rotational_sweep(sweep) == 10
    mesh = builder.claim_polyface()
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) > 0


def test_add_indexed_polyface_through_builder():
    source_builder = PolyfaceBuilder()
    source_builder.add_box(Box())
    source = source_builder.claim_polyface()

    builder = PolyfaceBuilder()
    builder.add_indexed_polyface(source, transform=l.translate([5, 0, 0]))
    assert builder.add_geometry(source) == 6
    mesh = builder.claim_polyface()
    assert mesh.facet_count == 12
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) == pytest.approx(2.0)


def test_linestring_geometry_is_a_polygon():
    builder = PolyfaceBuilder()
    assert builder.add_geometry(LineString3d(SQUARE_LOOP)) == 1


def assert_normals_follow_winding(mesh):
    for visitor in mesh.create_visitor():
        facet_normal = l.newell_normal(visitor.point)
        for k in range(visitor.num_edges_this_facet):
            assert np.dot(facet_normal, visitor.normal[k]) > 0


def test_reversed_uv_grid_negates_normals():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    builder.toggle_reversed_facet_flag()
    assert builder.add_uv_grid(PlanarPatch(), 2, 2) == 4
    mesh = builder.polyface
    assert_normals_follow_winding(mesh)
    np.testing.assert_allclose(mesh.data.get_normal(0), [0, 0, -1])


def test_reversed_box_normals_follow_winding():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    builder.toggle_reversed_facet_flag()
    assert builder.add_box(Box()) == 6
    mesh = builder.polyface
    assert_normals_follow_winding(mesh)
    assert signed_volume(mesh) == pytest.approx(-1.0)


def test_reversed_stitch_negates_line_string_normals():
    up = [(0.0, 0, 1)] * 3
    a = LineString3d([(0.0, 0, 0), (1, 0, 0), (2, 0, 0)], normals=up)
    b = LineString3d([(0.0, 1, 0), (1, 1, 0), (2, 1, 0)], normals=up)
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    assert builder.add_between_line_strings(a, b) == 2
    builder.toggle_reversed_facet_flag()
    assert builder.add_between_line_strings(a, b) == 2
    mesh = builder.polyface
    assert_normals_follow_winding(mesh)
    first = mesh.data.normal.index[mesh.facet_index0(0)]
    last = mesh.data.normal.index[mesh.facet_index0(3)]
    np.testing.assert_allclose(mesh.data.get_normal(first), [0, 0, 1])
    np.testing.assert_allclose(mesh.data.get_normal(last), [0, 0, -1])


def derivative_rails():
    along_x = [(1.0, 0, 0)] * 3
    a = LineString3d([(0.0, 0, 0), (1, 0, 0), (2, 0, 0)], derivatives=along_x)
    b = LineString3d([(0.0, 1, 0), (1, 1, 0), (2, 1, 0)], derivatives=along_x)
    return a, b


def test_normal_in_line_string_pair():
    a, b = derivative_rails()
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    data = builder.polyface.data
    np.testing.assert_allclose(
        data.get_normal(builder.find_or_add_normal_in_line_string_pair(a, b, 1)), [0, 0, 1])
    np.testing.assert_allclose(
        data.get_normal(builder.find_or_add_normal_in_line_string_pair(a, b, 2, at_a=False)),
        [0, 0, 1])
    builder.toggle_reversed_facet_flag()
    np.testing.assert_allclose(
        data.get_normal(builder.find_or_add_normal_in_line_string_pair(a, b, 0)), [0, 0, -1])
    # Coincident rails or missing derivatives give no normal.
    assert builder.find_or_add_normal_in_line_string_pair(a, a, 0) is None
    assert builder.find_or_add_normal_in_line_string_pair(
        LineString3d(a.points), b, 0) is None
    assert data.normal_count == 3


def test_between_line_strings_ext_reversed_normals():
    a, b = derivative_rails()
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True, need_params=True))
    builder.toggle_reversed_facet_flag()
    assert builder.add_between_line_strings_ext(a, b, 0.0, 1.0) == 2
    mesh = builder.polyface
    assert_normals_follow_winding(mesh)
    np.testing.assert_allclose(mesh.data.get_normal(0), [0, 0, -1])


def test_reversed_uv_patch():
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True))
    assert builder.add_geometry(UVPatch(PlanarPatch(), 2, 2, reversed=True)) == 4
    assert not builder.reversed_flag
    mesh = builder.polyface
    assert_normals_follow_winding(mesh)
    np.testing.assert_allclose(mesh.data.get_normal(0), [0, 0, -1])


def test_reversed_closed_cylinder_faces_inward():
    def cylinder(u, v):
        angle = 2 * np.pi * u
        return np.array([np.cos(angle), np.sin(angle), v])

    builder = PolyfaceBuilder()
    patch = UVPatch(FunctionSurface(func=cylinder), num_u=8, num_v=2,
                    create_fan_in_caps=True, reversed=True)
    assert builder.add_geometry(patch) == 28
    mesh = builder.claim_polyface()
    assert mesh.is_closed_by_edge_pairing()
    assert signed_volume(mesh) < 0


def test_coordinate_facets_follow_should_triangulate():
    builder = PolyfaceBuilder(StrokeOptions(should_triangulate=True))
    assert builder.add_coordinate_facets([SQUARE_LOOP[:4]]) == 2
    mesh = builder.polyface
    assert [mesh.num_edge_in_facet(k) for k in range(2)] == [3, 3]
    assert mesh.data.edge_visible.count(False) == 2


def test_coordinate_facets_split_long_quads():
    builder = PolyfaceBuilder(StrokeOptions(max_edge_length=1.0))
    quad = [(0.0, 0, 0), (4, 0, 0), (4, 1, 0), (0, 1, 0)]
    triangle = [(0.0, 0, 1), (1, 0, 1), (0, 1, 1)]
    assert builder.add_coordinate_facets([quad, triangle]) == 5


def test_coordinate_facets_pentagon():
    pentagon = [(0.0, 0, 0), (2, 0, 0), (3, 2, 0), (1.5, 3, 0), (0, 2, 0)]
    builder = PolyfaceBuilder()
    assert builder.add_coordinate_facets([pentagon]) == 1
    assert builder.polyface.num_edge_in_facet(0) == 5
    builder = PolyfaceBuilder(StrokeOptions(should_triangulate=True))
    assert builder.add_coordinate_facets([pentagon]) == 3


def test_rejected_facet_leaves_no_data(caplog):
    builder = PolyfaceBuilder(StrokeOptions(need_normals=True, need_params=True,
                                            need_colors=True))
    for p in [(0.0, 0, 0), (1, 0, 0), (0, 1, 0)]:
        builder.find_or_add_point(p)
    with caplog.at_level(logging.WARNING, logger="polyface.builder"):
        assert not builder.add_indexed_triangle(0, 1, 2, param_indices=[0, 0, 5])
    assert "facet rejected" in caplog.text
    mesh = builder.polyface
    assert mesh.facet_count == 0
    assert (mesh.normal_count, mesh.param_count, mesh.color_count) == (0, 0, 0)
    assert builder.add_indexed_triangle(0, 1, 2)
    assert (mesh.normal_count, mesh.param_count, mesh.color_count) == (1, 3, 1)
    assert mesh.data.color.index == [0, 0, 0]


def test_between_stroked_resamples():
    a = LineString3d([(0.0, 0, 0), (2, 0, 0)])
    b = LineString3d([(0.0, 1, 0), (1, 1, 0), (2, 1, 0)])
    builder = PolyfaceBuilder()
    assert builder.add_between_stroked(a, b) == 2
    np.testing.assert_allclose(builder.polyface.range().size, [2, 1, 0])
    assert builder.add_between_stroked(b, b.transformed(l.translate([0, 0, 1]))) == 2


def test_between_transformed_line_strings():
    curve = LineString3d([(0.0, 0, 0), (1, 0, 0), (2, 0, 0), (3, 0, 0)])
    builder = PolyfaceBuilder()
    assert builder.add_between_transformed_line_strings(
        curve, np.eye(4), l.translate([0, 1, 0])) == 3
    mesh = builder.claim_polyface()
    assert mesh.data.point_count == 8
    np.testing.assert_allclose(mesh.range().size, [3, 1, 0])


def test_triangles_in_unchecked_convex_polygon():
    builder = PolyfaceBuilder()
    assert builder.add_triangles_in_unchecked_convex_polygon(LineString3d(SQUARE_LOOP)) == 2
    mesh = builder.polyface
    assert mesh.data.point_count == 4
    assert mesh.facet_point_indices(0) == [0, 1, 2]
    assert mesh.facet_point_indices(1) == [0, 2, 3]
    assert builder.add_triangles_in_unchecked_convex_polygon(
        LineString3d(SQUARE_LOOP), toggle=True) == 2
    assert mesh.facet_point_indices(2) == [4, 6, 5]
    assert builder.add_triangles_in_unchecked_convex_polygon(
        LineString3d(SQUARE_LOOP[:2])) == 0
