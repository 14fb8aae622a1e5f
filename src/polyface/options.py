'''Tessellation options consumed by PolyfaceBuilder.'''

from datatrees import datatree, dtfield, Node

from polyface.cluster import PointClusterer


@datatree
class StrokeOptions:
    """Controls which attribute channels a builder fills and how finely it
    subdivides.

    angle_tol and min_strokes_per_primitive are not used by the builder, they
    travel with the options to whatever samples curves upstream.
    """

    need_normals: bool = dtfield(default=False, doc="Populate the normal channel.")
    need_params: bool = dtfield(default=False, doc="Populate the param channel.")
    need_colors: bool = dtfield(default=False, doc="Populate the color channel.")
    max_edge_length: float | None = dtfield(
        default=None, doc="Quads with a longer edge are split. None is unlimited.")
    should_triangulate: bool = dtfield(default=False, doc="Emit triangles only.")
    default_circle_strokes: int = dtfield(
        default=16, doc="Strokes around round sections when no count is given.")
    angle_tol: float | None = dtfield(default=None, doc="Max turn per stroke, degrees.")
    min_strokes_per_primitive: int | None = dtfield(default=None)

    cluster_node: Node[PointClusterer] = Node(PointClusterer, prefix="cluster_")
    clusterer: PointClusterer = dtfield(self_default=lambda self: self.cluster_node())

    @classmethod
    def create_for_facets(cls) -> "StrokeOptions":
        return cls(should_triangulate=False)

    @classmethod
    def create_for_curves(cls) -> "StrokeOptions":
        return cls(angle_tol=15.0)
