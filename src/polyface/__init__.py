'''Indexed polygon meshes (polyfaces) and an incremental builder for them.'''

from polyface.bbox import BoundingBox
from polyface.builder import (
    BoxTopology,
    BuilderClaimedException,
    PolyfaceBuilder,
    UnsupportedGeometryException,
    graph_to_polyface,
)
from polyface.channels import AttributeChannel, GrowableArray
from polyface.cluster import ClusterResult, PointClusterer
from polyface.data import MissingChannelException, PolyfaceData, PolyfaceException
from polyface.face_data import FacetFaceData
from polyface.halfedge import HalfEdge, HalfEdgeGraph, HalfEdgeMask
from polyface.indexed import FacetTransaction, IndexedPolyface, OpenFacetException
from polyface.linestring import LineString3d
from polyface.options import StrokeOptions
from polyface.sections import (
    EllipseSection,
    create_mitered_pipe_sections,
    move_vector_to_plane,
    resample_to_common_count,
)
from polyface.solids import (
    SOLID_VARIANTS,
    Box,
    LinearSweep,
    MiteredPipe,
    RotationalSweep,
    RuledSweep,
    UVPatch,
)
from polyface.surface import FunctionSurface, PlanarPatch, UVSurface
from polyface.visitor import IndexedPolyfaceVisitor
