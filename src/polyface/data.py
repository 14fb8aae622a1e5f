'''Attribute storage for indexed meshes.

PolyfaceData holds the points, the per-corner point indices and edge
visibility flags, and the optional normal, param and color channels. Facet
boundaries are kept by the owning IndexedPolyface.
'''

import logging

import numpy as np

from polyface.bbox import BoundingBox
from polyface.channels import CHANNEL_LAYOUT, AttributeChannel, GrowableArray
from polyface.face_data import FacetFaceData
import polyface.linear as l

log = logging.getLogger(__name__)


class PolyfaceException(Exception):
    '''Base for polyface API misuse errors.'''


class MissingChannelException(PolyfaceException):
    '''An attribute was given for a channel the mesh does not carry.'''


class PolyfaceData:
    """Points, index arrays and optional attribute channels of a mesh."""

    def __init__(self, need_normals: bool = False, need_params: bool = False,
                 need_colors: bool = False):
        self.point = GrowableArray(3)
        self.point_index: list[int] = []
        self.edge_visible: list[bool] = []
        self.normal: AttributeChannel | None = None
        self.param: AttributeChannel | None = None
        self.color: AttributeChannel | None = None
        self.face: list[FacetFaceData] = []
        for name, wanted in (("normal", need_normals), ("param", need_params),
                             ("color", need_colors)):
            if wanted:
                self.add_channel(name)

    def add_channel(self, name: str) -> AttributeChannel:
        """Creates the named channel. Only allowed before any corner exists."""
        channel = getattr(self, name)
        if channel is not None:
            return channel
        if self.point_index:
            raise MissingChannelException(
                f"cannot add a {name} channel to a mesh that already has corners")
        width, dtype = CHANNEL_LAYOUT[name]
        channel = AttributeChannel.create(width, dtype)
        setattr(self, name, channel)
        return channel

    def channels(self):
        """Yields (name, channel) for each present channel."""
        for name in CHANNEL_LAYOUT:
            channel = getattr(self, name)
            if channel is not None:
                yield name, channel

    def require_channel(self, name: str) -> AttributeChannel:
        channel = getattr(self, name)
        if channel is None:
            raise MissingChannelException(f"mesh has no {name} channel")
        return channel

    @property
    def point_count(self) -> int:
        return len(self.point)

    @property
    def normal_count(self) -> int:
        return len(self.normal.data) if self.normal else 0

    @property
    def param_count(self) -> int:
        return len(self.param.data) if self.param else 0

    @property
    def color_count(self) -> int:
        return len(self.color.data) if self.color else 0

    @property
    def index_count(self) -> int:
        return len(self.point_index)

    @property
    def face_count(self) -> int:
        return len(self.face)

    def get_point(self, i: int) -> np.ndarray:
        return self.point[i]

    def get_normal(self, i: int) -> np.ndarray:
        return self.normal.data[i] if self.normal else np.zeros(3)

    def get_param(self, i: int) -> np.ndarray:
        return self.param.data[i] if self.param else np.zeros(2)

    def get_color(self, i: int) -> int:
        return self.color.data[i] if self.color else 0

    def get_edge_visible(self, i: int) -> bool:
        return self.edge_visible[i]

    def get_face(self, i: int) -> FacetFaceData | None:
        return self.face[i] if 0 <= i < len(self.face) else None

    def index_lengths(self) -> dict[str, int]:
        lengths = {"point": len(self.point_index), "edge_visible": len(self.edge_visible)}
        for name, channel in self.channels():
            lengths[name] = len(channel.index)
        return lengths

    def data_lengths(self) -> dict[str, int]:
        lengths = {"point": len(self.point)}
        for name, channel in self.channels():
            lengths[name] = len(channel.data)
        return lengths

    def trim_all_index_arrays(self, length: int) -> None:
        """Truncates point_index, edge_visible and every channel index."""
        del self.point_index[length:]
        del self.edge_visible[length:]
        for _, channel in self.channels():
            del channel.index[length:]

    def truncate_data(self, lengths: dict[str, int]) -> None:
        self.point.truncate(lengths["point"])
        for name, channel in self.channels():
            if name in lengths:
                channel.data.truncate(lengths[name])

    def range(self, transform=None) -> BoundingBox:
        points = self.point.view()
        if transform is not None:
            points = l.transform_points(transform, points)
        return BoundingBox.from_points(points, 3)

    def reverse_indices(self, facet_start: list[int], preserve_start: bool = True) -> bool:
        """Reverses the corner order of every facet.

        With preserve_start each facet keeps its first corner and the rest
        are reversed. Edge visibility moves with the edges.
        """
        if not facet_start or facet_start[-1] > len(self.point_index):
            return False
        index_arrays = [self.point_index] + [ch.index for _, ch in self.channels()]
        for i0, i1 in zip(facet_start[:-1], facet_start[1:]):
            n = i1 - i0
            if n < 2:
                continue
            if preserve_start:
                perm = [0] + list(range(n - 1, 0, -1))
            else:
                perm = list(range(n - 1, -1, -1))
            for indices in index_arrays:
                old = indices[i0:i1]
                indices[i0:i1] = [old[p] for p in perm]
            old_visible = self.edge_visible[i0:i1]
            # Edge k of the new order runs backwards along old edge perm[k + 1].
            self.edge_visible[i0:i1] = [old_visible[perm[(k + 1) % n]] for k in range(n)]
        return True

    def reverse_normals(self) -> None:
        if self.normal:
            self.normal.data.view()[:] *= -1.0

    def try_transform_in_place(self, transform) -> bool:
        """Transforms points, and normals by the inverse transpose.

        Returns False without changing anything if normals are present and
        the transform is singular.
        """
        transform = l.to_transform(transform)
        normal_matrix = None
        if self.normal and len(self.normal.data):
            normal_matrix = l.normal_matrix(transform)
            if normal_matrix is None:
                log.debug("singular transform, normals cannot be transformed")
                return False
        points = self.point.view()
        points[:] = l.transform_points(transform, points)
        if normal_matrix is not None:
            normals = self.normal.data.view()
            normals[:] = l.normalize_rows(normals @ normal_matrix.T)
        return True

    def compress(self, clusterer) -> None:
        """Merges coincident points, normals and params and rewrites indices."""
        result = clusterer.cluster(self.point.view())
        log.debug("compress: %d points -> %d", len(self.point), result.num_clusters)
        self.point.replace(result.packed_points)
        result.update_indices(self.point_index)
        for name, channel in self.channels():
            if name == "color":
                colors, first, inverse = np.unique(
                    channel.data.view(), return_index=True, return_inverse=True)
                order = np.argsort(first)
                rank = np.empty(len(order), dtype=np.int64)
                rank[order] = np.arange(len(order))
                channel.data.replace(colors[order])
                old_to_new = rank[inverse.reshape(-1)]
                channel.index[:] = old_to_new[channel.index].tolist() if channel.index else []
            else:
                channel_result = clusterer.cluster(channel.data.view())
                channel.data.replace(channel_result.packed_points)
                channel_result.update_indices(channel.index)

    def clone(self) -> "PolyfaceData":
        result = PolyfaceData()
        result.point = self.point.copy()
        result.point_index = list(self.point_index)
        result.edge_visible = list(self.edge_visible)
        for name, channel in self.channels():
            setattr(result, name, channel.copy())
        result.face = [f.clone() for f in self.face]
        return result

    def is_almost_equal(self, other: "PolyfaceData", tol: float = 1e-10) -> bool:
        if self.point_index != other.point_index or self.edge_visible != other.edge_visible:
            return False
        if not self.point.is_almost_equal(other.point, tol):
            return False
        for name in CHANNEL_LAYOUT:
            a = getattr(self, name)
            b = getattr(other, name)
            if (a is None) != (b is None):
                return False
            if a is not None and not a.is_almost_equal(b, tol):
                return False
        return True
