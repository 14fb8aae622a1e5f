'''IndexedPolyface: a polygon mesh as attribute arrays plus a facet boundary
table.

Facet k occupies corners [facet_start[k], facet_start[k + 1]). Corners are
appended with the add_*_index methods and a facet is closed with
terminate_facet(), or through the FacetTransaction returned by
begin_facet().
'''

from collections import Counter
import logging

import numpy as np

from polyface.bbox import BoundingBox
from polyface.data import PolyfaceData, PolyfaceException
from polyface.face_data import FacetFaceData
import polyface.linear as l

log = logging.getLogger(__name__)


class OpenFacetException(PolyfaceException):
    '''A facet transaction was requested while corners are still open.'''


class FacetTransaction:
    """An open facet. Commit to terminate it, abort to discard it.

    Abort, and a failed commit, return every index and data array to its
    length at begin_facet(). Used as a context manager the facet commits on
    normal exit and aborts if an exception escapes.
    """

    def __init__(self, polyface: "IndexedPolyface"):
        self.polyface = polyface
        self.index_start = len(polyface.data.point_index)
        self.data_lengths = polyface.data.data_lengths()
        self.messages: list[str] | None = None
        self.is_open = True

    def add_corner(self, point_index: int, normal_index: int | None = None,
                   param_index: int | None = None, color_index: int | None = None,
                   visible: bool = True) -> None:
        self.polyface.add_point_index(point_index, visible)
        if normal_index is not None:
            self.polyface.add_normal_index(normal_index)
        if param_index is not None:
            self.polyface.add_param_index(param_index)
        if color_index is not None:
            self.polyface.add_color_index(color_index)

    def _close(self) -> None:
        self.is_open = False
        self.polyface._transaction = None

    def _rollback(self) -> None:
        self.polyface.data.trim_all_index_arrays(self.index_start)
        self.polyface.data.truncate_data(self.data_lengths)

    def commit(self) -> list[str] | None:
        """Terminates the facet. Returns None or the list of problems, in which
        case nothing from this transaction remains."""
        if not self.is_open:
            return self.messages
        self.messages = self.polyface.terminate_facet()
        if self.messages:
            self._rollback()
        self._close()
        return self.messages

    def abort(self) -> None:
        if self.is_open:
            self._rollback()
            self._close()

    def __enter__(self) -> "FacetTransaction":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        if exc_type is not None:
            self.abort()
        else:
            self.commit()
        return False


class IndexedPolyface:
    """Polygon mesh with shared points and optional normal/param/color channels."""

    def __init__(self, data: PolyfaceData, facet_start: list[int] | None = None,
                 facet_to_face_data: list[int] | None = None):
        self.data = data
        self.facet_start: list[int] = list(facet_start) if facet_start else [0]
        self.facet_to_face_data: list[int] = list(facet_to_face_data or [])
        self.two_sided = False
        self._transaction: FacetTransaction | None = None

    @classmethod
    def create(cls, need_normals: bool = False, need_params: bool = False,
               need_colors: bool = False) -> "IndexedPolyface":
        return cls(PolyfaceData(need_normals, need_params, need_colors))

    # Append primitives. None of these deduplicate.

    def add_point(self, point) -> int:
        return self.data.point.append(np.asarray(point, dtype=np.float64)[:3])

    def add_point_xyz(self, x: float, y: float, z: float = 0.0) -> int:
        return self.data.point.append((x, y, z))

    def add_normal(self, normal) -> int:
        channel = self.data.require_channel("normal")
        return channel.data.append(np.asarray(normal, dtype=np.float64)[:3])

    def add_normal_xyz(self, x: float, y: float, z: float) -> int:
        return self.data.require_channel("normal").data.append((x, y, z))

    def add_param(self, param) -> int:
        channel = self.data.require_channel("param")
        return channel.data.append(np.asarray(param, dtype=np.float64)[:2])

    def add_param_uv(self, u: float, v: float) -> int:
        return self.data.require_channel("param").data.append((u, v))

    def add_color(self, color: int) -> int:
        return self.data.require_channel("color").data.append(color)

    def add_point_index(self, index: int, visible: bool = True) -> None:
        self.data.point_index.append(int(index))
        self.data.edge_visible.append(bool(visible))

    def add_normal_index(self, index: int) -> None:
        self.data.require_channel("normal").index.append(int(index))

    def add_param_index(self, index: int) -> None:
        self.data.require_channel("param").index.append(int(index))

    def add_color_index(self, index: int) -> None:
        self.data.require_channel("color").index.append(int(index))

    @property
    def num_open_corners(self) -> int:
        return len(self.data.point_index) - self.facet_start[-1]

    def begin_facet(self) -> FacetTransaction:
        if self._transaction is not None or self.num_open_corners != 0:
            raise OpenFacetException("a facet is already open")
        self._transaction = FacetTransaction(self)
        return self._transaction

    def terminate_facet(self, validate_all_indices: bool = True) -> list[str] | None:
        """Closes the open facet.

        Returns None on success. Otherwise the open corners are removed from
        every index array and the list of problems is returned.
        """
        data = self.data
        start = self.facet_start[-1]
        length = len(data.point_index)
        messages = []
        if length - start < 3:
            messages.append("Less than 3 indices in open facet")
        if len(data.edge_visible) != length:
            messages.append("edge visibility count must match point index count")
        for name, channel in data.channels():
            if len(channel.index) != length:
                messages.append(f"{name} index count must match point index count")
        if validate_all_indices and not messages:
            n = len(data.point)
            if any(not 0 <= i < n for i in data.point_index[start:]):
                messages.append("invalid point indices in open facet")
            for name, channel in data.channels():
                n = len(channel.data)
                if any(not 0 <= i < n for i in channel.index[start:]):
                    messages.append(f"invalid {name} indices in open facet")
        if messages:
            log.debug("terminate_facet rejected facet %d: %s", self.facet_count, messages)
            data.trim_all_index_arrays(start)
            return messages
        self.facet_start.append(length)
        return None

    def cleanup_open_facet(self) -> None:
        """Discards any corners added since the last terminated facet."""
        self.data.trim_all_index_arrays(self.facet_start[-1])

    # Queries.

    @property
    def facet_count(self) -> int:
        return len(self.facet_start) - 1

    @property
    def face_count(self) -> int:
        return self.data.face_count

    @property
    def point_count(self) -> int:
        return self.data.point_count

    @property
    def normal_count(self) -> int:
        return self.data.normal_count

    @property
    def param_count(self) -> int:
        return self.data.param_count

    @property
    def color_count(self) -> int:
        return self.data.color_count

    @property
    def zero_terminated_index_count(self) -> int:
        return self.data.index_count + self.facet_count

    def is_valid_facet_index(self, k: int) -> bool:
        return 0 <= k < self.facet_count

    def num_edge_in_facet(self, k: int) -> int:
        if not self.is_valid_facet_index(k):
            return 0
        return self.facet_start[k + 1] - self.facet_start[k]

    def facet_index0(self, k: int) -> int:
        return self.facet_start[k]

    def facet_index1(self, k: int) -> int:
        return self.facet_start[k + 1]

    def facet_point_indices(self, k: int) -> list[int]:
        return self.data.point_index[self.facet_start[k]:self.facet_start[k + 1]]

    def range(self, transform=None) -> BoundingBox:
        return self.data.range(transform)

    def get_face_data_by_face_index(self, face_index: int) -> FacetFaceData | None:
        return self.data.get_face(face_index)

    def get_face_data_by_facet_index(self, facet_index: int) -> FacetFaceData | None:
        if 0 <= facet_index < len(self.facet_to_face_data):
            return self.data.get_face(self.facet_to_face_data[facet_index])
        return None

    def create_visitor(self, num_wrap: int = 0):
        from polyface.visitor import IndexedPolyfaceVisitor
        return IndexedPolyfaceVisitor.create(self, num_wrap)

    def is_closed_by_edge_pairing(self) -> bool:
        """True if every directed edge is matched by an opposite edge."""
        edges = Counter()
        for k in range(self.facet_count):
            indices = self.facet_point_indices(k)
            for a, b in zip(indices, indices[1:] + indices[:1]):
                edges[(a, b)] += 1
        return all(edges[(b, a)] == count for (a, b), count in edges.items())

    # Whole mesh operations.

    def reverse_indices(self, preserve_start: bool = True) -> bool:
        return self.data.reverse_indices(self.facet_start, preserve_start)

    def reverse_normals(self) -> None:
        self.data.reverse_normals()

    def try_transform_in_place(self, transform) -> bool:
        """Transforms the mesh. A transform with negative determinant also
        reverses every facet so facet winding stays consistent with the
        (inverse transpose transformed) normals."""
        if not self.data.try_transform_in_place(transform):
            return False
        if l.determinant(transform) < 0:
            self.reverse_indices()
        return True

    def clone(self) -> "IndexedPolyface":
        result = IndexedPolyface(self.data.clone(), self.facet_start, self.facet_to_face_data)
        result.two_sided = self.two_sided
        return result

    def clone_transformed(self, transform) -> "IndexedPolyface":
        result = self.clone()
        result.try_transform_in_place(transform)
        return result

    def is_almost_equal(self, other: "IndexedPolyface", tol: float = 1e-10) -> bool:
        return self.facet_start == other.facet_start and self.data.is_almost_equal(
            other.data, tol)

    def add_indexed_polyface(self, source: "IndexedPolyface", reverse: bool = False,
                             transform=None) -> None:
        """Appends the facets of source. Points (and normals) are transformed if
        a transform is given. A mirroring transform flips the reversal so the
        copied facets keep their outward orientation. Face data is not copied.
        """
        src = source.data
        point_offset = len(self.data.point)
        points = src.point.view()
        if transform is not None:
            points = l.transform_points(transform, points)
            if l.determinant(transform) < 0:
                reverse = not reverse
        self.data.point.extend(points)

        offsets = {}
        for name, channel in self.data.channels():
            src_channel = getattr(src, name)
            if src_channel is None:
                width, dtype = channel.data.width, channel.data.dtype
                default = 0 if width == 0 else np.zeros(width)
                offsets[name] = (None, channel.data.append(default))
                continue
            values = src_channel.data.view()
            if name == "normal" and transform is not None:
                matrix = l.normal_matrix(transform)
                if matrix is not None:
                    values = l.normalize_rows(values @ matrix.T)
            offsets[name] = (channel.data.extend(values), None)

        for k in range(source.facet_count):
            i0, i1 = source.facet_start[k], source.facet_start[k + 1]
            corners = list(range(i0, i1))
            if reverse:
                corners = [corners[0]] + corners[:0:-1]
            n = len(corners)
            for j, c in enumerate(corners):
                if reverse:
                    visible = src.edge_visible[corners[(j + 1) % n]]
                else:
                    visible = src.edge_visible[c]
                self.add_point_index(src.point_index[c] + point_offset, visible)
                for name, channel in self.data.channels():
                    offset, default_index = offsets[name]
                    if offset is None:
                        channel.index.append(default_index)
                    else:
                        channel.index.append(getattr(src, name).index[c] + offset)
            self.terminate_facet()

    def set_new_face_data(self, end_facet_index: int = 0) -> bool:
        """Groups the facets added since the previous face into a new face.

        end_facet_index == 0 means all facets so far.
        """
        facet_start = len(self.facet_to_face_data)
        if end_facet_index == 0:
            end_facet_index = self.facet_count
        if facet_start >= end_facet_index:
            return False
        face = FacetFaceData.create()
        if self.data.param is not None:
            face.set_param_distance_range_from_new_face_data(self, facet_start, end_facet_index)
        self.data.face.append(face)
        face_index = len(self.data.face) - 1
        self.facet_to_face_data.extend([face_index] * (end_facet_index - facet_start))
        return True
