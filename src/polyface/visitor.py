'''Facet cursor over an IndexedPolyface.'''

import numpy as np


class IndexedPolyfaceVisitor:
    """Copies one facet at a time out of a polyface.

    After seek() the facet's corners are available as private copies (point,
    point_index, edge_visible and each present channel's data and index),
    with the first num_wrap corners repeated at the end so closed loop
    consumers can walk [0, n + num_wrap) without special casing the seam.
    """

    def __init__(self, polyface, num_wrap: int = 0):
        self._polyface = polyface
        self.num_wrap = max(0, num_wrap)
        self._current = -1
        self._next = 0
        self._num_edges = 0
        self._facet_start_length = len(polyface.facet_start)
        self.point = np.zeros((0, 3))
        self.point_index: list[int] = []
        self.edge_visible: list[bool] = []
        self.normal: np.ndarray | None = None
        self.normal_index: list[int] | None = None
        self.param: np.ndarray | None = None
        self.param_index: list[int] | None = None
        self.color: np.ndarray | None = None
        self.color_index: list[int] | None = None

    @classmethod
    def create(cls, polyface, num_wrap: int = 0) -> "IndexedPolyfaceVisitor":
        return cls(polyface, num_wrap)

    @property
    def client_polyface(self):
        return self._polyface

    @property
    def num_edges_this_facet(self) -> int:
        return self._num_edges

    @property
    def is_stale(self) -> bool:
        """True once facets have been added to or removed from the polyface."""
        return len(self._polyface.facet_start) != self._facet_start_length

    def current_index(self) -> int:
        return self._current

    def seek(self, facet_index: int) -> bool:
        """Loads facet_index. Returns False, leaving the cursor unchanged, if
        there is no such facet."""
        if not self._polyface.is_valid_facet_index(facet_index):
            return False
        self._gather(facet_index)
        self._current = facet_index
        self._next = facet_index + 1
        return True

    def advance(self) -> bool:
        return self.seek(self._next)

    def reset(self) -> None:
        """The next advance() loads facet 0."""
        self._next = 0
        self._current = -1

    def __iter__(self):
        self.reset()
        while self.advance():
            yield self

    def _gather(self, facet_index: int) -> None:
        polyface = self._polyface
        data = polyface.data
        i0 = polyface.facet_index0(facet_index)
        i1 = polyface.facet_index1(facet_index)
        n = i1 - i0
        corners = list(range(i0, i1)) + [i0 + j % n for j in range(self.num_wrap)]
        self._num_edges = n
        self.point_index = [data.point_index[i] for i in corners]
        self.edge_visible = [data.edge_visible[i] for i in corners]
        self.point = data.point.view()[self.point_index]
        for name in ("normal", "param", "color"):
            channel = getattr(data, name)
            if channel is None:
                setattr(self, name, None)
                setattr(self, name + "_index", None)
            else:
                indices = [channel.index[i] for i in corners]
                setattr(self, name + "_index", indices)
                setattr(self, name, channel.data.view()[indices])

    def get_point(self, i: int) -> np.ndarray:
        return self.point[i]

    def get_normal(self, i: int) -> np.ndarray | None:
        return None if self.normal is None else self.normal[i]

    def get_param(self, i: int) -> np.ndarray | None:
        return None if self.param is None else self.param[i]

    def get_color(self, i: int) -> int | None:
        return None if self.color is None else int(self.color[i])

    def client_point_index(self, i: int) -> int:
        return self.point_index[i]

    def client_normal_index(self, i: int) -> int:
        return -1 if self.normal_index is None else self.normal_index[i]

    def client_param_index(self, i: int) -> int:
        return -1 if self.param_index is None else self.param_index[i]

    def client_color_index(self, i: int) -> int:
        return -1 if self.color_index is None else self.color_index[i]

    def try_get_distance_parameter(self, i: int) -> np.ndarray | None:
        """The param at corner i mapped through the facet's face distance
        range. None without params, faces or a valid corner."""
        face = self._face_for_corner(i)
        return None if face is None else face.convert_param_to_distance(self.param[i])

    def try_get_normalized_parameter(self, i: int) -> np.ndarray | None:
        face = self._face_for_corner(i)
        return None if face is None else face.convert_param_to_normalized(self.param[i])

    def _face_for_corner(self, i: int):
        if self.param is None or not 0 <= i < len(self.param):
            return None
        return self._polyface.get_face_data_by_facet_index(self._current)
