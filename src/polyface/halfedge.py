'''Minimal half-edge graph, the topology source for graph_to_polyface().

Each HalfEdge starts at (x, y, z), runs to its face_successor's start and is
paired with an edge_mate running the other way. Following face_successor
links walks one face loop.
'''

from enum import IntFlag
from typing import Callable, Iterator

import numpy as np


class HalfEdgeMask(IntFlag):
    NONE = 0
    EXTERIOR = 0x01
    BOUNDARY_EDGE = 0x02
    PRIMARY_EDGE = 0x04
    VISITED = 0x10


class HalfEdge:
    __slots__ = ("id", "x", "y", "z", "mask", "face_successor", "face_predecessor",
                 "edge_mate")

    def __init__(self, id: int, x: float, y: float, z: float = 0.0,
                 mask: HalfEdgeMask = HalfEdgeMask.NONE):
        self.id = id
        self.x = x
        self.y = y
        self.z = z
        self.mask = mask
        self.face_successor: "HalfEdge" = self
        self.face_predecessor: "HalfEdge" = self
        self.edge_mate: "HalfEdge" = self

    def __repr__(self) -> str:
        return f"HalfEdge({self.id}, ({self.x}, {self.y}, {self.z}), {self.mask!r})"

    @property
    def xyz(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z])

    def is_mask_set(self, mask: HalfEdgeMask) -> bool:
        return bool(self.mask & mask)

    def set_mask(self, mask: HalfEdgeMask) -> None:
        self.mask |= mask

    def clear_mask(self, mask: HalfEdgeMask) -> None:
        self.mask &= ~mask

    def set_face_successor(self, successor: "HalfEdge") -> None:
        self.face_successor = successor
        successor.face_predecessor = self

    @property
    def vertex_successor(self) -> "HalfEdge":
        """Next half-edge around the start vertex."""
        return self.face_predecessor.edge_mate

    def face_loop(self) -> Iterator["HalfEdge"]:
        """Yields the half-edges of this face starting here."""
        node = self
        while True:
            yield node
            node = node.face_successor
            if node is self:
                return

    def count_edges_around_face(self) -> int:
        return sum(1 for _ in self.face_loop())

    def set_mask_around_face(self, mask: HalfEdgeMask) -> None:
        for node in self.face_loop():
            node.set_mask(mask)

    @staticmethod
    def test_node_mask_not_exterior(node: "HalfEdge") -> bool:
        """Default face filter: accept faces whose seed is not EXTERIOR."""
        return not node.is_mask_set(HalfEdgeMask.EXTERIOR)


class HalfEdgeGraph:
    """Owns a pool of half-edges."""

    def __init__(self):
        self.all_half_edges: list[HalfEdge] = []

    def _create(self, x: float, y: float, z: float, mask: HalfEdgeMask) -> HalfEdge:
        node = HalfEdge(len(self.all_half_edges), x, y, z, mask)
        self.all_half_edges.append(node)
        return node

    def create_edge_xyz_xyz(self, x0: float, y0: float, z0: float, x1: float, y1: float,
                            z1: float, mask0: HalfEdgeMask = HalfEdgeMask.NONE,
                            mask1: HalfEdgeMask = HalfEdgeMask.NONE) -> HalfEdge:
        """Creates a mated pair forming a two edge loop; returns the half-edge
        starting at (x0, y0, z0)."""
        a = self._create(x0, y0, z0, mask0)
        b = self._create(x1, y1, z1, mask1)
        a.edge_mate, b.edge_mate = b, a
        a.set_face_successor(b)
        b.set_face_successor(a)
        return a

    def add_face_loop(self, points, mask: HalfEdgeMask = HalfEdgeMask.NONE,
                      exterior_mask: HalfEdgeMask = HalfEdgeMask.EXTERIOR) -> HalfEdge | None:
        """Adds a face with the given loop of points and its mate loop.

        The face's half-edges get mask, the mate loop gets exterior_mask.
        Returns the face's half-edge starting at points[0], None for fewer
        than 3 points.
        """
        points = np.asarray(points, dtype=np.float64)
        n = len(points)
        if n < 3:
            return None
        if points.shape[1] == 2:
            points = np.column_stack((points, np.zeros(n)))
        inner = [self._create(*p, mask) for p in points]
        # outer[i] runs from points[i + 1] back to points[i].
        outer = [self._create(*points[(i + 1) % n], exterior_mask) for i in range(n)]
        for i in range(n):
            inner[i].set_face_successor(inner[(i + 1) % n])
            outer[i].set_face_successor(outer[i - 1])
            inner[i].edge_mate = outer[i]
            outer[i].edge_mate = inner[i]
        return inner[0]

    def clear_mask(self, mask: HalfEdgeMask) -> None:
        for node in self.all_half_edges:
            node.clear_mask(mask)

    def collect_face_loops(self) -> list[HalfEdge]:
        """One seed half-edge per face loop, in creation order."""
        self.clear_mask(HalfEdgeMask.VISITED)
        seeds = []
        for node in self.all_half_edges:
            if not node.is_mask_set(HalfEdgeMask.VISITED):
                node.set_mask_around_face(HalfEdgeMask.VISITED)
                seeds.append(node)
        self.clear_mask(HalfEdgeMask.VISITED)
        return seeds

    def announce_face_loops(self, callback: Callable[["HalfEdgeGraph", HalfEdge], bool | None]) -> None:
        """Calls callback(graph, seed) once per face loop. A False return stops
        the walk."""
        for seed in self.collect_face_loops():
            if callback(self, seed) is False:
                return

    def count_face_loops(self) -> int:
        return len(self.collect_face_loops())
