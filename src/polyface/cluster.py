'''Tolerance based merging of coincident points.'''

from dataclasses import dataclass
import logging

import numpy as np
from datatrees import datatree, dtfield
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree

log = logging.getLogger(__name__)


@dataclass
class ClusterResult:
    """Packed points and the old index -> new index map."""

    packed_points: np.ndarray
    old_to_new: np.ndarray

    @property
    def num_clusters(self) -> int:
        return len(self.packed_points)

    def update_indices(self, indices: list[int]) -> None:
        """Rewrites indices in place."""
        if indices:
            indices[:] = self.old_to_new[indices].tolist()


@datatree
class PointClusterer:
    """Collapses points within tolerance of each other.

    Pairs closer than (or at) the tolerance are linked and each connected
    group becomes one point, the group member that appears first. Surviving
    points keep their relative order, so with no close pairs the mapping is
    the identity.
    """

    tolerance: float = dtfield(default=1e-10, doc="Distance at or below which points merge.")

    def cluster(self, points) -> ClusterResult:
        points = np.asarray(points, dtype=np.float64)
        n = len(points)
        identity = ClusterResult(points.copy(), np.arange(n, dtype=np.int64))
        if n < 2:
            return identity
        tree = cKDTree(points.reshape((n, -1)))
        pairs = tree.query_pairs(r=self.tolerance, output_type="ndarray")
        if len(pairs) == 0:
            return identity

        graph = coo_matrix(
            (np.ones(len(pairs), dtype=np.int8), (pairs[:, 0], pairs[:, 1])), shape=(n, n))
        num_groups, labels = connected_components(graph, directed=False)
        # first[g] is the lowest point index in group g.
        _, first = np.unique(labels, return_index=True)
        order = np.argsort(first)
        rank = np.empty(num_groups, dtype=np.int64)
        rank[order] = np.arange(num_groups)
        log.debug("clustered %d points into %d", n, num_groups)
        return ClusterResult(points[first[order]].copy(), rank[labels])
