'''Per-face parameter ranges.

A face is a caller delimited run of consecutive facets that share one
texture parameter range. Along with the param range the face keeps an
estimated "distance" range so normalized params can be turned into
approximate arc length params.
'''

import numpy as np
from datatrees import datatree, dtfield

from polyface.bbox import BoundingBox


@datatree
class FacetFaceData:
    """Parameter range and estimated distance range for a group of facets."""

    param_range: BoundingBox = dtfield(
        default_factory=lambda: BoundingBox.null(2),
        doc="Range of the (u, v) params used by the facets of the face.")
    param_distance_range: BoundingBox = dtfield(
        default_factory=lambda: BoundingBox.null(2),
        doc="Estimated (u, v) range in distance units.")

    @classmethod
    def create(cls, param_range: BoundingBox | None = None,
               param_distance_range: BoundingBox | None = None) -> "FacetFaceData":
        return cls(
            param_range=param_range.clone() if param_range else BoundingBox.null(2),
            param_distance_range=(
                param_distance_range.clone() if param_distance_range else BoundingBox.null(2)),
        )

    def clone(self) -> "FacetFaceData":
        return FacetFaceData.create(self.param_range, self.param_distance_range)

    def null(self) -> None:
        self.param_range = BoundingBox.null(2)
        self.param_distance_range = BoundingBox.null(2)

    def convert_param_to_distance(self, uv) -> np.ndarray:
        """Maps a param within param_range onto param_distance_range.

        An axis with zero param extent is passed through unchanged.
        """
        uv = np.asarray(uv, dtype=np.float64)
        param_delta = self.param_range.size
        distance_delta = self.param_distance_range.size
        result = uv[:2].copy()
        for axis in range(2):
            if param_delta[axis] != 0:
                result[axis] = (self.param_distance_range.min_point[axis]
                                + (uv[axis] - self.param_range.min_point[axis])
                                * distance_delta[axis] / param_delta[axis])
        return result

    def convert_param_to_normalized(self, uv) -> np.ndarray:
        """Maps a param within param_range onto [0, 1] x [0, 1]."""
        uv = np.asarray(uv, dtype=np.float64)
        param_delta = self.param_range.size
        result = uv[:2].copy()
        for axis in range(2):
            if param_delta[axis] != 0:
                result[axis] = (uv[axis] - self.param_range.min_point[axis]) / param_delta[axis]
        return result

    def scale_distances(self, s: float) -> None:
        self.param_distance_range.scale_in_place(s)

    def set_param_distance_range_from_new_face_data(
            self, polyface, facet_start: int, facet_end: int = 0) -> bool:
        """Computes param_range and param_distance_range over facets
        [facet_start, facet_end). facet_end == 0 means up to the last facet.

        For each run of three consecutive corners with non-zero uv area the
        local derivatives |dXYZ/du| and |dXYZ/dv| are sampled. The distance
        range is (mean + one standard deviation) of the samples times the param
        extent, an over estimate so textures are not under tiled.
        """
        if facet_end == 0:
            facet_end = polyface.facet_count
        if polyface.data.param is None:
            return False
        if not (0 <= facet_start < facet_end <= polyface.facet_count):
            return False

        self.param_range = BoundingBox.null(2)
        du_samples = []
        dv_samples = []
        visitor = polyface.create_visitor(0)
        visitor.seek(facet_start)
        while True:
            params = visitor.param
            points = visitor.point
            self.param_range.extend_points(params)
            for k in range(2, len(params)):
                duv0 = params[k - 1] - params[k - 2]
                duv1 = params[k] - params[k - 2]
                uv_cross = abs(duv0[0] * duv1[1] - duv1[0] * duv0[1])
                if uv_cross == 0:
                    continue
                delta0 = points[k - 1] - points[k - 2]
                delta1 = points[k] - points[k - 2]
                dw_du = delta0 * duv1[1] - delta1 * duv0[1]
                dw_dv = delta1 * duv0[0] - delta0 * duv1[0]
                du_samples.append(np.linalg.norm(dw_du) / uv_cross)
                dv_samples.append(np.linalg.norm(dw_dv) / uv_cross)
            if visitor.current_index() + 1 >= facet_end or not visitor.advance():
                break

        param_extent = self.param_range.size
        if du_samples:
            ds = np.array([np.mean(du_samples) + np.std(du_samples),
                           np.mean(dv_samples) + np.std(dv_samples)])
        else:
            ds = np.ones(2)
        self.param_distance_range = BoundingBox.from_corners((0.0, 0.0), ds * param_extent)
        return True
