'''Cross sections for sweeps and pipes.'''

import logging

import numpy as np
from datatrees import datatree, dtfield

import polyface.linear as l
from polyface.linestring import LineString3d

log = logging.getLogger(__name__)


@datatree
class EllipseSection:
    """Ellipse center + cos(t) * vector0 + sin(t) * vector90."""

    center: np.ndarray = dtfield(default_factory=lambda: np.zeros(3))
    vector0: np.ndarray = dtfield(default_factory=lambda: np.array([1.0, 0, 0]))
    vector90: np.ndarray = dtfield(default_factory=lambda: np.array([0.0, 1, 0]))

    def point_at_fraction(self, f: float) -> np.ndarray:
        t = 2 * np.pi * f
        return self.center + np.cos(t) * self.vector0 + np.sin(t) * self.vector90

    def stroke(self, num_strokes: int) -> LineString3d:
        """Closed linestring of num_strokes + 1 points, the last repeating the
        first, with fractions and derivatives."""
        num_strokes = max(3, num_strokes)
        fractions = np.arange(num_strokes + 1) / num_strokes
        t = 2 * np.pi * fractions
        cos_t = np.cos(t)[:, None]
        sin_t = np.sin(t)[:, None]
        v0 = np.asarray(self.vector0, dtype=np.float64)
        v90 = np.asarray(self.vector90, dtype=np.float64)
        points = np.asarray(self.center, dtype=np.float64) + cos_t * v0 + sin_t * v90
        points[-1] = points[0]
        derivatives = 2 * np.pi * (-sin_t * v0 + cos_t * v90)
        derivatives[-1] = derivatives[0]
        return LineString3d(points, fractions=fractions, derivatives=derivatives)


def move_vector_to_plane(r, v, n) -> np.ndarray:
    """Slides r along v until it is perpendicular to n.

    Solves dot(r - s * v, n) = 0 for s. If v is parallel to the plane r is
    returned unchanged.
    """
    r = np.asarray(r, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    s = l.safe_divide_fraction(float(np.dot(r, n)), float(np.dot(v, n)), 0.0)
    return r - s * v


def create_mitered_pipe_sections(centerline, radius: float) -> list[EllipseSection]:
    """One section per centerline point.

    The first section is a circle perpendicular to the first segment. Each
    following section takes the previous section's axes and slides them,
    parallel to the incoming segment, onto the plane bisecting the incoming
    and outgoing segments. Matching points on neighbouring sections are then
    joined by lines parallel to the centerline segment between them.
    """
    points = l.as_array(centerline, 3)
    keep = [0] + [i for i in range(1, len(points))
                  if np.linalg.norm(points[i] - points[i - 1]) > l.SMALL_METRIC_DISTANCE]
    points = points[keep]
    n = len(points)
    if n < 2:
        log.debug("mitered pipe needs 2 distinct centerline points, got %d", n)
        return []

    vector_ab = l.normalize(points[1] - points[0])
    frame = l.rigid_heads_up(vector_ab)
    vector0 = frame[:, 0] * radius
    vector90 = frame[:, 1] * radius
    sections = [EllipseSection(center=points[0], vector0=vector0, vector90=vector90)]
    for i in range(1, n):
        vector_ab = l.normalize(points[i] - points[i - 1])
        vector_bc = l.normalize(points[i + 1] - points[i]) if i + 1 < n else vector_ab
        bisector = l.normalize(vector_ab + vector_bc)
        if bisector is None:
            bisector = vector_ab
        vector0 = move_vector_to_plane(vector0, vector_ab, bisector)
        vector90 = move_vector_to_plane(vector90, vector_ab, bisector)
        sections.append(EllipseSection(center=points[i], vector0=vector0, vector90=vector90))
    return sections


def resample_to_common_count(sections: list[LineString3d]) -> list[LineString3d] | None:
    """Re-strokes sections so all have the largest point count.

    Points are placed at equal arc length fractions. Returns None if any
    section has fewer than 2 points or zero length.
    """
    if not sections:
        return None
    for section in sections:
        if section.num_points < 2 or section.quick_length() == 0:
            return None
    target = max(s.num_points for s in sections)
    if all(s.num_points == target for s in sections):
        return sections
    fractions = np.linspace(0.0, 1.0, target)
    result = []
    for section in sections:
        if section.num_points == target:
            result.append(section)
            continue
        source = section.fractions_by_length()
        points = np.column_stack(
            [np.interp(fractions, source, section.points[:, k]) for k in range(3)])
        result.append(LineString3d(points, fractions=fractions))
    return result
