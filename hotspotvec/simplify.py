"""Polygon simplification: iterative Ramer-Douglas-Peucker and angle-aware reduction."""
import math
from dataclasses import dataclass
from typing import Union

import numpy as np

from hotspotvec.types import ExtractionConfig, Polygon, SIMPLIFY_MODES

_CLOSE_EPS = 1e-6


@dataclass(frozen=True)
class SimplifyParams:
    """Simplification settings for one polygon."""
    mode: str = "angle"
    epsilon: float = 0.8
    min_angle: float = 10.0
    min_edge: float = 2.0

    def __post_init__(self):
        if self.mode not in SIMPLIFY_MODES:
            raise ValueError(f"mode must be one of {SIMPLIFY_MODES}, got {self.mode!r}")

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "SimplifyParams":
        return cls(
            mode=config.simplify_mode,
            epsilon=config.epsilon,
            min_angle=config.min_angle_degrees,
            min_edge=config.min_edge_pixels,
        )


def _line_distances(points: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Perpendicular distance to the infinite line start-end (distance to start if degenerate)."""
    v = end - start
    rel = points - start
    den = float(v @ v)
    if den == 0.0:
        return np.hypot(rel[:, 0], rel[:, 1])
    return np.abs(v[0] * rel[:, 1] - v[1] * rel[:, 0]) / math.sqrt(den)


def _rdp_keep(pts: np.ndarray, epsilon: float) -> np.ndarray:
    n = len(pts)
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]

    while stack:
        s, e = stack.pop()
        if e - s < 2:
            continue
        d = _line_distances(pts[s + 1:e], pts[s], pts[e])
        i = int(np.argmax(d))
        if d[i] > epsilon:
            k = s + 1 + i
            keep[k] = True
            stack.append((s, k))
            stack.append((k, e))

    return keep


def rdp(points: Polygon, epsilon: float) -> Polygon:
    """
    Ramer-Douglas-Peucker on an open polyline.

    Iterative with an explicit stack. The first and last points are always
    kept. Returns a copy of the input when epsilon <= 0 or there are fewer
    than 3 points.

    Args:
        points: (N, 2) polyline
        epsilon: Maximum perpendicular deviation in pixels

    Returns:
        (M, 2) simplified polyline, M <= N
    """
    pts = np.asarray(points, dtype=np.float64)
    if epsilon <= 0 or len(pts) < 3:
        return pts.copy()
    return pts[_rdp_keep(pts, epsilon)]


def _strip_closing_point(pts: np.ndarray) -> np.ndarray:
    if len(pts) > 3 and np.hypot(*(pts[0] - pts[-1])) < _CLOSE_EPS:
        return pts[:-1]
    return pts


def rdp_closed(points: Polygon, epsilon: float) -> Polygon:
    """
    Ramer-Douglas-Peucker on a closed ring.

    The ring is opened at its first point (first point appended, then
    dropped from the result). Results with fewer than 3 vertices are topped
    up to a triangle with the farthest remaining vertices so the output is
    always a valid polygon.

    Args:
        points: (N, 2) implicitly closed polygon; a duplicated closing point
            is stripped
        epsilon: Maximum perpendicular deviation in pixels

    Returns:
        (M, 2) polygon with 3 <= M <= N (for N >= 3)
    """
    pts = _strip_closing_point(np.asarray(points, dtype=np.float64))
    n = len(pts)
    if epsilon <= 0 or n < 3:
        return pts.copy()

    ring = np.vstack([pts, pts[:1]])
    keep = _rdp_keep(ring, epsilon)[:-1]

    kept = np.flatnonzero(keep).tolist()
    if len(kept) < 3:
        kept = _top_up_triangle(pts, kept)
    return pts[kept]


def _top_up_triangle(pts: np.ndarray, kept: list) -> list:
    kept = list(kept)
    start = pts[kept[0]]

    if len(kept) == 1:
        d = np.hypot(pts[:, 0] - start[0], pts[:, 1] - start[1])
        d[kept] = -1.0
        kept.append(int(np.argmax(d)))

    d = _line_distances(pts, start, pts[kept[1]])
    d[kept] = -1.0
    kept.append(int(np.argmax(d)))
    return sorted(kept)


def turn_angle(a, b, c) -> float:
    """
    Turning angle at ``b`` in degrees, between edge vectors a->b and b->c.

    0 for a straight continuation, 90 for a right-angle corner, 180 for a
    full reversal.
    """
    ax, ay = b[0] - a[0], b[1] - a[1]
    bx, by = c[0] - b[0], c[1] - b[1]
    la = math.hypot(ax, ay) or 1e-12
    lb = math.hypot(bx, by) or 1e-12
    cos = max(-1.0, min(1.0, (ax * bx + ay * by) / (la * lb)))
    return math.degrees(math.acos(cos))


def _turn_angles(pts: np.ndarray) -> list:
    n = len(pts)
    return [turn_angle(pts[i - 1], pts[i], pts[(i + 1) % n]) for i in range(n)]


def rotate_to_sharpest(points: Polygon) -> Polygon:
    """Rotate a closed polygon so it starts at the vertex with the largest turning angle."""
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) < 3:
        return pts.copy()

    best_i, best = 0, -1.0
    for i, angle in enumerate(_turn_angles(pts)):
        if angle > best:
            best, best_i = angle, i
    return np.roll(pts, -best_i, axis=0)


def _angle_pass(points: np.ndarray, epsilon: float, min_angle: float, min_edge: float) -> np.ndarray:
    rot = rotate_to_sharpest(points)
    if len(rot) < 3:
        return rot

    simp = rdp_closed(rot, max(0.25, epsilon * 0.6))
    protected = [angle >= min_angle for angle in _turn_angles(simp)]

    out = []
    out_protected = []
    for p, is_corner in zip(simp, protected):
        if not out or is_corner or math.hypot(p[0] - out[-1][0], p[1] - out[-1][1]) >= min_edge:
            out.append(p)
            out_protected.append(is_corner)

    # Closing edge too short: drop the last vertex unless it is a corner
    if (
        len(out) >= 2
        and not out_protected[-1]
        and math.hypot(out[0][0] - out[-1][0], out[0][1] - out[-1][1]) < min_edge
    ):
        out.pop()

    if len(out) < 3:
        return rot
    return np.asarray(out, dtype=np.float64)


def simplify_angle_aware(
    points: Polygon,
    epsilon: float,
    min_angle: float,
    min_edge: float
) -> Polygon:
    """
    Corner-preserving simplification.

    The polygon is rotated to its sharpest vertex and reduced with RDP at
    ``max(0.25, 0.6 * epsilon)``. Of the remaining vertices, corners turning
    by at least ``min_angle`` degrees are always kept; other vertices are
    kept only if they are at least ``min_edge`` away from the last kept
    vertex.

    Removing vertices changes the angles and edges of their neighbours, so
    the pass is repeated until it removes nothing. Simplifying the result
    again returns it unchanged.

    Returns:
        Simplified polygon starting at its sharpest vertex, or the rotated
        input if fewer than 3 vertices would remain
    """
    cur = np.asarray(points, dtype=np.float64)
    while True:
        nxt = _angle_pass(cur, epsilon, min_angle, min_edge)
        if len(nxt) == len(cur):
            return nxt
        cur = nxt


def simplify_polygon(
    points: Polygon,
    params: Union[SimplifyParams, ExtractionConfig, None] = None
) -> Polygon:
    """
    Simplify a closed polygon according to ``params.mode``.

    Args:
        points: (N, 2) implicitly closed polygon
        params: SimplifyParams or an ExtractionConfig; defaults to SimplifyParams()

    Returns:
        (M, 2) polygon; M >= 3 whenever N >= 3
    """
    if params is None:
        params = SimplifyParams()
    elif isinstance(params, ExtractionConfig):
        params = SimplifyParams.from_config(params)

    pts = _strip_closing_point(np.asarray(points, dtype=np.float64))
    if len(pts) < 3 or params.mode == "none":
        return pts.copy()
    if params.mode == "rdp":
        return rdp_closed(pts, params.epsilon)
    return simplify_angle_aware(pts, params.epsilon, params.min_angle, params.min_edge)
