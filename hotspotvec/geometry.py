"""Polygon measurements: shoelace area, winding, bounding box and centroid."""
from typing import Tuple

import numpy as np

from hotspotvec.types import Polygon

_DEGENERATE_AREA = 1e-9


def signed_area(points: Polygon) -> float:
    """
    Shoelace signed area of an implicitly closed polygon.

    With image coordinates (y down), a loop that runs clockwise on screen
    has positive area.
    """
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) < 3:
        return 0.0
    x = pts[:, 0]
    y = pts[:, 1]
    return float(0.5 * np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def polygon_area(points: Polygon) -> float:
    return abs(signed_area(points))


def normalize_winding(points: Polygon) -> Polygon:
    """Return the polygon reversed if needed so its signed area is non-negative."""
    pts = np.asarray(points, dtype=np.float64)
    if signed_area(pts) < 0:
        return pts[::-1].copy()
    return pts


def bounding_box(points: Polygon) -> Tuple[float, float, float, float]:
    """(min_x, min_y, max_x, max_y)"""
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) == 0:
        raise ValueError("bounding_box of an empty polygon")
    return (
        float(pts[:, 0].min()),
        float(pts[:, 1].min()),
        float(pts[:, 0].max()),
        float(pts[:, 1].max()),
    )


def centroid(points: Polygon) -> Tuple[float, float]:
    """
    Area-weighted centroid of a polygon.

    Falls back to the bounding-box center when the polygon is degenerate
    (|area| < 1e-9).
    """
    pts = np.asarray(points, dtype=np.float64)
    a = signed_area(pts)
    if abs(a) < _DEGENERATE_AREA:
        min_x, min_y, max_x, max_y = bounding_box(pts)
        return ((min_x + max_x) / 2.0, (min_y + max_y) / 2.0)

    x = pts[:, 0]
    y = pts[:, 1]
    x1 = np.roll(x, -1)
    y1 = np.roll(y, -1)
    cross = x * y1 - x1 * y
    cx = np.sum((x + x1) * cross) / (6.0 * a)
    cy = np.sum((y + y1) * cross) / (6.0 * a)
    return (float(cx), float(cy))
