"""Boundary loops from binary masks via Marching Squares or Moore-neighbor tracing."""
import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np
from scipy import ndimage

from hotspotvec.geometry import polygon_area, signed_area
from hotspotvec.types import Polygon, ValidationError

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
Segment = Tuple[Point, Point]
_Key = Tuple[int, int]

# Edge midpoints of cell (cx, cy) in doubled coordinates, relative to (2cx, 2cy)
_TOP = (0, -1)
_RIGHT = (1, 0)
_BOTTOM = (0, 1)
_LEFT = (-1, 0)

# Corner code TL<<3 | TR<<2 | BR<<1 | BL -> segments between edge midpoints.
# Saddles (5, 10) keep the diagonal foreground corners joined.
_SEGMENT_TABLE = {
    1: ((_LEFT, _BOTTOM),),
    2: ((_BOTTOM, _RIGHT),),
    3: ((_LEFT, _RIGHT),),
    4: ((_TOP, _RIGHT),),
    5: ((_TOP, _LEFT), (_BOTTOM, _RIGHT)),
    6: ((_TOP, _BOTTOM),),
    7: ((_TOP, _LEFT),),
    8: ((_LEFT, _TOP),),
    9: ((_BOTTOM, _TOP),),
    10: ((_TOP, _RIGHT), (_LEFT, _BOTTOM)),
    11: ((_TOP, _RIGHT),),
    12: ((_LEFT, _RIGHT),),
    13: ((_RIGHT, _BOTTOM),),
    14: ((_LEFT, _BOTTOM),),
}

# Moore neighborhood, clockwise on screen (y down), starting east
_MOORE_DIRS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))
_MOORE_INDEX = {d: i for i, d in enumerate(_MOORE_DIRS)}
_WEST = 4

_MIN_LOOP_AREA = 1e-9


def _validate_mask(mask: np.ndarray) -> np.ndarray:
    mask = np.asarray(mask)
    if mask.ndim != 2:
        raise ValidationError(f"Expected 2D mask, got {mask.ndim}D")
    return mask.astype(bool, copy=False)


def mask_from_buffer(data: Sequence[int], width: int, height: int) -> np.ndarray:
    """
    Build a boolean mask from a flat row-major buffer.

    Raises:
        ValidationError: If the dimensions are not positive or the buffer
            length does not equal width * height
    """
    if width <= 0 or height <= 0:
        raise ValidationError(f"Mask dimensions must be positive, got {width}x{height}")
    arr = np.asarray(data)
    if arr.size != width * height:
        raise ValidationError(
            f"Mask buffer length {arr.size} does not match {width}x{height} = {width * height}"
        )
    return arr.reshape(height, width) != 0


def _cell_codes(mask: np.ndarray) -> np.ndarray:
    """(bh + 1, bw + 1) corner codes over the zero-padded mask, indexed [cy, cx]."""
    padded = np.pad(mask.astype(np.uint8), 1, mode='constant', constant_values=0)
    tl = padded[:-1, :-1]
    tr = padded[:-1, 1:]
    br = padded[1:, 1:]
    bl = padded[1:, :-1]
    return (tl << 3) | (tr << 2) | (br << 1) | bl


def _segment_keys(mask: np.ndarray) -> List[Tuple[_Key, _Key]]:
    codes = _cell_codes(mask)
    cys, cxs = np.nonzero((codes != 0) & (codes != 15))
    segments = []
    for cy, cx, code in zip(cys.tolist(), cxs.tolist(), codes[cys, cxs].tolist()):
        bx, by = 2 * cx, 2 * cy
        for a, b in _SEGMENT_TABLE[code]:
            segments.append(((bx + a[0], by + a[1]), (bx + b[0], by + b[1])))
    return segments


def marching_squares_segments(mask: np.ndarray) -> List[Segment]:
    """
    Boundary segments of a binary mask in local pixel coordinates.

    Pixel (x, y) has its center at (x + 0.5, y + 0.5); segment endpoints lie
    on midpoints between neighboring pixel centers.

    Args:
        mask: (H, W) boolean mask

    Returns:
        List of ((x1, y1), (x2, y2)) segments
    """
    mask = _validate_mask(mask)
    return [
        ((a[0] / 2.0, a[1] / 2.0), (b[0] / 2.0, b[1] / 2.0))
        for a, b in _segment_keys(mask)
    ]


def trace_marching_squares(
    mask: np.ndarray,
    offset: Tuple[float, float] = (0, 0)
) -> List[Polygon]:
    """
    Trace every closed boundary loop of a mask with Marching Squares.

    Outer boundaries and hole boundaries both come out as loops; every loop
    is normalized to non-negative signed area.

    Args:
        mask: (H, W) boolean mask
        offset: (x, y) added to every output point

    Returns:
        List of (N, 2) polygons with N >= 3
    """
    mask = _validate_mask(mask)
    if not mask.any():
        return []

    adjacency: Dict[_Key, List[_Key]] = {}
    for a, b in _segment_keys(mask):
        adjacency.setdefault(a, []).append(b)
        adjacency.setdefault(b, []).append(a)

    node_count = len(adjacency)
    seen = set()
    loops = []

    for start in adjacency:
        if start in seen:
            continue

        loop = [start]
        seen.add(start)
        prev, cur = start, adjacency[start][0]
        steps = 0
        closed = False

        while steps < node_count:
            if cur == start:
                closed = True
                break
            loop.append(cur)
            seen.add(cur)
            nbrs = adjacency[cur]
            nxt = nbrs[0] if nbrs[0] != prev else nbrs[-1]
            prev, cur = cur, nxt
            steps += 1

        if not closed:
            logger.warning(
                f"Marching squares walk from {start} did not close after {steps} steps; "
                f"keeping partial loop of {len(loop)} points"
            )

        if len(loop) < 3:
            continue

        pts = np.asarray(loop, dtype=np.float64) / 2.0
        if signed_area(pts) < 0:
            pts = pts[::-1]
        pts += np.asarray(offset, dtype=np.float64)
        loops.append(pts)

    return loops


def _moore_component(
    component: np.ndarray,
    origin: Tuple[int, int],
    max_steps: int
) -> List[Point]:
    h, w = component.shape
    ys, xs = np.nonzero(component)
    # First pixel in raster order; its west neighbor is background
    sx, sy = int(xs[0]), int(ys[0])

    def inside(x, y):
        return 0 <= x < w and 0 <= y < h and component[y, x]

    contour = []
    cx, cy = sx, sy
    bdir = _WEST
    steps = 0

    while True:
        if steps > max_steps:
            logger.warning(
                f"Moore trace from ({sx + origin[0]}, {sy + origin[1]}) exceeded "
                f"{max_steps} steps; truncating"
            )
            break

        contour.append((cx + 0.5, cy + 0.5))

        found = False
        for k in range(1, 9):
            d = (bdir + k) % 8
            nx = cx + _MOORE_DIRS[d][0]
            ny = cy + _MOORE_DIRS[d][1]
            if inside(nx, ny):
                # Backtrack to the last background cell checked, seen from the new pixel
                pd = _MOORE_DIRS[(d - 1) % 8]
                bdir = _MOORE_INDEX[(cx + pd[0] - nx, cy + pd[1] - ny)]
                cx, cy = nx, ny
                found = True
                break

        if not found:
            break
        steps += 1
        if cx == sx and cy == sy and len(contour) > 3:
            break

    return [(x + origin[0], y + origin[1]) for x, y in contour]


def trace_moore(
    mask: np.ndarray,
    offset: Tuple[float, float] = (0, 0)
) -> List[Polygon]:
    """
    Trace the outer boundary of each 8-connected component through pixel centers.

    Args:
        mask: (H, W) boolean mask
        offset: (x, y) added to every output point

    Returns:
        List of (N, 2) polygons with N >= 3 and non-zero area, one per
        component that encloses any area
    """
    mask = _validate_mask(mask)
    if not mask.any():
        return []

    h, w = mask.shape
    max_steps = max(1000, (w * h) // 10)
    labels, n = ndimage.label(mask, structure=np.ones((3, 3), dtype=int))
    loops = []

    for label_id, slc in enumerate(ndimage.find_objects(labels), start=1):
        if slc is None:
            continue
        component = labels[slc] == label_id
        origin = (slc[1].start, slc[0].start)
        contour = _moore_component(component, origin, max_steps)
        if len(contour) < 3:
            continue

        pts = np.asarray(contour, dtype=np.float64)
        # One-pixel-wide components trace out and back over themselves
        if polygon_area(pts) < _MIN_LOOP_AREA:
            continue
        if signed_area(pts) < 0:
            pts = pts[::-1]
        pts += np.asarray(offset, dtype=np.float64)
        loops.append(pts)

    logger.debug(f"Moore traced {len(loops)} of {n} components")
    return loops


def trace(
    mask: np.ndarray,
    method: str = "marching_squares",
    offset: Tuple[float, float] = (0, 0)
) -> List[Polygon]:
    """Dispatch to the boundary tracer named by ``method``."""
    if method == "marching_squares":
        return trace_marching_squares(mask, offset)
    if method == "moore":
        return trace_moore(mask, offset)
    raise ValidationError(f"Unknown boundary method: {method!r}")
