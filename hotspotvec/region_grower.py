"""Visit bookkeeping, background pass and 8-connected region growth."""
import logging
from typing import Callable, List, Optional, Tuple

import numpy as np
from scipy import ndimage

from hotspotvec.types import ColorKey, RasterImage, RegionMask, ValidationError, VisitState

logger = logging.getLogger(__name__)

_UNVISITED = int(VisitState.UNVISITED)
_INCLUDED = int(VisitState.INCLUDED)
_EXCLUDED = int(VisitState.EXCLUDED)

_NEIGHBORS_8 = ((-1, -1), (0, -1), (1, -1), (-1, 0), (1, 0), (-1, 1), (0, 1), (1, 1))


class VisitMap:
    """
    Per-frame pixel state, owned by a single frame run.

    States only move forward (UNVISITED -> INCLUDED or EXCLUDED) and the map is
    never reset mid-pass. ``state`` is a numpy view over the same memory as
    ``buffer`` so bulk passes and per-pixel flood fill see one another's writes.
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValidationError(f"Visit map dimensions must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.buffer = bytearray(width * height)
        self.state = np.frombuffer(self.buffer, dtype=np.uint8).reshape(height, width)

    @classmethod
    def fresh(cls, width: int, height: int) -> "VisitMap":
        return cls(width, height)

    def get(self, x: int, y: int) -> VisitState:
        return VisitState(self.buffer[y * self.width + x])

    def is_unvisited(self, x: int, y: int) -> bool:
        return self.buffer[y * self.width + x] == _UNVISITED

    def count(self, state: VisitState) -> int:
        return int(np.count_nonzero(self.state == int(state)))


def _check_seed(image: RasterImage, seed: Tuple[int, int]) -> Tuple[int, int]:
    x, y = int(seed[0]), int(seed[1])
    if not (0 <= x < image.width and 0 <= y < image.height):
        raise ValidationError(
            f"Seed ({x}, {y}) outside {image.width}x{image.height} image"
        )
    return x, y


def _check_visit_map(image: RasterImage, visited: VisitMap):
    if visited.width != image.width or visited.height != image.height:
        raise ValidationError(
            f"Visit map {visited.width}x{visited.height} does not match "
            f"image {image.width}x{image.height}"
        )


def mark_background(
    image: RasterImage,
    visited: VisitMap,
    seed: Optional[Tuple[int, int]] = (0, 0),
    exclude_transparent: bool = True
) -> int:
    """
    Pre-mark background pixels as EXCLUDED.

    Every unvisited pixel whose RGB exactly equals the seed pixel's RGB is
    excluded, as is every fully transparent pixel when ``exclude_transparent``
    is set.

    Args:
        image: Source frame
        visited: Visit map of the current frame
        seed: (x, y) of the background sample, or None to skip the color test
        exclude_transparent: Treat alpha == 0 as background

    Returns:
        Number of newly excluded pixels
    """
    _check_visit_map(image, visited)
    unvisited = visited.state == _UNVISITED
    target = np.zeros_like(unvisited)

    if seed is not None:
        x, y = _check_seed(image, seed)
        packed = image.packed_rgb()
        target |= packed == packed[y, x]

    if exclude_transparent:
        target |= image.alpha == 0

    target &= unvisited
    visited.state[target] = _EXCLUDED

    count = int(np.count_nonzero(target))
    logger.debug(f"Background pass excluded {count} pixels")
    return count


def _flood(
    image: RasterImage,
    visited: VisitMap,
    seed: Tuple[int, int],
    accept: Callable[[int], bool],
    max_iterations: Optional[int]
) -> Optional[RegionMask]:
    _check_visit_map(image, visited)
    sx, sy = _check_seed(image, seed)
    w, h = image.width, image.height
    state = visited.buffer
    packed = image.packed_list()

    start = sy * w + sx
    if state[start] != _UNVISITED or not accept(packed[start]):
        return None

    cap = w * h if max_iterations is None else max_iterations
    state[start] = _INCLUDED
    stack = [start]
    members: List[int] = []
    iterations = 0

    while stack:
        if iterations >= cap:
            logger.error(
                f"Flood fill from ({sx}, {sy}) exceeded {cap} iterations "
                f"with {len(stack)} pixels pending; region dropped"
            )
            return None
        iterations += 1

        idx = stack.pop()
        members.append(idx)
        x = idx % w
        y = idx // w

        for dx, dy in _NEIGHBORS_8:
            nx = x + dx
            ny = y + dy
            if nx < 0 or ny < 0 or nx >= w or ny >= h:
                continue
            n = ny * w + nx
            if state[n] != _UNVISITED:
                continue
            # Non-matching neighbors stay UNVISITED for their own region
            if accept(packed[n]):
                state[n] = _INCLUDED
                stack.append(n)

    flat = np.asarray(members, dtype=np.int64)
    xs = flat % w
    ys = flat // w
    min_x, min_y = int(xs.min()), int(ys.min())
    mask = np.zeros((int(ys.max()) - min_y + 1, int(xs.max()) - min_x + 1), dtype=bool)
    mask[ys - min_y, xs - min_x] = True

    return RegionMask(mask=mask, min_x=min_x, min_y=min_y, pixel_count=len(members))


def grow_region(
    image: RasterImage,
    visited: VisitMap,
    seed: Tuple[int, int],
    color_key: ColorKey,
    tolerance: int = 0,
    max_iterations: Optional[int] = None
) -> Optional[RegionMask]:
    """
    Grow an 8-connected region of pixels matching ``color_key``.

    A pixel matches when its Chebyshev RGB distance to the key color is at
    most ``tolerance``. Every included pixel is marked INCLUDED in
    ``visited``.

    Args:
        image: Source frame
        visited: Visit map of the current frame
        seed: (x, y) start pixel
        color_key: Exact key of the region
        tolerance: Chebyshev tolerance, 0 = exact match only
        max_iterations: Pop cap; defaults to width * height

    Returns:
        Tight bounding-box mask, or None if the seed is already visited,
        does not match, or the cap was exceeded
    """
    r, g, b = color_key.rgb
    if tolerance <= 0:
        target = (r << 16) | (g << 8) | b
        accept = target.__eq__
    else:
        def accept(p: int) -> bool:
            return (
                abs(((p >> 16) & 0xFF) - r) <= tolerance
                and abs(((p >> 8) & 0xFF) - g) <= tolerance
                and abs((p & 0xFF) - b) <= tolerance
            )

    return _flood(image, visited, seed, accept, max_iterations)


def grow_region_by_group(
    image: RasterImage,
    visited: VisitMap,
    seed: Tuple[int, int],
    cluster_id: int,
    classifier,
    max_iterations: Optional[int] = None
) -> Optional[RegionMask]:
    """Same as grow_region, but a pixel matches when it falls into ``cluster_id``."""
    cluster_for = classifier.cluster_for_packed

    def accept(p: int) -> bool:
        return cluster_for(p) == cluster_id

    return _flood(image, visited, seed, accept, max_iterations)


def merge_into(group_mask: np.ndarray, region: RegionMask) -> np.ndarray:
    """OR a local region mask into a frame-sized mask in place."""
    h, w = region.mask.shape
    group_mask[region.min_y:region.min_y + h, region.min_x:region.min_x + w] |= region.mask
    return group_mask


def close_mask(mask: np.ndarray) -> np.ndarray:
    """
    1-pixel morphological close (dilate then erode) with a 3x3 neighborhood.

    The mask is zero-padded first so shapes touching the image border are
    neither clipped by the erosion nor grown past the border.
    """
    if mask.ndim != 2:
        raise ValidationError(f"Expected 2D mask, got {mask.ndim}D")

    structure = np.ones((3, 3), dtype=bool)
    padded = np.pad(mask.astype(bool), 1, mode='constant', constant_values=False)
    closed = ndimage.binary_closing(padded, structure=structure)
    return closed[1:-1, 1:-1]


def crop_to_content(mask: np.ndarray) -> Optional[RegionMask]:
    """Crop a frame-sized mask to its bounding box; None if empty."""
    ys, xs = np.nonzero(mask)
    if len(xs) == 0:
        return None

    min_x, max_x = int(xs.min()), int(xs.max())
    min_y, max_y = int(ys.min()), int(ys.max())
    cropped = np.array(mask[min_y:max_y + 1, min_x:max_x + 1], dtype=bool)
    return RegionMask(mask=cropped, min_x=min_x, min_y=min_y, pixel_count=len(xs))
