"""Color snapping and posterization applied before region growth."""
import logging
from typing import Dict

import numpy as np

from hotspotvec.color_classifier import rgb_to_hex
from hotspotvec.types import RasterImage

logger = logging.getLogger(__name__)


def snap_to_grid(image: RasterImage, step: int = 2) -> RasterImage:
    """
    Round every RGB channel to the nearest multiple of ``step``.

    Removes one-level anti-aliasing and encoder noise so that nominally flat
    regions compare equal. Alpha is preserved.

    Args:
        image: Source frame
        step: Grid step; values <= 1 return the image unchanged

    Returns:
        New RasterImage with snapped colors
    """
    if step <= 1:
        return image

    pixels = np.array(image.pixels, copy=True)
    rgb = pixels[..., :3].astype(np.float64)
    # Round half up
    snapped = np.floor(rgb / step + 0.5) * step
    pixels[..., :3] = np.clip(snapped, 0, 255).astype(np.uint8)
    return RasterImage(width=image.width, height=image.height, pixels=pixels)


def posterize(image: RasterImage, levels: int) -> RasterImage:
    """
    Floor every RGB channel to ``levels`` evenly spaced values.

    Args:
        image: Source frame
        levels: Number of levels per channel (>= 2)

    Returns:
        New RasterImage with posterized colors
    """
    if levels < 2:
        raise ValueError(f"levels must be >= 2, got {levels}")

    step = max(1, 256 // levels)
    pixels = np.array(image.pixels, copy=True)
    pixels[..., :3] = np.clip((pixels[..., :3] // step) * step, 0, 255)
    logger.debug(f"Posterized with step {step} ({levels} levels)")
    return RasterImage(width=image.width, height=image.height, pixels=pixels)


def color_histogram(image: RasterImage) -> Dict[str, int]:
    """Pixel count per distinct color, keyed by hex, most frequent first."""
    packed = image.packed_rgb().ravel()
    values, counts = np.unique(packed, return_counts=True)
    order = np.argsort(-counts, kind="stable")
    histogram = {}
    for idx in order:
        p = int(values[idx])
        histogram[rgb_to_hex(((p >> 16) & 0xFF, (p >> 8) & 0xFF, p & 0xFF))] = int(counts[idx])
    return histogram
