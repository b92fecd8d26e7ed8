"""Synthetic image builders shared by the tests."""
import numpy as np

from hotspotvec.types import RasterImage


def make_rgba(width: int, height: int, color=(0, 0, 0), alpha: int = 255) -> np.ndarray:
    """Solid (H, W, 4) uint8 canvas."""
    arr = np.zeros((height, width, 4), dtype=np.uint8)
    arr[..., :3] = color
    arr[..., 3] = alpha
    return arr


def paint(arr: np.ndarray, x: int, y: int, w: int, h: int, color, alpha: int = 255) -> np.ndarray:
    """Fill an axis-aligned rectangle in place."""
    arr[y:y + h, x:x + w, :3] = color
    arr[y:y + h, x:x + w, 3] = alpha
    return arr


def to_image(arr: np.ndarray) -> RasterImage:
    return RasterImage(width=arr.shape[1], height=arr.shape[0], pixels=arr)
