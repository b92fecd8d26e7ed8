"""Raster image ingestion into RGBA frames."""
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image
from PIL import ImageOps

from hotspotvec.types import RasterImage, ValidationError, VectorizationError


def load_image(path: Union[str, Path]) -> RasterImage:
    """
    Load an image file as an RGBA frame.

    Args:
        path: Path to image file

    Returns:
        RasterImage with straight (non-premultiplied) RGBA pixels

    Raises:
        FileNotFoundError: If file doesn't exist
        VectorizationError: If file cannot be decoded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise VectorizationError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            # Apply EXIF orientation transformation to handle rotation
            img = ImageOps.exif_transpose(img)
            if img.mode != 'RGBA':
                img = img.convert('RGBA')
            pixels = np.array(img, dtype=np.uint8)
    except OSError as e:
        raise VectorizationError(f"Failed to load image {path}: {e}") from e

    height, width = pixels.shape[:2]
    return RasterImage(width=width, height=height, pixels=pixels)


def ingest_from_array(image: np.ndarray) -> RasterImage:
    """
    Create a RasterImage from a numpy array.

    Args:
        image: uint8 array (H, W), (H, W, 3) or (H, W, 4); grayscale and RGB
            inputs get an opaque alpha channel

    Returns:
        RasterImage
    """
    image = np.asarray(image)

    if image.ndim == 2:
        # Grayscale - convert to RGB
        image = np.stack([image] * 3, axis=-1)

    if image.ndim != 3:
        raise ValidationError(f"Expected 3D array, got {image.ndim}D")

    if image.size == 0:
        raise ValidationError("Image array is empty")

    if image.dtype != np.uint8:
        if image.min() < 0 or image.max() > 255:
            raise ValidationError(f"Pixel values out of 0-255 range for dtype {image.dtype}")
        image = image.astype(np.uint8)

    if image.shape[2] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=-1)
    elif image.shape[2] != 4:
        raise ValidationError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    height, width = image.shape[:2]
    return RasterImage(width=width, height=height, pixels=np.ascontiguousarray(image))
