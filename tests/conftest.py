"""Pytest configuration and fixtures."""
import numpy as np
import pytest
from PIL import Image

from helpers import make_rgba, paint, to_image
from hotspotvec.types import ExtractionConfig


@pytest.fixture
def white_square_image():
    """10x10 black frame with a 4x4 white square at (3, 3)."""
    arr = make_rgba(10, 10)
    paint(arr, 3, 3, 4, 4, (255, 255, 255))
    return to_image(arr)


@pytest.fixture
def exact_config():
    """Exact color matching that keeps every region and skips simplification."""
    return ExtractionConfig(
        color_mode="exact",
        color_tolerance=0,
        min_area_pixels=1,
        epsilon=0,
        simplify_mode="none",
    )


@pytest.fixture
def save_png(tmp_path):
    """Write an RGBA array to tmp_path/<name> and return the path."""
    def _save(name: str, arr: np.ndarray):
        path = tmp_path / name
        Image.fromarray(arr).save(path)
        return path
    return _save
