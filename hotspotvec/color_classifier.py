"""Color keys, Lab conversion and the exact / perceptual region classifiers."""
import logging
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np
from skimage.color import rgb2lab

from hotspotvec.types import ColorKey, ExtractionConfig, RasterImage, RGB, ValidationError

logger = logging.getLogger(__name__)


def rgb_to_lab(rgb: Union[np.ndarray, Sequence[int]]) -> np.ndarray:
    """
    Convert sRGB values to CIE Lab (D65, 2 degree observer).

    Args:
        rgb: RGB values in range [0, 255], shape (3,) or (..., 3)

    Returns:
        Lab values with the same leading shape
    """
    arr = np.asarray(rgb, dtype=np.float64)
    if arr.shape[-1] != 3:
        raise ValidationError(f"Expected trailing RGB axis of size 3, got {arr.shape}")
    single = arr.ndim == 1
    # rgb2lab wants an image-like array in [0, 1]
    flat = arr.reshape(-1, 1, 3) / 255.0
    lab = rgb2lab(flat, illuminant="D65", observer="2").reshape(arr.shape)
    return lab if not single else lab.reshape(3)


def delta_e_76(lab1: np.ndarray, lab2: np.ndarray) -> Union[float, np.ndarray]:
    """CIE76 color difference (Euclidean distance in Lab)."""
    diff = np.asarray(lab1, dtype=np.float64) - np.asarray(lab2, dtype=np.float64)
    dist = np.sqrt(np.sum(diff * diff, axis=-1))
    return float(dist) if np.ndim(dist) == 0 else dist


def chebyshev_distance(a: Sequence[int], b: Sequence[int]) -> int:
    """max(|dr|, |dg|, |db|)"""
    return max(abs(int(a[0]) - int(b[0])), abs(int(a[1]) - int(b[1])), abs(int(a[2]) - int(b[2])))


def rgb_to_hex(rgb: Sequence[int]) -> str:
    r, g, b = (int(c) for c in rgb[:3])
    return f"#{r:02X}{g:02X}{b:02X}"


def hex_to_rgb(value: str) -> RGB:
    """
    Parse a `#RRGGBB` color.

    Raises:
        ValidationError: If the string is not a 6-digit hex color
    """
    text = value.strip()
    if text.startswith("#"):
        text = text[1:]
    if len(text) != 6:
        raise ValidationError(f"Not a #RRGGBB color: {value!r}")
    try:
        packed = int(text, 16)
    except ValueError as e:
        raise ValidationError(f"Not a #RRGGBB color: {value!r}") from e
    return unpack_rgb(packed)


def pack_rgb(r: int, g: int, b: int) -> int:
    return (int(r) << 16) | (int(g) << 8) | int(b)


def unpack_rgb(packed: int) -> RGB:
    packed = int(packed)
    return ((packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF)


class ExactColorClassifier:
    """Keys a region by its literal seed color, accepting pixels within a Chebyshev tolerance."""

    def __init__(self, tolerance: int = 0):
        if not 0 <= tolerance <= 255:
            raise ValueError(f"tolerance must be in 0-255, got {tolerance}")
        self.tolerance = int(tolerance)

    def classify(self, image: RasterImage, x: int, y: int) -> ColorKey:
        r, g, b = image.pixels[y, x, :3]
        return ColorKey(rgb=(int(r), int(g), int(b)))

    def accepts(self, key: ColorKey, packed: int) -> bool:
        r, g, b = key.rgb
        tol = self.tolerance
        return (
            abs(((packed >> 16) & 0xFF) - r) <= tol
            and abs(((packed >> 8) & 0xFF) - g) <= tol
            and abs((packed & 0xFF) - b) <= tol
        )


class PerceptualColorClassifier:
    """
    Greedy online clustering of colors in Lab space.

    Each color joins the first existing cluster whose centroid is within
    ``group_delta_e`` (CIE76); otherwise it seeds a new cluster. Centroids are
    never updated, so the representative of a cluster is the first pixel that
    created it. Results depend on the order colors are seen, which for the
    assembler is raster order.

    One instance serves one frame. Do not share instances across frames.
    """

    def __init__(self, group_delta_e: float = 10.0):
        if group_delta_e < 0:
            raise ValueError(f"group_delta_e must be >= 0, got {group_delta_e}")
        self.group_delta_e = float(group_delta_e)
        self.centroids: List[np.ndarray] = []
        self.representatives: List[RGB] = []
        self._memo: Dict[int, int] = {}
        self._lab_cache: Dict[int, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self.centroids)

    def prime(self, image: RasterImage) -> int:
        """
        Convert every distinct color of a frame to Lab in a single call.

        Returns:
            Number of distinct colors cached
        """
        packed = np.unique(image.packed_rgb())
        missing = np.array([p for p in packed.tolist() if p not in self._lab_cache], dtype=np.int64)
        if missing.size:
            rgb = np.stack([(missing >> 16) & 0xFF, (missing >> 8) & 0xFF, missing & 0xFF], axis=-1)
            labs = rgb_to_lab(rgb)
            for p, lab in zip(missing.tolist(), labs):
                self._lab_cache[p] = lab
        logger.debug(f"Primed Lab cache with {len(self._lab_cache)} colors")
        return len(self._lab_cache)

    def _lab(self, packed: int) -> np.ndarray:
        lab = self._lab_cache.get(packed)
        if lab is None:
            lab = rgb_to_lab(unpack_rgb(packed))
            self._lab_cache[packed] = lab
        return lab

    def cluster_for(self, r: int, g: int, b: int) -> int:
        return self.cluster_for_packed(pack_rgb(r, g, b))

    def cluster_for_packed(self, packed: int) -> int:
        cid = self._memo.get(packed)
        if cid is not None:
            return cid

        lab = self._lab(packed)
        for i, centroid in enumerate(self.centroids):
            if delta_e_76(lab, centroid) <= self.group_delta_e:
                cid = i
                break
        else:
            cid = len(self.centroids)
            self.centroids.append(lab)
            self.representatives.append(unpack_rgb(packed))
            logger.debug(f"New color cluster {cid}: {rgb_to_hex(self.representatives[-1])}")

        self._memo[packed] = cid
        return cid

    def key_for(self, cluster_id: int) -> ColorKey:
        return ColorKey(rgb=self.representatives[cluster_id], cluster_id=cluster_id)

    def classify(self, image: RasterImage, x: int, y: int) -> ColorKey:
        r, g, b = image.pixels[y, x, :3]
        return self.key_for(self.cluster_for(int(r), int(g), int(b)))

    def accepts(self, key: ColorKey, packed: int) -> bool:
        return self.cluster_for_packed(packed) == key.cluster_id


def make_classifier(config: ExtractionConfig):
    """Create a fresh classifier for one frame according to ``config.color_mode``."""
    if config.color_mode == "exact":
        return ExactColorClassifier(config.color_tolerance)
    return PerceptualColorClassifier(config.group_delta_e)
