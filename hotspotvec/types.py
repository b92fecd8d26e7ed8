"""Core types for the hotspot extraction pipeline."""
from dataclasses import dataclass, field, asdict
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple
import numpy as np

# Type aliases
Polygon = np.ndarray  # (N, 2) float64, implicitly closed
RGB = Tuple[int, int, int]

COLOR_MODES = ("exact", "perceptual")
SIMPLIFY_MODES = ("rdp", "angle", "none")
BOUNDARY_METHODS = ("marching_squares", "moore")


class VisitState(IntEnum):
    """Per-pixel bookkeeping state for one frame's pass."""
    UNVISITED = 0
    INCLUDED = 1
    EXCLUDED = 2


@dataclass
class RasterImage:
    """Decoded RGBA raster for one frame."""
    width: int
    height: int
    pixels: np.ndarray  # (H, W, 4) uint8
    _packed: Optional[List[int]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValidationError(
                f"Image dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.pixels.shape != (self.height, self.width, 4):
            raise ValidationError(
                f"Pixel array shape {self.pixels.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )
        if self.pixels.dtype != np.uint8:
            raise ValidationError(f"Expected uint8 pixels, got {self.pixels.dtype}")
        # Read-only view; the caller's array stays writable
        self.pixels = self.pixels.view()
        self.pixels.setflags(write=False)

    @classmethod
    def from_buffer(cls, width: int, height: int, data) -> "RasterImage":
        """
        Wrap a flat RGBA byte buffer.

        Raises:
            ValidationError: If the buffer is empty, not a multiple of 4,
                or inconsistent with the dimensions
        """
        buf = np.frombuffer(bytes(data), dtype=np.uint8)
        if buf.size == 0:
            raise ValidationError("Pixel buffer is empty")
        if buf.size % 4 != 0:
            raise ValidationError(
                f"Pixel buffer length {buf.size} is not a multiple of 4"
            )
        if buf.size != width * height * 4:
            raise ValidationError(
                f"Pixel buffer length {buf.size} does not match "
                f"{width}x{height}x4 = {width * height * 4}"
            )
        return cls(width=width, height=height, pixels=buf.reshape(height, width, 4).copy())

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[..., :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def packed_rgb(self) -> np.ndarray:
        """(H, W) int array of (r << 16) | (g << 8) | b."""
        rgb = self.pixels[..., :3].astype(np.int32)
        return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]

    def packed_list(self) -> List[int]:
        """Flat row-major packed colors, cached for per-pixel access."""
        if self._packed is None:
            self._packed = self.packed_rgb().ravel().tolist()
        return self._packed


@dataclass(frozen=True)
class ColorKey:
    """Exact seed color or perceptual cluster id plus its representative RGB."""
    rgb: RGB
    cluster_id: Optional[int] = None

    @property
    def hex(self) -> str:
        r, g, b = self.rgb
        return f"#{r:02X}{g:02X}{b:02X}"


@dataclass
class RegionMask:
    """Tight bounding-box mask produced by one region growth."""
    mask: np.ndarray  # (bh, bw) bool
    min_x: int
    min_y: int
    pixel_count: int

    @property
    def width(self) -> int:
        return self.mask.shape[1]

    @property
    def height(self) -> int:
        return self.mask.shape[0]

    @property
    def offset(self) -> Tuple[int, int]:
        return (self.min_x, self.min_y)


@dataclass
class Region:
    """Extracted hotspot: one color, one or more closed loops."""
    color_key: ColorKey
    polygons: List[Polygon] = field(default_factory=list)
    pixel_area: int = 0
    manual: bool = False

    @property
    def color_hex(self) -> str:
        return self.color_key.hex

    @property
    def centroid(self) -> Optional[Tuple[float, float]]:
        """Centroid of the largest loop."""
        # geometry imports types
        from hotspotvec.geometry import centroid, polygon_area

        if not self.polygons:
            return None
        largest = max(self.polygons, key=polygon_area)
        return centroid(largest)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "colorHex": self.color_hex,
            "polygons": [np.asarray(p, dtype=float).tolist() for p in self.polygons],
            "pixelArea": int(self.pixel_area),
            "manual": self.manual,
        }


@dataclass
class FrameResult:
    """Regions and diagnostics for one processed image."""
    frame: int
    width: int
    height: int
    regions: List[Region] = field(default_factory=list)
    background_pixels: int = 0
    series: str = ""
    source: str = ""
    error: Optional[str] = None

    @property
    def region_count(self) -> int:
        return len(self.regions)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExtractionConfig:
    """Configuration for hotspot extraction."""
    # Region filtering
    min_area_pixels: int = 1000

    # Color classification
    color_mode: str = "perceptual"
    color_tolerance: int = 10  # Chebyshev, exact mode
    group_delta_e: float = 10.0  # Lab CIE76, perceptual mode
    snap_step: int = 0  # 0 = no RGB grid snapping

    # Background
    background_seed: Optional[Tuple[int, int]] = (0, 0)
    exclude_transparent: bool = True

    # Boundary extraction
    boundary_method: str = "marching_squares"
    close_gaps: bool = True

    # Simplification
    simplify_mode: str = "angle"
    epsilon: float = 0.8
    min_angle_degrees: float = 10.0
    min_edge_pixels: float = 2.0

    def __post_init__(self):
        if self.color_mode not in COLOR_MODES:
            raise ValueError(f"color_mode must be one of {COLOR_MODES}, got {self.color_mode!r}")
        if self.simplify_mode not in SIMPLIFY_MODES:
            raise ValueError(
                f"simplify_mode must be one of {SIMPLIFY_MODES}, got {self.simplify_mode!r}"
            )
        if self.boundary_method not in BOUNDARY_METHODS:
            raise ValueError(
                f"boundary_method must be one of {BOUNDARY_METHODS}, got {self.boundary_method!r}"
            )
        if self.min_area_pixels < 0:
            raise ValueError(f"min_area_pixels must be >= 0, got {self.min_area_pixels}")
        if not 0 <= self.color_tolerance <= 255:
            raise ValueError(f"color_tolerance must be in 0-255, got {self.color_tolerance}")
        if self.group_delta_e < 0:
            raise ValueError(f"group_delta_e must be >= 0, got {self.group_delta_e}")
        if self.epsilon < 0:
            raise ValueError(f"epsilon must be >= 0, got {self.epsilon}")
        if self.min_angle_degrees < 0 or self.min_edge_pixels < 0:
            raise ValueError("min_angle_degrees and min_edge_pixels must be >= 0")
        if self.snap_step < 0:
            raise ValueError(f"snap_step must be >= 0, got {self.snap_step}")
        if self.background_seed is not None:
            self.background_seed = tuple(int(v) for v in self.background_seed)
            if len(self.background_seed) != 2:
                raise ValueError(f"background_seed must be (x, y), got {self.background_seed}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionConfig":
        """Build a config from a JSON-style mapping, rejecting unknown keys."""
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"Unknown config keys: {sorted(unknown)}")
        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid config: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.background_seed is not None:
            data["background_seed"] = list(self.background_seed)
        return data


class VectorizationError(Exception):
    """Base exception for hotspot extraction errors."""
    pass


class ValidationError(VectorizationError):
    """Malformed input: buffers, masks, config or color maps."""
    pass
