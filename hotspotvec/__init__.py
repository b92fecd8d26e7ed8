"""Hotspot polygon extraction from flat-color raster frames."""
from hotspotvec.types import (
    ColorKey,
    ExtractionConfig,
    FrameResult,
    RasterImage,
    Region,
    RegionMask,
    ValidationError,
    VectorizationError,
    VisitState,
)
from hotspotvec.region_assembler import RegionAssembler, extract_regions

__version__ = "0.1.0"

__all__ = [
    "ColorKey",
    "ExtractionConfig",
    "FrameResult",
    "RasterImage",
    "Region",
    "RegionMask",
    "ValidationError",
    "VectorizationError",
    "VisitState",
    "RegionAssembler",
    "extract_regions",
]
