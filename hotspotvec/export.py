"""JSON export of hotspot items with validated color-to-label maps."""
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from hotspotvec.batch import BatchResult, DEFAULT_FRAME_PATTERN
from hotspotvec.types import ExtractionConfig, FrameResult, ValidationError

logger = logging.getLogger(__name__)

ColorMap = Dict[str, str]

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

FORMAT_VERSION = 1


def parse_color_map(obj: Any) -> ColorMap:
    """
    Validate a color map of ``#RRGGBB`` keys to non-empty string labels.

    Keys are normalized to upper case so they match Region.color_hex.

    Raises:
        ValidationError: If the map is not a mapping, a key is not a 6-digit
            hex color, a label is not a non-empty string, or two keys collide
            after normalization
    """
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValidationError(f"Color map must be a JSON object, got {type(obj).__name__}")

    color_map: ColorMap = {}
    for key, label in obj.items():
        if not isinstance(key, str) or not _HEX_COLOR.match(key):
            raise ValidationError(f"Color map key {key!r} is not a #RRGGBB color")
        if not isinstance(label, str) or not label.strip():
            raise ValidationError(f"Color map label for {key} must be a non-empty string")
        normalized = key.upper()
        if normalized in color_map:
            raise ValidationError(f"Color map has duplicate color {normalized}")
        color_map[normalized] = label

    return color_map


def load_color_map(path: Union[str, Path]) -> ColorMap:
    """
    Load and validate a color map JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the file is not valid JSON or the map is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Color map not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Color map {path} is not valid JSON: {e}") from e

    color_map = parse_color_map(data)
    logger.info(f"Loaded {len(color_map)} color labels from {path}")
    return color_map


def _round_points(polygon: np.ndarray, ndigits: int = 3) -> List[List[float]]:
    return [[round(float(x), ndigits), round(float(y), ndigits)] for x, y in polygon]


def export_items(
    frames: Iterable[FrameResult],
    color_map: Optional[ColorMap] = None,
    global_ids: bool = False
) -> List[Dict[str, Any]]:
    """
    Flatten frames into export items, one per polygon.

    The item id is the mapped label (or the hex color when unmapped); unless
    ``global_ids`` is set it is suffixed with ``;<frame>``.
    """
    color_map = color_map or {}
    items = []
    for frame in frames:
        for region in frame.regions:
            color = region.color_hex
            mapped = color_map.get(color, color)
            item_id = mapped if global_ids else f"{mapped};{frame.frame}"
            for polygon in region.polygons:
                items.append({
                    "id": item_id,
                    "frame": frame.frame,
                    "color": color,
                    "points": _round_points(polygon),
                    "area": int(region.pixel_area),
                })
    return items


def build_export(
    batch: BatchResult,
    color_map: Optional[ColorMap] = None,
    global_ids: bool = False,
    config: Optional[ExtractionConfig] = None,
    frame_pattern: str = DEFAULT_FRAME_PATTERN
) -> Dict[str, Any]:
    """
    Build the hotspot document for a processed batch.

    Returns:
        Dictionary with ``meta``, ``base``, ``colorMap``, ``frames`` and ``items``
    """
    config = config or ExtractionConfig()
    color_map = color_map or {}
    base = batch.base_size or (0, 0)

    unmapped = [c for c in batch.unique_colors() if c not in color_map]
    if color_map and unmapped:
        logger.info(f"{len(unmapped)} colors have no label: {', '.join(unmapped)}")

    return {
        "meta": {
            "version": FORMAT_VERSION,
            "series": batch.series,
            "frameRegex": frame_pattern,
            "globalIds": global_ids,
            "config": config.to_dict(),
            "failed": [Path(f.source).name for f in batch.failures],
        },
        "base": {"w": base[0], "h": base[1]},
        "colorMap": dict(color_map),
        "frames": [f.frame for f in batch.frames],
        "items": export_items(batch.frames, color_map, global_ids),
    }


def write_export(path: Union[str, Path], document: Dict[str, Any]) -> Path:
    """Write an export document as indented JSON, creating parent folders."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=2)
    logger.info(f"Wrote {len(document.get('items', []))} items to {path}")
    return path
