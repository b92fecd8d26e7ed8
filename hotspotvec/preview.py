"""Debug stage images: rasterized hotspot previews drawn with Pillow."""
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from PIL import Image, ImageDraw

from hotspotvec.types import FrameResult, RasterImage, Region

logger = logging.getLogger(__name__)

OUTLINE_COLOR = (255, 0, 255)


def _outline_for(rgb: Tuple[int, int, int]) -> Tuple[int, int, int]:
    # Contrast against the region fill
    r, g, b = rgb
    return (0, 0, 0) if (r * 299 + g * 587 + b * 114) > 128000 else (255, 255, 255)


def render_regions(regions: List[Region], size: Tuple[int, int]) -> Image.Image:
    """Fill every region polygon with its source color on a white canvas."""
    img = Image.new('RGB', size, (255, 255, 255))
    draw = ImageDraw.Draw(img)
    for region in regions:
        for polygon in region.polygons:
            points = [(float(x), float(y)) for x, y in polygon]
            if len(points) >= 3:
                draw.polygon(points, fill=region.color_key.rgb, outline=_outline_for(region.color_key.rgb))
    return img


def render_overlay(image: RasterImage, regions: List[Region], width: int = 1) -> Image.Image:
    """Draw region outlines and vertices over the source frame."""
    img = Image.fromarray(image.pixels[..., :3].copy())
    draw = ImageDraw.Draw(img)
    for region in regions:
        for polygon in region.polygons:
            points = [(float(x), float(y)) for x, y in polygon]
            if len(points) < 3:
                continue
            draw.line(points + points[:1], fill=OUTLINE_COLOR, width=width)
            for x, y in points:
                draw.rectangle([x - 1, y - 1, x + 1, y + 1], fill=OUTLINE_COLOR)
    return img


def save_stages(
    result: FrameResult,
    image: Optional[RasterImage],
    stages_dir: Union[str, Path]
) -> List[Path]:
    """
    Save preview images for one frame into ``stages_dir``.

    Files are prefixed with the frame number. Stage numbers are fixed
    (1 source, 2 regions, 3 overlay), so without a source image only stage 2
    is written. Failures to write a stage are logged and skipped.

    Returns:
        Paths of the stage files written
    """
    stages_dir = Path(stages_dir)
    stages_dir.mkdir(parents=True, exist_ok=True)
    prefix = f"frame_{result.frame:04d}"
    written = []

    stages = [(2, "regions", lambda: render_regions(result.regions, (result.width, result.height)))]
    if image is not None:
        stages.insert(0, (1, "source", lambda: Image.fromarray(image.pixels.copy())))
        stages.append((3, "overlay", lambda: render_overlay(image, result.regions)))

    for i, name, render in stages:
        output_path = stages_dir / f"{prefix}_stage_{i:02d}_{name}.png"
        try:
            render().save(output_path)
            written.append(output_path)
            print(f"  Saved stage: {output_path}")
        except OSError as e:
            logger.warning(f"Failed to save stage {output_path.name}: {e}")

    return written
