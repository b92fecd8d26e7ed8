"""Per-frame orchestration: background pass, classification, growth, tracing, simplification."""
import logging
from typing import Callable, Dict, List, Optional, Union

import numpy as np

from hotspotvec.boundary_extraction import trace
from hotspotvec.color_classifier import PerceptualColorClassifier, make_classifier
from hotspotvec.quantization import snap_to_grid
from hotspotvec.raster_ingest import ingest_from_array
from hotspotvec.region_grower import (
    VisitMap,
    close_mask,
    crop_to_content,
    grow_region,
    grow_region_by_group,
    mark_background,
    merge_into,
)
from hotspotvec.simplify import SimplifyParams, simplify_polygon
from hotspotvec.types import (
    ExtractionConfig,
    FrameResult,
    RasterImage,
    Region,
    RegionMask,
    ValidationError,
    VisitState,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Scanlines between progress callbacks
PROGRESS_INTERVAL = 64

_UNVISITED = int(VisitState.UNVISITED)


class RegionAssembler:
    """
    Turns one frame into hotspot regions.

    Each call to process() creates its own visit map and classifier, so a
    single assembler can be reused across frames; only the configuration is
    shared.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()
        self.simplify_params = SimplifyParams.from_config(self.config)

    def process(
        self,
        image: Union[RasterImage, np.ndarray],
        frame: int = 0,
        series: str = "",
        progress: Optional[ProgressCallback] = None,
        source: str = ""
    ) -> FrameResult:
        """
        Extract regions from a single frame.

        Args:
            image: Decoded frame (RasterImage or uint8 array)
            frame: Frame number recorded in the result
            series: Series prefix recorded in the result
            progress: Called as progress(row, height) every 64 scanlines
                and once at the end
            source: Source path recorded in the result

        Returns:
            FrameResult with regions in raster discovery order

        Raises:
            ValidationError: If the image is malformed
        """
        if isinstance(image, np.ndarray):
            image = ingest_from_array(image)
        if not isinstance(image, RasterImage):
            raise ValidationError(f"Expected RasterImage or ndarray, got {type(image).__name__}")

        config = self.config
        if config.snap_step > 1:
            image = snap_to_grid(image, config.snap_step)

        visited = VisitMap.fresh(image.width, image.height)
        background = mark_background(
            image, visited, config.background_seed, config.exclude_transparent
        )
        logger.info(
            f"Frame {frame}: {image.width}x{image.height}, "
            f"{background} background pixels, mode={config.color_mode}"
        )

        classifier = make_classifier(config)
        if isinstance(classifier, PerceptualColorClassifier):
            regions = self._process_perceptual(image, visited, classifier, progress)
        else:
            regions = self._process_exact(image, visited, classifier, progress)

        logger.info(f"Frame {frame}: {len(regions)} regions")
        return FrameResult(
            frame=frame,
            series=series,
            width=image.width,
            height=image.height,
            regions=regions,
            background_pixels=background,
            source=source,
        )

    def _scan(self, image: RasterImage, visited: VisitMap, progress: Optional[ProgressCallback]):
        """Yield unvisited pixels in raster order, reporting progress per block of rows."""
        w, h = image.width, image.height
        state = visited.buffer
        for y in range(h):
            if progress is not None and y % PROGRESS_INTERVAL == 0:
                progress(y, h)
            row = y * w
            for x in range(w):
                if state[row + x] == _UNVISITED:
                    yield x, y
        if progress is not None:
            progress(h, h)

    def _reject(self, visited: VisitMap, region: RegionMask):
        h, w = region.mask.shape
        window = visited.state[region.min_y:region.min_y + h, region.min_x:region.min_x + w]
        window[region.mask] = int(VisitState.EXCLUDED)

    def _polygons(self, mask: np.ndarray, offset) -> List[np.ndarray]:
        loops = trace(mask, self.config.boundary_method, offset)
        polygons = []
        for loop in loops:
            simplified = simplify_polygon(loop, self.simplify_params)
            if len(simplified) >= 3:
                polygons.append(simplified)
        return polygons

    def _process_exact(self, image, visited, classifier, progress) -> List[Region]:
        min_area = self.config.min_area_pixels
        regions = []

        for x, y in self._scan(image, visited, progress):
            key = classifier.classify(image, x, y)
            grown = grow_region(image, visited, (x, y), key, tolerance=classifier.tolerance)
            if grown is None:
                continue
            if grown.pixel_count < min_area:
                self._reject(visited, grown)
                continue

            polygons = self._polygons(grown.mask, grown.offset)
            if not polygons:
                logger.debug(f"Region {key.hex} at ({x}, {y}) produced no polygons")
                continue
            regions.append(Region(color_key=key, polygons=polygons, pixel_area=grown.pixel_count))

        return regions

    def _process_perceptual(self, image, visited, classifier, progress) -> List[Region]:
        min_area = self.config.min_area_pixels
        classifier.prime(image)
        packed = image.packed_list()
        w = image.width

        group_masks: Dict[int, np.ndarray] = {}
        group_areas: Dict[int, int] = {}
        fragments: Dict[int, int] = {}

        for x, y in self._scan(image, visited, progress):
            cluster_id = classifier.cluster_for_packed(packed[y * w + x])
            grown = grow_region_by_group(image, visited, (x, y), cluster_id, classifier)
            if grown is None:
                continue
            if grown.pixel_count < min_area:
                self._reject(visited, grown)
                continue

            if cluster_id not in group_masks:
                group_masks[cluster_id] = np.zeros((image.height, image.width), dtype=bool)
                group_areas[cluster_id] = 0
                fragments[cluster_id] = 0
            merge_into(group_masks[cluster_id], grown)
            group_areas[cluster_id] += grown.pixel_count
            fragments[cluster_id] += 1

        regions = []
        for cluster_id, mask in group_masks.items():
            if self.config.close_gaps:
                mask = close_mask(mask)
            cropped = crop_to_content(mask)
            if cropped is None:
                continue

            key = classifier.key_for(cluster_id)
            polygons = self._polygons(cropped.mask, cropped.offset)
            logger.debug(
                f"Cluster {cluster_id} {key.hex}: {fragments[cluster_id]} fragments, "
                f"{group_areas[cluster_id]} px, {len(polygons)} loops"
            )
            if not polygons:
                continue
            regions.append(Region(color_key=key, polygons=polygons, pixel_area=group_areas[cluster_id]))

        return regions


def extract_regions(
    image: Union[RasterImage, np.ndarray],
    config: Optional[ExtractionConfig] = None
) -> List[Region]:
    """
    Convenience function to extract hotspot regions from one image.

    Args:
        image: Decoded frame (RasterImage or uint8 array)
        config: Optional extraction configuration

    Returns:
        List of regions
    """
    return RegionAssembler(config).process(image).regions
