"""Batch processing of numbered frame series across worker processes."""
import logging
import os
import re
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, NamedTuple, Optional, Set, Tuple, Union

from hotspotvec.raster_ingest import load_image
from hotspotvec.region_assembler import RegionAssembler
from hotspotvec.types import ExtractionConfig, FrameResult, ValidationError, VectorizationError

logger = logging.getLogger(__name__)

DEFAULT_FRAME_PATTERN = r"([^_]+)_(\d+)"
IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.bmp', '.gif', '.tiff', '.webp'}

_NATURAL_SPLIT = re.compile(r"(\d+)")


class FrameId(NamedTuple):
    series: str
    frame: int


def compile_frame_pattern(pattern: str) -> "re.Pattern":
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValidationError(f"Invalid frame pattern {pattern!r}: {e}") from e


def parse_frame_from_name(name: str, pattern: Union[str, "re.Pattern"] = DEFAULT_FRAME_PATTERN) -> FrameId:
    """
    Extract (series, frame number) from a file name.

    With two capture groups, group 1 is the series and group 2 the frame
    number; an unmatched optional group 1 gives an empty series. Otherwise group 3 (or the only group) is the frame number.
    Names that do not match map to ("", 0).
    """
    rx = compile_frame_pattern(pattern) if isinstance(pattern, str) else pattern
    m = rx.search(name)
    if not m:
        return FrameId("", 0)

    groups = m.groups()
    if len(groups) >= 2 and groups[1]:
        series, number = groups[0] or "", groups[1]
    elif len(groups) >= 3:
        series, number = "", groups[2]
    elif len(groups) == 1:
        series, number = "", groups[0]
    else:
        return FrameId("", 0)

    try:
        return FrameId(series, int(number))
    except (TypeError, ValueError):
        logger.warning(f"Frame pattern matched non-numeric frame {number!r} in {name}")
        return FrameId(series, 0)


def natural_sort_key(name: Union[str, Path]) -> List:
    """Sort key treating digit runs as numbers: frame_2 < frame_10."""
    text = Path(name).name if isinstance(name, Path) else str(name)
    return [int(part) if part.isdigit() else part.lower() for part in _NATURAL_SPLIT.split(text)]


def find_images(paths: Iterable[Union[str, Path]], extensions: Optional[Set[str]] = None) -> List[Path]:
    """
    Expand files and folders into a naturally sorted list of image files.

    Raises:
        FileNotFoundError: If a given path does not exist
    """
    if extensions is None:
        extensions = IMAGE_EXTENSIONS

    images = set()
    for p in paths:
        p = Path(p)
        if not p.exists():
            raise FileNotFoundError(f"Input not found: {p}")
        if p.is_dir():
            images.update(f for f in p.iterdir() if f.is_file() and f.suffix.lower() in extensions)
        else:
            images.add(p)

    return sorted(images, key=natural_sort_key)


def process_file(
    path: Union[str, Path],
    config: Optional[ExtractionConfig] = None,
    frame_pattern: str = DEFAULT_FRAME_PATTERN
) -> FrameResult:
    """
    Decode and process a single frame file.

    Decoding and extraction errors do not propagate; they are returned as a
    FrameResult with ``error`` set and no regions.
    This is a module-level function to work with multiprocessing.
    """
    path = Path(path)
    series, frame = parse_frame_from_name(path.name, frame_pattern)

    try:
        image = load_image(path)
        return RegionAssembler(config).process(image, frame=frame, series=series, source=str(path))
    except (VectorizationError, OSError) as e:
        logger.warning(f"Skipping {path.name}: {e}")
        return FrameResult(frame=frame, series=series, width=0, height=0, source=str(path), error=str(e))


@dataclass
class BatchResult:
    """Outcome of a batch run, frames sorted by frame number."""
    frames: List[FrameResult] = field(default_factory=list)
    failures: List[FrameResult] = field(default_factory=list)
    series: str = ""

    @property
    def base_size(self) -> Optional[Tuple[int, int]]:
        """(width, height) of the first successful frame."""
        if not self.frames:
            return None
        return (self.frames[0].width, self.frames[0].height)

    @property
    def region_count(self) -> int:
        return sum(f.region_count for f in self.frames)

    def unique_colors(self) -> List[str]:
        """Region colors across all frames, in order of first appearance."""
        seen = {}
        for frame in self.frames:
            for region in frame.regions:
                seen.setdefault(region.color_hex, None)
        return list(seen)


def process_batch(
    paths: Iterable[Union[str, Path]],
    config: Optional[ExtractionConfig] = None,
    frame_pattern: str = DEFAULT_FRAME_PATTERN,
    workers: Optional[int] = None,
    on_frame: Optional[Callable[[int, int, FrameResult], None]] = None
) -> BatchResult:
    """
    Process a series of frame files in parallel.

    Files are submitted in natural name order; every worker decodes its own
    file and owns its own visit map. Results are re-sorted by frame number.

    Args:
        paths: Image files
        config: Extraction configuration shared read-only by all workers
        frame_pattern: Regex used to parse series and frame number
        workers: Worker processes; defaults to os.cpu_count(), 1 runs in-process
        on_frame: Called as on_frame(done, total, result) after each frame

    Returns:
        BatchResult
    """
    config = config or ExtractionConfig()
    compile_frame_pattern(frame_pattern)
    files = sorted((Path(p) for p in paths), key=natural_sort_key)
    if not files:
        return BatchResult()

    workers = workers or os.cpu_count() or 1
    workers = max(1, min(workers, len(files)))
    logger.info(f"Processing {len(files)} frames using {workers} workers...")

    results: List[FrameResult] = []
    if workers == 1:
        for f in files:
            result = process_file(f, config, frame_pattern)
            results.append(result)
            if on_frame is not None:
                on_frame(len(results), len(files), result)
    else:
        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(process_file, f, config, frame_pattern): f for f in files
            }
            for future in as_completed(futures):
                result = future.result()
                results.append(result)
                if on_frame is not None:
                    on_frame(len(results), len(files), result)

    order = {str(f): i for i, f in enumerate(files)}
    results.sort(key=lambda r: order.get(r.source, 0))
    series = next((r.series for r in results if r.series), "")

    # Stable sort keeps natural file order among equal frame numbers
    results.sort(key=lambda r: r.frame)

    batch = BatchResult(
        frames=[r for r in results if r.ok],
        failures=[r for r in results if not r.ok],
        series=series,
    )

    seen_frames = set()
    for r in batch.frames:
        if r.frame in seen_frames:
            logger.warning(f"Duplicate frame number {r.frame} ({r.source})")
        seen_frames.add(r.frame)

    logger.info(
        f"Batch: {len(batch.frames)} frames, {len(batch.failures)} failed, "
        f"{batch.region_count} regions"
    )
    return batch
