"""Command-line interface for hotspotvec."""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from hotspotvec.batch import DEFAULT_FRAME_PATTERN, find_images, process_batch
from hotspotvec.export import build_export, load_color_map, write_export
from hotspotvec.preview import save_stages
from hotspotvec.raster_ingest import load_image
from hotspotvec.types import (
    BOUNDARY_METHODS,
    COLOR_MODES,
    SIMPLIFY_MODES,
    ExtractionConfig,
    FrameResult,
    ValidationError,
    VectorizationError,
)

logger = logging.getLogger(__name__)

# CLI flag -> ExtractionConfig field
_CONFIG_FLAGS = {
    "mode": "color_mode",
    "min_area": "min_area_pixels",
    "epsilon": "epsilon",
    "tolerance": "color_tolerance",
    "group_delta_e": "group_delta_e",
    "simplify": "simplify_mode",
    "min_angle": "min_angle_degrees",
    "min_edge": "min_edge_pixels",
    "boundary": "boundary_method",
    "snap_step": "snap_step",
}


def parse_seed(value: str):
    """Parse ``X,Y`` or ``none`` for --background-seed."""
    if value.strip().lower() == "none":
        return None
    try:
        x, y = (int(v) for v in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y or none, got {value!r}")
    return (x, y)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="hotspotvec",
        description="Extract hotspot polygons from flat-color raster frames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hotspotvec frames/ -o hotspots.json
  hotspotvec map_001.png map_002.png -o out.json --mode exact --tolerance 4
  hotspotvec frames/ -o out.json --color-map labels.json --global-ids
  hotspotvec frames/ -o out.json --save-stages debug/ --workers 1
        """,
    )

    parser.add_argument("inputs", nargs="+", help="Image files or folders of frames")
    parser.add_argument(
        "-o", "--output", default="hotspots.json", help="Output JSON path (default: hotspots.json)"
    )
    parser.add_argument("--config", default=None, help="JSON file with extraction settings")

    parser.add_argument("--mode", choices=COLOR_MODES, default=None,
                        help="Color classification: exact seed color or perceptual Lab clusters")
    parser.add_argument("--min-area", type=int, default=None,
                        help="Minimum region area in pixels (default: 1000)")
    parser.add_argument("--epsilon", "-e", type=float, default=None,
                        help="Simplification epsilon in pixels (default: 0.8)")
    parser.add_argument("--tolerance", type=int, default=None,
                        help="Per-channel RGB tolerance in exact mode (default: 10)")
    parser.add_argument("--group-delta-e", type=float, default=None,
                        help="Lab Delta E grouping threshold in perceptual mode (default: 10)")
    parser.add_argument("--simplify", choices=SIMPLIFY_MODES, default=None,
                        help="Polygon simplification (default: angle)")
    parser.add_argument("--min-angle", type=float, default=None,
                        help="Corners turning at least this many degrees are kept (default: 10)")
    parser.add_argument("--min-edge", type=float, default=None,
                        help="Minimum edge length in pixels for angle mode (default: 2)")
    parser.add_argument("--boundary", choices=BOUNDARY_METHODS, default=None,
                        help="Boundary tracer (default: marching_squares)")
    parser.add_argument("--no-close", action="store_true",
                        help="Skip the 1px morphological close on perceptual masks")
    parser.add_argument("--snap-step", type=int, default=None,
                        help="Snap RGB channels to multiples of this step before processing")
    parser.add_argument("--background-seed", type=parse_seed, default=argparse.SUPPRESS,
                        metavar="X,Y|none", help="Background sample pixel (default: 0,0)")

    parser.add_argument("--frame-regex", default=DEFAULT_FRAME_PATTERN,
                        help=f"Regex for series and frame number (default: {DEFAULT_FRAME_PATTERN})")
    parser.add_argument("--color-map", default=None, help="JSON map of #RRGGBB colors to labels")
    parser.add_argument("--global-ids", action="store_true",
                        help="Use the label alone as item id instead of label;frame")
    parser.add_argument("--workers", type=int, default=None,
                        help="Worker processes (default: CPU count)")
    parser.add_argument("--save-stages", default=None, metavar="DIR",
                        help="Save preview images for every frame into DIR")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    return parser


def build_config(parsed: argparse.Namespace) -> ExtractionConfig:
    """
    Merge the optional --config file with explicit command-line flags.

    Raises:
        ValidationError: If the config file or a flag value is invalid
    """
    data = {}
    if parsed.config:
        path = Path(parsed.config)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Config {path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError(f"Config {path} must be a JSON object")

    for flag, name in _CONFIG_FLAGS.items():
        value = getattr(parsed, flag)
        if value is not None:
            data[name] = value
    if parsed.no_close:
        data["close_gaps"] = False
    if hasattr(parsed, "background_seed"):
        data["background_seed"] = parsed.background_seed

    return ExtractionConfig.from_dict(data)


def _report(done: int, total: int, result: FrameResult):
    name = Path(result.source).name
    if result.ok:
        print(f"  [{done}/{total}] frame {result.frame}: {name} -> {result.region_count} regions")
    else:
        print(f"  [{done}/{total}] frame {result.frame}: {name} FAILED ({result.error})", file=sys.stderr)


def main(args: Optional[list] = None) -> int:
    """Main entry point for CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )

    try:
        config = build_config(parsed)
        color_map = load_color_map(parsed.color_map) if parsed.color_map else {}
        files = find_images(parsed.inputs)
    except (ValidationError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not files:
        print("Error: no images found", file=sys.stderr)
        return 1

    print(f"Processing {len(files)} frames")
    print(f"  Mode: {config.color_mode}")
    print(f"  Simplify: {config.simplify_mode} (epsilon {config.epsilon})")
    print(f"  Min area: {config.min_area_pixels}")

    try:
        batch = process_batch(
            files, config, frame_pattern=parsed.frame_regex,
            workers=parsed.workers, on_frame=_report
        )
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not batch.frames:
        print("Error: no frame could be processed", file=sys.stderr)
        return 1

    if parsed.save_stages:
        for result in batch.frames:
            try:
                image = load_image(result.source)
            except (VectorizationError, OSError) as e:
                logger.warning(f"Cannot reload {result.source} for stages: {e}")
                image = None
            save_stages(result, image, parsed.save_stages)

    document = build_export(
        batch, color_map, global_ids=parsed.global_ids,
        config=config, frame_pattern=parsed.frame_regex
    )
    output_path = write_export(parsed.output, document)

    print(f"\nDone: {len(batch.frames)} frames, {len(document['items'])} items")
    if batch.failures:
        print(f"  Skipped {len(batch.failures)} frames", file=sys.stderr)
    print(f"  Colors: {', '.join(batch.unique_colors())}")
    print(f"  Output: {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
