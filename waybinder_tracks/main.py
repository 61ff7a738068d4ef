"""Command-line entry point: process one local track file.

Usage examples:

    # Statistics plus medium-detail GeoJSON, printed to stdout
    waybinder-tracks ride.gpx

    # Only the statistics, compact
    waybinder-tracks ride.fit --output stats --indent 0

    # Full-resolution GeoJSON written to a file
    waybinder-tracks ride.tcx --output geojson --level none --output-file ride.json
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Any, Dict, Sequence

from .config import DEFAULT_SIMPLIFICATION_LEVEL, MAX_UPLOAD_SIZE_BYTES
from .errors import ProcessingCancelled, TrackProcessingError
from .models import SimplificationLevel
from .processing import ProcessingRequest, ProgressMessage, TrackProcessor, WorkerMessage
from .utils import format_time, json_dumps

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PROCESSING_ERROR = 1
EXIT_INPUT_ERROR = 2


def _setup_logging(level: str = "INFO") -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=getattr(logging, level),
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waybinder-tracks",
        description="Validate, parse and summarise a GPX/KML/FIT/TCX track file",
    )
    parser.add_argument("path", help="Track file to process")
    parser.add_argument(
        "--level",
        default=DEFAULT_SIMPLIFICATION_LEVEL,
        choices=[level.value for level in SimplificationLevel],
        help=f"Simplification level for GeoJSON output (default: {DEFAULT_SIMPLIFICATION_LEVEL})",
    )
    parser.add_argument(
        "--output",
        choices=["all", "stats", "geojson"],
        default="all",
        help="What to print (default: all)",
    )
    parser.add_argument(
        "--output-file",
        help="Write the JSON output to this path instead of stdout",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indent; 0 for compact output (default: 2)",
    )
    parser.add_argument(
        "--require-timestamps",
        action="store_true",
        help="Fail when any point lacks a timestamp",
    )
    parser.add_argument(
        "--stopped-threshold",
        type=float,
        default=None,
        help="Speed (km/h) at or below which a segment counts as stopped",
    )
    parser.add_argument(
        "--max-size",
        type=int,
        default=MAX_UPLOAD_SIZE_BYTES,
        help="Maximum accepted file size in bytes",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Python logging level",
    )
    return parser


def _select_output(payload: Dict[str, Any], output: str) -> Any:
    if output == "stats":
        return payload["stats"]
    if output == "geojson":
        return payload["geoJson"]
    return payload


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _setup_logging(args.log_level)

    path = Path(args.path)
    try:
        file_bytes = path.read_bytes()
    except OSError as exc:
        LOGGER.error("Cannot read track file '%s': %s", path, exc)
        return EXIT_INPUT_ERROR

    level = SimplificationLevel.parse(args.level)
    request = ProcessingRequest(
        file_bytes=file_bytes,
        filename=path.name,
        levels=(level,),
        stopped_threshold_kmh=args.stopped_threshold,
        require_timestamps=args.require_timestamps,
        max_size_bytes=args.max_size,
    )

    def _progress(message: WorkerMessage) -> None:
        if isinstance(message, ProgressMessage):
            LOGGER.debug("%s: %s %d%%", path.name, message.state.value, message.percent)

    with TrackProcessor(max_workers=1) as processor:
        try:
            result = processor.process(request, on_message=_progress)
        except TrackProcessingError as exc:
            LOGGER.error("Failed to process '%s' (%s): %s", path, exc.kind, exc)
            return EXIT_PROCESSING_ERROR
        except ProcessingCancelled:
            LOGGER.error("Processing of '%s' was cancelled", path)
            return EXIT_PROCESSING_ERROR

    stats = result.statistics
    LOGGER.info(
        "%s: %d points, %.2f km, moving %s of %s",
        path.name,
        stats.point_count,
        stats.total_distance_km,
        format_time(stats.moving_time_s),
        format_time(stats.total_time_s),
    )
    if result.skipped_points:
        LOGGER.info("Skipped %d invalid point(s)", result.skipped_points)
    output = json_dumps(
        _select_output(result.to_dict(level), args.output),
        indent=args.indent or None,
    )
    if args.output_file:
        output_path = Path(args.output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(output)
        LOGGER.info("Output written to %s", output_path)
    else:
        sys.stdout.write(output + "\n")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
