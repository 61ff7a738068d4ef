"""Benchmark the track pipeline (parse, aggregate, simplify) on large files."""

from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone
import math
import statistics
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Late imports rely on the adjusted sys.path above.
from waybinder_tracks.models import Track  # noqa: E402
from waybinder_tracks.parsers import parse_track  # noqa: E402
from waybinder_tracks.processing import ProcessingRequest, TrackProcessor  # noqa: E402
from waybinder_tracks.simplification import simplify_all  # noqa: E402
from waybinder_tracks.track_aggregation import aggregate  # noqa: E402


@dataclass(slots=True)
class StageDurations:
    """Timing measurements (in seconds) for one pipeline run."""

    parse: float
    aggregate: float
    simplify: float
    end_to_end: float

    @property
    def total(self) -> float:
        return self.parse + self.aggregate + self.simplify


@dataclass(slots=True)
class BenchmarkSummary:
    point_count: int
    iterations: int
    mean_parse_ms: float
    mean_aggregate_ms: float
    mean_simplify_ms: float
    mean_total_ms: float
    mean_end_to_end_ms: float
    worst_end_to_end_ms: float


def _build_gpx(point_count: int) -> bytes:
    """Generate a winding GPX track with one fix per second."""

    start = datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)
    rows: List[str] = []
    for idx in range(point_count):
        lat = 46.0 + idx * 2.0e-5
        lon = 8.0 + 3.0e-4 * math.sin(idx / 40.0)
        ele = 800.0 + 40.0 * math.sin(idx / 500.0)
        when = (start + timedelta(seconds=idx)).strftime("%Y-%m-%dT%H:%M:%SZ")
        rows.append(
            f'<trkpt lat="{lat:.7f}" lon="{lon:.7f}"><ele>{ele:.1f}</ele>'
            f"<time>{when}</time></trkpt>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<gpx version="1.1" xmlns="http://www.topografix.com/GPX/1/1">'
        f"<trk><name>Benchmark</name><trkseg>{''.join(rows)}</trkseg></trk></gpx>"
    ).encode("utf-8")


def _run_iteration(payload: bytes, processor: TrackProcessor) -> StageDurations:
    start = time.perf_counter()
    track: Track = parse_track(payload, "gpx")
    parse = time.perf_counter() - start

    start = time.perf_counter()
    aggregate(track)
    aggregate_dur = time.perf_counter() - start

    start = time.perf_counter()
    simplify_all(track)
    simplify = time.perf_counter() - start

    # End-to-end timing must include parsing.
    processor.context.clear()
    start = time.perf_counter()
    processor.process(ProcessingRequest(file_bytes=payload, filename="bench.gpx"))
    end_to_end = time.perf_counter() - start

    return StageDurations(
        parse=parse,
        aggregate=aggregate_dur,
        simplify=simplify,
        end_to_end=end_to_end,
    )


def run_benchmark(point_count: int, iterations: int) -> BenchmarkSummary:
    """Benchmark the pipeline and return aggregated timings."""

    if point_count < 10000:
        raise ValueError("point_count must be at least 10,000")
    if iterations <= 0:
        raise ValueError("iterations must be positive")

    payload = _build_gpx(point_count)
    durations: List[StageDurations] = []
    with TrackProcessor(max_workers=1) as processor:
        for _ in range(iterations):
            durations.append(_run_iteration(payload, processor))

    return BenchmarkSummary(
        point_count=point_count,
        iterations=iterations,
        mean_parse_ms=statistics.fmean(d.parse for d in durations) * 1000.0,
        mean_aggregate_ms=statistics.fmean(d.aggregate for d in durations) * 1000.0,
        mean_simplify_ms=statistics.fmean(d.simplify for d in durations) * 1000.0,
        mean_total_ms=statistics.fmean(d.total for d in durations) * 1000.0,
        mean_end_to_end_ms=statistics.fmean(d.end_to_end for d in durations) * 1000.0,
        worst_end_to_end_ms=max(d.end_to_end for d in durations) * 1000.0,
    )


def _format_summary(summary: BenchmarkSummary) -> Dict[str, float]:
    return {
        "point_count": summary.point_count,
        "iterations": summary.iterations,
        "mean_parse_ms": summary.mean_parse_ms,
        "mean_aggregate_ms": summary.mean_aggregate_ms,
        "mean_simplify_ms": summary.mean_simplify_ms,
        "mean_total_ms": summary.mean_total_ms,
        "mean_end_to_end_ms": summary.mean_end_to_end_ms,
        "worst_end_to_end_ms": summary.worst_end_to_end_ms,
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Benchmark parsing, statistics and simplification on large tracks",
    )
    parser.add_argument(
        "--points",
        type=int,
        default=50000,
        help="Number of points in the synthetic GPX track",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=3,
        help="Number of repetitions for averaging",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    summary = run_benchmark(args.points, args.iterations)
    for key, value in _format_summary(summary).items():
        if key in {"point_count", "iterations"}:
            print(f"{key}: {value}")
        else:
            print(f"{key}: {value:.3f}")


if __name__ == "__main__":
    main()
