"""Derive ``TrackStatistics`` from a parsed track.

Pure aggregation: walks consecutive point pairs once and never mutates the
track, so it can run concurrently with simplification on the same object.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Iterable, List, Sequence

from .config import CANCEL_CHECK_INTERVAL, STOPPED_THRESHOLD_KMH
from .errors import InsufficientDataError, MissingTimestampsError
from .geomath import elevation_delta, haversine_distance_km, is_moving, segment_speed_kmh
from .models import Track, Trackpoint, TrackStatistics
from .utils import check_cancelled

LOGGER = logging.getLogger(__name__)


def aggregate(
    track: Track | Sequence[Trackpoint],
    *,
    stopped_threshold_kmh: float | None = None,
    require_timestamps: bool = False,
    cancel_event: threading.Event | None = None,
) -> TrackStatistics:
    """Compute distance, elevation, time and speed statistics.

    A single-point track yields a degenerate summary (all distance and speed
    fields zero) rather than an error. With ``require_timestamps`` any point
    lacking a timestamp raises ``MissingTimestampsError``; otherwise time
    fields degrade to zero and ``has_time_data`` reports what was available.
    """

    points = _points_of(track)
    if not points:
        raise InsufficientDataError("Track contains no points")
    if require_timestamps:
        missing = sum(1 for pt in points if pt.time is None)
        if missing:
            raise MissingTimestampsError(
                f"{missing} of {len(points)} points have no timestamp"
            )
    threshold = STOPPED_THRESHOLD_KMH if stopped_threshold_kmh is None else stopped_threshold_kmh

    total_distance = 0.0
    gain = 0.0
    loss = 0.0
    moving_time = 0.0
    max_speed = 0.0

    prev = points[0]
    for position in range(1, len(points)):
        if position % CANCEL_CHECK_INTERVAL == 0:
            check_cancelled(cancel_event)
        curr = points[position]
        distance = haversine_distance_km(prev.latlon, curr.latlon)
        total_distance += distance

        delta = elevation_delta(prev.elevation, curr.elevation)
        gain += delta.gain
        loss += delta.loss

        if prev.time is not None and curr.time is not None:
            dt = (curr.time - prev.time).total_seconds()
            speed = segment_speed_kmh(distance, dt)
            if speed > max_speed:
                max_speed = speed
            if is_moving(speed, threshold):
                moving_time += dt
        prev = curr

    elevations = [pt.elevation for pt in points if pt.elevation is not None]
    times = [pt.time for pt in points if pt.time is not None]
    start_time = times[0] if times else None
    end_time = times[-1] if times else None
    total_time = 0.0
    if start_time is not None and end_time is not None:
        total_time = max(0.0, (end_time - start_time).total_seconds())
    # Out-of-order timestamps can make the positive segments outlast the
    # first-to-last span.
    moving_time = min(moving_time, total_time)

    average_speed = 0.0
    speed_capped = False
    if moving_time > 0:
        average_speed = total_distance / (moving_time / 3600.0)
        # Distance covered while stopped or untimed has no moving time.
        if average_speed > max_speed and not math.isclose(average_speed, max_speed):
            LOGGER.debug(
                "Average speed %.2f km/h capped at max speed %.2f km/h",
                average_speed,
                max_speed,
            )
            average_speed = max_speed
            speed_capped = True

    stats = TrackStatistics(
        total_distance_km=total_distance,
        elevation_gain_m=gain,
        elevation_loss_m=loss,
        max_elevation_m=max(elevations) if elevations else 0.0,
        min_elevation_m=min(elevations) if elevations else 0.0,
        start_time=start_time,
        end_time=end_time,
        moving_time_s=moving_time,
        total_time_s=total_time,
        average_speed_kmh=average_speed,
        max_speed_kmh=max_speed,
        has_elevation_data=bool(elevations),
        has_time_data=bool(times),
        point_count=len(points),
        average_speed_capped=speed_capped,
    )
    LOGGER.debug(
        "Aggregated %d points: %.3f km, +%.1f/-%.1f m, moving %.0fs of %.0fs",
        len(points),
        total_distance,
        gain,
        loss,
        moving_time,
        total_time,
    )
    return stats


def _points_of(track: Track | Iterable[Trackpoint]) -> List[Trackpoint]:
    if isinstance(track, Track):
        return list(track.points)
    return list(track)
