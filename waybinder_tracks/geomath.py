"""Pure geodesic helpers used by the statistics aggregator."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from .config import EARTH_RADIUS_KM, STOPPED_THRESHOLD_KMH
from .models import LatLon


@dataclass(frozen=True, slots=True)
class ElevationDelta:
    """Ascent and descent contributed by one segment (both >= 0)."""

    gain: float
    loss: float


_NO_DELTA = ElevationDelta(0.0, 0.0)


def haversine_distance_km(a: LatLon, b: LatLon) -> float:
    """Great-circle distance between two ``(lat, lon)`` pairs in kilometres."""

    lat1, lon1 = a
    lat2, lon2 = b
    if lat1 == lat2 and lon1 == lon2:
        return 0.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Clamp guards asin against rounding just above 1 for antipodal points.
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, max(0.0, h))))


def haversine_distances_km(
    lats: Sequence[float], lons: Sequence[float]
) -> NDArray[np.float64]:
    """Vectorised distances between consecutive points (length ``n - 1``)."""

    lat = np.radians(np.asarray(lats, dtype=float))
    lon = np.radians(np.asarray(lons, dtype=float))
    if lat.size < 2:
        return np.zeros(0, dtype=float)
    d_phi = np.diff(lat)
    d_lambda = np.diff(lon)
    h = (
        np.sin(d_phi / 2) ** 2
        + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))


def initial_bearing_deg(a: LatLon, b: LatLon) -> float:
    """Initial compass bearing from ``a`` to ``b`` in ``[0, 360)`` degrees."""

    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    d_lambda = lon2 - lon1
    x = math.sin(d_lambda) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(
        d_lambda
    )
    return math.degrees(math.atan2(x, y)) % 360.0


def elevation_delta(
    prev_elevation: Optional[float], curr_elevation: Optional[float]
) -> ElevationDelta:
    """Split an elevation change into gain/loss.

    Missing samples contribute nothing; no interpolation is attempted.
    """

    if prev_elevation is None or curr_elevation is None:
        return _NO_DELTA
    diff = curr_elevation - prev_elevation
    if diff > 0:
        return ElevationDelta(diff, 0.0)
    if diff < 0:
        return ElevationDelta(0.0, -diff)
    return _NO_DELTA


def segment_speed_kmh(distance_km: float, dt_seconds: float) -> float:
    """Speed over a segment; 0 for zero or negative durations."""

    if dt_seconds <= 0:
        return 0.0
    return distance_km / dt_seconds * 3600.0


def is_moving(
    segment_speed: float, stopped_threshold_kmh: float = STOPPED_THRESHOLD_KMH
) -> bool:
    """True when the segment speed is above the stopped threshold."""

    return segment_speed > stopped_threshold_kmh
