"""Tiered point reduction for map rendering.

Tracks are projected into a local metric CRS and reduced with an
index-preserving Douglas-Peucker pass, so the retained vertices are always
a subsequence of the source points and per-point data (timestamps) can be
re-indexed exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
from numpy.typing import NDArray
from pyproj import CRS, Transformer

from .config import (
    CANCEL_CHECK_INTERVAL,
    SIMPLIFICATION_MAX_POINTS_HIGH,
    SIMPLIFICATION_MAX_POINTS_LOW,
    SIMPLIFICATION_MAX_POINTS_MEDIUM,
    SIMPLIFICATION_TOLERANCE_HIGH_M,
    SIMPLIFICATION_TOLERANCE_LOW_M,
    SIMPLIFICATION_TOLERANCE_MEDIUM_M,
)
from .geojson import build_feature_collection
from .models import EnhancedGeoJSON, SimplificationLevel, Track
from .utils import check_cancelled

LOGGER = logging.getLogger(__name__)

MetricArray = NDArray[np.float64]
IndexArray = NDArray[np.intp]

_REDUCING_LEVELS = (
    SimplificationLevel.HIGH,
    SimplificationLevel.MEDIUM,
    SimplificationLevel.LOW,
)


@dataclass(frozen=True, slots=True)
class SimplificationPolicy:
    """Tolerance and point budget applied for one tier."""

    level: SimplificationLevel
    tolerance_m: float
    max_points: Optional[int]


def build_policies(
    tolerances_m: Sequence[float] = (
        SIMPLIFICATION_TOLERANCE_HIGH_M,
        SIMPLIFICATION_TOLERANCE_MEDIUM_M,
        SIMPLIFICATION_TOLERANCE_LOW_M,
    ),
    max_points: Sequence[int] = (
        SIMPLIFICATION_MAX_POINTS_HIGH,
        SIMPLIFICATION_MAX_POINTS_MEDIUM,
        SIMPLIFICATION_MAX_POINTS_LOW,
    ),
) -> Dict[SimplificationLevel, SimplificationPolicy]:
    """Build the tier table for high, medium and low (in that order).

    Tolerances may not decrease and budgets may not increase from high to
    low; together with the nesting of Douglas-Peucker results this keeps
    ``count(high) >= count(medium) >= count(low)``.
    """

    if len(tolerances_m) != 3 or len(max_points) != 3:
        raise ValueError("Expected one tolerance and one budget per reducing tier")
    if any(b < a for a, b in zip(tolerances_m, tolerances_m[1:])):
        raise ValueError("Simplification tolerances must not decrease from high to low")
    if any(b > a for a, b in zip(max_points, max_points[1:])):
        raise ValueError("Simplification budgets must not increase from high to low")
    if min(max_points) < 2:
        raise ValueError("Simplification budgets must keep at least two points")
    policies = {
        level: SimplificationPolicy(level, float(tol), int(cap))
        for level, tol, cap in zip(_REDUCING_LEVELS, tolerances_m, max_points)
    }
    policies[SimplificationLevel.NONE] = SimplificationPolicy(
        SimplificationLevel.NONE, 0.0, None
    )
    return policies


POLICIES: Mapping[SimplificationLevel, SimplificationPolicy] = build_policies()


def simplify(
    track: Track,
    level: SimplificationLevel | str,
    *,
    cancel_event: threading.Event | None = None,
    policies: Mapping[SimplificationLevel, SimplificationPolicy] | None = None,
) -> EnhancedGeoJSON:
    """Return the ``EnhancedGeoJSON`` for ``track`` at the requested tier."""

    resolved = SimplificationLevel.parse(level)
    return simplify_all(
        track, [resolved], cancel_event=cancel_event, policies=policies
    )[resolved]


def simplify_all(
    track: Track,
    levels: Iterable[SimplificationLevel | str] | None = None,
    *,
    cancel_event: threading.Event | None = None,
    policies: Mapping[SimplificationLevel, SimplificationPolicy] | None = None,
    progress: Callable[[SimplificationLevel, int, int], None] | None = None,
) -> Dict[SimplificationLevel, EnhancedGeoJSON]:
    """Simplify ``track`` for several tiers, projecting the points only once.

    ``progress`` is called after each tier with ``(level, done, total)``.
    """

    table = POLICIES if policies is None else policies
    resolved = [SimplificationLevel.parse(level) for level in (levels or SimplificationLevel)]
    metric: Optional[MetricArray] = None
    results: Dict[SimplificationLevel, EnhancedGeoJSON] = {}
    for done, level in enumerate(resolved, start=1):
        check_cancelled(cancel_event)
        policy = table[level]
        if level is SimplificationLevel.NONE or len(track) < 3:
            indices: Sequence[int] = range(len(track))
        else:
            if metric is None:
                metric = project_track(track)
            kept = douglas_peucker(metric, policy.tolerance_m, cancel_event=cancel_event)
            if policy.max_points is not None:
                kept = decimate_indices(kept, policy.max_points)
            indices = kept.tolist()
        results[level] = build_feature_collection(
            track, indices, level=level, tolerance_m=policy.tolerance_m
        )
        LOGGER.debug(
            "Simplified %d -> %d points at level=%s (tolerance=%.1fm)",
            len(track),
            len(indices),
            level.value,
            policy.tolerance_m,
        )
        if progress is not None:
            progress(level, done, len(resolved))
    return results


def douglas_peucker(
    points: MetricArray,
    tolerance_m: float,
    *,
    cancel_event: threading.Event | None = None,
) -> IndexArray:
    """Return indices of the vertices kept by Douglas-Peucker.

    Iterative rather than recursive so very long tracks cannot exhaust the
    stack. First and last indices are always kept. The split vertex of every
    range does not depend on the tolerance, so a larger tolerance keeps a
    subset of the vertices a smaller one keeps.
    """

    count = len(points)
    if count < 3 or tolerance_m <= 0:
        return np.arange(count, dtype=np.intp)
    keep = np.zeros(count, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, count - 1)]
    processed = 0
    next_check = CANCEL_CHECK_INTERVAL
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue
        processed += end - start - 1
        if processed >= next_check:
            check_cancelled(cancel_event)
            next_check = processed + CANCEL_CHECK_INTERVAL
        distances = _segment_distances(points[start + 1 : end], points[start], points[end])
        offset = int(np.argmax(distances))
        if distances[offset] > tolerance_m:
            split = start + 1 + offset
            keep[split] = True
            stack.append((split, end))
            stack.append((start, split))
    return np.flatnonzero(keep)


def decimate_indices(indices: IndexArray, max_points: int) -> IndexArray:
    """Down-sample an index array while preserving the endpoints."""

    max_points = max(2, max_points)
    count = indices.shape[0]
    if count <= max_points:
        return indices
    picks = np.linspace(0, count - 1, num=max_points, dtype=int)
    return indices[picks]


def project_track(track: Track) -> MetricArray:
    """Project track points into a local metric coordinate system."""

    lats = np.asarray([pt.latitude for pt in track.points], dtype=float)
    lons = np.asarray([pt.longitude for pt in track.points], dtype=float)
    transformer = _build_local_transformer(lats, lons)
    xs, ys = transformer.transform(lons, lats)
    metric = np.column_stack((xs, ys)).astype(float, copy=False)
    if not np.all(np.isfinite(metric)):
        LOGGER.warning("Projection produced non-finite coordinates; using equirectangular")
        metric = _equirectangular(lats, lons)
    return metric


def _segment_distances(
    points: MetricArray, start: NDArray[np.float64], end: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Distance from each point to the segment ``start``-``end``."""

    seg = end - start
    seg_len_sq = float(np.dot(seg, seg))
    rel = points - start
    if seg_len_sq == 0.0:
        # Closed loops: the chord collapses to a point.
        return np.linalg.norm(rel, axis=1)
    t = np.clip(rel @ seg / seg_len_sq, 0.0, 1.0)
    nearest = start + t[:, None] * seg
    return np.linalg.norm(points - nearest, axis=1)


def _build_local_transformer(
    lats: NDArray[np.float64], lons: NDArray[np.float64]
) -> Transformer:
    """Build a local UTM transformer centred on the provided coordinates."""

    mean_lat = float(np.mean(lats))
    mean_lon = float(np.mean(lons))
    zone = int((mean_lon + 180.0) // 6.0) + 1
    zone = max(1, min(zone, 60))
    if mean_lat >= 0:
        epsg = 32600 + zone
    else:
        epsg = 32700 + zone
    try:
        target_crs = CRS.from_epsg(epsg)
    except Exception:
        target_crs = CRS.from_epsg(3857)
    return Transformer.from_crs(CRS.from_epsg(4326), target_crs, always_xy=True)


def _equirectangular(
    lats: NDArray[np.float64], lons: NDArray[np.float64]
) -> MetricArray:
    radius_m = 6371000.0
    phi0 = np.radians(float(np.mean(lats)))
    xs = np.radians(lons) * np.cos(phi0) * radius_m
    ys = np.radians(lats) * radius_m
    return np.column_stack((xs, ys))


__all__: List[str] = [
    "SimplificationPolicy",
    "POLICIES",
    "build_policies",
    "simplify",
    "simplify_all",
    "douglas_peucker",
    "decimate_indices",
    "project_track",
]
