"""Conversion of (simplified) tracks into the ``EnhancedGeoJSON`` contract."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from shapely.geometry import LineString, Point, mapping

from .models import EnhancedGeoJSON, SimplificationLevel, Track, Trackpoint
from .utils import format_iso


def build_feature_collection(
    track: Track,
    indices: Sequence[int],
    *,
    level: SimplificationLevel,
    tolerance_m: float = 0.0,
) -> EnhancedGeoJSON:
    """Build a FeatureCollection from the points at ``indices``.

    Two or more points give a ``LineString``; a single point gives a
    ``Point``. ``coordTimes`` is built from the same indices as the
    coordinates, so both arrays always line up.
    """

    points = [track.points[i] for i in indices]
    if not points:
        raise ValueError("Cannot build GeoJSON without points")
    with_elevation = all(pt.elevation is not None for pt in points)
    positions = [_position(pt, with_elevation) for pt in points]
    if len(positions) >= 2:
        geometry = LineString(positions)
    else:
        geometry = Point(positions[0])

    properties: Dict[str, Any] = {
        "name": track.name,
        "simplificationLevel": level.value,
        "pointCount": len(points),
        "sourcePointCount": len(track),
        "toleranceM": tolerance_m,
    }
    if track.has_time:
        properties["coordTimes"] = [format_iso(pt.time) for pt in points]

    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "bbox": list(geometry.bounds),
                "properties": properties,
                "geometry": _geometry_dict(geometry),
            }
        ],
    }


def line_feature(geojson: EnhancedGeoJSON) -> Optional[Dict[str, Any]]:
    """Return the first feature of ``geojson`` (the track feature)."""

    features = geojson.get("features") or []
    return features[0] if features else None


def _position(point: Trackpoint, with_elevation: bool) -> tuple[float, ...]:
    if with_elevation and point.elevation is not None:
        return (point.longitude, point.latitude, point.elevation)
    return (point.longitude, point.latitude)


def _geometry_dict(geometry: LineString | Point) -> Dict[str, Any]:
    """Shapely's GeoJSON mapping with JSON-native lists instead of tuples."""

    raw = mapping(geometry)
    coordinates = raw["coordinates"]
    if raw["type"] == "Point":
        converted: List[Any] = list(coordinates)
    else:
        converted = [list(position) for position in coordinates]
    return {"type": raw["type"], "coordinates": converted}
