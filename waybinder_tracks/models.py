"""Dataclasses describing parsed tracks and derived results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import TrackValidationError, ValidationErrorKind
from .utils import format_iso

LatLon = Tuple[float, float]
EnhancedGeoJSON = Dict[str, Any]


class SimplificationLevel(str, Enum):
    """Named simplification tiers, from least to most aggressive."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @classmethod
    def parse(cls, value: "str | SimplificationLevel") -> "SimplificationLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(level.value for level in cls)
            raise ValueError(
                f"Unknown simplification level {value!r}; expected one of {names}"
            ) from None


@dataclass(frozen=True, slots=True)
class Trackpoint:
    """A single GPS fix."""

    index: int
    longitude: float
    latitude: float
    elevation: Optional[float] = None
    time: Optional[datetime] = None

    @property
    def latlon(self) -> LatLon:
        return (self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "longitude": self.longitude,
            "latitude": self.latitude,
            "elevation": self.elevation,
            "time": format_iso(self.time),
        }


@dataclass(frozen=True, slots=True)
class Track:
    """Ordered, non-empty sequence of trackpoints produced by one parse."""

    points: Tuple[Trackpoint, ...]
    file_type: str
    name: Optional[str] = None
    skipped_points: int = 0

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError("A track requires at least one point")

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[Trackpoint]:
        return iter(self.points)

    @property
    def has_elevation(self) -> bool:
        return any(pt.elevation is not None for pt in self.points)

    @property
    def has_time(self) -> bool:
        return any(pt.time is not None for pt in self.points)


@dataclass(frozen=True, slots=True)
class TrackStatistics:
    """Immutable summary of a track's motion statistics."""

    total_distance_km: float
    elevation_gain_m: float
    elevation_loss_m: float
    max_elevation_m: float
    min_elevation_m: float
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    moving_time_s: float
    total_time_s: float
    average_speed_kmh: float
    max_speed_kmh: float
    has_elevation_data: bool
    has_time_data: bool
    point_count: int
    average_speed_capped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Return the camelCase payload served to API consumers."""

        return {
            "totalDistance": self.total_distance_km,
            "elevationGain": self.elevation_gain_m,
            "elevationLoss": self.elevation_loss_m,
            "maxElevation": self.max_elevation_m,
            "minElevation": self.min_elevation_m,
            "startTime": format_iso(self.start_time),
            "endTime": format_iso(self.end_time),
            "movingTime": self.moving_time_s,
            "totalTime": self.total_time_s,
            "averageSpeed": self.average_speed_kmh,
            "maxSpeed": self.max_speed_kmh,
            "hasElevationData": self.has_elevation_data,
            "hasTimeData": self.has_time_data,
            "pointCount": self.point_count,
            "averageSpeedCapped": self.average_speed_capped,
        }


@dataclass(slots=True)
class ValidationResult:
    """Outcome of the cheap upload pre-filter."""

    valid: bool
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[ValidationErrorKind] = None

    def raise_for_error(self) -> None:
        if not self.valid:
            kind = self.error_kind or ValidationErrorKind.MALFORMED_CONTENT
            raise TrackValidationError(kind, self.error or "Invalid file")

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"valid": self.valid}
        if self.file_type is not None:
            payload["fileType"] = self.file_type
        if self.file_size is not None:
            payload["fileSize"] = self.file_size
        if self.error is not None:
            payload["error"] = self.error
            payload["kind"] = self.error_kind.value if self.error_kind else None
        return payload


@dataclass(slots=True)
class TrackPage:
    """A page of raw trackpoints plus pagination metadata."""

    points: List[Trackpoint]
    total: int
    page: int
    limit: int
    pages: int

    def meta(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "pages": self.pages,
        }
