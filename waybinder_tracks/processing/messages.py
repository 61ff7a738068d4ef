"""Request, result and message types exchanged with processing workers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from ..models import (
    EnhancedGeoJSON,
    SimplificationLevel,
    Track,
    TrackStatistics,
)
from ..validation import extension_from_filename, normalise_extension


class ProcessingState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PARSING = "parsing"
    SIMPLIFYING_AGGREGATING = "simplifying_aggregating"
    COMPLETE = "complete"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {ProcessingState.COMPLETE, ProcessingState.ERRORED, ProcessingState.CANCELLED}
)

ALL_LEVELS: Tuple[SimplificationLevel, ...] = tuple(SimplificationLevel)


@dataclass(slots=True)
class ProcessingRequest:
    """Everything a worker needs to process one uploaded file.

    ``file_type`` is the declared extension; when omitted it is taken from
    ``filename``. ``activity_id``/``journey_id`` are opaque correlation keys.
    """

    file_bytes: bytes
    filename: str = ""
    file_type: Optional[str] = None
    activity_id: Optional[str] = None
    journey_id: Optional[str] = None
    levels: Tuple[SimplificationLevel, ...] = ALL_LEVELS
    stopped_threshold_kmh: Optional[float] = None
    require_timestamps: bool = False
    max_size_bytes: Optional[int] = None

    def __post_init__(self) -> None:
        # Workers only ever see their own immutable copy of the payload.
        if not isinstance(self.file_bytes, bytes):
            self.file_bytes = bytes(self.file_bytes)
        self.levels = tuple(SimplificationLevel.parse(level) for level in self.levels)
        if not self.levels:
            raise ValueError("At least one simplification level is required")

    @property
    def declared_extension(self) -> str:
        if self.file_type:
            return normalise_extension(self.file_type)
        return extension_from_filename(self.filename)


@dataclass(slots=True)
class ProcessingResult:
    """Statistics and per-tier GeoJSON derived from a single parsed track."""

    job_id: str
    file_type: str
    track: Track
    statistics: TrackStatistics
    geojson: Dict[SimplificationLevel, EnhancedGeoJSON]
    activity_id: Optional[str] = None
    journey_id: Optional[str] = None

    @property
    def skipped_points(self) -> int:
        return self.track.skipped_points

    def geojson_for(self, level: SimplificationLevel | str) -> EnhancedGeoJSON:
        resolved = SimplificationLevel.parse(level)
        try:
            return self.geojson[resolved]
        except KeyError:
            raise KeyError(f"Level {resolved.value!r} was not produced for this track") from None

    def to_dict(self, level: SimplificationLevel | str | None = None) -> Dict[str, Any]:
        """Return the ``{geoJson, stats}`` payload for one tier.

        Defaults to the most detailed tier that was produced.
        """

        if level is None:
            resolved = next(lvl for lvl in _DETAIL_ORDER if lvl in self.geojson)
        else:
            resolved = SimplificationLevel.parse(level)
        return {
            "geoJson": self.geojson_for(resolved),
            "stats": self.statistics.to_dict(),
        }


_DETAIL_ORDER = (
    SimplificationLevel.NONE,
    SimplificationLevel.HIGH,
    SimplificationLevel.MEDIUM,
    SimplificationLevel.LOW,
)


@dataclass(frozen=True, slots=True)
class ProgressMessage:
    job_id: str
    state: ProcessingState
    percent: int

    terminal = False


@dataclass(frozen=True, slots=True)
class CompletedMessage:
    job_id: str
    result: ProcessingResult

    terminal = True


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    """Terminal failure, tagged with the phase that failed."""

    job_id: str
    phase: ProcessingState
    kind: str
    message: str
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)

    terminal = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "kind": self.kind,
            "phase": self.phase.value,
        }


WorkerMessage = Union[ProgressMessage, CompletedMessage, ErrorMessage]
