"""Activity track service (application layer).

Wraps the processor and a track store behind the query operations the web
layer exposes for an activity: upload with progress, GeoJSON at a given
simplification tier, statistics and paginated raw trackpoints. Every method
returns a ``{"success": ...}`` envelope instead of raising.
"""

from __future__ import annotations

from datetime import datetime
import logging
import math
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from ..config import (
    DEFAULT_SIMPLIFICATION_LEVEL,
    TRACKPOINTS_DEFAULT_LIMIT,
    TRACKPOINTS_MAX_LIMIT,
)
from ..errors import ProcessingCancelled, TrackProcessingError
from ..models import SimplificationLevel, TrackPage, Trackpoint
from ..processing import (
    ProcessingRequest,
    ProcessingResult,
    ProgressMessage,
    TrackProcessor,
    WorkerMessage,
)
from ..utils import parse_iso_datetime

Envelope = Dict[str, Any]
TimeRange = Tuple[datetime, datetime]


class TrackStore(Protocol):
    """Persistence boundary for processed tracks, keyed by activity id."""

    def save(self, activity_id: str, result: ProcessingResult) -> None: ...

    def get(self, activity_id: str) -> Optional[ProcessingResult]: ...


class InMemoryTrackStore:
    def __init__(self) -> None:
        self._items: Dict[str, ProcessingResult] = {}
        self._lock = threading.Lock()

    def save(self, activity_id: str, result: ProcessingResult) -> None:
        with self._lock:
            self._items[activity_id] = result

    def get(self, activity_id: str) -> Optional[ProcessingResult]:
        with self._lock:
            return self._items.get(activity_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class ActivityTrackService:
    def __init__(
        self,
        processor: TrackProcessor | None = None,
        store: TrackStore | None = None,
    ) -> None:
        self._owns_processor = processor is None
        self.processor = processor or TrackProcessor()
        self.store: TrackStore = store if store is not None else InMemoryTrackStore()
        self._log = logging.getLogger(self.__class__.__name__)

    def close(self) -> None:
        if self._owns_processor:
            self.processor.shutdown()

    def __enter__(self) -> "ActivityTrackService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def upload(
        self,
        file_bytes: bytes,
        filename: str,
        journey_id: str,
        activity_id: str | None = None,
        progress: Callable[[int], None] | None = None,
    ) -> Envelope:
        """Process an uploaded file and store the result under an activity.

        ``progress`` receives whole percentages (0-100) as the worker
        advances. A new activity id is generated when none is given.
        """

        resolved_id = activity_id or uuid4().hex
        request = ProcessingRequest(
            file_bytes=file_bytes,
            filename=filename,
            activity_id=resolved_id,
            journey_id=journey_id,
        )

        def on_message(message: WorkerMessage) -> None:
            if progress is None or not isinstance(message, ProgressMessage):
                return
            try:
                progress(message.percent)
            except Exception:
                self._log.debug(
                    "Progress callback failed for activity %s",
                    resolved_id,
                    exc_info=True,
                )

        try:
            result = self.processor.process(request, on_message=on_message)
        except TrackProcessingError as exc:
            self._log.info("Upload of %s rejected: %s", filename, exc)
            return _failure(str(exc), exc.kind)
        except ProcessingCancelled:
            return _failure("Processing was cancelled", ProcessingCancelled.kind)
        except Exception as exc:
            self._log.error(
                "Upload of %s failed unexpectedly", filename, exc_info=True
            )
            return _failure(str(exc) or exc.__class__.__name__, "internal_error")
        self.store.save(resolved_id, result)
        self._log.info(
            "Stored track for activity %s (journey %s, %d points)",
            resolved_id,
            journey_id,
            len(result.track),
        )
        return {
            "success": True,
            "data": {
                "activityId": resolved_id,
                "stats": result.statistics.to_dict(),
            },
        }

    def get_geojson(
        self,
        activity_id: str,
        simplification_level: SimplificationLevel | str = DEFAULT_SIMPLIFICATION_LEVEL,
    ) -> Envelope:
        try:
            level = SimplificationLevel.parse(simplification_level)
        except ValueError as exc:
            return _failure(str(exc), "invalid_argument")
        result = self.store.get(activity_id)
        if result is None:
            return _not_found()
        try:
            return {"success": True, "data": result.geojson_for(level)}
        except KeyError:
            return _failure(
                f"Simplification level {level.value!r} is not available for this activity",
                "not_found",
            )

    def get_stats(self, activity_id: str) -> Envelope:
        result = self.store.get(activity_id)
        if result is None:
            return _not_found()
        return {"success": True, "data": result.statistics.to_dict()}

    def get_trackpoints(
        self,
        activity_id: str,
        limit: int = TRACKPOINTS_DEFAULT_LIMIT,
        page: int = 1,
        time_range: str | Tuple[Any, Any] | None = None,
    ) -> Envelope:
        """Return one page of full-resolution points.

        ``time_range`` is ``"start,end"`` (ISO-8601) or a ``(start, end)``
        pair. Points without a timestamp are never filtered out.
        """

        if limit < 1 or page < 1:
            return _failure("limit and page must be positive integers", "invalid_argument")
        limit = min(limit, TRACKPOINTS_MAX_LIMIT)
        try:
            window = parse_time_range(time_range)
        except ValueError as exc:
            return _failure(str(exc), "invalid_argument")
        result = self.store.get(activity_id)
        if result is None:
            return _not_found()
        page_data = paginate(filter_by_time(result.track.points, window), limit, page)
        return {
            "success": True,
            "data": [pt.to_dict() for pt in page_data.points],
            "meta": page_data.meta(),
        }


def parse_time_range(value: str | Tuple[Any, Any] | None) -> Optional[TimeRange]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        parts = [part.strip() for part in value.split(",")]
        if len(parts) != 2:
            raise ValueError("time range must be 'start,end'")
        raw_start, raw_end = parts
    else:
        raw_start, raw_end = value
    start = parse_iso_datetime(raw_start)
    end = parse_iso_datetime(raw_end)
    if start is None or end is None:
        raise ValueError("time range bounds must be ISO-8601 timestamps")
    if start > end:
        raise ValueError("time range start must not be after its end")
    return start, end


def filter_by_time(
    points: Tuple[Trackpoint, ...] | List[Trackpoint], window: Optional[TimeRange]
) -> List[Trackpoint]:
    if window is None:
        return list(points)
    start, end = window
    return [pt for pt in points if pt.time is None or start <= pt.time <= end]


def paginate(points: List[Trackpoint], limit: int, page: int) -> TrackPage:
    total = len(points)
    offset = (page - 1) * limit
    return TrackPage(
        points=points[offset : offset + limit],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit),
    )


def _failure(message: str, kind: str) -> Envelope:
    return {"success": False, "error": message, "kind": kind}


def _not_found() -> Envelope:
    return _failure("No GPS data found for the provided activity ID", "not_found")


__all__ = [
    "ActivityTrackService",
    "InMemoryTrackStore",
    "TrackStore",
    "filter_by_time",
    "paginate",
    "parse_time_range",
]
