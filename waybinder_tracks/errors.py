"""Central error types used across the track processing core."""

from __future__ import annotations

from enum import Enum


class ValidationErrorKind(str, Enum):
    """Reasons the upload pre-filter can reject a file."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    SIZE_EXCEEDED = "size_exceeded"
    MALFORMED_CONTENT = "malformed_content"


class TrackProcessingError(RuntimeError):
    """Base error for track processing failures.

    ``kind`` is a stable machine-checkable identifier; the message is meant
    for humans.
    """

    kind = "track_processing_error"


class TrackValidationError(TrackProcessingError):
    """Raised when an upload fails the validation pre-filter."""

    def __init__(self, kind: ValidationErrorKind, message: str) -> None:
        super().__init__(message)
        self.validation_kind = kind
        self.kind = kind.value


class ParseError(TrackProcessingError):
    """Raised when a track file cannot be decoded into points."""

    kind = "parse_error"

    def __init__(self, file_format: str, reason: str) -> None:
        super().__init__(f"Failed to parse {file_format.upper()} file: {reason}")
        self.format = file_format
        self.reason = reason


class InsufficientDataError(TrackProcessingError):
    """Raised when a track has no points to derive statistics from."""

    kind = "insufficient_data"


class MissingTimestampsError(TrackProcessingError):
    """Raised when time-based statistics were required but timestamps are missing."""

    kind = "missing_timestamps"


class WorkerInitError(TrackProcessingError):
    """Raised when no background worker can be started for a request."""

    kind = "worker_init_error"


class ProcessingCancelled(Exception):
    """Raised inside workers (and by ``job.result()``) after cancellation.

    Cancellation is an outcome, not a failure, so this does not derive from
    ``TrackProcessingError``.
    """

    kind = "cancelled"


__all__ = [
    "ValidationErrorKind",
    "TrackProcessingError",
    "TrackValidationError",
    "ParseError",
    "InsufficientDataError",
    "MissingTimestampsError",
    "WorkerInitError",
    "ProcessingCancelled",
]
