"""GPS track processing core.

Validates and parses GPX/KML/FIT/TCX uploads, derives motion statistics and
produces tiered, render-ready GeoJSON off the caller's thread.
"""

from .errors import (
    InsufficientDataError,
    MissingTimestampsError,
    ParseError,
    ProcessingCancelled,
    TrackProcessingError,
    TrackValidationError,
    WorkerInitError,
)
from .models import SimplificationLevel, Track, Trackpoint, TrackStatistics
from .processing import ProcessingRequest, ProcessingResult, TrackProcessor
from .services import ActivityTrackService

__version__ = "0.1.0"

__all__ = [
    "ActivityTrackService",
    "InsufficientDataError",
    "MissingTimestampsError",
    "ParseError",
    "ProcessingCancelled",
    "ProcessingRequest",
    "ProcessingResult",
    "SimplificationLevel",
    "Track",
    "TrackProcessingError",
    "TrackProcessor",
    "TrackStatistics",
    "TrackValidationError",
    "Trackpoint",
    "WorkerInitError",
    "__version__",
]
