"""Service layer package.

Exports high-level services consumed by web/presentation layers.
"""

from .activity_service import ActivityTrackService, InMemoryTrackStore, TrackStore

__all__ = ["ActivityTrackService", "InMemoryTrackStore", "TrackStore"]
