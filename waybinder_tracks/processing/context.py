"""Per-session state shared by the workers of one ``TrackProcessor``."""

from __future__ import annotations

from hashlib import sha256
import logging
import threading
from typing import Dict, Mapping, Optional, Tuple

from cachetools import LRUCache

from ..config import PARSED_TRACK_CACHE_SIZE
from ..models import SimplificationLevel, Track
from ..parsers import TrackParser, default_parsers, get_parser
from ..simplification import POLICIES, SimplificationPolicy

_CacheKey = Tuple[str, str]


class ProcessingContext:
    """Parser registry, simplification policies and a parsed-track cache.

    Owned by one processing session and passed in explicitly; nothing here
    is module-global. Cached tracks are immutable, so handing the same
    object to several workers is safe.
    """

    def __init__(
        self,
        *,
        parsers: Mapping[str, TrackParser] | None = None,
        policies: Mapping[SimplificationLevel, SimplificationPolicy] | None = None,
        cache_size: int = PARSED_TRACK_CACHE_SIZE,
    ) -> None:
        self._log = logging.getLogger(self.__class__.__name__)
        self.parsers: Dict[str, TrackParser] = dict(parsers or default_parsers())
        self.policies = dict(policies or POLICIES)
        self._cache: Optional[LRUCache[_CacheKey, Track]] = (
            LRUCache(maxsize=cache_size) if cache_size > 0 else None
        )
        self._cache_lock = threading.RLock()
        self.cache_hits = 0

    def parse(
        self,
        file_bytes: bytes,
        file_type: str,
        cancel_event: threading.Event | None = None,
    ) -> Track:
        """Parse through the cache keyed by content digest and file type."""

        parser = get_parser(file_type, self.parsers)
        if self._cache is None:
            return parser.parse(file_bytes, cancel_event)
        key = (sha256(file_bytes).hexdigest(), file_type)
        with self._cache_lock:
            cached = self._cache.get(key)
            if cached is not None:
                self.cache_hits += 1
                self._log.debug("Parsed track cache hit for %s file", file_type)
                return cached
        track = parser.parse(file_bytes, cancel_event)
        with self._cache_lock:
            self._cache[key] = track
        return track

    def clear(self) -> None:
        with self._cache_lock:
            if self._cache is not None:
                self._cache.clear()
