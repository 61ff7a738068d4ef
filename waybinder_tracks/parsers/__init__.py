"""Format parsers turning raw track files into a common ``Track``.

Each supported format provides a ``TrackParser``; callers pick one by the
validated file type through ``get_parser``.
"""

from __future__ import annotations

import threading
from typing import Dict, Mapping

from ..errors import ParseError
from ..models import Track
from .base import TrackParser
from .fit import FitParser
from .gpx import GpxParser
from .kml import KmlParser
from .tcx import TcxParser


def default_parsers() -> Dict[str, TrackParser]:
    """Return a fresh registry with one parser per supported format."""

    parsers: list[TrackParser] = [GpxParser(), KmlParser(), TcxParser(), FitParser()]
    return {parser.file_type: parser for parser in parsers}


PARSERS: Mapping[str, TrackParser] = default_parsers()


def get_parser(
    file_type: str, registry: Mapping[str, TrackParser] | None = None
) -> TrackParser:
    registry = PARSERS if registry is None else registry
    try:
        return registry[file_type.lower()]
    except KeyError:
        raise ParseError(file_type, "unsupported file type") from None


def parse_track(
    file_bytes: bytes,
    file_type: str,
    cancel_event: threading.Event | None = None,
) -> Track:
    """Parse ``file_bytes`` with the parser registered for ``file_type``."""

    return get_parser(file_type).parse(file_bytes, cancel_event)


__all__ = [
    "TrackParser",
    "GpxParser",
    "KmlParser",
    "TcxParser",
    "FitParser",
    "PARSERS",
    "default_parsers",
    "get_parser",
    "parse_track",
]
