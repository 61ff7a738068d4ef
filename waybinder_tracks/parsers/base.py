"""Shared building blocks for the format parsers."""

from __future__ import annotations

import io
import logging
import threading
from typing import Iterator, List, Optional, Protocol, Tuple
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import ParseError as XMLParseError
from defusedxml.ElementTree import iterparse

from ..config import CANCEL_CHECK_INTERVAL
from ..errors import ParseError
from ..models import Track, Trackpoint
from ..utils import check_cancelled, parse_float, parse_iso_datetime

LOGGER = logging.getLogger(__name__)

XmlEvent = Tuple[str, Element]


class TrackParser(Protocol):
    """Capability implemented once per supported file format."""

    file_type: str

    def parse(
        self, file_bytes: bytes, cancel_event: threading.Event | None = None
    ) -> Track: ...


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix from an element tag."""

    if tag and tag[0] == "{":
        return tag.rsplit("}", 1)[-1]
    return tag


def child_text(elem: Element, name: str) -> Optional[str]:
    """Return the stripped text of the first direct child called ``name``."""

    for child in elem:
        if local_name(child.tag) == name:
            text = (child.text or "").strip()
            return text or None
    return None


def find_child(elem: Element, name: str) -> Optional[Element]:
    for child in elem:
        if local_name(child.tag) == name:
            return child
    return None


def iter_xml(file_bytes: bytes, file_format: str) -> Iterator[XmlEvent]:
    """Stream ``start``/``end`` events, mapping XML failures to ``ParseError``.

    Entity expansion and external references are refused by defusedxml.
    """

    try:
        for event, elem in iterparse(io.BytesIO(file_bytes), events=("start", "end")):
            yield event, elem
    except XMLParseError as exc:
        raise ParseError(file_format, f"invalid XML ({exc})") from exc
    except DefusedXmlException as exc:
        raise ParseError(file_format, f"forbidden XML construct ({exc})") from exc


class PointCollector:
    """Accumulate valid points, counting the ones dropped for bad coordinates.

    Indices are assigned in emission order, so dropped points leave no gaps.
    """

    def __init__(
        self,
        file_format: str,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.file_format = file_format
        self.skipped = 0
        self._points: List[Trackpoint] = []
        self._cancel_event = cancel_event
        self._seen = 0

    def __len__(self) -> int:
        return len(self._points)

    def add(
        self,
        latitude: object,
        longitude: object,
        elevation: object = None,
        time: object = None,
    ) -> bool:
        """Append a point; return False when its coordinates were rejected."""

        self._seen += 1
        if self._seen % CANCEL_CHECK_INTERVAL == 0:
            check_cancelled(self._cancel_event)
        lat = parse_float(latitude)
        lon = parse_float(longitude)
        if lat is None or lon is None or not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
            self.skipped += 1
            return False
        self._points.append(
            Trackpoint(
                index=len(self._points),
                longitude=lon,
                latitude=lat,
                elevation=parse_float(elevation),
                time=parse_iso_datetime(time),
            )
        )
        return True

    def skip(self, count: int = 1) -> None:
        self.skipped += count

    def build(self, name: Optional[str] = None) -> Track:
        if not self._points:
            raise ParseError(self.file_format, "no valid points")
        if self.skipped:
            LOGGER.info(
                "Dropped %d %s point(s) with missing or out-of-range coordinates",
                self.skipped,
                self.file_format.upper(),
            )
        return Track(
            points=tuple(self._points),
            file_type=self.file_format,
            name=name,
            skipped_points=self.skipped,
        )
