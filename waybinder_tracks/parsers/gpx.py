"""GPX (GPS Exchange Format) reader."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional
from xml.etree.ElementTree import Element

from ..errors import ParseError
from ..models import Track
from .base import PointCollector, child_text, iter_xml, local_name

LOGGER = logging.getLogger(__name__)

_POINT_TAGS = ("trkpt", "rtept", "wpt")


class GpxParser:
    """Read track points (falling back to route points, then waypoints)."""

    file_type = "gpx"

    def parse(
        self, file_bytes: bytes, cancel_event: threading.Event | None = None
    ) -> Track:
        collectors = {
            tag: PointCollector(self.file_type, cancel_event) for tag in _POINT_TAGS
        }
        track_name: Optional[str] = None
        metadata_name: Optional[str] = None
        root_seen = False
        stack: List[str] = []

        for event, elem in iter_xml(file_bytes, self.file_type):
            tag = local_name(elem.tag)
            if event == "start":
                if not stack:
                    if tag != "gpx":
                        raise ParseError(self.file_type, f"unexpected root element <{tag}>")
                    root_seen = True
                stack.append(tag)
                continue

            parent = stack[-2] if len(stack) > 1 else None
            if tag in _POINT_TAGS:
                _collect_point(collectors[tag], elem)
                elem.clear()
            elif tag == "name" and elem.text:
                if parent == "trk" and track_name is None:
                    track_name = elem.text.strip() or None
                elif parent == "metadata" and metadata_name is None:
                    metadata_name = elem.text.strip() or None
            stack.pop()

        if not root_seen:
            raise ParseError(self.file_type, "missing <gpx> root element")

        chosen = _pick_collector(collectors)
        if chosen is not collectors["trkpt"]:
            LOGGER.debug("GPX has no track points; using %d fallback points", len(chosen))
        return chosen.build(name=track_name or metadata_name)


def _collect_point(collector: PointCollector, elem: Element) -> None:
    collector.add(
        latitude=elem.get("lat"),
        longitude=elem.get("lon"),
        elevation=child_text(elem, "ele"),
        time=child_text(elem, "time"),
    )


def _pick_collector(collectors: dict[str, PointCollector]) -> PointCollector:
    for tag in _POINT_TAGS:
        collector = collectors[tag]
        if len(collector) or collector.skipped:
            return collector
    return collectors["trkpt"]
