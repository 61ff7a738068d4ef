"""KML reader for ``gx:Track`` and ``LineString`` geometries."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional
from xml.etree.ElementTree import Element

from ..errors import ParseError
from ..models import Track
from .base import PointCollector, child_text, find_child, iter_xml, local_name

LOGGER = logging.getLogger(__name__)


class KmlParser:
    """Read line geometry in document order.

    ``gx:Track`` carries per-point ``when`` timestamps; ``LineString`` has
    none. Files with neither fall back to timestamped ``Placemark`` points.
    """

    file_type = "kml"

    def parse(
        self, file_bytes: bytes, cancel_event: threading.Event | None = None
    ) -> Track:
        lines = PointCollector(self.file_type, cancel_event)
        placemarks = PointCollector(self.file_type, cancel_event)
        document_name: Optional[str] = None
        placemark_name: Optional[str] = None
        root_seen = False
        stack: List[str] = []

        for event, elem in iter_xml(file_bytes, self.file_type):
            tag = local_name(elem.tag)
            if event == "start":
                if not stack:
                    if tag != "kml":
                        raise ParseError(self.file_type, f"unexpected root element <{tag}>")
                    root_seen = True
                stack.append(tag)
                continue

            parent = stack[-2] if len(stack) > 1 else None
            if tag == "Track":
                _collect_gx_track(lines, elem)
                elem.clear()
            elif tag == "LineString":
                _collect_coordinates(lines, child_text(elem, "coordinates"))
                elem.clear()
            elif tag == "Placemark":
                _collect_placemark_point(placemarks, elem)
                elem.clear()
            elif tag == "name" and elem.text:
                if parent == "Document" and document_name is None:
                    document_name = elem.text.strip() or None
                elif parent == "Placemark" and placemark_name is None:
                    placemark_name = elem.text.strip() or None
            stack.pop()

        if not root_seen:
            raise ParseError(self.file_type, "missing <kml> root element")

        name = document_name or placemark_name
        if len(lines) or lines.skipped:
            return lines.build(name=name)
        if len(placemarks):
            LOGGER.debug("KML has no line geometry; using %d placemarks", len(placemarks))
        return placemarks.build(name=name)


def _collect_gx_track(collector: PointCollector, elem: Element) -> None:
    whens: List[Optional[str]] = []
    coords: List[str] = []
    for child in elem:
        name = local_name(child.tag)
        if name == "when":
            whens.append((child.text or "").strip() or None)
        elif name == "coord":
            coords.append((child.text or "").strip())
    for position, coord in enumerate(coords):
        parts = coord.split()
        if len(parts) < 2:
            collector.skip()
            continue
        collector.add(
            latitude=parts[1],
            longitude=parts[0],
            elevation=parts[2] if len(parts) > 2 else None,
            time=whens[position] if position < len(whens) else None,
        )


def _collect_coordinates(collector: PointCollector, text: Optional[str]) -> None:
    if not text:
        return
    for tuple_text in text.split():
        parts = tuple_text.split(",")
        if len(parts) < 2:
            collector.skip()
            continue
        collector.add(
            latitude=parts[1],
            longitude=parts[0],
            elevation=parts[2] if len(parts) > 2 else None,
        )


def _collect_placemark_point(collector: PointCollector, placemark: Element) -> None:
    point = find_child(placemark, "Point")
    if point is None:
        return
    coordinates = child_text(point, "coordinates")
    parts = coordinates.split(",") if coordinates else []
    if len(parts) < 2:
        collector.skip()
        return
    when = None
    timestamp = find_child(placemark, "TimeStamp")
    if timestamp is not None:
        when = child_text(timestamp, "when")
    collector.add(
        latitude=parts[1],
        longitude=parts[0],
        elevation=parts[2] if len(parts) > 2 else None,
        time=when,
    )
