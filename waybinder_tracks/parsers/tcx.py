"""TCX (Garmin Training Center) reader for activities and courses."""

from __future__ import annotations

import threading
from typing import List, Optional
from xml.etree.ElementTree import Element

from ..errors import ParseError
from ..models import Track
from .base import PointCollector, child_text, find_child, iter_xml, local_name


class TcxParser:
    file_type = "tcx"

    def parse(
        self, file_bytes: bytes, cancel_event: threading.Event | None = None
    ) -> Track:
        collector = PointCollector(self.file_type, cancel_event)
        course_name: Optional[str] = None
        sport: Optional[str] = None
        root_seen = False
        stack: List[str] = []

        for event, elem in iter_xml(file_bytes, self.file_type):
            tag = local_name(elem.tag)
            if event == "start":
                if not stack:
                    if tag != "TrainingCenterDatabase":
                        raise ParseError(self.file_type, f"unexpected root element <{tag}>")
                    root_seen = True
                if tag == "Activity" and sport is None:
                    sport = elem.get("Sport") or None
                stack.append(tag)
                continue

            parent = stack[-2] if len(stack) > 1 else None
            if tag == "Trackpoint":
                _collect_trackpoint(collector, elem)
                elem.clear()
            elif tag == "Name" and parent == "Course" and course_name is None:
                course_name = (elem.text or "").strip() or None
            stack.pop()

        if not root_seen:
            raise ParseError(self.file_type, "missing <TrainingCenterDatabase> root element")
        return collector.build(name=course_name or sport)


def _collect_trackpoint(collector: PointCollector, elem: Element) -> None:
    position = find_child(elem, "Position")
    if position is None:
        # Heart-rate-only samples recorded while the GPS had no fix.
        collector.skip()
        return
    collector.add(
        latitude=child_text(position, "LatitudeDegrees"),
        longitude=child_text(position, "LongitudeDegrees"),
        elevation=child_text(elem, "AltitudeMeters"),
        time=child_text(elem, "Time"),
    )
