"""FIT (Garmin binary) reader backed by ``fitparse``."""

from __future__ import annotations

import io
import logging
import threading
from typing import Any, Dict, Optional

import fitparse

from ..config import FIT_CHECK_CRC
from ..errors import ParseError
from ..models import Track
from ..utils import check_cancelled
from .base import PointCollector

LOGGER = logging.getLogger(__name__)

# FIT stores positions as signed 32-bit semicircles.
SEMICIRCLES_TO_DEGREES = 180.0 / 2**31

_MESSAGE_TYPES = ("record", "sport", "session")


def get_best_value(values: Dict[str, Any], legacy_key: str, enhanced_key: str) -> Any:
    """Prefer the enhanced (32-bit) field over its legacy counterpart."""

    value = values.get(enhanced_key)
    if value is None:
        value = values.get(legacy_key)
    return value


def semicircles_to_degrees(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value) * SEMICIRCLES_TO_DEGREES
    except (TypeError, ValueError):
        return None


class FitParser:
    """Decode ``record`` messages; every other message type is ignored."""

    file_type = "fit"

    def __init__(self, check_crc: bool = FIT_CHECK_CRC) -> None:
        self.check_crc = check_crc

    def parse(
        self, file_bytes: bytes, cancel_event: threading.Event | None = None
    ) -> Track:
        collector = PointCollector(self.file_type, cancel_event)
        name: Optional[str] = None
        try:
            fitfile = fitparse.FitFile(io.BytesIO(file_bytes), check_crc=self.check_crc)
            for message in fitfile.get_messages(list(_MESSAGE_TYPES)):
                values = message.get_values()
                if message.name == "record":
                    collector.add(
                        latitude=semicircles_to_degrees(values.get("position_lat")),
                        longitude=semicircles_to_degrees(values.get("position_long")),
                        elevation=get_best_value(values, "altitude", "enhanced_altitude"),
                        time=values.get("timestamp"),
                    )
                elif name is None:
                    name = _message_name(values)
        except fitparse.FitParseError as exc:
            raise ParseError(self.file_type, str(exc) or "corrupt FIT data") from exc
        check_cancelled(cancel_event)
        return collector.build(name=name)


def _message_name(values: Dict[str, Any]) -> Optional[str]:
    for key in ("name", "sport"):
        value = values.get(key)
        if value not in (None, ""):
            return str(value)
    return None
