"""General utility helpers shared across modules."""

from __future__ import annotations

import json
import math
import re
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from .errors import ProcessingCancelled

# Seconds with a fraction of any length; fromisoformat on 3.10 wants 3 or 6 digits.
_FRACTIONAL_SECONDS = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def parse_iso_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Returns ``None`` for empty or unparsable input. Naive values are taken
    to be UTC, which is what GPX/TCX/KML writers mean in practice.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTIONAL_SECONDS.sub(_pad_fraction, text, count=1)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _pad_fraction(match: "re.Match[str]") -> str:
    return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"


def format_iso(value: datetime | None) -> str | None:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS[.ffffff]Z``."""

    if value is None:
        return None
    text = value.astimezone(timezone.utc).replace(tzinfo=None).isoformat()
    return f"{text}Z"


def parse_float(value: Any) -> float | None:
    """Return ``value`` as a finite float or ``None``."""

    if value is None:
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def check_cancelled(cancel_event: threading.Event | None) -> None:
    """Raise ``ProcessingCancelled`` when the event has been set."""

    if cancel_event is not None and cancel_event.is_set():
        raise ProcessingCancelled("Processing cancelled")


def format_time(seconds: float) -> str:
    """Format seconds into an ``H:MM:SS`` string."""

    total = int(round(seconds))
    hours, rem = divmod(total, 3600)
    mins, sec = divmod(rem, 60)
    return f"{hours}:{mins:02d}:{sec:02d}"


def _normalise_value(value: Any) -> Any:
    """Convert objects to JSON-friendly representations."""

    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    if isinstance(value, (list, tuple)):
        return [_normalise_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _normalise_value(val) for key, val in value.items()}
    return value


def json_dumps(value: Any, *, indent: int | None = None) -> str:
    """Return JSON for API envelopes and CLI output."""

    return json.dumps(_normalise_value(value), indent=indent)
