"""Central configuration for the track processing core.

All values are constants imported by the rest of the package. Most of them
can be overridden through environment variables (optionally via a local
`.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Upload validation
# ---------------------------------------------------------------------------
# File types accepted by the validator and the parser registry.
SUPPORTED_FILE_TYPES = ("gpx", "kml", "fit", "tcx")

# Upper bound on the raw upload size (bytes). Defaults to 50 MiB.
MAX_UPLOAD_SIZE_BYTES = _env_int("TRACK_MAX_UPLOAD_SIZE_BYTES", 50 * 1024 * 1024)

# Minimum length of the FIT header block checked by the validator.
FIT_MIN_HEADER_BYTES = 12

# Verify the trailing CRC when decoding FIT files. Some head units write
# broken CRCs; disable to accept them anyway.
FIT_CHECK_CRC = _env_bool("TRACK_FIT_CHECK_CRC", True)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------
# Segments slower than this (km/h) count as stopped for moving time.
STOPPED_THRESHOLD_KMH = _env_float("TRACK_STOPPED_THRESHOLD_KMH", 1.0)

# Mean Earth radius used by the haversine formula.
EARTH_RADIUS_KM = 6371.0


# ---------------------------------------------------------------------------
# Simplification tiers
# ---------------------------------------------------------------------------
# Douglas-Peucker tolerance (metres) per tier. Must not decrease from high
# to low.
SIMPLIFICATION_TOLERANCE_HIGH_M = _env_float("TRACK_SIMPLIFICATION_TOLERANCE_HIGH_M", 2.0)
SIMPLIFICATION_TOLERANCE_MEDIUM_M = _env_float(
    "TRACK_SIMPLIFICATION_TOLERANCE_MEDIUM_M", 8.0
)
SIMPLIFICATION_TOLERANCE_LOW_M = _env_float("TRACK_SIMPLIFICATION_TOLERANCE_LOW_M", 25.0)

# Safety caps on the simplified point count per tier. Must not increase from
# high to low.
SIMPLIFICATION_MAX_POINTS_HIGH = _env_int("TRACK_SIMPLIFICATION_MAX_POINTS_HIGH", 5000)
SIMPLIFICATION_MAX_POINTS_MEDIUM = _env_int(
    "TRACK_SIMPLIFICATION_MAX_POINTS_MEDIUM", 2000
)
SIMPLIFICATION_MAX_POINTS_LOW = _env_int("TRACK_SIMPLIFICATION_MAX_POINTS_LOW", 500)

# Tier served when the caller does not name one.
DEFAULT_SIMPLIFICATION_LEVEL = os.getenv("TRACK_DEFAULT_SIMPLIFICATION_LEVEL", "medium")


# ---------------------------------------------------------------------------
# Processing / concurrency
# ---------------------------------------------------------------------------
# Worker threads shared by all in-flight files of one processor.
MAX_WORKERS = _env_int("TRACK_MAX_WORKERS", 4)

# Long loops (parsing, aggregation, simplification) poll the cancellation
# flag every this many points.
CANCEL_CHECK_INTERVAL = max(1, _env_int("TRACK_CANCEL_CHECK_INTERVAL", 2000))

# Parsed tracks kept per processing session, keyed by content digest.
PARSED_TRACK_CACHE_SIZE = _env_int("TRACK_PARSED_CACHE_SIZE", 16)


# ---------------------------------------------------------------------------
# Query defaults
# ---------------------------------------------------------------------------
TRACKPOINTS_DEFAULT_LIMIT = _env_int("TRACK_TRACKPOINTS_DEFAULT_LIMIT", 1000)
TRACKPOINTS_MAX_LIMIT = _env_int("TRACK_TRACKPOINTS_MAX_LIMIT", 10000)
