"""Global pytest fixtures & helpers.

Adds project root to path and provides builders for GPX/KML/TCX/FIT payloads
and synthetic tracks so parser, statistics and pipeline tests share inputs.
"""
from __future__ import annotations

import os
import struct
import sys
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from waybinder_tracks.models import Track, Trackpoint


# Degrees of latitude per 100 m on the R=6371 km sphere used by haversine.
LAT_STEP_100M = 0.1 / (6371.0 * 3.141592653589793 / 180.0)
START = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)

# (lat, lon, elevation, time)
RawPoint = Tuple[float, float, Optional[float], Optional[datetime]]


# --- Factory helpers -------------------------------------------------
def straight_points(
    count: int,
    *,
    spacing_lat: float = LAT_STEP_100M,
    interval_s: Optional[float] = 60.0,
    elevation: Optional[float] = 100.0,
    start: datetime = START,
    lat0: float = 51.5,
    lon0: float = -0.12,
) -> List[RawPoint]:
    """Points heading due north at a fixed spacing and cadence."""
    points: List[RawPoint] = []
    for i in range(count):
        when = start + timedelta(seconds=interval_s * i) if interval_s is not None else None
        points.append((lat0 + spacing_lat * i, lon0, elevation, when))
    return points


def zigzag_points(count: int, *, amplitude: float = 0.0005) -> List[RawPoint]:
    """A wiggly eastward line whose vertices matter at fine tolerances."""
    points: List[RawPoint] = []
    for i in range(count):
        lat = 45.0 + (amplitude if i % 2 else 0.0) + 0.00001 * (i % 7)
        lon = 7.0 + 0.0002 * i
        points.append((lat, lon, 500.0 + (i % 13), START + timedelta(seconds=5 * i)))
    return points


def make_track(points: Sequence[RawPoint], *, file_type: str = "gpx", name: str | None = None) -> Track:
    return Track(
        points=tuple(
            Trackpoint(index=i, longitude=lon, latitude=lat, elevation=ele, time=when)
            for i, (lat, lon, ele, when) in enumerate(points)
        ),
        file_type=file_type,
        name=name,
    )


def _iso(when: Optional[datetime]) -> Optional[str]:
    if when is None:
        return None
    return when.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def gpx_bytes(
    points: Iterable[RawPoint],
    *,
    name: str | None = "Morning Ride",
    point_tag: str = "trkpt",
    metadata_name: str | None = None,
) -> bytes:
    body: List[str] = []
    for lat, lon, ele, when in points:
        inner = ""
        if ele is not None:
            inner += f"<ele>{ele}</ele>"
        if when is not None:
            inner += f"<time>{_iso(when)}</time>"
        body.append(f'<{point_tag} lat="{lat}" lon="{lon}">{inner}</{point_tag}>')
    metadata = f"<metadata><name>{metadata_name}</name></metadata>" if metadata_name else ""
    name_xml = f"<name>{name}</name>" if name else ""
    if point_tag == "trkpt":
        content = f"<trk>{name_xml}<trkseg>{''.join(body)}</trkseg></trk>"
    elif point_tag == "rtept":
        content = f"<rte>{name_xml}{''.join(body)}</rte>"
    else:
        content = "".join(body)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<gpx version="1.1" creator="tests" xmlns="http://www.topografix.com/GPX/1/1">'
        f"{metadata}{content}</gpx>"
    ).encode("utf-8")


def kml_linestring_bytes(points: Iterable[RawPoint], *, name: str | None = "Hike") -> bytes:
    coords = " ".join(
        f"{lon},{lat},{ele}" if ele is not None else f"{lon},{lat}"
        for lat, lon, ele, _ in points
    )
    name_xml = f"<name>{name}</name>" if name else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<kml xmlns="http://www.opengis.net/kml/2.2"><Document>'
        f"{name_xml}<Placemark><name>Route</name><LineString>"
        f"<coordinates>{coords}</coordinates></LineString></Placemark>"
        "</Document></kml>"
    ).encode("utf-8")


def kml_gx_track_bytes(points: Sequence[RawPoint], *, name: str | None = "Ski day") -> bytes:
    whens = "".join(f"<when>{_iso(when)}</when>" for *_, when in points)
    coords = "".join(
        f"<gx:coord>{lon} {lat} {ele if ele is not None else 0}</gx:coord>"
        for lat, lon, ele, _ in points
    )
    name_xml = f"<name>{name}</name>" if name else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<kml xmlns="http://www.opengis.net/kml/2.2" '
        'xmlns:gx="http://www.google.com/kml/ext/2.2"><Document>'
        f"{name_xml}<Placemark><gx:Track>{whens}{coords}</gx:Track></Placemark>"
        "</Document></kml>"
    ).encode("utf-8")


def tcx_bytes(
    points: Iterable[RawPoint],
    *,
    sport: str = "Running",
    course_name: str | None = None,
    positionless: int = 0,
) -> bytes:
    trackpoints: List[str] = []
    for lat, lon, ele, when in points:
        inner = ""
        if when is not None:
            inner += f"<Time>{_iso(when)}</Time>"
        inner += (
            f"<Position><LatitudeDegrees>{lat}</LatitudeDegrees>"
            f"<LongitudeDegrees>{lon}</LongitudeDegrees></Position>"
        )
        if ele is not None:
            inner += f"<AltitudeMeters>{ele}</AltitudeMeters>"
        trackpoints.append(f"<Trackpoint>{inner}</Trackpoint>")
    for _ in range(positionless):
        trackpoints.append("<Trackpoint><HeartRateBpm><Value>120</Value></HeartRateBpm></Trackpoint>")
    track = f"<Track>{''.join(trackpoints)}</Track>"
    if course_name:
        body = f"<Courses><Course><Name>{course_name}</Name>{track}</Course></Courses>"
    else:
        body = (
            f'<Activities><Activity Sport="{sport}"><Id>{_iso(START)}</Id>'
            f'<Lap StartTime="{_iso(START)}">{track}</Lap></Activity></Activities>'
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<TrainingCenterDatabase xmlns="http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2">'
        f"{body}</TrainingCenterDatabase>"
    ).encode("utf-8")


# --- Minimal FIT writer ---------------------------------------------
FIT_EPOCH = datetime(1989, 12, 31, tzinfo=timezone.utc)
_FIT_CRC_TABLE = (
    0x0000, 0xCC01, 0xD801, 0x1400, 0xF001, 0x3C00, 0x2800, 0xE401,
    0xA001, 0x6C00, 0x7800, 0xB401, 0x5000, 0x9C01, 0x8801, 0x4400,
)
FIT_INVALID_SINT32 = 0x7FFFFFFF


def fit_crc(data: bytes, crc: int = 0) -> int:
    for byte in data:
        tmp = _FIT_CRC_TABLE[crc & 0xF]
        crc = ((crc >> 4) & 0x0FFF) ^ tmp ^ _FIT_CRC_TABLE[byte & 0xF]
        tmp = _FIT_CRC_TABLE[crc & 0xF]
        crc = ((crc >> 4) & 0x0FFF) ^ tmp ^ _FIT_CRC_TABLE[(byte >> 4) & 0xF]
    return crc


def _semicircles(degrees: float) -> int:
    return int(round(degrees * (2**31) / 180.0))


def fit_bytes(points: Iterable[RawPoint], *, invalid_positions: int = 0) -> bytes:
    """Build a FIT activity holding one ``record`` message per point.

    Fields: timestamp (253), position_lat (0), position_long (1) and
    altitude (2, scale 5 offset 500). ``invalid_positions`` appends records
    whose latitude is the FIT invalid marker.
    """
    definition = struct.pack(
        "<BBBHB", 0x40, 0, 0, 20, 4
    ) + bytes(
        [
            253, 4, 0x86,
            0, 4, 0x85,
            1, 4, 0x85,
            2, 2, 0x84,
        ]
    )
    records = b""
    last_time = START
    for lat, lon, ele, when in points:
        when = when or last_time
        last_time = when
        altitude = 0xFFFF if ele is None else int(round((ele + 500.0) * 5))
        records += struct.pack(
            "<BIiiH",
            0x00,
            int((when - FIT_EPOCH).total_seconds()),
            _semicircles(lat),
            _semicircles(lon),
            altitude,
        )
    for _ in range(invalid_positions):
        records += struct.pack(
            "<BIiiH",
            0x00,
            int((last_time - FIT_EPOCH).total_seconds()),
            FIT_INVALID_SINT32,
            FIT_INVALID_SINT32,
            0xFFFF,
        )
    data = definition + records
    header = struct.pack("<BBHI4s", 14, 0x10, 2093, len(data), b".FIT")
    header += struct.pack("<H", fit_crc(header))
    body = header + data
    return body + struct.pack("<H", fit_crc(body))


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def five_point_gpx() -> bytes:
    """Five points 100 m apart, 60 s apart, constant elevation."""
    return gpx_bytes(straight_points(5))


@pytest.fixture
def zigzag_track() -> Track:
    return make_track(zigzag_points(3000))
