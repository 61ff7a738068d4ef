"""FIT decoding of synthetic activity files built by ``conftest.fit_bytes``."""

import pytest

from waybinder_tracks.errors import ParseError
from waybinder_tracks.parsers import parse_track
from waybinder_tracks.parsers.fit import FitParser, get_best_value, semicircles_to_degrees

from conftest import START, fit_bytes, straight_points


def test_semicircle_conversion():
    assert semicircles_to_degrees(2**31 // 2) == pytest.approx(90.0)
    assert semicircles_to_degrees(None) is None


def test_enhanced_value_preferred():
    assert get_best_value({"altitude": 10.0, "enhanced_altitude": 10.5}, "altitude", "enhanced_altitude") == 10.5
    assert get_best_value({"altitude": 10.0}, "altitude", "enhanced_altitude") == 10.0


def test_fit_records_become_points():
    pts = straight_points(5)
    track = parse_track(fit_bytes(pts), "fit")
    assert len(track) == 5
    assert track.file_type == "fit"
    for point, (lat, lon, ele, when) in zip(track, pts):
        assert point.latitude == pytest.approx(lat, abs=1e-6)
        assert point.longitude == pytest.approx(lon, abs=1e-6)
        assert point.elevation == pytest.approx(ele, abs=0.2)
        assert point.time == when
    assert track.points[0].time == START


def test_fit_invalid_positions_are_skipped():
    track = parse_track(fit_bytes(straight_points(3), invalid_positions=2), "fit")
    assert len(track) == 3
    assert track.skipped_points == 2


def test_fit_without_valid_positions_is_a_parse_error():
    with pytest.raises(ParseError) as excinfo:
        parse_track(fit_bytes([], invalid_positions=2), "fit")
    assert excinfo.value.reason == "no valid points"


def test_fit_corrupt_crc():
    payload = bytearray(fit_bytes(straight_points(3)))
    payload[-1] ^= 0xFF
    with pytest.raises(ParseError):
        FitParser(check_crc=True).parse(bytes(payload))
    track = FitParser(check_crc=False).parse(bytes(payload))
    assert len(track) == 3


def test_fit_garbage_is_a_parse_error():
    with pytest.raises(ParseError):
        parse_track(b"\x0e\x10" + b"\x00" * 30, "fit")
