import math

import numpy as np
import pytest

from waybinder_tracks.geomath import (
    elevation_delta,
    haversine_distance_km,
    haversine_distances_km,
    initial_bearing_deg,
    is_moving,
    segment_speed_kmh,
)

from conftest import LAT_STEP_100M


def test_haversine_identical_points_is_zero():
    assert haversine_distance_km((51.5, -0.12), (51.5, -0.12)) == 0.0


def test_haversine_one_degree_of_latitude():
    expected = 6371.0 * math.pi / 180.0
    assert haversine_distance_km((0.0, 0.0), (1.0, 0.0)) == pytest.approx(expected)


def test_haversine_is_symmetric_and_handles_antipodes():
    a, b = (10.0, 20.0), (-10.0, -160.0)
    assert haversine_distance_km(a, b) == pytest.approx(haversine_distance_km(b, a))
    assert haversine_distance_km(a, b) == pytest.approx(math.pi * 6371.0)


def test_vectorised_distances_match_scalar():
    lats = [51.5 + LAT_STEP_100M * i for i in range(5)]
    lons = [-0.12] * 5
    distances = haversine_distances_km(lats, lons)
    assert distances.shape == (4,)
    assert np.allclose(distances, 0.1)
    assert haversine_distances_km([1.0], [2.0]).size == 0


def test_bearing_cardinal_directions():
    assert initial_bearing_deg((0.0, 0.0), (1.0, 0.0)) == pytest.approx(0.0)
    assert initial_bearing_deg((0.0, 0.0), (0.0, 1.0)) == pytest.approx(90.0)
    assert initial_bearing_deg((1.0, 0.0), (0.0, 0.0)) == pytest.approx(180.0)
    assert initial_bearing_deg((0.0, 1.0), (0.0, 0.0)) == pytest.approx(270.0)


def test_elevation_delta_splits_gain_and_loss():
    up = elevation_delta(100.0, 112.5)
    assert up.gain == 12.5 and up.loss == 0.0
    down = elevation_delta(100.0, 90.0)
    assert down.gain == 0.0 and down.loss == 10.0
    flat = elevation_delta(50.0, 50.0)
    assert flat.gain == 0.0 and flat.loss == 0.0


@pytest.mark.parametrize("prev,curr", [(None, 10.0), (10.0, None), (None, None)])
def test_elevation_delta_missing_sample_contributes_nothing(prev, curr):
    delta = elevation_delta(prev, curr)
    assert delta.gain == 0.0 and delta.loss == 0.0


def test_segment_speed():
    assert segment_speed_kmh(1.0, 3600) == pytest.approx(1.0)
    assert segment_speed_kmh(0.1, 60) == pytest.approx(6.0)
    assert segment_speed_kmh(1.0, 0) == 0.0
    assert segment_speed_kmh(1.0, -5) == 0.0


def test_is_moving_threshold_is_strict():
    assert not is_moving(1.0)
    assert is_moving(1.0001)
    assert not is_moving(5.0, stopped_threshold_kmh=5.0)
    assert is_moving(5.1, stopped_threshold_kmh=5.0)
