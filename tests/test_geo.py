from __future__ import annotations

import math

import pytest

from doorplate_track.geo import (
    classify_proximity,
    distance_m,
    format_distance,
    is_inside_circle,
    route_distance_m,
    signal_quality,
)
from doorplate_track.models import Proximity


def test_distance_same_point_is_zero():
    assert distance_m(17.5212, 78.3964, 17.5212, 78.3964) == 0.0


def test_distance_is_symmetric():
    a = (40.7128, -74.0060)
    b = (51.5074, -0.1278)
    ab = distance_m(a[0], a[1], b[0], b[1])
    ba = distance_m(b[0], b[1], a[0], a[1])
    assert ab == pytest.approx(ba, rel=1e-6)


def test_one_degree_latitude_at_equator():
    d = distance_m(0.0, 0.0, 1.0, 0.0)
    assert d == pytest.approx(111_195.0, rel=0.005)


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
def test_distance_rejects_non_finite(bad):
    with pytest.raises(ValueError):
        distance_m(bad, 0.0, 0.0, 0.0)
    with pytest.raises(ValueError):
        distance_m(0.0, 0.0, 0.0, bad)


@pytest.mark.parametrize(
    ("meters", "expected"),
    [
        (0.0, Proximity.VERY_CLOSE),
        (99.0, Proximity.VERY_CLOSE),
        (100.0, Proximity.CLOSE),
        (499.9, Proximity.CLOSE),
        (500.0, Proximity.NEARBY),
        (999.0, Proximity.NEARBY),
        (1000.0, Proximity.FAR),
        (25_000.0, Proximity.FAR),
    ],
)
def test_classify_proximity_thresholds(meters, expected):
    assert classify_proximity(meters) is expected


def test_classify_proximity_rejects_bad_input():
    with pytest.raises(ValueError):
        classify_proximity(math.nan)
    with pytest.raises(ValueError):
        classify_proximity(math.inf)
    with pytest.raises(ValueError):
        classify_proximity(-1.0)


def test_proximity_labels():
    assert Proximity.VERY_CLOSE.value == "Very Close"
    assert [p.value for p in Proximity] == ["Very Close", "Close", "Nearby", "Far"]


def test_signal_quality_follows_thresholds():
    assert signal_quality(10) == "Strong"
    assert signal_quality(100) == "Good"
    assert signal_quality(750) == "Fair"
    assert signal_quality(5000) == "Weak"


def test_format_distance():
    assert format_distance(0) == "0m"
    assert format_distance(999.4) == "999m"
    assert format_distance(1234) == "1.2km"
    assert format_distance(25_300) == "25.3km"


def test_is_inside_circle_includes_boundary():
    center = (17.5212, 78.3964)
    d = distance_m(center[0], center[1], 17.5222, 78.3964)
    assert is_inside_circle(17.5222, 78.3964, center[0], center[1], d)
    assert not is_inside_circle(17.5222, 78.3964, center[0], center[1], d - 1.0)


def test_route_distance_sums_legs():
    pts = [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]
    assert route_distance_m(pts) == pytest.approx(2 * distance_m(0.0, 0.0, 1.0, 0.0))
    assert route_distance_m([(0.0, 0.0)]) == 0.0
    assert route_distance_m([]) == 0.0
