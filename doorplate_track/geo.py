"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations

import math
from typing import Iterable

from doorplate_track.models import EARTH_RADIUS_M, Proximity

# (upper bound exclusive, label)
_PROXIMITY_THRESHOLDS: tuple[tuple[float, Proximity], ...] = (
    (100.0, Proximity.VERY_CLOSE),
    (500.0, Proximity.CLOSE),
    (1000.0, Proximity.NEARBY),
)
_SIGNAL_BY_PROXIMITY: dict[Proximity, str] = {
    Proximity.VERY_CLOSE: "Strong",
    Proximity.CLOSE: "Good",
    Proximity.NEARBY: "Fair",
    Proximity.FAR: "Weak",
}


def _require_finite(**values: float) -> None:
    for name, value in values.items():
        if not math.isfinite(value):
            raise ValueError(f"{name} must be a finite number, got {value!r}")


def distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Compute Haversine distance in meters between two lat/lng points.

    Args:
        lat1: Latitude 1 in degrees.
        lng1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lng2: Longitude 2 in degrees.

    Returns:
        Distance in meters.

    Raises:
        ValueError: If any coordinate is NaN or infinite.
    """

    _require_finite(lat1=lat1, lng1=lng1, lat2=lat2, lng2=lng2)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    # 浮点误差可能让 a 略微超出 [0, 1]
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def classify_proximity(meters: float) -> Proximity:
    """Bucket a distance into a proximity label.

    Thresholds are half-open: [0, 100) Very Close, [100, 500) Close,
    [500, 1000) Nearby, otherwise Far.

    Raises:
        ValueError: If meters is non-finite or negative.
    """

    _require_finite(meters=meters)
    if meters < 0:
        raise ValueError(f"distance cannot be negative: {meters!r}")
    for upper, label in _PROXIMITY_THRESHOLDS:
        if meters < upper:
            return label
    return Proximity.FAR


def signal_quality(meters: float) -> str:
    """Human label for link quality, using the proximity thresholds."""

    return _SIGNAL_BY_PROXIMITY[classify_proximity(meters)]


def format_distance(meters: float) -> str:
    """Format a distance as "123m" below one kilometer, "1.2km" otherwise."""

    _require_finite(meters=meters)
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000.0:.1f}km"


def is_inside_circle(
    lat: float,
    lng: float,
    center_lat: float,
    center_lng: float,
    radius_m: float,
) -> bool:
    """Check whether a point is inside or on the boundary of a circle geofence."""

    return distance_m(lat, lng, center_lat, center_lng) <= radius_m


def route_distance_m(points: Iterable[tuple[float, float]]) -> float:
    """Total length in meters of an ordered (lat, lng) polyline."""

    total = 0.0
    prev: tuple[float, float] | None = None
    for pt in points:
        if prev is not None:
            total += distance_m(prev[0], prev[1], pt[0], pt[1])
        prev = pt
    return total
