from __future__ import annotations

from datetime import datetime

import pytest

from doorplate_track.history import summarize_device
from doorplate_track.models import Location, Proximity
from doorplate_track.proximity import GeofenceCircle, GeofenceMonitor, proximity_samples, proximity_stats

NOW = datetime(2025, 1, 1, 10, 1, 0)
OBSERVER = Location(lat=17.5212, lng=78.3964)


def _device(mac: str, lat: str, lng: str, ts: str = "2025-01-01_10-00-00"):
    return summarize_device(mac, {ts: {"latitude": lat, "longitude": lng}}, now=NOW)


def test_samples_sorted_and_skip_unpositioned():
    devices = [
        _device("far", "17.6212", "78.3964"),
        _device("near", "17.5213", "78.3964"),
        _device("nopos", "N/a", "78.3964"),
    ]
    samples = proximity_samples(OBSERVER, devices)
    assert [s.device_id for s in samples] == ["near", "far"]
    assert samples[0].proximity is Proximity.VERY_CLOSE
    assert samples[1].proximity is Proximity.FAR
    assert samples[0].distance_m == pytest.approx(11.1, abs=0.5)


def test_proximity_stats_has_every_label():
    samples = proximity_samples(OBSERVER, [_device("near", "17.5213", "78.3964")])
    stats = proximity_stats(samples)
    assert stats == {
        Proximity.VERY_CLOSE: 1,
        Proximity.CLOSE: 0,
        Proximity.NEARBY: 0,
        Proximity.FAR: 0,
    }


def test_geofence_circle_contains():
    fence = GeofenceCircle(center_lat=17.5212, center_lng=78.3964, radius_m=50.0, name="office")
    assert fence.contains(Location(17.5213, 78.3964))
    assert not fence.contains(Location(17.5232, 78.3964))


def test_monitor_alerts_once_per_device():
    monitor = GeofenceMonitor(radius_m=100.0)
    devices = [_device("near", "17.5213", "78.3964"), _device("far", "17.6212", "78.3964")]

    first = monitor.check(OBSERVER, devices, now=NOW)
    assert [a.device_id for a in first] == ["near"]
    assert first[0].kind == "Entered Zone"
    assert first[0].timestamp == NOW

    assert monitor.check(OBSERVER, devices, now=NOW) == []
    assert len(monitor.alerts) == 1


def test_monitor_ignores_offline_devices():
    monitor = GeofenceMonitor(radius_m=100.0)
    stale = _device("near", "17.5213", "78.3964", ts="2024-12-31_10-00-00")
    assert not stale.is_active
    assert monitor.check(OBSERVER, [stale], now=NOW) == []


def test_monitor_buffer_keeps_newest():
    monitor = GeofenceMonitor(radius_m=100.0, max_alerts=2)
    for mac in ("a", "b", "c"):
        monitor.check(OBSERVER, [_device(mac, "17.5213", "78.3964")], now=NOW)
    assert [a.device_id for a in monitor.alerts] == ["c", "b"]


def test_monitor_rejects_bad_buffer_size():
    with pytest.raises(ValueError):
        GeofenceMonitor(max_alerts=0)
