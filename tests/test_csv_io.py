from __future__ import annotations

import csv
from pathlib import Path

import pytest

from doorplate_track.csv_io import load_sim_data
from doorplate_track.models import Location, Proximity

FIELDS = [
    "type",
    "id",
    "username",
    "fullName",
    "email",
    "level",
    "status",
    "permissions",
    "deviceId",
    "deviceName",
    "deviceType",
    "isOnline",
    "isMoving",
    "batteryLevel",
    "signalStrength",
    "latitude",
    "longitude",
    "location",
    "geofence",
    "assignedUser",
    "firmwareVersion",
    "lastSeen",
    "lastCommand",
    "geofenceViolations",
    "geofenceName",
    "centerLat",
    "centerLng",
    "radius",
    "assignedDevices",
]

ROWS = [
    {"type": "user", "id": "u1", "username": "enduser", "fullName": "End User", "email": "user@keiros.com",
     "level": "enduser", "status": "Active", "permissions": "read,track"},
    {"type": "device", "id": "d1", "deviceId": "DEV-001", "deviceName": "Plate 1", "status": "Active",
     "isOnline": "true", "batteryLevel": "15", "latitude": "40.7128", "longitude": "-74.0060",
     "location": "Manhattan", "geofence": "Zone A", "assignedUser": "End User", "geofenceViolations": "3",
     "lastSeen": "2025-01-01T10:00:00Z"},
    {"type": "device", "id": "d2", "deviceId": "DEV-002", "deviceName": "Plate 2", "status": "Pending Approval",
     "isOnline": "false", "batteryLevel": "80", "latitude": "N/a", "longitude": "", "geofence": "Zone B",
     "assignedUser": "Someone Else", "geofenceViolations": "1"},
    {"type": "geofence", "id": "g1", "geofenceName": "Zone A", "centerLat": "40.7128", "centerLng": "-74.0060",
     "radius": "500", "status": "Active", "assignedDevices": "DEV-001, DEV-002"},
    {"type": "geofence", "id": "g2", "geofenceName": "Broken", "centerLat": "x", "centerLng": "1", "radius": "1"},
    {"type": "package", "id": "p1"},
    {"type": "trip", "id": "t1"},
]


@pytest.fixture()
def sim_csv(tmp_path: Path) -> Path:
    p = tmp_path / "data_sim_app.csv"
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=FIELDS)
        w.writeheader()
        w.writerows(ROWS)
    return p


def test_load_summary(sim_csv):
    data, summary = load_sim_data(sim_csv)
    assert summary.rows_total == 7
    assert summary.rows_parsed == 4
    assert summary.rows_skipped == 1
    assert summary.rows_ignored == 2
    assert "type" in summary.fieldnames
    assert len(data.devices) == 2
    assert len(data.geofences) == 1
    assert data.users[0].permissions == ("read", "track")


def test_absent_coordinates_stay_none(sim_csv):
    data, _ = load_sim_data(sim_csv)
    d2 = data.device_by_id("DEV-002")
    assert d2.latitude is None
    assert d2.longitude is None
    assert d2.location is None
    assert data.device_by_id("d1").is_online is True


def test_geofence_assigned_devices(sim_csv):
    data, _ = load_sim_data(sim_csv)
    g = data.geofences[0]
    assert g.assigned_devices == ("DEV-001", "DEV-002")
    assert g.circle.radius_m == 500.0
    assert g.circle.name == "Zone A"


def test_devices_for_user(sim_csv):
    data, _ = load_sim_data(sim_csv)
    assert [d.device_id for d in data.devices_for_user("u1")] == ["DEV-001"]
    assert data.devices_for_user("missing") == []


def test_dashboard_stats(sim_csv):
    data, _ = load_sim_data(sim_csv)
    stats = data.dashboard_stats()
    assert stats["total_devices"] == 2
    assert stats["active_devices"] == 1
    assert stats["online_devices"] == 1
    assert stats["geofence_violations"] == 4
    assert stats["pending_approvals"] == 1


def test_notifications(sim_csv):
    data, _ = load_sim_data(sim_csv)
    notes = data.notifications()
    assert [n["id"] for n in notes] == ["battery-d1", "geofence-d1", "geofence-d2"]
    assert notes[0]["type"] == "warning"
    assert notes[1]["type"] == "alert"


def test_geofence_violations_need_known_fence(sim_csv):
    data, _ = load_sim_data(sim_csv)
    violations = data.geofence_violations()
    assert len(violations) == 1
    v = violations[0]
    assert v["device_id"] == "DEV-001"
    assert v["severity"] == "High"
    assert v["inside"] is True


def test_device_proximity_skips_unpositioned(sim_csv):
    data, _ = load_sim_data(sim_csv)
    samples = data.device_proximity(Location(40.7129, -74.0060))
    assert [s.device_id for s in samples] == ["DEV-001"]
    assert samples[0].proximity is Proximity.VERY_CLOSE
    assert data.device_proximity(Location(0.0, 0.0), user_id="missing") == []


def test_search(sim_csv):
    data, _ = load_sim_data(sim_csv)
    hits = data.search("manhattan")
    assert [(kind, obj.id) for kind, obj in hits] == [("device", "d1")]
    assert [kind for kind, _ in data.search("keiros")] == ["user"]
    assert data.search("  ") == []


def test_non_finite_numbers_skip_the_row(tmp_path):
    p = tmp_path / "sim.csv"
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=["type", "id", "deviceName", "batteryLevel", "geofenceViolations"])
        w.writeheader()
        w.writerow({"type": "device", "id": "d1", "deviceName": "P1", "geofenceViolations": "inf"})
        w.writerow({"type": "device", "id": "d2", "deviceName": "P2", "batteryLevel": "nan"})
        w.writerow({"type": "device", "id": "d3", "deviceName": "P3", "geofenceViolations": "2"})

    data, summary = load_sim_data(p)
    assert summary.rows_parsed == 1
    assert summary.rows_skipped == 2
    assert [d.id for d in data.devices] == ["d3"]
