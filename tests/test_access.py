from __future__ import annotations

from doorplate_track.access import (
    MANAGE_USERS,
    VIEW_FLEET,
    VIEW_GEOFENCE_ALERTS,
    VIEW_OWN_DEVICES,
    VIEW_PROXIMITY,
    VIEW_USERS,
    capabilities_for,
    has_capability,
    level_info,
    navigation_for,
    own_devices,
)
from doorplate_track.history import summarize_device


def test_admin_has_management_capabilities():
    assert has_capability("admin", MANAGE_USERS)
    assert has_capability("admin", VIEW_PROXIMITY)
    assert not has_capability("admin", VIEW_FLEET)


def test_proximity_viewers():
    for level in ("admin", "operator", "manager", "supervisor", "analyst", "enduser"):
        assert has_capability(level, VIEW_PROXIMITY), level
    assert not has_capability("fleetmanager", VIEW_PROXIMITY)


def test_unknown_level_has_nothing():
    assert capabilities_for("guest") == frozenset()
    assert capabilities_for(None) == frozenset()
    assert navigation_for("guest") == []


def test_level_lookup_is_case_insensitive():
    assert has_capability(" EndUser ", VIEW_OWN_DEVICES)


def test_level_info():
    assert level_info("fleetmanager").name == "Fleet Manager"
    assert level_info("nope").name == "Unknown"
    assert level_info(None).access == "No Access"


def test_navigation_per_level():
    assert navigation_for("enduser") == ["My Devices"]
    assert navigation_for("fleetmanager") == ["Fleet Dashboard", "Reports"]
    assert navigation_for("admin") == ["Overview", "Devices", "Users", "Geofence Alerts", "Reports", "Settings"]


def test_operations_roles():
    for level in ("admin", "operator", "manager", "supervisor"):
        assert has_capability(level, VIEW_GEOFENCE_ALERTS), level
        assert has_capability(level, VIEW_USERS), level
    assert has_capability("operator", MANAGE_USERS)
    assert not has_capability("manager", MANAGE_USERS)
    assert not has_capability("supervisor", MANAGE_USERS)
    assert not has_capability("analyst", VIEW_GEOFENCE_ALERTS)


def test_navigation_for_operations_roles():
    for level in ("operator", "manager", "supervisor"):
        assert navigation_for(level) == ["Users", "Geofence Alerts"], level
    assert navigation_for("analyst") == []
    assert level_info("supervisor").name == "Supervisor"


def test_own_devices_filters_by_mac():
    devices = [summarize_device(mac, {}) for mac in ("80:F3:DA:41:5E:C0", "AA:BB:CC:DD:EE:FF")]
    mine = own_devices(devices, ["80:f3:da:41:5e:c0 ", ""])
    assert [d.mac_address for d in mine] == ["80:F3:DA:41:5E:C0"]
    assert own_devices(devices, []) == []
