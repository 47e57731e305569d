"""Role levels and the capabilities each one grants."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Iterable, Sequence

from doorplate_track.models import DeviceSummary

VIEW_OVERVIEW: Final[str] = "view_overview"
MANAGE_DEVICES: Final[str] = "manage_devices"
MANAGE_USERS: Final[str] = "manage_users"
VIEW_USERS: Final[str] = "view_users"
VIEW_GEOFENCE_ALERTS: Final[str] = "view_geofence_alerts"
VIEW_FLEET: Final[str] = "view_fleet"
VIEW_REPORTS: Final[str] = "view_reports"
VIEW_SETTINGS: Final[str] = "view_settings"
VIEW_OWN_DEVICES: Final[str] = "view_own_devices"
VIEW_PROXIMITY: Final[str] = "view_proximity"

_ROLE_CAPABILITIES: Final[dict[str, frozenset[str]]] = {
    "admin": frozenset(
        {
            VIEW_OVERVIEW,
            MANAGE_DEVICES,
            MANAGE_USERS,
            VIEW_USERS,
            VIEW_GEOFENCE_ALERTS,
            VIEW_REPORTS,
            VIEW_SETTINGS,
            VIEW_PROXIMITY,
        }
    ),
    "fleetmanager": frozenset({VIEW_FLEET, VIEW_REPORTS}),
    "enduser": frozenset({VIEW_OWN_DEVICES, VIEW_PROXIMITY}),
    "operator": frozenset({MANAGE_USERS, VIEW_USERS, VIEW_GEOFENCE_ALERTS, VIEW_PROXIMITY}),
    # 只读：可以看用户和围栏告警，不能改
    "manager": frozenset({VIEW_USERS, VIEW_GEOFENCE_ALERTS, VIEW_PROXIMITY}),
    "supervisor": frozenset({VIEW_USERS, VIEW_GEOFENCE_ALERTS, VIEW_PROXIMITY}),
    "analyst": frozenset({VIEW_PROXIMITY}),
}

# (view name, required capability), in sidebar order
_NAVIGATION: Final[tuple[tuple[str, str], ...]] = (
    ("My Devices", VIEW_OWN_DEVICES),
    ("Fleet Dashboard", VIEW_FLEET),
    ("Overview", VIEW_OVERVIEW),
    ("Devices", MANAGE_DEVICES),
    ("Users", VIEW_USERS),
    ("Geofence Alerts", VIEW_GEOFENCE_ALERTS),
    ("Reports", VIEW_REPORTS),
    ("Settings", VIEW_SETTINGS),
)


@dataclass(frozen=True, slots=True)
class LevelInfo:
    name: str
    access: str


_LEVEL_INFO: Final[dict[str, LevelInfo]] = {
    "admin": LevelInfo("Super Administrator", "Full System Access"),
    "fleetmanager": LevelInfo("Fleet Manager", "Fleet & Logistics Management"),
    "enduser": LevelInfo("End User", "Device Monitoring Only"),
    "operator": LevelInfo("Operator", "Device Management Access"),
    "manager": LevelInfo("Manager", "Team Management Access"),
    "supervisor": LevelInfo("Supervisor", "Supervision Access"),
    "analyst": LevelInfo("Analyst", "Data Analysis Access"),
}


def capabilities_for(level: str | None) -> frozenset[str]:
    """Capabilities granted to a role level; unknown levels get none."""

    if not level:
        return frozenset()
    return _ROLE_CAPABILITIES.get(level.strip().lower(), frozenset())


def has_capability(level: str | None, capability: str) -> bool:
    return capability in capabilities_for(level)


def level_info(level: str | None) -> LevelInfo:
    """Display name and access summary for a level."""

    return _LEVEL_INFO.get((level or "").strip().lower(), LevelInfo("Unknown", "No Access"))


def navigation_for(level: str | None) -> list[str]:
    """Sidebar view names visible to a level, in display order."""

    caps = capabilities_for(level)
    return [name for name, cap in _NAVIGATION if cap in caps]


def own_devices(devices: Sequence[DeviceSummary], mac_addresses: Iterable[str]) -> list[DeviceSummary]:
    """Devices whose MAC address is in ``mac_addresses`` (case-insensitive), input order kept."""

    wanted = {m.strip().upper() for m in mac_addresses if m.strip()}
    return [d for d in devices if d.mac_address.upper() in wanted]
