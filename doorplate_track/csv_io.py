"""CSV input utilities for the dashboard simulation file.

Every row carries a ``type`` column; only ``device``, ``geofence`` and ``user``
rows are loaded. Other kinds (packages, trips) are counted and ignored.
"""

from __future__ import annotations

import csv
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from doorplate_track.history import parse_coordinate
from doorplate_track.models import Location
from doorplate_track.proximity import GeofenceCircle, ProximitySample, sample_for

logger = logging.getLogger(__name__)

LOW_BATTERY_PERCENT = 20.0


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    rows_ignored: int
    fieldnames: Sequence[str]


@dataclass(frozen=True, slots=True)
class SimDevice:
    id: str
    device_id: str
    device_name: str
    device_type: str
    status: str
    is_online: bool
    is_moving: bool
    battery_level: float
    signal_strength: float
    latitude: float | None
    longitude: float | None
    location_name: str
    geofence: str
    assigned_user: str
    firmware_version: str
    last_seen: str
    last_command: str
    geofence_violations: int

    @property
    def location(self) -> Location | None:
        if self.latitude is None or self.longitude is None:
            return None
        return Location(lat=self.latitude, lng=self.longitude)


@dataclass(frozen=True, slots=True)
class SimGeofence:
    id: str
    name: str
    center_lat: float
    center_lng: float
    radius_m: float
    status: str
    assigned_devices: tuple[str, ...]

    @property
    def circle(self) -> GeofenceCircle:
        return GeofenceCircle(
            center_lat=self.center_lat,
            center_lng=self.center_lng,
            radius_m=self.radius_m,
            name=self.name,
        )


@dataclass(frozen=True, slots=True)
class SimUser:
    id: str
    username: str
    full_name: str
    email: str
    level: str
    status: str
    permissions: tuple[str, ...]


def _parse_bool(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


def _parse_float(value: str | None, default: float = 0.0) -> float:
    s = (value or "").strip()
    if not s:
        return default
    number = float(s)
    if not math.isfinite(number):
        raise ValueError(f"非有限数值：{s!r}")
    return number


def _split_list(value: str | None) -> tuple[str, ...]:
    return tuple(p.strip() for p in (value or "").split(",") if p.strip())


def _device_from_row(row: dict[str, str]) -> SimDevice:
    return SimDevice(
        id=row["id"],
        device_id=row.get("deviceId") or row["id"],
        device_name=row.get("deviceName", "") or "",
        device_type=row.get("deviceType", "") or "",
        status=row.get("status", "") or "",
        is_online=_parse_bool(row.get("isOnline")),
        is_moving=_parse_bool(row.get("isMoving")),
        battery_level=_parse_float(row.get("batteryLevel")),
        signal_strength=_parse_float(row.get("signalStrength")),
        # 缺失坐标保持 None，不能当作 0
        latitude=parse_coordinate(row.get("latitude")),
        longitude=parse_coordinate(row.get("longitude")),
        location_name=row.get("location", "") or "",
        geofence=row.get("geofence", "") or "",
        assigned_user=row.get("assignedUser", "") or "",
        firmware_version=row.get("firmwareVersion", "") or "",
        last_seen=row.get("lastSeen", "") or "",
        last_command=row.get("lastCommand", "") or "",
        geofence_violations=int(_parse_float(row.get("geofenceViolations"))),
    )


def _geofence_from_row(row: dict[str, str]) -> SimGeofence:
    return SimGeofence(
        id=row["id"],
        name=row.get("geofenceName", "") or "",
        center_lat=float(row["centerLat"]),
        center_lng=float(row["centerLng"]),
        radius_m=float(row["radius"]),
        status=row.get("status", "") or "",
        assigned_devices=_split_list(row.get("assignedDevices")),
    )


def _user_from_row(row: dict[str, str]) -> SimUser:
    return SimUser(
        id=row["id"],
        username=row.get("username", "") or "",
        full_name=row.get("fullName", "") or "",
        email=row.get("email", "") or "",
        level=row.get("level", "") or "",
        status=row.get("status", "") or "",
        permissions=_split_list(row.get("permissions")) or ("read",),
    )


@dataclass(slots=True)
class SimData:
    """Devices, geofences and users loaded from the simulation CSV."""

    devices: list[SimDevice] = field(default_factory=list)
    geofences: list[SimGeofence] = field(default_factory=list)
    users: list[SimUser] = field(default_factory=list)

    def device_by_id(self, device_id: str) -> SimDevice | None:
        return next((d for d in self.devices if d.device_id == device_id or d.id == device_id), None)

    def devices_for_user(self, user_id: str) -> list[SimDevice]:
        """Devices assigned to a user (assignment is by full name)."""

        user = next((u for u in self.users if u.id == user_id), None)
        if user is None:
            return []
        return [d for d in self.devices if d.assigned_user == user.full_name]

    def dashboard_stats(self) -> dict[str, int]:
        return {
            "total_devices": len(self.devices),
            "active_devices": sum(1 for d in self.devices if d.status == "Active"),
            "online_devices": sum(1 for d in self.devices if d.is_online),
            "geofence_violations": sum(d.geofence_violations for d in self.devices),
            "pending_approvals": sum(1 for d in self.devices if d.status == "Pending Approval"),
            "geofences": len(self.geofences),
            "users": len(self.users),
        }

    def notifications(self) -> list[dict[str, str]]:
        """Low-battery warnings followed by geofence-violation alerts."""

        out: list[dict[str, str]] = []
        for d in self.devices:
            if d.battery_level < LOW_BATTERY_PERCENT:
                out.append(
                    {
                        "id": f"battery-{d.id}",
                        "type": "warning",
                        "message": f"Low battery on {d.device_name}",
                        "device_id": d.device_id,
                    }
                )
        for d in self.devices:
            if d.geofence_violations > 0:
                out.append(
                    {
                        "id": f"geofence-{d.id}",
                        "type": "alert",
                        "message": f"Geofence violation on {d.device_name}",
                        "device_id": d.device_id,
                    }
                )
        return out

    def geofence_violations(self) -> list[dict[str, Any]]:
        """Violation records for devices whose geofence is known."""

        by_name = {g.name: g for g in self.geofences}
        out: list[dict[str, Any]] = []
        for d in self.devices:
            if d.geofence_violations <= 0 or d.geofence not in by_name:
                continue
            out.append(
                {
                    "id": f"violation-{d.id}",
                    "device_id": d.device_id,
                    "device_name": d.device_name,
                    "geofence_name": d.geofence,
                    "violation_type": "Zone Exit",
                    "timestamp": d.last_seen,
                    "severity": "High" if d.geofence_violations > 2 else "Medium",
                    "location": d.location,
                    "inside": d.location is not None and by_name[d.geofence].circle.contains(d.location),
                    "status": "Active",
                }
            )
        return out

    def device_proximity(self, observer: Location, user_id: str | None = None) -> list[ProximitySample]:
        """Proximity of the observer to devices (optionally one user's), nearest first."""

        devices = self.devices_for_user(user_id) if user_id is not None else self.devices
        out = [sample_for(d.device_id, d.device_name, observer, d.location) for d in devices if d.location is not None]
        out.sort(key=lambda s: s.distance_m)
        return out

    def search(self, query: str) -> list[tuple[str, object]]:
        """Case-insensitive substring search over devices and users."""

        q = query.strip().lower()
        if not q:
            return []
        out: list[tuple[str, object]] = []
        for d in self.devices:
            if q in d.device_name.lower() or q in d.device_id.lower() or q in d.location_name.lower():
                out.append(("device", d))
        for u in self.users:
            if q in u.full_name.lower() or q in u.email.lower():
                out.append(("user", u))
        return out


def load_sim_data(csv_path: str | Path) -> tuple[SimData, CsvSummary]:
    """Load the simulation CSV into memory.

    Args:
        csv_path: Path to the CSV.

    Returns:
        (data, summary)
    """

    p = Path(csv_path)
    data = SimData()
    rows_total = 0
    parsed = 0
    ignored: Counter[str] = Counter()
    fieldnames: Sequence[str] = ()

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or ()
        for row in reader:
            rows_total += 1
            kind = (row.get("type") or "").strip().lower()
            try:
                if kind == "device":
                    data.devices.append(_device_from_row(row))
                elif kind == "geofence":
                    data.geofences.append(_geofence_from_row(row))
                elif kind == "user":
                    data.users.append(_user_from_row(row))
                else:
                    ignored[kind or "<empty>"] += 1
                    continue
            except (KeyError, ValueError, TypeError):
                # 某些行可能损坏/缺字段，直接跳过
                continue
            parsed += 1

    ignored_n = sum(ignored.values())
    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=parsed,
        rows_skipped=rows_total - parsed - ignored_n,
        rows_ignored=ignored_n,
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("CSV中有 %s 行解析失败已跳过", summary.rows_skipped)
    if ignored:
        logger.debug("CSV中忽略的行类型：%s", dict(ignored))
    return data, summary
