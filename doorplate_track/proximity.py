"""Observer-to-device proximity and geofence entry alerts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from doorplate_track.geo import classify_proximity, distance_m, is_inside_circle
from doorplate_track.models import DeviceSummary, Location, Proximity

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProximitySample:
    """Distance from the observer to one device at a point in time."""

    device_id: str
    device_name: str
    distance_m: float
    proximity: Proximity
    observer: Location
    device_location: Location


def sample_for(device_id: str, device_name: str, observer: Location, device_location: Location) -> ProximitySample:
    """Measure one observer/device pair."""

    d = distance_m(observer.lat, observer.lng, device_location.lat, device_location.lng)
    return ProximitySample(
        device_id=device_id,
        device_name=device_name,
        distance_m=d,
        proximity=classify_proximity(d),
        observer=observer,
        device_location=device_location,
    )


def proximity_samples(observer: Location, devices: Iterable[DeviceSummary]) -> list[ProximitySample]:
    """Compute one sample per positioned device, nearest first.

    Devices without a known position are skipped rather than placed at (0, 0).
    """

    out: list[ProximitySample] = []
    for dev in devices:
        loc = dev.location
        if loc is None:
            logger.debug("设备 %s 没有位置，跳过距离计算", dev.mac_address)
            continue
        out.append(sample_for(dev.mac_address, dev.name, observer, loc))
    out.sort(key=lambda s: s.distance_m)
    return out


def proximity_stats(samples: Iterable[ProximitySample]) -> dict[Proximity, int]:
    """Count samples per proximity label (every label present)."""

    counts = {p: 0 for p in Proximity}
    for s in samples:
        counts[s.proximity] += 1
    return counts


@dataclass(frozen=True, slots=True)
class GeofenceCircle:
    """A circle geofence (center + radius)."""

    center_lat: float
    center_lng: float
    radius_m: float
    name: str = ""

    def contains(self, loc: Location) -> bool:
        return is_inside_circle(loc.lat, loc.lng, self.center_lat, self.center_lng, self.radius_m)


@dataclass(frozen=True, slots=True)
class GeofenceAlert:
    """An "Entered Zone" style event for one device."""

    device_id: str
    device_name: str
    kind: str
    timestamp: datetime
    distance_m: float
    severity: str = "info"


class GeofenceMonitor:
    """Raise an alert when an active device comes within radius of the observer.

    A device already present in the alert buffer is not alerted again; the
    buffer keeps only the newest ``max_alerts`` entries, newest first.
    """

    def __init__(self, radius_m: float = 100.0, max_alerts: int = 10) -> None:
        if max_alerts < 1:
            raise ValueError("max_alerts must be >= 1")
        self._radius_m = radius_m
        self._max_alerts = max_alerts
        self._alerts: list[GeofenceAlert] = []

    @property
    def alerts(self) -> Sequence[GeofenceAlert]:
        return tuple(self._alerts)

    def check(
        self,
        observer: Location,
        devices: Iterable[DeviceSummary],
        now: datetime | None = None,
    ) -> list[GeofenceAlert]:
        """Evaluate one snapshot and return the newly raised alerts."""

        ts = now if now is not None else datetime.now()
        fence = GeofenceCircle(center_lat=observer.lat, center_lng=observer.lng, radius_m=self._radius_m)
        alerted = {a.device_id for a in self._alerts}
        new_alerts: list[GeofenceAlert] = []
        for dev in devices:
            loc = dev.location
            if not dev.is_active or loc is None or dev.mac_address in alerted:
                continue
            if not fence.contains(loc):
                continue
            new_alerts.append(
                GeofenceAlert(
                    device_id=dev.mac_address,
                    device_name=dev.name,
                    kind="Entered Zone",
                    timestamp=ts,
                    distance_m=distance_m(observer.lat, observer.lng, loc.lat, loc.lng),
                )
            )
            alerted.add(dev.mac_address)

        if new_alerts:
            logger.info("新增地理围栏告警 %s 条", len(new_alerts))
            self._alerts = (new_alerts + self._alerts)[: self._max_alerts]
        return new_alerts
