"""Data models for device readings, summaries and proximity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final


ABSENT_MARKER: Final[str] = "N/a"
EARTH_RADIUS_M: Final[float] = 6_371_000.0  # mean Earth radius in meters
ACTIVE_WINDOW_SECONDS: Final[float] = 5 * 60.0
DEFAULT_TZ: Final[str] = "Asia/Kolkata"


class Proximity(str, Enum):
    """Discrete distance bucket between an observer and a device."""

    VERY_CLOSE = "Very Close"
    CLOSE = "Close"
    NEARBY = "Nearby"
    FAR = "Far"


@dataclass(frozen=True, slots=True)
class Location:
    """A plain lat/lng pair in decimal degrees."""

    lat: float
    lng: float


@dataclass(frozen=True, slots=True)
class Reading:
    """A single timestamped device sample.

    Attributes:
        timestamp_key: Raw history key, e.g. "2025-11-01_14-37-30".
        timestamp: Parsed naive local datetime, or None if the key is malformed.
        latitude: Latitude in decimal degrees, None when absent ("N/a").
        longitude: Longitude in decimal degrees, None when absent.
        altitude: Altitude in meters, None when absent.
        raw: The untouched record as stored upstream.
    """

    timestamp_key: str
    timestamp: datetime | None
    latitude: float | None
    longitude: float | None
    altitude: float | None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def has_position(self) -> bool:
        """True if both latitude and longitude are present."""

        return self.latitude is not None and self.longitude is not None

    @property
    def location(self) -> Location | None:
        if self.latitude is None or self.longitude is None:
            return None
        return Location(lat=self.latitude, lng=self.longitude)


@dataclass(frozen=True, slots=True)
class ReadingDelta:
    """A reading annotated with the change against its older neighbour.

    Note:
        Each delta is current - prior. None means there is no prior value
        (oldest entry) or one side of the altitude pair is absent.
    """

    reading: Reading
    d_latitude: float | None
    d_longitude: float | None
    d_altitude: float | None


@dataclass(frozen=True, slots=True)
class DeviceSummary:
    """Latest known state of one device."""

    mac_address: str
    name: str
    status: str
    latest: Reading | None
    entry_count: int

    @property
    def is_active(self) -> bool:
        return self.status == "Active"

    @property
    def location(self) -> Location | None:
        return self.latest.location if self.latest is not None else None

    @property
    def last_update(self) -> datetime | None:
        return self.latest.timestamp if self.latest is not None else None
