"""Device history normalization.

A device history is the mapping stored under a MAC address upstream:

    {
        "2025-11-01_14-37-30": {"latitude": "17.52", "longitude": "78.39", "altitude": "N/a"},
        ...
    }

Keys are zero-padded, so lexical order equals chronological order.
Everything here is pure: callers pass a snapshot and get derived values back.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence

from doorplate_track.models import (
    ABSENT_MARKER,
    ACTIVE_WINDOW_SECONDS,
    DeviceSummary,
    Reading,
    ReadingDelta,
)
from doorplate_track.timeutils import DeltaStats, delta_stats, is_recent, parse_reading_timestamp

logger = logging.getLogger(__name__)


def parse_coordinate(value: object) -> float | None:
    """Parse one coordinate field.

    Absent values ("N/a", empty, None), unparseable strings and non-finite
    numbers all map to None. They are never defaulted to zero.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s or s.lower() == ABSENT_MARKER.lower():
            return None
        try:
            number = float(s)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def reading_from_raw(key: str, raw: object) -> Reading:
    """Build a Reading from a history key and its stored record."""

    record: dict[str, Any] = dict(raw) if isinstance(raw, Mapping) else {}
    return Reading(
        timestamp_key=key,
        timestamp=parse_reading_timestamp(key),
        latitude=parse_coordinate(record.get("latitude")),
        longitude=parse_coordinate(record.get("longitude")),
        altitude=parse_coordinate(record.get("altitude")),
        raw=record,
    )


def ordered_readings(history: Mapping[str, object] | None, *, valid_only: bool = True) -> list[Reading]:
    """Return readings newest first (descending key order).

    Args:
        history: Timestamp-key -> record mapping. None is treated as empty.
        valid_only: Drop readings whose key does not parse as a timestamp.
    """

    if not history:
        return []
    out: list[Reading] = []
    for key in sorted(history.keys(), key=str, reverse=True):
        reading = reading_from_raw(str(key), history[key])
        if valid_only and reading.timestamp is None:
            logger.debug("跳过无法解析的时间戳：%r", key)
            continue
        out.append(reading)
    return out


def latest_valid_reading(history: Mapping[str, object] | None) -> Reading | None:
    """Return the newest reading whose timestamp parses, or None.

    Malformed keys are skipped wherever they sort; an empty history or one
    without any valid key is a normal "no usable data" outcome.
    """

    if not history:
        return None
    for key in sorted(history.keys(), key=str, reverse=True):
        if parse_reading_timestamp(key) is not None:
            return reading_from_raw(key, history[key])
    return None


def _diff(current: float | None, prior: float | None) -> float | None:
    if current is None or prior is None:
        return None
    return current - prior


def compute_deltas(readings_newest_first: Sequence[Reading]) -> list[ReadingDelta]:
    """Annotate readings with the change against their older neighbour.

    Readings missing latitude or longitude are dropped before comparing.
    Missing altitude only suppresses the altitude delta. The oldest remaining
    reading has no deltas.

    Args:
        readings_newest_first: Readings ordered newest first.

    Returns:
        One ReadingDelta per reading with a position, newest first.
    """

    positioned = [r for r in readings_newest_first if r.has_position]
    out: list[ReadingDelta] = []
    for i, cur in enumerate(positioned):
        prior = positioned[i + 1] if i + 1 < len(positioned) else None
        if prior is None:
            out.append(ReadingDelta(reading=cur, d_latitude=None, d_longitude=None, d_altitude=None))
            continue
        out.append(
            ReadingDelta(
                reading=cur,
                d_latitude=_diff(cur.latitude, prior.latitude),
                d_longitude=_diff(cur.longitude, prior.longitude),
                d_altitude=_diff(cur.altitude, prior.altitude),
            )
        )
    return out


def device_display_name(mac_address: str) -> str:
    """Readable device name, e.g. "Device 80F3DA (80:F3:DA:41:5E:C0)"."""

    short = mac_address.replace(":", "")[:6].upper()
    return f"Device {short} ({mac_address})"


def summarize_device(
    mac_address: str,
    history: Mapping[str, object] | None,
    *,
    now: datetime | None = None,
    active_window_s: float = ACTIVE_WINDOW_SECONDS,
) -> DeviceSummary:
    """Summarize one device from its history snapshot.

    Args:
        mac_address: Device key.
        history: Timestamp-key -> record mapping (may be None).
        now: Reference time (naive local). Defaults to datetime.now().
        active_window_s: A device is Active if its latest valid reading is
            newer than this many seconds.
    """

    latest = latest_valid_reading(history)
    if latest is None and history:
        logger.warning("设备 %s 没有可用的时间戳记录（共 %s 条）", mac_address, len(history))
    ref = now if now is not None else datetime.now()
    active = latest is not None and is_recent(latest.timestamp, ref, active_window_s)
    return DeviceSummary(
        mac_address=mac_address,
        name=device_display_name(mac_address),
        status="Active" if active else "Offline",
        latest=latest,
        entry_count=len(history) if history else 0,
    )


@dataclass(frozen=True, slots=True)
class HistoryStats:
    """High-level inspection result for one device history."""

    entries_total: int
    entries_valid: int
    entries_invalid: int
    entries_with_position: int
    first_time: datetime | None
    last_time: datetime | None
    delta: DeltaStats | None


def inspect_history(history: Mapping[str, object] | None) -> HistoryStats:
    """Inspect a history snapshot: counts, time range and sampling intervals."""

    readings = ordered_readings(history, valid_only=False)
    valid = [r for r in readings if r.timestamp is not None]
    times = sorted(r.timestamp for r in valid if r.timestamp is not None)
    return HistoryStats(
        entries_total=len(readings),
        entries_valid=len(valid),
        entries_invalid=len(readings) - len(valid),
        entries_with_position=sum(1 for r in valid if r.has_position),
        first_time=times[0] if times else None,
        last_time=times[-1] if times else None,
        delta=delta_stats(times),
    )
