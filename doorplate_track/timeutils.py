"""Time parsing and formatting utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable

from zoneinfo import ZoneInfo

# 2025-11-01_14-37-30
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_TIME_RE = re.compile(r"[0-9]{2}-[0-9]{2}-[0-9]{2}")


def tzinfo_from_name(tz_name: str) -> tzinfo:
    """Create tzinfo from an IANA timezone name.

    Args:
        tz_name: Timezone name like "Asia/Kolkata".

    Returns:
        tzinfo instance.

    Raises:
        ValueError: If timezone name is invalid on this system.
    """

    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # ZoneInfo raises KeyError / ZoneInfoNotFoundError (platform dependent)
        raise ValueError(f"无效时区：{tz_name!r}。例如可用：Asia/Kolkata") from exc


def parse_reading_timestamp(key: object) -> datetime | None:
    """Parse a history key like "2025-11-01_14-37-30" into a naive local datetime.

    The key must contain exactly one "_" separating "YYYY-MM-DD" from "HH-MM-SS".
    The time hyphens are rewritten to colons and the result is parsed as
    "YYYY-MM-DDTHH:MM:SS".

    Returns:
        Parsed datetime, or None for any other shape or an impossible date.
    """

    if not isinstance(key, str):
        return None
    parts = key.split("_")
    if len(parts) != 2:
        return None
    date_part, time_part = parts
    if not _DATE_RE.fullmatch(date_part) or not _TIME_RE.fullmatch(time_part):
        return None
    try:
        return datetime.fromisoformat(f"{date_part}T{time_part.replace('-', ':')}")
    except ValueError:
        # 例如 2025-02-30
        return None


def format_reading_timestamp(dt: datetime) -> str:
    """Format a datetime back into the history key format."""

    return dt.strftime("%Y-%m-%d_%H-%M-%S")


def is_recent(ts: datetime | None, now: datetime, window_seconds: float) -> bool:
    """True if ts lies within [now - window, now]."""

    if ts is None:
        return False
    age_s = (now - ts).total_seconds()
    return 0.0 <= age_s < window_seconds


def format_last_update(ts: datetime | None, now: datetime) -> str:
    """Render a "last update" cell the way the device list shows it."""

    if ts is None:
        return "—"
    mins = round((now - ts).total_seconds() / 60.0)
    if mins < 1:
        return "Just now"
    if mins < 60:
        return f"{mins} min ago"
    return ts.strftime("%d/%m/%Y, %H:%M")


@dataclass(frozen=True, slots=True)
class DeltaStats:
    """Sampling interval stats (seconds)."""

    count: int
    min_s: float
    median_s: float
    p95_s: float
    max_s: float


def delta_stats(times_sorted: Iterable[datetime]) -> DeltaStats | None:
    """Compute basic sampling-interval statistics.

    Args:
        times_sorted: Datetimes sorted ascending.

    Returns:
        DeltaStats or None if less than 2 points.
    """

    ts = list(times_sorted)
    if len(ts) < 2:
        return None
    deltas = [(ts[i] - ts[i - 1]).total_seconds() for i in range(1, len(ts)) if ts[i] >= ts[i - 1]]
    if not deltas:
        return None
    deltas.sort()
    n = len(deltas)
    median = deltas[n // 2] if n % 2 == 1 else 0.5 * (deltas[n // 2 - 1] + deltas[n // 2])
    p95 = deltas[int(0.95 * (n - 1))]
    return DeltaStats(
        count=n,
        min_s=deltas[0],
        median_s=median,
        p95_s=p95,
        max_s=deltas[-1],
    )
