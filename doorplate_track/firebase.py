"""Firebase Realtime Database REST adapter.

This module intentionally uses only Python standard library to keep the project lightweight.

Layout expected at the database root:

    /<MAC address>/<YYYY-MM-DD_HH-MM-SS> -> {"latitude": ..., "longitude": ..., "altitude": ...}
    /alerts/geofence/<id> -> alert record
    /devices/<id>/location -> last pushed location

Important:
    - The database secret is passed as the ``auth`` query parameter, so URLs
      must never be logged verbatim.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from doorplate_track.history import summarize_device
from doorplate_track.models import DeviceSummary

logger = logging.getLogger(__name__)

ENV_DATABASE_URL = "DOORPLATE_FIREBASE_DATABASE_URL"
ENV_SECRET = "DOORPLATE_FIREBASE_SECRET"
ENV_TIMEOUT = "DOORPLATE_FIREBASE_TIMEOUT"

# 根节点下不是设备（MAC 地址）的路径
IGNORED_ROOT_KEYS: tuple[str, ...] = ("devices", "alerts", "geofencealerts", "geofence")


def devices_from_root(
    root: Mapping[str, Any] | None,
    *,
    now: datetime | None = None,
    ignored_root_keys: tuple[str, ...] = IGNORED_ROOT_KEYS,
) -> list[DeviceSummary]:
    """Summaries for the devices in a root snapshot (or a JSON export of one).

    Ignored paths are skipped, and so is any key whose history has no valid
    timestamp: it is not treated as a device.
    """

    if not root:
        return []
    ignored = {k.lower() for k in ignored_root_keys}
    out: list[DeviceSummary] = []
    for mac, hist in root.items():
        if str(mac).lower() in ignored:
            continue
        summary = summarize_device(str(mac), hist if isinstance(hist, dict) else None, now=now)
        if summary.latest is None:
            logger.debug("跳过没有有效时间戳的根节点：%r", mac)
            continue
        out.append(summary)
    return out


class FirebaseError(RuntimeError):
    """Transport or HTTP failure talking to the Realtime Database."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True, slots=True)
class FirebaseConfig:
    """Configuration for the Realtime Database REST API."""

    database_url: str
    auth_token: str = ""
    timeout_seconds: float = 20.0
    ignored_root_keys: tuple[str, ...] = IGNORED_ROOT_KEYS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FirebaseConfig:
        """Build config from environment variables.

        Raises:
            ValueError: If the database URL is not set or the timeout is invalid.
        """

        env = os.environ if environ is None else environ
        url = (env.get(ENV_DATABASE_URL) or "").strip()
        if not url:
            raise ValueError(f"未设置 {ENV_DATABASE_URL}（例如 https://<project>-default-rtdb.firebaseio.com/）")
        timeout_raw = env.get(ENV_TIMEOUT)
        try:
            timeout = float(timeout_raw) if timeout_raw else 20.0
        except ValueError as exc:
            raise ValueError(f"{ENV_TIMEOUT} 不是有效数字：{timeout_raw!r}") from exc
        return cls(database_url=url, auth_token=env.get(ENV_SECRET, ""), timeout_seconds=timeout)


class FirebaseClient:
    """Read device histories from the Realtime Database."""

    def __init__(self, config: FirebaseConfig) -> None:
        self._cfg = config
        base = config.database_url
        self._base_url = base if base.endswith("/") else f"{base}/"
        self._ignored = {k.lower() for k in config.ignored_root_keys}

    def build_url(self, path: str) -> str:
        """Build the REST URL for a database path (with auth if configured)."""

        clean = path[1:] if path.startswith("/") else path
        url = f"{self._base_url}{urllib.parse.quote(clean, safe='/:')}.json"
        if self._cfg.auth_token:
            url = f"{url}?{urllib.parse.urlencode({'auth': self._cfg.auth_token})}"
        return url

    def _request(self, path: str, method: str = "GET", body: Any = None) -> Any:
        data = None
        headers = {"Accept": "application/json"}
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = urllib.request.Request(self.build_url(path), data=data, headers=headers, method=method)
        logger.debug("Firebase %s /%s", method, path)
        try:
            with urllib.request.urlopen(req, timeout=self._cfg.timeout_seconds) as resp:  # noqa: S310
                text = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            raise FirebaseError(f"Firebase {method} /{path} 失败：HTTP {exc.code} {exc.reason}", status=exc.code) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise FirebaseError(f"Firebase {method} /{path} 网络错误：{exc}") from exc
        try:
            return json.loads(text) if text.strip() else None
        except json.JSONDecodeError as exc:
            raise FirebaseError(f"Firebase /{path} 返回的不是 JSON") from exc

    def fetch(self, path: str) -> Any:
        """GET a path; returns None when the path does not exist."""

        data = self._request(path)
        if data is None:
            logger.info("Firebase 路径 /%s 为空", path)
        return data

    def test_connection(self) -> bool:
        """Return True if the database root can be read."""

        try:
            self.fetch("")
        except FirebaseError as exc:
            logger.warning("Firebase 连接测试失败：%s", exc)
            return False
        return True

    def list_device_ids(self) -> list[str]:
        """MAC-address keys at the root, minus known non-device paths."""

        root = self.fetch("")
        if not isinstance(root, dict):
            return []
        return [k for k in root.keys() if str(k).lower() not in self._ignored]

    def get_device_history(self, mac_address: str) -> dict[str, Any]:
        """All timestamped entries of one device (empty if missing)."""

        data = self.fetch(mac_address)
        if not isinstance(data, dict):
            return {}
        return data

    def get_device_summary(self, mac_address: str, now: datetime | None = None) -> DeviceSummary:
        return summarize_device(mac_address, self.get_device_history(mac_address), now=now)

    def get_devices(self, now: datetime | None = None) -> list[DeviceSummary]:
        """Summaries for every device at the root.

        A device whose history cannot be fetched is logged and skipped. Keys
        without any valid timestamp are not devices and are dropped.
        """

        out: list[DeviceSummary] = []
        for mac in self.list_device_ids():
            try:
                summary = self.get_device_summary(mac, now=now)
            except FirebaseError as exc:
                logger.warning("读取设备 %s 失败，已跳过：%s", mac, exc)
                continue
            if summary.latest is None:
                logger.debug("跳过没有有效时间戳的根节点：%r", mac)
                continue
            out.append(summary)
        return out

    def get_geofence_alerts(self) -> list[dict[str, Any]]:
        """Geofence alert records, each tagged with its key as ``id``."""

        data = self.fetch("alerts/geofence")
        if isinstance(data, dict):
            return [{"id": k, **v} if isinstance(v, dict) else {"id": k, "value": v} for k, v in data.items()]
        if isinstance(data, list):
            return [v for v in data if v is not None]
        return []

    def update_device_location(self, device_id: str, location: dict[str, Any]) -> Any:
        """PUT a location record to ``devices/<id>/location``."""

        return self._request(f"devices/{device_id}/location", method="PUT", body=location)


def poll_devices(
    client: FirebaseClient,
    callback: Callable[[list[DeviceSummary]], None],
    *,
    interval_seconds: float = 30.0,
    stop_event: threading.Event | None = None,
    max_iterations: int | None = None,
    clock: Callable[[], datetime] | None = None,
) -> int:
    """Fetch devices now and then every interval until stopped.

    A failed poll is logged and polling continues with the next tick.

    Returns:
        Number of completed polls (successful or not).
    """

    stop = stop_event if stop_event is not None else threading.Event()
    done = 0
    while not stop.is_set():
        try:
            callback(client.get_devices(now=clock() if clock is not None else None))
        except FirebaseError as exc:
            logger.error("轮询设备失败：%s", exc)
        done += 1
        if max_iterations is not None and done >= max_iterations:
            break
        stop.wait(interval_seconds)
    return done
