from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import streamlit as st

from doorplate_track.access import (
    MANAGE_DEVICES,
    VIEW_OWN_DEVICES,
    VIEW_PROXIMITY,
    has_capability,
    level_info,
    own_devices,
)
from doorplate_track.firebase import FirebaseClient, FirebaseConfig, FirebaseError, devices_from_root
from doorplate_track.geo import format_distance, signal_quality
from doorplate_track.history import compute_deltas, ordered_readings
from doorplate_track.models import DEFAULT_TZ, Location, Proximity
from doorplate_track.proximity import proximity_samples, proximity_stats
from doorplate_track.timeutils import format_last_update, tzinfo_from_name


def _fmt(v: float | None, digits: int = 6) -> str:
    return "" if v is None else f"{v:.{digits}f}"


def _fmt_delta(v: float | None, digits: int = 6) -> str:
    if v is None:
        return ""
    arrow = "↑" if v > 0 else ("↓" if v < 0 else "→")
    return f"{arrow} {v:+.{digits}f}"


@st.cache_data(show_spinner=False)
def _load_root_json(path: str, mtime: float) -> dict[str, Any]:
    _ = mtime  # part of cache key so updated files reload automatically
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


@st.cache_data(show_spinner=False, ttl=30)
def _load_firebase_root(database_url: str, auth_token: str) -> dict[str, Any]:
    client = FirebaseClient(FirebaseConfig(database_url=database_url, auth_token=auth_token))
    root = client.fetch("")
    return root if isinstance(root, dict) else {}


def main() -> None:
    st.set_page_config(page_title="Keiros Device Tracking", layout="wide")
    st.title("Keiros 门牌设备追踪")

    with st.sidebar:
        st.subheader("用户")
        level = st.selectbox(
            "角色 level",
            ["admin", "fleetmanager", "enduser", "operator", "manager", "supervisor", "analyst"],
        )
        info = level_info(level)
        st.caption(f"{info.name} · {info.access}")
        my_macs = ""
        if has_capability(level, VIEW_OWN_DEVICES) and not has_capability(level, MANAGE_DEVICES):
            my_macs = st.text_input("我的设备 MAC（逗号分隔）", value="")

        st.subheader("数据源")
        source = st.radio("来源", ["JSON 导出文件", "Firebase"], horizontal=True)
        tz_name = st.text_input("设备时区（IANA）", value=DEFAULT_TZ)
        if source == "Firebase":
            database_url = st.text_input("Database URL", value="")
            auth_token = st.text_input("Database secret", value="", type="password")
            json_path = ""
        else:
            json_path = st.text_input("JSON 路径", value="firebase_export.json")
            database_url = auth_token = ""

        st.subheader("观察者位置")
        obs_lat = st.number_input("纬度 lat", value=17.5212000, format="%.7f")
        obs_lng = st.number_input("经度 lng", value=78.3964000, format="%.7f")

    if not (has_capability(level, MANAGE_DEVICES) or has_capability(level, VIEW_OWN_DEVICES)):
        st.warning("当前角色没有查看设备的权限。")
        return

    try:
        now = datetime.now(tzinfo_from_name(tz_name)).replace(tzinfo=None)
    except ValueError as exc:
        st.error(str(exc))
        return

    try:
        if source == "Firebase":
            if not database_url:
                st.info("请在左侧填写 Database URL。")
                return
            root = _load_firebase_root(database_url, auth_token)
        else:
            p = Path(json_path)
            if not p.exists():
                st.error(f"找不到文件：{json_path!r}")
                return
            root = _load_root_json(json_path, p.stat().st_mtime)
    except (FirebaseError, ValueError) as exc:
        st.exception(exc)
        return

    devices = devices_from_root(root, now=now)
    if not has_capability(level, MANAGE_DEVICES):
        # 终端用户只看自己名下的设备
        devices = own_devices(devices, my_macs.split(","))
    observer = Location(lat=float(obs_lat), lng=float(obs_lng))
    samples = proximity_samples(observer, devices)
    sample_by_id = {s.device_id: s for s in samples}

    st.subheader("汇总")
    c1, c2, c3 = st.columns(3)
    c1.metric("设备数", str(len(devices)))
    c2.metric("在线 Active", str(sum(1 for d in devices if d.is_active)))
    c3.metric("有位置的设备", str(len(samples)))

    if has_capability(level, VIEW_PROXIMITY):
        stats = proximity_stats(samples)
        cols = st.columns(len(Proximity))
        for col, label in zip(cols, Proximity):
            col.metric(label.value, str(stats[label]))

    st.subheader("设备列表")
    rows: list[dict[str, object]] = []
    for d in devices:
        s = sample_by_id.get(d.mac_address)
        loc = d.location
        rows.append(
            {
                "device": d.name,
                "status": d.status,
                "entries": d.entry_count,
                "latitude": _fmt(loc.lat) if loc else "",
                "longitude": _fmt(loc.lng) if loc else "",
                "last_update": format_last_update(d.last_update, now),
                "distance": format_distance(s.distance_m) if s else "",
                "proximity": s.proximity.value if s else "",
                "signal": signal_quality(s.distance_m) if s else "",
            }
        )
    st.dataframe(rows, use_container_width=True, height=360)

    if not devices:
        return
    st.subheader("设备历史（新 -> 旧）")
    mac = st.selectbox("设备", [d.mac_address for d in devices])
    hist = root.get(mac)
    deltas = compute_deltas(ordered_readings(hist if isinstance(hist, dict) else None))
    st.dataframe(
        [
            {
                "timestamp": r.reading.timestamp_key,
                "latitude": _fmt(r.reading.latitude),
                "Δlat": _fmt_delta(r.d_latitude),
                "longitude": _fmt(r.reading.longitude),
                "Δlng": _fmt_delta(r.d_longitude),
                "altitude": _fmt(r.reading.altitude, 1),
                "Δalt": _fmt_delta(r.d_altitude, 1),
            }
            for r in deltas
        ],
        use_container_width=True,
        height=420,
    )
    st.caption("说明：缺失（N/a）的坐标不会按 0 处理；缺少经纬度的记录不参与变化量计算。")


if __name__ == "__main__":
    main()
