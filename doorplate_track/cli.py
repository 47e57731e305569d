"""Command-line interface for doorplate_track.

Run:
    python -m doorplate_track devices
    python -m doorplate_track history --mac 80:F3:DA:41:5E:C0
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from doorplate_track.csv_io import load_sim_data
from doorplate_track.firebase import (
    ENV_DATABASE_URL,
    FirebaseClient,
    FirebaseConfig,
    FirebaseError,
    devices_from_root,
    poll_devices,
)
from doorplate_track.geo import format_distance
from doorplate_track.history import compute_deltas, inspect_history, ordered_readings
from doorplate_track.models import DEFAULT_TZ, DeviceSummary, Location
from doorplate_track.proximity import GeofenceMonitor, proximity_samples, proximity_stats
from doorplate_track.timeutils import format_last_update, tzinfo_from_name

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _now(args: argparse.Namespace) -> datetime:
    # 设备时间戳是不带时区的本地时间，这里按 --tz 取“现在”再去掉时区
    return datetime.now(tzinfo_from_name(args.tz)).replace(tzinfo=None)


def _client(args: argparse.Namespace) -> FirebaseClient:
    env = dict(os.environ)
    if args.database_url:
        env[ENV_DATABASE_URL] = args.database_url
    return FirebaseClient(FirebaseConfig.from_env(env))


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_history(args: argparse.Namespace) -> dict[str, Any]:
    """History of one device, from a JSON export or from Firebase."""

    if args.json_file:
        data = _read_json(args.json_file)
        if not isinstance(data, dict):
            return {}
        # 既支持单设备导出，也支持整库导出（按 --mac 取子树）
        if args.mac and isinstance(data.get(args.mac), dict):
            return data[args.mac]
        return data
    if not args.mac:
        raise ValueError("需要 --mac 或 --json-file")
    return _client(args).get_device_history(args.mac)


def _load_devices(args: argparse.Namespace, now: datetime) -> list[DeviceSummary]:
    if args.json_file:
        root = _read_json(args.json_file)
        return devices_from_root(root if isinstance(root, dict) else None, now=now)
    return _client(args).get_devices(now=now)


def _fmt(v: float | None, digits: int = 6) -> str:
    return "-" if v is None else f"{v:.{digits}f}"


def _fmt_delta(v: float | None, digits: int = 6) -> str:
    return "-" if v is None else f"{v:+.{digits}f}"


def _cmd_devices(args: argparse.Namespace) -> int:
    now = _now(args)
    devices = _load_devices(args, now)
    if not devices:
        print("没有找到设备")
        return 0
    print("### 设备列表")
    for d in devices:
        loc = d.location
        pos = f"{loc.lat:.6f}, {loc.lng:.6f}" if loc is not None else "Location not available"
        print(
            f"{d.status:<8} {d.name}  entries={d.entry_count}  pos={pos}  "
            f"last_update={format_last_update(d.last_update, now)}"
        )
    active = sum(1 for d in devices if d.is_active)
    print()
    print(f"total={len(devices)}, active={active}, offline={len(devices) - active}")
    return 0


def _cmd_history(args: argparse.Namespace) -> int:
    history = _load_history(args)
    rows = compute_deltas(ordered_readings(history))
    if args.limit is not None:
        rows = rows[: max(0, args.limit)]
    if args.json:
        payload = [
            {
                "timestamp": r.reading.timestamp_key,
                "latitude": r.reading.latitude,
                "longitude": r.reading.longitude,
                "altitude": r.reading.altitude,
                "d_latitude": r.d_latitude,
                "d_longitude": r.d_longitude,
                "d_altitude": r.d_altitude,
            }
            for r in rows
        ]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    print("### 轨迹（新 -> 旧）")
    for r in rows:
        rd = r.reading
        print(
            f"{rd.timestamp_key}  lat={_fmt(rd.latitude)} ({_fmt_delta(r.d_latitude)})  "
            f"lng={_fmt(rd.longitude)} ({_fmt_delta(r.d_longitude)})  "
            f"alt={_fmt(rd.altitude, 1)} ({_fmt_delta(r.d_altitude, 1)})"
        )
    print(f"共 {len(rows)} 条有效定位（原始条目 {len(history)}）")
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    res = inspect_history(_load_history(args))

    print("### 条目数")
    print(
        f"total={res.entries_total}, valid={res.entries_valid}, invalid={res.entries_invalid}, "
        f"with_position={res.entries_with_position}"
    )
    print()
    if res.first_time is not None and res.last_time is not None:
        print("### 时间范围（设备本地时间）")
        print(f"start={res.first_time.isoformat(sep=' ')}, end={res.last_time.isoformat(sep=' ')}")
        print()
    if res.delta is not None:
        print("### 采样间隔（秒）")
        print(
            f"count={res.delta.count}, min={res.delta.min_s:.3f}, median={res.delta.median_s:.3f}, "
            f"p95={res.delta.p95_s:.3f}, max={res.delta.max_s:.3f}"
        )
        print()

    if args.json:
        print(json.dumps(asdict(res), ensure_ascii=False, indent=2, default=str))
    return 0


def _cmd_proximity(args: argparse.Namespace) -> int:
    observer = Location(lat=args.lat, lng=args.lng)
    if args.csv:
        data, _ = load_sim_data(args.csv)
        samples = data.device_proximity(observer, user_id=args.user_id)
    else:
        samples = proximity_samples(observer, _load_devices(args, _now(args)))

    print("### 设备距离（近 -> 远）")
    for s in samples:
        print(f"{s.proximity.value:<10} {format_distance(s.distance_m):>8}  {s.device_name}")
    stats = proximity_stats(samples)
    print()
    print(", ".join(f"{label.value}={n}" for label, n in stats.items()))
    return 0


def _cmd_watch(args: argparse.Namespace) -> int:
    client = _client(args)
    observer = Location(lat=args.lat, lng=args.lng)
    monitor = GeofenceMonitor(radius_m=args.radius_m, max_alerts=args.max_alerts)

    def on_devices(devices: list[DeviceSummary]) -> None:
        active = sum(1 for d in devices if d.is_active)
        print(f"[{datetime.now().strftime('%H:%M:%S')}] devices={len(devices)} active={active}", flush=True)
        for alert in monitor.check(observer, devices):
            print(f"  {alert.kind}: {alert.device_name} ({format_distance(alert.distance_m)})", flush=True)

    stop = threading.Event()
    try:
        poll_devices(
            client,
            on_devices,
            interval_seconds=args.interval,
            stop_event=stop,
            max_iterations=args.iterations,
            clock=lambda: _now(args),
        )
    except KeyboardInterrupt:
        stop.set()
        print("\n收到中断信号：停止轮询", file=sys.stderr, flush=True)
    return 0


def _cmd_sim_stats(args: argparse.Namespace) -> int:
    data, summary = load_sim_data(args.csv)

    print("### 行数")
    print(
        f"total_rows={summary.rows_total}, parsed={summary.rows_parsed}, "
        f"skipped={summary.rows_skipped}, ignored={summary.rows_ignored}"
    )
    print()
    print("### 概览")
    for k, v in data.dashboard_stats().items():
        print(f"{k}={v}")
    print()
    print("### 通知")
    for n in data.notifications():
        print(f"[{n['type']}] {n['message']}")
    print()
    print("### 地理围栏违规")
    for v in data.geofence_violations():
        print(f"[{v['severity']}] {v['device_name']} -> {v['geofence_name']}")
    return 0


def _add_source_args(p: argparse.ArgumentParser, *, json_file: bool = True) -> None:
    if json_file:
        p.add_argument("--json-file", type=str, default=None, help="使用本地 JSON 导出代替 Firebase")
    p.add_argument("--database-url", type=str, default=None, help="Firebase 数据库 URL（默认读环境变量）")
    p.add_argument("--tz", type=str, default=DEFAULT_TZ, help="设备时间戳所在时区（IANA）")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="doorplate_track")
    p.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_dev = sub.add_parser("devices", help="列出设备及其最新位置/状态")
    _add_source_args(p_dev)
    p_dev.set_defaults(func=_cmd_devices)

    p_his = sub.add_parser("history", help="按时间倒序输出某设备轨迹及变化量")
    _add_source_args(p_his)
    p_his.add_argument("--mac", type=str, default=None, help="设备 MAC 地址")
    p_his.add_argument("--limit", type=int, default=None, help="最多输出多少条")
    p_his.add_argument("--json", action="store_true", help="输出JSON")
    p_his.set_defaults(func=_cmd_history)

    p_ins = sub.add_parser("inspect", help="分析某设备历史的条目数/时间范围/采样间隔")
    _add_source_args(p_ins)
    p_ins.add_argument("--mac", type=str, default=None, help="设备 MAC 地址")
    p_ins.add_argument("--json", action="store_true", help="额外输出JSON（便于后处理）")
    p_ins.set_defaults(func=_cmd_inspect)

    p_px = sub.add_parser("proximity", help="计算观察者到各设备的距离与接近程度")
    _add_source_args(p_px)
    p_px.add_argument("--lat", type=float, required=True, help="观察者纬度")
    p_px.add_argument("--lng", type=float, required=True, help="观察者经度")
    p_px.add_argument("--csv", type=str, default=None, help="使用模拟 CSV 中的设备")
    p_px.add_argument("--user-id", type=str, default=None, help="只看分配给该用户的设备（仅 CSV）")
    p_px.set_defaults(func=_cmd_proximity)

    p_w = sub.add_parser("watch", help="轮询 Firebase 并输出地理围栏告警")
    _add_source_args(p_w, json_file=False)
    p_w.add_argument("--lat", type=float, required=True, help="观察者纬度")
    p_w.add_argument("--lng", type=float, required=True, help="观察者经度")
    p_w.add_argument("--radius-m", type=float, default=100.0, help="告警半径（米）")
    p_w.add_argument("--interval", type=float, default=30.0, help="轮询间隔（秒）")
    p_w.add_argument("--iterations", type=int, default=None, help="轮询次数（默认一直运行）")
    p_w.add_argument("--max-alerts", type=int, default=10, help="保留的告警条数")
    p_w.set_defaults(func=_cmd_watch)

    p_sim = sub.add_parser("sim-stats", help="汇总模拟 CSV（设备/围栏/通知）")
    p_sim.add_argument("--csv", type=str, default="data_sim_app.csv", help="模拟 CSV 路径")
    p_sim.set_defaults(func=_cmd_sim_stats)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)
    try:
        return int(args.func(args))
    except (FirebaseError, ValueError) as exc:
        logger.debug("命令失败", exc_info=True)
        print(f"错误：{exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
