# src/caprewards/runtime/metrics.py
from __future__ import annotations

"""In-process rewards metrics.

Counters and gauges are keyed by bare names ("distributions", "reward_index");
the exposition prefix is added only when rendering. Known engine metrics carry
HELP text; ad-hoc names are exported without it.
"""

import os
import threading
import time
from typing import Dict

# name -> (type, help)
ENGINE_METRICS: Dict[str, tuple] = {
    "distributions": ("counter", "Epochs distributed."),
    "tokens_allocated": ("counter", "Reward tokens declared to holders, base units."),
    "claims": ("counter", "Claims that minted a non-zero amount."),
    "tokens_claimed": ("counter", "Reward tokens minted by claims, base units."),
    "breakage_future_events": ("counter", "Post-checkpoint decreases routed as future breakage."),
    "breakage_treasury_events": ("counter", "Post-checkpoint decreases routed as treasury breakage."),
    "calls_reverted": ("counter", "Engine calls rolled back by an error."),
    "reward_index": ("gauge", "Cumulative reward index, WAD fixed point."),
    "dust_carry": ("gauge", "Undistributed tokens carried into the next epoch."),
}

_lock = threading.Lock()
_counters: Dict[str, int] = {}
_gauges: Dict[str, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("CAPREWARDS_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _key(name: str) -> str:
    return str(name or "").strip()


def inc_counter(name: str, value: int = 1) -> None:
    n = _key(name)
    if n:
        with _lock:
            _counters[n] = _counters.get(n, 0) + int(value)


def set_gauge(name: str, value: int) -> None:
    n = _key(name)
    if n:
        with _lock:
            _gauges[n] = int(value)


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


def snapshot() -> dict:
    now_ms = int(time.time() * 1000)
    with _lock:
        return {
            "ts_ms": now_ms,
            "started_ms": _started_ms,
            "uptime_ms": now_ms - _started_ms,
            "counters": dict(_counters),
            "gauges": dict(_gauges),
        }


def _series(pre: str, name: str, kind: str, value: int) -> list:
    out = []
    help_text = ENGINE_METRICS.get(name, (kind, ""))[1]
    if help_text:
        out.append(f"# HELP {pre}{name} {help_text}")
    out.append(f"# TYPE {pre}{name} {kind}")
    out.append(f"{pre}{name} {value}")
    return out


def format_prometheus(prefix: str = "caprewards_") -> str:
    """Prometheus text exposition of the current snapshot."""
    pre = _key(prefix) or "caprewards_"
    snap = snapshot()
    lines = _series(pre, "uptime_ms", "gauge", int(snap["uptime_ms"]))
    for k, v in sorted(snap["counters"].items()):
        lines.extend(_series(pre, k, "counter", v))
    for k, v in sorted(snap["gauges"].items()):
        lines.extend(_series(pre, k, "gauge", v))
    return "\n".join(lines) + "\n"
