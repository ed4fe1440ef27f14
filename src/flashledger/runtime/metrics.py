from __future__ import annotations

"""In-process ledger metrics.

Series are identified by name plus an optional label set, e.g.

  tx_applied_total{tx_type="TRANSFER"}
  tx_rejected_total{code="insufficient_balance"}

Values are exact integers: supply and burn totals are token base units and
routinely exceed what a float can hold.
"""

import os
import threading
import time
from typing import Dict, Tuple

Labels = Tuple[Tuple[str, str], ...]
SeriesKey = Tuple[str, Labels]

_lock = threading.Lock()
_counters: Dict[SeriesKey, int] = {}
_gauges: Dict[SeriesKey, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("FLASH_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _key(name: str, labels: Dict[str, object]) -> SeriesKey:
    return str(name).strip(), tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _render(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    inner = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{name}{{{inner}}}"


def inc_counter(name: str, value: int = 1, **labels: object) -> None:
    k = _key(name, labels)
    if not k[0]:
        return
    with _lock:
        _counters[k] = _counters.get(k, 0) + int(value)


def set_gauge(name: str, value: int, **labels: object) -> None:
    k = _key(name, labels)
    if not k[0]:
        return
    with _lock:
        _gauges[k] = int(value)


def counter_total(name: str) -> int:
    """Sum of a counter across all of its label sets."""
    n = str(name).strip()
    with _lock:
        return sum(v for (cname, _), v in _counters.items() if cname == n)


def gauge_value(name: str, **labels: object) -> int:
    with _lock:
        return _gauges.get(_key(name, labels), 0)


def reset() -> None:
    with _lock:
        _counters.clear()
        _gauges.clear()


def snapshot() -> dict:
    now_ms = int(time.time() * 1000)
    with _lock:
        return {
            "ts_ms": now_ms,
            "uptime_ms": now_ms - _started_ms,
            "counters": {_render(k): v for k, v in _counters.items()},
            "gauges": {_render(k): v for k, v in _gauges.items()},
        }


def format_prometheus(prefix: str = "flashledger_") -> str:
    """Prometheus text exposition, one sample per line, TYPE hints per family."""
    pre = str(prefix or "").strip() or "flashledger_"
    now_ms = int(time.time() * 1000)

    with _lock:
        families = (("counter", dict(_counters)), ("gauge", dict(_gauges)))

    lines = [f"# TYPE {pre}uptime_ms gauge", f"{pre}uptime_ms {now_ms - _started_ms}"]
    for kind, series in families:
        seen: set = set()
        for key in sorted(series.keys()):
            if key[0] not in seen:
                seen.add(key[0])
                lines.append(f"# TYPE {pre}{key[0]} {kind}")
            lines.append(f"{pre}{_render(key)} {series[key]}")

    return "\n".join(lines) + "\n"
