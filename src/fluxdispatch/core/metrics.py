from __future__ import annotations

import logging
import os
import threading
import time
from collections import deque
from statistics import mean
from typing import Any, Deque, Dict, Iterable, Optional, Tuple

# ---------------- Utilities ----------------

LabelKey = Tuple[Tuple[str, str], ...]  # sorted tuple of (k,v)


def _labels_key(labels: Dict[str, Any] | None) -> LabelKey:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _pct(sorted_vals: Iterable[float], q: float) -> float:
    vals = list(sorted_vals)
    if not vals:
        return 0.0
    idx = max(0, min(len(vals) - 1, int(round((len(vals) - 1) * q))))
    return vals[idx]


# ---------------- Metric types ----------------

class _Metric:
    def __init__(self, name: str, labels: LabelKey):
        self.name = name
        self.labels = labels
        self._lock = threading.Lock()


class Counter(_Metric):
    def __init__(self, name: str, labels: LabelKey):
        super().__init__(name, labels)
        self._value = 0.0

    def inc(self, n: float = 1.0) -> None:
        with self._lock:
            self._value += n

    def value(self) -> float:
        with self._lock:
            return self._value


class Gauge(_Metric):
    def __init__(self, name: str, labels: LabelKey):
        super().__init__(name, labels)
        self._value = 0.0

    def set(self, v: float) -> None:
        with self._lock:
            self._value = float(v)

    def value(self) -> float:
        with self._lock:
            return self._value


class Histogram(_Metric):
    def __init__(self, name: str, labels: LabelKey, maxlen: int = 2048):
        super().__init__(name, labels)
        self._values: Deque[float] = deque(maxlen=maxlen)

    def observe(self, v: float) -> None:
        with self._lock:
            self._values.append(float(v))

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            vals = sorted(self._values)
        if not vals:
            return {"count": 0, "min": 0.0, "max": 0.0, "mean": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
        return {
            "count": float(len(vals)),
            "min": vals[0],
            "max": vals[-1],
            "mean": mean(vals),
            "p50": _pct(vals, 0.50),
            "p90": _pct(vals, 0.90),
            "p99": _pct(vals, 0.99),
        }


# ---------------- Registry ----------------

class _Registry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._kinds: Dict[str, Dict[Tuple[str, LabelKey], _Metric]] = {
            "counters": {},
            "gauges": {},
            "hists": {},
        }

    def _get(self, kind: str, factory, name: str, labels: Dict[str, Any] | None):
        key = (name, _labels_key(labels))
        with self._lock:
            table = self._kinds[kind]
            m = table.get(key)
            if m is None:
                m = factory(name, key[1])
                table[key] = m
            return m

    def counter(self, name: str, labels: Dict[str, Any] | None) -> Counter:
        return self._get("counters", Counter, name, labels)

    def gauge(self, name: str, labels: Dict[str, Any] | None) -> Gauge:
        return self._get("gauges", Gauge, name, labels)

    def hist(self, name: str, labels: Dict[str, Any] | None) -> Histogram:
        return self._get("hists", Histogram, name, labels)

    def items(self, kind: str):
        with self._lock:
            return list(self._kinds[kind].values())

    def clear(self) -> None:
        with self._lock:
            for table in self._kinds.values():
                table.clear()


_REG = _Registry()

# ---------------- Public API ----------------

def inc(name: str, n: float = 1.0, **labels: Any) -> None:
    _REG.counter(name, labels).inc(n)


def gauge_set(name: str, v: float, **labels: Any) -> None:
    _REG.gauge(name, labels).set(v)


def observe_hist(name: str, v: float, **labels: Any) -> None:
    _REG.hist(name, labels).observe(v)


def counter_value(name: str, **labels: Any) -> float:
    """Current value of a counter (0.0 if it was never touched)."""
    return _REG.counter(name, labels).value()


def reset() -> None:
    """Forget every metric (tests)."""
    _REG.clear()


class Timer:
    """Context manager: measure a block in ms and record it into a histogram."""
    def __init__(self, hist_name: str, **labels: Any) -> None:
        self.hist_name = hist_name
        self.labels = labels
        self.elapsed_ms = 0.0
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed_ms = (time.perf_counter() - self._t0) * 1000.0
        # failed blocks are counted elsewhere, keep latency clean
        if exc_type is None:
            observe_hist(self.hist_name, self.elapsed_ms, **self.labels)
        return False


def snapshot_all() -> dict:
    """Plain-data view of every metric."""
    out: Dict[str, list] = {"counters": [], "gauges": [], "hists": []}
    for m in _REG.items("counters"):
        out["counters"].append({"name": m.name, "labels": dict(m.labels), "value": m.value()})
    for m in _REG.items("gauges"):
        out["gauges"].append({"name": m.name, "labels": dict(m.labels), "value": m.value()})
    for m in _REG.items("hists"):
        out["hists"].append({"name": m.name, "labels": dict(m.labels), **m.snapshot()})
    return out


# ---------------- Exporter (log every N seconds) ----------------

def _emit(log: logging.Logger, json_mode: bool) -> None:
    snap = snapshot_all()
    if json_mode:
        for kind, rows in snap.items():
            for row in rows:
                log.info({"type": kind, **row})
        return
    for row in snap["counters"]:
        log.info(f"[ctr] {row['name']} {row['labels']} value={row['value']:.0f}")
    for row in snap["gauges"]:
        log.info(f"[gauge] {row['name']} {row['labels']} value={row['value']:.3f}")
    for row in snap["hists"]:
        log.info(
            f"[hist] {row['name']} {row['labels']} "
            f"n={int(row['count'])} min={row['min']:.3f} p50={row['p50']:.3f} "
            f"p90={row['p90']:.3f} p99={row['p99']:.3f} max={row['max']:.3f}"
        )


class _Exporter(threading.Thread):
    def __init__(self, interval_sec: float, json_mode: bool, logger: logging.Logger):
        super().__init__(name="metrics-exporter", daemon=True)
        self.interval = float(interval_sec)
        self.json_mode = json_mode
        self.log = logger
        self._stop_evt = threading.Event()

    def run(self) -> None:
        while not self._stop_evt.wait(self.interval):
            _emit(self.log, self.json_mode)

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_evt.set()
        self.join(timeout=timeout)


_EXPORTER: Optional[_Exporter] = None


def start_exporter(interval_sec: Optional[float] = None, json_mode: bool = False,
                   logger: Optional[logging.Logger] = None) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        return
    if interval_sec is None:
        interval_sec = float(os.getenv("METRICS_INTERVAL", "5"))
    _EXPORTER = _Exporter(interval_sec, json_mode, logger or logging.getLogger("metrics"))
    _EXPORTER.start()


def stop_exporter(timeout: float = 1.0) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        _EXPORTER.stop(timeout=timeout)
        _EXPORTER = None


def force_emit(logger: Optional[logging.Logger] = None, json_mode: bool = False) -> None:
    """Log a snapshot right now (tests, shutdown hooks)."""
    _emit(logger or logging.getLogger("metrics"), json_mode)
