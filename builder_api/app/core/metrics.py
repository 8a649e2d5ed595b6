from __future__ import annotations
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, Optional, Tuple

_LabelKey = Tuple[Tuple[str, str], ...]


def _key(labels: Optional[Dict[str, str]]) -> _LabelKey:
    return tuple(sorted((labels or {}).items()))


def _label_str(key: _LabelKey) -> str:
    return ",".join(f'{k}="{v}"' for k, v in key)


# ---------- Primitives ----------

class _Counter:
    def __init__(self, name: str, help_: str = ""):
        self.name = name
        self.help = help_
        self._lock = threading.Lock()
        self._values: Dict[_LabelKey, int] = defaultdict(int)

    def inc(self, labels: Optional[Dict[str, str]] = None, by: int = 1) -> None:
        with self._lock:
            self._values[_key(labels)] += by

    def value(self, labels: Optional[Dict[str, str]] = None) -> int:
        return self._values.get(_key(labels), 0)

    def render(self) -> Iterable[str]:
        if self.help:
            yield f"# HELP {self.name} {self.help}\n# TYPE {self.name} counter\n"
        for key, v in sorted(self._values.items()):
            if key:
                yield f"{self.name}{{{_label_str(key)}}} {v}\n"
            else:
                yield f"{self.name} {v}\n"


class _Histogram:
    DEFAULT_BUCKETS = [0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30]  # seconds

    def __init__(self, name: str, help_: str = "", buckets: Optional[Iterable[float]] = None):
        self.name = name
        self.help = help_
        self._lock = threading.Lock()
        self._buckets = list(buckets or self.DEFAULT_BUCKETS)
        self._counts: Dict[_LabelKey, Dict[float, float]] = defaultdict(lambda: defaultdict(float))
        self._sum: Dict[_LabelKey, float] = defaultdict(float)
        self._obs: Dict[_LabelKey, float] = defaultdict(float)

    def observe(self, value_seconds: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = _key(labels)
        with self._lock:
            self._sum[key] += value_seconds
            self._obs[key] += 1
            # stored non-cumulative; render() accumulates
            for b in self._buckets:
                if value_seconds <= b + 1e-12:
                    self._counts[key][b] += 1
                    break
            else:
                self._counts[key][float("inf")] += 1

    def timer(self) -> Callable[[Optional[Dict[str, str]]], None]:
        start = time.perf_counter()

        def _stop(labels: Optional[Dict[str, str]] = None) -> None:
            self.observe(time.perf_counter() - start, labels=labels)

        return _stop

    def render(self) -> Iterable[str]:
        if self.help:
            yield f"# HELP {self.name} {self.help}\n# TYPE {self.name} histogram\n"
        for key in sorted(set(self._obs.keys())):
            counts = self._counts.get(key, {})
            label_str = _label_str(key)
            prefix = f"{label_str}," if label_str else ""
            running = 0.0
            for b in self._buckets + [float("inf")]:
                running += counts.get(b, 0.0)
                le = "+Inf" if b == float("inf") else f"{b:.2f}"
                yield f'{self.name}_bucket{{{prefix}le="{le}"}} {running}\n'
            if label_str:
                yield f"{self.name}_sum{{{label_str}}} {self._sum[key]}\n"
                yield f"{self.name}_count{{{label_str}}} {self._obs[key]}\n"
            else:
                yield f"{self.name}_sum {self._sum[key]}\n"
                yield f"{self.name}_count {self._obs[key]}\n"


# ---------- Registry ----------

class MetricsRegistry:
    def __init__(self):
        self._items: list[object] = []

    def counter(self, name: str, help_: str = "") -> _Counter:
        c = _Counter(name, help_)
        self._items.append(c)
        return c

    def histogram(self, name: str, help_: str = "", buckets: Optional[Iterable[float]] = None) -> _Histogram:
        h = _Histogram(name, help_, buckets=buckets)
        self._items.append(h)
        return h

    def render_prometheus(self) -> str:
        out: list[str] = []
        for it in self._items:
            out.extend(it.render())
        return "".join(out)


REGISTRY = MetricsRegistry()

# ---------- App metrics ----------

build_request_counter = REGISTRY.counter(
    "build_requests_total", "Count of create-build requests by result"
)
build_request_duration = REGISTRY.histogram(
    "build_request_duration_seconds", "create-build handling time in seconds"
)
