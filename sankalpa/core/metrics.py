"""In-process counters and gauges rendered in Prometheus text format."""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple, Type, TypeVar

LabelValues = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"").replace("\n", "\\n")


class _LabeledMetric:
    kind = "untyped"

    def __init__(self, name: str, documentation: str = "", label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.documentation = documentation
        self.label_names = tuple(label_names or ())
        self._values: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name} has no label(s) {sorted(unknown)}")
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def _add(self, labels: Optional[Dict[str, str]], amount: float) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def _sample(self, label_values: LabelValues, value: float) -> str:
        if not self.label_names:
            return f"{self.name} {value}"
        rendered = ",".join(f'{n}="{_escape(v)}"' for n, v in zip(self.label_names, label_values))
        return f"{self.name}{{{rendered}}} {value}"

    def export(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.documentation}"] if self.documentation else []
        lines.append(f"# TYPE {self.name} {self.kind}")
        with self._lock:
            lines.extend(self._sample(key, value) for key, value in self._values.items())
        return lines

    def reset(self):
        with self._lock:
            self._values.clear()


class Counter(_LabeledMetric):
    kind = "counter"

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        if amount < 0:
            raise ValueError("Counters only go up")
        self._add(labels, amount)


class Gauge(_LabeledMetric):
    kind = "gauge"

    def set(self, value: float, labels: Optional[Dict[str, str]] = None):
        key = self._key(labels)
        with self._lock:
            self._values[key] = float(value)


M = TypeVar("M", bound=_LabeledMetric)


class MetricsRegistry:
    """Name-unique registry; export order follows registration order."""

    def __init__(self):
        self._metrics: Dict[str, _LabeledMetric] = {}
        self._lock = threading.Lock()

    def _register(self, cls: Type[M], name: str, documentation: str, label_names: Optional[Iterable[str]]) -> M:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                existing = self._metrics[name] = cls(name, documentation, label_names)
            elif not isinstance(existing, cls):
                raise ValueError(f"Metric {name} already registered as a {existing.kind}")
            return existing

    def counter(self, name: str, documentation: str = "", label_names: Optional[Iterable[str]] = None) -> Counter:
        return self._register(Counter, name, documentation, label_names)

    def gauge(self, name: str, documentation: str = "", label_names: Optional[Iterable[str]] = None) -> Gauge:
        return self._register(Gauge, name, documentation, label_names)

    def export_prometheus(self) -> str:
        with self._lock:
            metrics = list(self._metrics.values())
        lines: List[str] = []
        for metric in metrics:
            lines.extend(metric.export())
        return "\n".join(lines) + "\n"

    def reset(self):
        with self._lock:
            metrics = list(self._metrics.values())
        for metric in metrics:
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total", "HTTP requests by method, route and status", ["method", "path", "status"]
)
ledger_mutations_total = METRICS.counter("ledger_mutations_total", "Committed coin ledger entries", ["kind"])
contracts_total = METRICS.counter("contracts_total", "Commitment contract transitions", ["outcome"])
cascade_resets_total = METRICS.counter("cascade_resets_total", "Streak cascade resets", ["trigger"])
store_conflicts_total = METRICS.counter("store_conflicts_total", "Transactions that lost a version race")

ws_active_connections = METRICS.gauge("ws_active_connections", "Open account change-feed sockets")


_ID_RE = re.compile(r"^[0-9a-fA-F-]{8,}$")
# Segment following this one is an account id.
_ACCOUNT_SCOPED = {"accounts"}


def normalize_path(path: str) -> str:
    """Collapse account ids and numeric/uuid segments to :id to bound label cardinality."""
    parts: List[str] = []
    previous = ""
    for segment in filter(None, path.split("/")):
        if segment.isdigit() or _ID_RE.match(segment) or previous in _ACCOUNT_SCOPED:
            parts.append(":id")
        else:
            parts.append(segment)
        previous = segment
    return "/" + "/".join(parts)
