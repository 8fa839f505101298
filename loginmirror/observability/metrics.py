"""
Metrics — Collect and expose mirror metrics.

A small metrics registry with Prometheus text and JSON export. Metric
names are prefixed with the registry prefix ("loginmirror" by default).

## Usage

    from loginmirror.observability.metrics import MetricsRegistry

    registry = MetricsRegistry()
    registry.increment("mirror_applied_total", labels={"operation": "add-login"})
    registry.set_gauge("diff_saved_records", 0)

    output = registry.export_prometheus()
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Labels = Optional[Dict[str, str]]


@dataclass
class MetricPoint:
    """A single metric data point."""

    name: str
    value: float
    timestamp: float
    labels: Dict[str, str] = field(default_factory=dict)


def _labels_key(labels: Labels) -> str:
    if not labels:
        return ""
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def _labels_from_key(key: str) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    if key:
        for pair in key.split(","):
            k, _, v = pair.partition("=")
            labels[k] = v
    return labels


class _Metric:
    """Shared storage for label-keyed values."""

    kind = "untyped"

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._values: Dict[str, float] = defaultdict(float)
        self._lock = Lock()

    def get(self, labels: Labels = None) -> float:
        """Get current value."""
        return self._values.get(_labels_key(labels), 0)

    def values(self) -> Dict[str, float]:
        """All label keys and their values."""
        with self._lock:
            return dict(self._values)

    def reset(self) -> None:
        with self._lock:
            self._values.clear()

    def export(self) -> List[MetricPoint]:
        """Export all values as metric points."""
        now = time.time()
        return [
            MetricPoint(self.name, value, now, _labels_from_key(key))
            for key, value in self.values().items()
        ]


class Counter(_Metric):
    """A monotonically increasing counter."""

    kind = "counter"

    def inc(self, value: float = 1, labels: Labels = None) -> None:
        if value < 0:
            raise ValueError("counters can only increase")
        key = _labels_key(labels)
        with self._lock:
            self._values[key] += value


class Gauge(_Metric):
    """A gauge that can go up and down."""

    kind = "gauge"

    def set(self, value: float, labels: Labels = None) -> None:
        key = _labels_key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, value: float = 1, labels: Labels = None) -> None:
        key = _labels_key(labels)
        with self._lock:
            self._values[key] += value

    def dec(self, value: float = 1, labels: Labels = None) -> None:
        self.inc(-value, labels)


class Histogram:
    """A histogram for timing distributions."""

    kind = "histogram"
    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, float("inf"))

    def __init__(self, name: str, help_text: str = "", buckets: Optional[tuple] = None):
        self.name = name
        self.help_text = help_text
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._counts: Dict[str, Dict[float, int]] = defaultdict(lambda: defaultdict(int))
        self._sums: Dict[str, float] = defaultdict(float)
        self._totals: Dict[str, int] = defaultdict(int)
        self._lock = Lock()

    def observe(self, value: float, labels: Labels = None) -> None:
        key = _labels_key(labels)
        with self._lock:
            self._sums[key] += value
            self._totals[key] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    self._counts[key][bucket] += 1
                    break

    def count(self, labels: Labels = None) -> int:
        return self._totals.get(_labels_key(labels), 0)

    def total(self, labels: Labels = None) -> float:
        return self._sums.get(_labels_key(labels), 0.0)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._sums.clear()
            self._totals.clear()

    def export(self) -> List[MetricPoint]:
        points = []
        now = time.time()

        with self._lock:
            keys = set(self._sums) | set(self._counts)
            for key in keys:
                labels = _labels_from_key(key)
                cumulative = 0
                for bucket in self.buckets:
                    cumulative += self._counts[key].get(bucket, 0)
                    le = "+Inf" if bucket == float("inf") else str(bucket)
                    points.append(
                        MetricPoint(f"{self.name}_bucket", cumulative, now, {**labels, "le": le})
                    )
                points.append(MetricPoint(f"{self.name}_sum", self._sums[key], now, labels))
                points.append(MetricPoint(f"{self.name}_count", self._totals[key], now, labels))

        return points


class MetricsRegistry:
    """
    Central registry for mirror metrics.

    One registry is created per mirror context; nothing is global.
    """

    def __init__(self, prefix: str = "loginmirror"):
        self.prefix = prefix
        self._counters: Dict[str, Counter] = {}
        self._gauges: Dict[str, Gauge] = {}
        self._histograms: Dict[str, Histogram] = {}
        self._lock = Lock()

        self._register_mirror_metrics()

    def _register_mirror_metrics(self) -> None:
        # Consistency
        self.gauge("diff_saved_records", "Primary minus secondary record count")
        self.counter("incompatible_format_total", "Records with fields the secondary store mishandles")
        self.counter("skipped_incompatible_total", "Incompatible records not sent to the secondary store")

        # Failures
        self.counter("migration_failure_total", "Failed migration and mirror operations")

        # Mirror
        self.counter("mirror_applied_total", "Mutation events applied to the secondary store")
        self.gauge("mirror_active", "1 while mirroring is armed")

        # Rolling migration
        self.counter("rolling_migrations_total", "Rolling migration runs by outcome")
        self.histogram("migration_duration_seconds", "Rolling migration duration")

    def _full_name(self, name: str) -> str:
        return f"{self.prefix}_{name}"

    def counter(self, name: str, help_text: str = "") -> Counter:
        """Get or create a counter."""
        full_name = self._full_name(name)
        with self._lock:
            if full_name not in self._counters:
                self._counters[full_name] = Counter(full_name, help_text)
            return self._counters[full_name]

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        """Get or create a gauge."""
        full_name = self._full_name(name)
        with self._lock:
            if full_name not in self._gauges:
                self._gauges[full_name] = Gauge(full_name, help_text)
            return self._gauges[full_name]

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        """Get or create a histogram."""
        full_name = self._full_name(name)
        with self._lock:
            if full_name not in self._histograms:
                self._histograms[full_name] = Histogram(full_name, help_text)
            return self._histograms[full_name]

    # Convenience methods
    def increment(self, name: str, value: float = 1, labels: Labels = None) -> None:
        self.counter(name).inc(value, labels)

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        self.gauge(name).set(value, labels)

    def timing(self, name: str, seconds: float, labels: Labels = None) -> None:
        self.histogram(name).observe(seconds, labels)

    def reset(self) -> None:
        """Zero every registered metric."""
        for metric in [*self._counters.values(), *self._gauges.values(), *self._histograms.values()]:
            metric.reset()

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        for metric in [*self._counters.values(), *self._gauges.values(), *self._histograms.values()]:
            lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for point in metric.export():
                lines.append(f"{point.name}{self._format_labels(point.labels)} {point.value}")
        return "\n".join(lines)

    def export_json(self) -> Dict[str, Any]:
        """Export metrics as JSON, keeping labelled values apart."""
        result: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "counters": {},
            "gauges": {},
            "histograms": {},
        }

        for name, counter in self._counters.items():
            result["counters"][name] = {key or "_": value for key, value in counter.values().items()}

        for name, gauge in self._gauges.items():
            result["gauges"][name] = {key or "_": value for key, value in gauge.values().items()}

        for name, histogram in self._histograms.items():
            result["histograms"][name] = {
                "sum": histogram.total(),
                "count": histogram.count(),
            }

        return result

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        pairs = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(pairs) + "}"
