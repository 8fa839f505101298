"""
Observability Module — Metrics, consistency counters and health checks.
"""

from .consistency import ConsistencyMetrics, MigrationFailure
from .health import ComponentHealth, HealthChecker, HealthStatus, SystemHealth
from .metrics import Counter, Gauge, Histogram, MetricsRegistry

__all__ = [
    "ConsistencyMetrics",
    "MigrationFailure",
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
    "HealthChecker",
    "HealthStatus",
    "SystemHealth",
    "ComponentHealth",
]
