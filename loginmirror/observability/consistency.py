"""
Consistency Metrics — What the mirror engine measures.

A passive sink: the migrator, the change mirror and the activation
controller report into it, and nothing in the engine reads it back to
make decisions. Transport of the numbers is left to whoever exports the
underlying MetricsRegistry.

## Measured

- diff count: primary minus secondary record count (ideally zero)
- incompatible formats: per field and per class
- failures: per operation, with the error message and record id
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, Iterable, List, Optional

from ..mirror.compat import Incompatibility
from .metrics import MetricsRegistry

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_LOG_SIZE = 100


@dataclass
class MigrationFailure:
    """One recorded failure."""

    operation: str
    error_message: str
    record_id: Optional[str] = None
    ts_iso: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConsistencyMetrics:
    """Counters describing how far the secondary store is from the primary."""

    def __init__(
        self,
        registry: Optional[MetricsRegistry] = None,
        failure_log_size: int = DEFAULT_FAILURE_LOG_SIZE,
    ):
        self.registry = registry or MetricsRegistry()
        self._failures: Deque[MigrationFailure] = deque(maxlen=failure_log_size)
        self._lock = Lock()
        self._diff_recorded = False

    # ─── Diff count ─────────────────────────────────────────

    def record_diff(self, primary_count: int, secondary_count: int) -> int:
        diff = primary_count - secondary_count
        self.registry.set_gauge("diff_saved_records", diff)
        self._diff_recorded = True
        logger.debug(f"[metrics] diff={diff} (primary={primary_count}, secondary={secondary_count})")
        return diff

    @property
    def diff_count(self) -> Optional[int]:
        """Last recorded diff, or None if never recorded."""
        if not self._diff_recorded:
            return None
        return int(self.registry.gauge("diff_saved_records").get())

    # ─── Incompatible formats ───────────────────────────────

    def record_incompatible(self, findings: Iterable[Incompatibility]) -> int:
        count = 0
        for finding in findings:
            self.registry.increment(
                "incompatible_format_total",
                labels={"field": finding.field, "kind": finding.kind},
            )
            count += 1
        return count

    def incompatible_count(self, field_name: str, kind: str) -> int:
        return int(
            self.registry.counter("incompatible_format_total").get(
                labels={"field": field_name, "kind": kind}
            )
        )

    def record_skipped(self) -> None:
        self.registry.increment("skipped_incompatible_total")

    # ─── Failures ───────────────────────────────────────────

    def record_failure(
        self,
        operation: str,
        error: Any,
        record_id: Optional[str] = None,
    ) -> MigrationFailure:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        failure = MigrationFailure(operation=operation, error_message=message, record_id=record_id)
        with self._lock:
            self._failures.append(failure)
        self.registry.increment("migration_failure_total", labels={"operation": operation})
        return failure

    def failures(self, operation: Optional[str] = None) -> List[MigrationFailure]:
        with self._lock:
            items = list(self._failures)
        if operation is None:
            return items
        return [f for f in items if f.operation == operation]

    def failure_count(self, operation: str) -> int:
        return int(
            self.registry.counter("migration_failure_total").get(labels={"operation": operation})
        )

    # ─── Activity ───────────────────────────────────────────

    def record_applied(self, operation: str) -> None:
        self.registry.increment("mirror_applied_total", labels={"operation": operation})

    def applied_count(self, operation: str) -> int:
        return int(self.registry.counter("mirror_applied_total").get(labels={"operation": operation}))

    def record_migration(self, outcome: str, duration_seconds: Optional[float] = None) -> None:
        self.registry.increment("rolling_migrations_total", labels={"outcome": outcome})
        if duration_seconds is not None:
            self.registry.timing("migration_duration_seconds", duration_seconds)

    def migration_count(self, outcome: str) -> int:
        return int(
            self.registry.counter("rolling_migrations_total").get(labels={"outcome": outcome})
        )

    def set_active(self, active: bool) -> None:
        self.registry.set_gauge("mirror_active", 1 if active else 0)

    def snapshot(self) -> Dict[str, Any]:
        """Summary for status output."""
        return {
            "diff_count": self.diff_count,
            "recent_failures": [f.to_dict() for f in self.failures()[-10:]],
            "metrics": self.registry.export_json(),
        }
