"""
Health Check — Mirror health status for monitoring.

Provides a structured health check with component status.

## Usage

    from loginmirror.observability.health import HealthChecker

    checker = HealthChecker(context, controller)
    status = checker.check()

    if status.healthy:
        print("Mirror in sync")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..errors import MirrorError
from ..mirror.checksum import compute_fingerprint

if TYPE_CHECKING:
    from ..mirror.activation import ActivationController
    from ..mirror.context import MirrorContext

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    message: str = ""
    latency_ms: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SystemHealth:
    """Overall mirror health status."""

    status: HealthStatus
    timestamp: str
    uptime_seconds: float
    components: List[ComponentHealth]

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "uptime_seconds": self.uptime_seconds,
            "healthy": self.healthy,
            "components": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "details": c.details,
                }
                for c in self.components
            ],
        }


class HealthChecker:
    """
    Mirror health checker.

    Checks activation, the secondary store, the consistency metrics and
    the migration checkpoint, and provides an aggregate status.
    """

    def __init__(
        self,
        context: "MirrorContext",
        controller: Optional["ActivationController"] = None,
    ):
        self.context = context
        self.controller = controller
        self._start_time = time.time()

    def check(self) -> SystemHealth:
        """Run all health checks and return status."""
        components = [
            self._check_activation(),
            self._check_secondary_store(),
            self._check_consistency(),
            self._check_checkpoint(),
        ]

        statuses = [c.status for c in components]
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        return SystemHealth(
            status=overall,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            uptime_seconds=time.time() - self._start_time,
            components=components,
        )

    def _check_activation(self) -> ComponentHealth:
        """Mirroring should be armed whenever the policy allows it."""
        if self.controller is not None:
            state = self.controller.state.value
        elif self.context.status is not None:
            state = self.context.status.activation
        else:
            state = "unknown"

        allowed = self.context.policy.allows_mirroring()
        details = {"state": state, "policy_allows": allowed}

        if self.controller is not None and allowed and state != "enabled":
            return ComponentHealth(
                name="activation",
                status=HealthStatus.DEGRADED,
                message="Policy allows mirroring but the mirror is not armed",
                details=details,
            )
        return ComponentHealth(
            name="activation",
            status=HealthStatus.HEALTHY,
            message=f"Mirror {state}",
            details=details,
        )

    def _check_secondary_store(self) -> ComponentHealth:
        """Check the secondary store is open and readable."""
        secondary = self.context.secondary
        if not secondary.initialized:
            return ComponentHealth(
                name="secondary_store",
                status=HealthStatus.UNHEALTHY,
                message="Secondary store not initialized",
            )

        start = time.time()
        try:
            count = secondary.count_all()
        except MirrorError as e:
            return ComponentHealth(
                name="secondary_store",
                status=HealthStatus.UNHEALTHY,
                message=f"Secondary store unreadable: {e.message}",
            )

        return ComponentHealth(
            name="secondary_store",
            status=HealthStatus.HEALTHY,
            message="Secondary store readable",
            latency_ms=(time.time() - start) * 1000,
            details={"records": count},
        )

    def _check_consistency(self) -> ComponentHealth:
        """Degraded on a non-zero diff or recent failures."""
        metrics = self.context.metrics
        diff = metrics.diff_count
        failures = metrics.failures()
        details: Dict[str, Any] = {"diff_count": diff, "recent_failures": len(failures)}

        problems = []
        if diff:
            problems.append(f"diff is {diff}")
        if failures:
            last = failures[-1]
            details["last_failure"] = last.to_dict()
            problems.append(f"{len(failures)} recent failures (last: {last.operation})")

        if problems:
            return ComponentHealth(
                name="consistency",
                status=HealthStatus.DEGRADED,
                message="; ".join(problems),
                details=details,
            )
        return ComponentHealth(
            name="consistency",
            status=HealthStatus.HEALTHY,
            message="No drift recorded" if diff is not None else "Diff not yet recorded",
            details=details,
        )

    def _check_checkpoint(self) -> ComponentHealth:
        """Compare the stored checkpoint with the primary fingerprint."""
        try:
            fingerprint = compute_fingerprint(self.context.primary)
            checkpoint = (
                self.context.secondary.get_checkpoint()
                if self.context.secondary.initialized
                else None
            )
        except MirrorError as e:
            return ComponentHealth(
                name="checkpoint",
                status=HealthStatus.DEGRADED,
                message=f"Could not read checkpoint: {e.message}",
            )

        details = {"fingerprint": fingerprint, "checkpoint": checkpoint}
        if fingerprint is None:
            return ComponentHealth(
                name="checkpoint",
                status=HealthStatus.HEALTHY,
                message="Primary store is empty",
                details=details,
            )
        if fingerprint != checkpoint:
            return ComponentHealth(
                name="checkpoint",
                status=HealthStatus.DEGRADED,
                message="Checkpoint is behind the primary store",
                details=details,
            )
        return ComponentHealth(
            name="checkpoint",
            status=HealthStatus.HEALTHY,
            message="Checkpoint matches the primary store",
            details=details,
        )
