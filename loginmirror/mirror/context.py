"""
Mirror Context — Everything the mirror components share.

Constructed once by the embedding application and passed by reference
to the migrator, the change mirror and the activation controller.
There is no process-wide store instance.

## Usage

    context = MirrorContext(
        primary=primary_store,
        secondary=MemorySecondaryStore(path),
        settings=load_settings(),
    )
    controller = ActivationController(context)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..observability.consistency import ConsistencyMetrics
from ..persistence.audit import AuditWriter
from ..policy.source import PolicySource, StaticPolicy
from ..stores.base import PrimaryStore, SecondaryStore
from .config import MirrorSettings
from .state import MirrorState

logger = logging.getLogger(__name__)


@dataclass
class MirrorContext:
    """Stores, settings and sinks shared by the mirror components."""

    primary: PrimaryStore
    secondary: SecondaryStore
    settings: MirrorSettings = field(default_factory=MirrorSettings)
    metrics: Optional[ConsistencyMetrics] = None
    policy: Optional[PolicySource] = None
    status: Optional[MirrorState] = None
    audit: Optional[AuditWriter] = None
    _status_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.metrics is None:
            self.metrics = ConsistencyMetrics(failure_log_size=self.settings.failure_log_size)
        if self.policy is None:
            self.policy = StaticPolicy()
        if self.status is None and self.settings.state_file is not None:
            self.status = MirrorState.load(self.settings.state_file)
        if self.audit is None and self.settings.audit_file is not None:
            self.audit = AuditWriter(self.settings.audit_file)

    def update_status(self, change: Callable[[MirrorState], None]) -> None:
        """Apply `change` to the status file, if one is configured, and save it."""
        if self.status is None:
            return
        with self._status_lock:
            change(self.status)
            try:
                self.status.save()
            except OSError as e:
                logger.error(f"[mirror] Failed to save mirror status: {e}")

    def emit_audit(self, event_type: str, level: str = "info", details: Optional[Dict[str, Any]] = None) -> None:
        if self.audit is None:
            return
        try:
            self.audit.emit(event_type, level=level, details=details)
        except OSError as e:
            logger.error(f"[mirror] Failed to write audit event {event_type}: {e}")

    def record_diff(self) -> int:
        """Refresh the primary-minus-secondary diff metric."""
        return self.metrics.record_diff(self.primary.count_all(), self.secondary.count_all())
