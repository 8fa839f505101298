"""
Policy Source — Decides whether mirroring may run.

Two inputs: a "mirroring enabled" flag and a blocking precondition
(for example "the user-secret store is currently locked"). Both are
re-read on every check. Listeners are notified whenever either input
may have changed; redundant notifications are expected and harmless.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ..stores.channel import EventChannel, Subscription

logger = logging.getLogger(__name__)

Predicate = Callable[[], bool]


class PolicySource:
    """Mirroring flag plus blocking precondition, with change notifications."""

    def __init__(
        self,
        enabled: bool = False,
        blocked: Optional[Predicate] = None,
    ):
        self._enabled = enabled
        self._blocked = blocked
        self._locked = False
        self._lock = threading.Lock()
        self._changes = EventChannel("policy")

    # ─── Inputs ─────────────────────────────────────────────

    @property
    def enabled(self) -> bool:
        return self._enabled

    def is_blocked(self) -> bool:
        """True while the precondition forbids mirroring."""
        if self._blocked is not None:
            return bool(self._blocked())
        return self._locked

    def allows_mirroring(self) -> bool:
        return self.enabled and not self.is_blocked()

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled
        logger.info(f"[policy] mirroring flag -> {enabled}")
        self.notify()

    def set_locked(self, locked: bool) -> None:
        """Flip the built-in lock precondition (ignored with a custom predicate)."""
        with self._lock:
            self._locked = locked
        logger.info(f"[policy] secret store {'locked' if locked else 'unlocked'}")
        self.notify()

    # ─── Notifications ──────────────────────────────────────

    def on_change(self, listener: Callable[[], None]) -> Subscription:
        return self._changes.subscribe(lambda _: listener(), name="policy-listener")

    def notify(self) -> None:
        """Tell listeners to re-read the policy."""
        self._changes.publish(None)


class StaticPolicy(PolicySource):
    """A policy that always allows mirroring."""

    def __init__(self):
        super().__init__(enabled=True)
