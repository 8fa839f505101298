"""
Change Mirror — Replay primary store mutations onto the secondary store.

The mirror subscribes to the primary store's event channel. Its handler
only queues the event, so the primary store's callers never wait on the
secondary store. A single worker thread applies queued events one at a
time, in the order they were published: event N+1 is not started until
event N has succeeded or failed.

Events arriving while the policy source disallows mirroring (flag off
or precondition blocking) are skipped; the policy is read per event.

Each event is applied in isolation. A failure is recorded as a
MirrorApplyError through the metrics sink and never reaches the primary
store's caller or stops the next event. Failed events are not retried.

## Usage

    mirror = ChangeMirror(context)
    mirror.subscribe()
    ...
    mirror.flush()   # wait for queued events (tests, shutdown)
    mirror.close()
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Optional

from ..errors import MirrorApplyError, NotFoundError
from ..models.events import Added, Modified, Removed, RemovedAll, event_record_id
from ..models.record import Record
from ..stores.channel import Subscription
from . import compat
from .context import MirrorContext

logger = logging.getLogger(__name__)

OP_ADD = "add-login"
OP_MODIFY = "modify-login"
OP_REMOVE = "remove-login"
OP_REMOVE_ALL = "remove-all-logins"
OP_UNKNOWN = "unknown-event"

_STOP = object()


class ChangeMirror:
    """
    Sequential replayer of mutation events.

    With blocking=True events are applied in the publisher's thread
    instead of the worker thread; ordering and isolation are the same.
    """

    def __init__(self, context: MirrorContext, blocking: Optional[bool] = None):
        self.context = context
        self.blocking = context.settings.blocking if blocking is None else blocking
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._apply_lock = threading.Lock()
        self._idle = threading.Condition()
        self._pending = 0
        self._subscription: Optional[Subscription] = None
        self._worker: Optional[threading.Thread] = None
        self._closed = False

    # ─── Lifecycle ──────────────────────────────────────────

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def subscribe(self) -> Subscription:
        """Start receiving the primary store's events."""
        if self._closed:
            raise RuntimeError("a closed ChangeMirror cannot be resubscribed")
        if self.subscribed:
            return self._subscription

        if not self.blocking and self._worker is None:
            self._worker = threading.Thread(
                target=self._run, name="login-mirror-apply", daemon=True
            )
            self._worker.start()

        self._subscription = self.context.primary.subscribe(self.handle, name="change-mirror")
        logger.info(f"[mirror] Subscribed to primary store ({'blocking' if self.blocking else 'queued'})")
        return self._subscription

    def close(self, timeout: Optional[float] = None) -> None:
        """
        Unsubscribe and stop the worker.

        Events already queued are still applied before this returns, so
        no mirror write can overlap whatever the caller does next. If the
        worker is still busy after `timeout` seconds, events it has not
        started are dropped.
        """
        if self._subscription is not None:
            self.context.primary.unsubscribe(self._subscription)
            self._subscription = None

        with self._idle:
            self._closed = True
        if self._worker is not None:
            self._queue.put(_STOP)
            self._worker.join(timeout)
            if self._worker.is_alive():
                logger.warning("[mirror] Worker still busy after close timeout")
                self._drain()
                # The stalled worker exits once its current event returns.
                self._queue.put(_STOP)
            self._worker = None
        logger.info("[mirror] Unsubscribed from primary store")

    def _drain(self) -> None:
        # Queued events not yet started are dropped, not applied.
        dropped = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                break
            if event is not _STOP:
                dropped += 1
                self._done()
        if dropped:
            logger.warning(f"[mirror] Dropped {dropped} queued events after close timeout")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued event has been attempted."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    @property
    def pending(self) -> int:
        return self._pending

    # ─── Event intake ───────────────────────────────────────

    def handle(self, event: Any) -> None:
        """Subscription handler; never raises into the publisher."""
        with self._idle:
            if self._closed:
                logger.debug("[mirror] Dropping event received after close")
                return
            self._pending += 1
            if not self.blocking:
                # Enqueued under the same lock close() sets _closed with,
                # so nothing lands behind _STOP.
                self._queue.put(event)
                return

        try:
            self.apply(event)
        finally:
            self._done()

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is _STOP:
                break
            try:
                self.apply(event)
            finally:
                self._done()

    def _done(self) -> None:
        with self._idle:
            self._pending -= 1
            self._idle.notify_all()

    # ─── Apply ──────────────────────────────────────────────

    def apply(self, event: Any) -> bool:
        """
        Apply one event to the secondary store.

        Returns True if the secondary store was changed, False if the
        event failed or was skipped.
        """
        if not self.context.policy.allows_mirroring():
            logger.debug(f"[mirror] Mirroring not allowed, skipping {getattr(event, 'kind', event)!r}")
            return False

        with self._apply_lock:
            if isinstance(event, Added):
                return self._guarded(OP_ADD, event, self._apply_added)
            if isinstance(event, Modified):
                return self._guarded(OP_MODIFY, event, self._apply_modified)
            if isinstance(event, Removed):
                return self._guarded(OP_REMOVE, event, self._apply_removed)
            if isinstance(event, RemovedAll):
                return self._guarded(OP_REMOVE_ALL, event, self._apply_removed_all)

            kind = getattr(event, "kind", type(event).__name__)
            logger.error(f"[mirror] Received unhandled event {kind!r}")
            self._record_failure(
                MirrorApplyError(OP_UNKNOWN, f"unrecognized event {kind!r}")
            )
            return False

    def _guarded(self, operation: str, event: Any, action) -> bool:
        record_id = event_record_id(event)
        logger.debug(f"[mirror] {operation} {record_id or ''}...")
        try:
            changed = action(event)
        except Exception as e:
            self._record_failure(
                MirrorApplyError(operation, str(e) or type(e).__name__, record_id=record_id, cause=e)
            )
            return False

        if changed:
            self.context.metrics.record_applied(operation)
            self.context.update_status(
                lambda s: s.mirroring.mark_ok(detail=f"{operation} {record_id or ''}".strip())
            )
            logger.debug(f"[mirror] {operation} {record_id or ''} done.")
        return changed

    def _classify(self, record: Record) -> bool:
        """Record incompatibilities; True if the record should be skipped."""
        findings = compat.classify(record)
        if findings:
            self.context.metrics.record_incompatible(findings)
            if self.context.settings.preskip_incompatible:
                self.context.metrics.record_skipped()
                logger.info(f"[mirror] Skipping incompatible record {record.id}")
                return True
        return False

    def _apply_added(self, event: Added) -> bool:
        if self._classify(event.record):
            return False
        self.context.secondary.insert(event.record)
        self.context.record_diff()
        return True

    def _apply_modified(self, event: Modified) -> bool:
        if self._classify(event.new):
            return False
        secondary = self.context.secondary
        match = secondary.find_match(event.old)
        if match is None:
            raise NotFoundError(f"no secondary record matches {event.old.describe()}", event.old.id)
        secondary.update(match.id, event.new)
        self.context.record_diff()
        return True

    def _apply_removed(self, event: Removed) -> bool:
        secondary = self.context.secondary
        match = secondary.find_match(event.record)
        if match is None:
            raise NotFoundError(
                f"no secondary record matches {event.record.describe()}", event.record.id
            )
        secondary.delete(match.id)
        self.context.record_diff()
        return True

    def _apply_removed_all(self, event: RemovedAll) -> bool:
        removed = self.context.secondary.delete_all()
        logger.debug(f"[mirror] Removed {removed} secondary records")
        return True

    def _record_failure(self, error: MirrorApplyError) -> None:
        ctx = self.context
        logger.error(
            f"[mirror] {error.operation} failed: {error.message}",
            extra={"operation": error.operation, "record_id": error.record_id},
        )
        ctx.metrics.record_failure(error.operation, error, record_id=error.record_id)
        ctx.update_status(lambda s: s.mirroring.mark_failed(error.message, detail=error.operation))
        ctx.emit_audit(
            "mirror_failure",
            level="error",
            details={"operation": error.operation, "record_id": error.record_id, "error": error.message},
        )
