"""
Activation Controller — Decides whether mirroring is armed.

Two states, DISABLED (initial) and ENABLED. Activating opens the
secondary store once, runs the rolling migration to completion, and only
then subscribes a fresh ChangeMirror, so the first live event is
mirrored onto an already consistent secondary store. Deactivating drops
the subscription and leaves the secondary store's content alone.

The controller can be driven directly (activate/deactivate) or bound to
a PolicySource, in which case every policy notification re-evaluates the
target state. Redundant notifications converge to the same state.

## Usage

    controller = ActivationController(context)
    controller.bind_policy()
    controller.evaluate()
    ...
    controller.close()
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from enum import Enum
from typing import Callable, Optional

from ..errors import InitializationError, MigrationError
from ..stores.channel import Subscription
from .change_mirror import ChangeMirror
from .context import MirrorContext
from .migrator import MigrationReport, RollingMigrator

logger = logging.getLogger(__name__)

OP_ROLLING_MIGRATION = "rolling-migration"


class ActivationState(str, Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"


class InitGuard:
    """
    Runs an initializer at most once, however many threads ask for it.

    Callers arriving while the initializer runs wait on the same Future
    and see the same result or exception. A failed run resets the guard
    so a later call can try again.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    def __init__(self, initializer: Callable[[], None]):
        self._initializer = initializer
        self._lock = threading.Lock()
        self._state = self.NOT_STARTED
        self._future: Optional[Future] = None

    @property
    def state(self) -> str:
        return self._state

    def ensure(self) -> None:
        with self._lock:
            if self._state == self.DONE:
                return
            if self._state == self.IN_PROGRESS:
                future = self._future
                owner = False
            else:
                future = Future()
                self._future = future
                self._state = self.IN_PROGRESS
                owner = True

        if not owner:
            future.result()
            return

        try:
            self._initializer()
        except Exception as e:
            error = e if isinstance(e, InitializationError) else InitializationError(
                f"secondary store initialization failed: {e}"
            )
            with self._lock:
                self._state = self.NOT_STARTED
                self._future = None
            future.set_exception(error)
            if error is e:
                raise
            raise error from e

        with self._lock:
            self._state = self.DONE
        future.set_result(None)


class ActivationController:
    """Lifecycle state machine owning the live ChangeMirror."""

    def __init__(self, context: MirrorContext):
        self.context = context
        self.migrator = RollingMigrator(context)
        self._guard = InitGuard(self._open_secondary)
        self._lock = threading.RLock()
        self._state = ActivationState.DISABLED
        self._mirror: Optional[ChangeMirror] = None
        self._policy_subscription: Optional[Subscription] = None
        self.last_report: Optional[MigrationReport] = None

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._state == ActivationState.ENABLED

    @property
    def mirror(self) -> Optional[ChangeMirror]:
        """The live mirror, or None while disabled."""
        return self._mirror

    def _open_secondary(self) -> None:
        secondary = self.context.secondary
        if not secondary.initialized:
            secondary.initialize()

    # ─── Transitions ────────────────────────────────────────

    def activate(self) -> bool:
        """
        Arm mirroring.

        Returns True if the controller is enabled afterwards.

        Raises:
            InitializationError: If the secondary store cannot be opened
        """
        with self._lock:
            blocked = self.context.policy.is_blocked()

            if self._state == ActivationState.ENABLED:
                if blocked:
                    logger.info("[mirror] Activation precondition now blocks mirroring")
                    self.deactivate()
                    return False
                return True

            if blocked:
                logger.info("[mirror] Activation skipped: precondition blocks mirroring")
                return False

            logger.info("[mirror] Activating login mirror")
            try:
                self._guard.ensure()
            except InitializationError as e:
                logger.error(f"[mirror] Activation failed: {e.message}")
                self.context.emit_audit(
                    "activation_failed", level="error", details={"error": e.message}
                )
                raise

            self._run_migration()

            if self._mirror is not None:
                self._mirror.close(timeout=self.context.settings.close_timeout)
                self._mirror = None
            mirror = ChangeMirror(self.context)
            mirror.subscribe()
            self._mirror = mirror

            self._state = ActivationState.ENABLED
            self.context.metrics.set_active(True)
            self.context.update_status(lambda s: s.mark_activation(True))
            self.context.emit_audit(
                "activation",
                details={"outcome": self.last_report.outcome if self.last_report else None},
            )
            logger.info("[mirror] Login mirror enabled")
            return True

    def _run_migration(self) -> None:
        """Run the migrator; failures are recorded and never block arming."""
        try:
            self.last_report = self.migrator.run_if_needed()
        except InitializationError:
            raise
        except MigrationError as e:
            self.last_report = None
            logger.error(f"[mirror] Rolling migration failed; mirroring anyway: {e.message}")
            self.context.metrics.record_failure(OP_ROLLING_MIGRATION, e)
        except Exception as e:
            self.last_report = None
            logger.exception(f"[mirror] Rolling migration crashed; mirroring anyway: {e}")
            self.context.metrics.record_failure(OP_ROLLING_MIGRATION, e)

    def deactivate(self) -> None:
        """Disarm mirroring. Secondary store content is kept."""
        with self._lock:
            if self._state != ActivationState.ENABLED:
                return
            if self._mirror is not None:
                self._mirror.close(timeout=self.context.settings.close_timeout)
                self._mirror = None

            self._state = ActivationState.DISABLED
            self.context.metrics.set_active(False)
            self.context.update_status(lambda s: s.mark_activation(False))
            self.context.emit_audit("deactivation")
            logger.info("[mirror] Login mirror disabled")

    # ─── Policy ─────────────────────────────────────────────

    def evaluate(self) -> ActivationState:
        """Converge to the state the policy source asks for."""
        with self._lock:
            if self.context.policy.allows_mirroring():
                try:
                    self.activate()
                except InitializationError:
                    # Already logged and audited; stay disabled until the next signal.
                    pass
            else:
                self.deactivate()
            return self._state

    def bind_policy(self) -> Subscription:
        """Re-evaluate on every policy change notification."""
        with self._lock:
            if self._policy_subscription is None or not self._policy_subscription.active:
                self._policy_subscription = self.context.policy.on_change(self.evaluate)
            return self._policy_subscription

    def close(self) -> None:
        with self._lock:
            if self._policy_subscription is not None:
                self._policy_subscription.dispose()
                self._policy_subscription = None
            self.deactivate()
