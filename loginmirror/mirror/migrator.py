"""
Rolling Migrator — Checksum-gated full reload of the secondary store.

Compares the primary store's fingerprint with the checkpoint saved in
the secondary store's metadata. When they differ, the secondary store
is cleared and reloaded from the primary in one bulk insert, and the
checkpoint is moved forward.

## Guarantees

- Repeated runs with no primary change are cheap no-ops.
- The secondary store is never left partially loaded: a failed bulk
  insert leaves it empty and the checkpoint unchanged, so the next run
  retries the whole reload.
- Primary changes made while a reload is in flight are not chased.
  They change the fingerprint, which forces another reload next time.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from ..errors import InitializationError, MigrationError
from ..models.record import Record
from . import compat
from .checksum import compute_fingerprint
from .context import MirrorContext

logger = logging.getLogger(__name__)

OUTCOME_MIGRATED = "migrated"
OUTCOME_NOOP = "noop"
OUTCOME_FAILED = "failed"


@dataclass
class MigrationReport:
    """Result of one run_if_needed() call."""

    outcome: str
    fingerprint: Optional[str] = None
    checkpoint_before: Optional[str] = None
    migrated: int = 0
    skipped: int = 0
    diff: Optional[int] = None
    reason: str = ""
    duration_ms: int = 0

    @property
    def migrated_records(self) -> bool:
        return self.outcome == OUTCOME_MIGRATED


class RollingMigrator:
    """Keeps the secondary store's bulk content in step with the primary."""

    def __init__(self, context: MirrorContext):
        self.context = context

    def run_if_needed(self) -> MigrationReport:
        """
        Reload the secondary store if the primary changed since the last run.

        Raises:
            MigrationError: If the reload failed (secondary left empty)
            InitializationError: If the secondary store is not open
        """
        ctx = self.context
        start = time.monotonic()
        logger.info("[migration] Checking whether a rolling migration is needed")

        fingerprint = compute_fingerprint(ctx.primary)
        if not fingerprint:
            logger.info("[migration] Primary store is empty. No migration needed.")
            return self._noop(None, None, "primary store is empty", start)

        checkpoint = ctx.secondary.get_checkpoint()
        if fingerprint == checkpoint:
            logger.info("[migration] Checksums match. No migration needed.")
            report = self._noop(fingerprint, checkpoint, "checksums match", start)
            if ctx.settings.diff_on_noop:
                report.diff = ctx.record_diff()
            return report

        logger.info(
            "[migration] Checksums differ. Rolling migration required.",
            extra={"checkpoint": checkpoint},
        )
        ctx.emit_audit("migration_start", details={"fingerprint": fingerprint, "checkpoint": checkpoint})

        try:
            migrated, skipped = self._reload(fingerprint)
        except MigrationError as e:
            self._failed(fingerprint, e, start)
            raise
        except InitializationError:
            raise
        except Exception as e:
            logger.exception(f"[migration] Rolling migration aborted: {e}")
            self._ensure_empty()
            error = MigrationError(f"rolling migration aborted: {e}")
            self._failed(fingerprint, error, start)
            raise error from e

        ctx.secondary.set_checkpoint(fingerprint)
        logger.info(
            f"[migration] Migrated {migrated} records. Checkpoint updated.",
            extra={"checkpoint": fingerprint},
        )

        diff = ctx.record_diff()
        duration = time.monotonic() - start
        ctx.metrics.record_migration(OUTCOME_MIGRATED, duration)
        ctx.update_status(
            lambda s: s.migration.mark_ok(detail=f"{migrated} records", fingerprint=fingerprint)
        )
        ctx.emit_audit("migration_complete", details={"fingerprint": fingerprint, "migrated": migrated})

        return MigrationReport(
            outcome=OUTCOME_MIGRATED,
            fingerprint=fingerprint,
            checkpoint_before=checkpoint,
            migrated=migrated,
            skipped=skipped,
            diff=diff,
            reason="checksums differ",
            duration_ms=int(duration * 1000),
        )

    def _reload(self, fingerprint: str):
        ctx = self.context

        ctx.secondary.clear_all()
        logger.info("[migration] Cleared existing secondary records.")

        records = ctx.primary.list_all()
        to_insert, skipped = self._select(records)

        outcome = ctx.secondary.bulk_insert(to_insert)
        if not outcome.ok:
            self._ensure_empty()
            raise MigrationError(
                f"bulk insert failed: {outcome.summary()}",
                failures=outcome.failures,
            )
        return outcome.inserted, skipped

    def _select(self, records: List[Record]):
        """Records to load; drops flagged ones only when pre-skipping."""
        ctx = self.context
        if not ctx.settings.preskip_incompatible:
            return records, 0

        kept: List[Record] = []
        skipped = 0
        for record in records:
            findings = compat.classify(record)
            if findings:
                ctx.metrics.record_incompatible(findings)
                ctx.metrics.record_skipped()
                skipped += 1
                logger.debug(f"[migration] Skipping incompatible record {record.id}")
                continue
            kept.append(record)
        if skipped:
            logger.info(f"[migration] Skipped {skipped} incompatible records")
        return kept, skipped

    def _ensure_empty(self) -> None:
        try:
            self.context.secondary.clear_all()
        except Exception as e:
            logger.error(f"[migration] Could not clear secondary store after failure: {e}")

    def _noop(self, fingerprint, checkpoint, reason: str, start: float) -> MigrationReport:
        ctx = self.context
        ctx.metrics.record_migration(OUTCOME_NOOP)
        ctx.update_status(lambda s: s.migration.mark_noop(detail=reason))
        ctx.emit_audit("migration_noop", details={"fingerprint": fingerprint, "reason": reason})
        return MigrationReport(
            outcome=OUTCOME_NOOP,
            fingerprint=fingerprint,
            checkpoint_before=checkpoint,
            reason=reason,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def _failed(self, fingerprint: str, error: MigrationError, start: float) -> None:
        ctx = self.context
        logger.error(f"[migration] Rolling migration failed: {error.message}")
        ctx.metrics.record_migration(OUTCOME_FAILED, time.monotonic() - start)
        ctx.update_status(lambda s: s.migration.mark_failed(error.message))
        ctx.emit_audit(
            "migration_failed",
            level="error",
            details={"fingerprint": fingerprint, "error": error.message},
        )
