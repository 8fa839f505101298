"""
Memory Stores — Reference primary and secondary store implementations.

Both keep their records in memory and can optionally persist to a JSON
snapshot after every mutation. The secondary store validates records
more strictly than the primary, the way the replica engine does, so
some records the primary accepts are rejected by the secondary.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlsplit

from ..errors import (
    DuplicateRecordError,
    InitializationError,
    InvalidRecordError,
    NotFoundError,
)
from ..models.events import Added, Modified, Removed, RemovedAll
from ..models.query import RecordQuery
from ..models.record import Record
from ..models.results import BulkInsertOutcome, ErrorKind, InsertResult
from ..persistence.snapshot import Snapshot, load_snapshot, save_snapshot
from .base import PrimaryStore, SecondaryStore
from .channel import EventChannel, Subscription

logger = logging.getLogger(__name__)

CHECKPOINT_KEY = "checkpoint"

RejectHook = Callable[[Record], Optional[str]]


class MemoryPrimaryStore(PrimaryStore):
    """
    Authoritative in-memory store.

    Every mutation is applied first and then published on the store's
    event channel. Publishing happens under a store-wide publish lock, so
    subscribers see events in mutation order even with concurrent
    writers. The record lock is released before delivery so handlers can
    read the store. Subscriber errors never reach the mutating caller.
    """

    def __init__(self, records: Optional[Iterable[Record]] = None, path: Optional[Path] = None):
        self.path = path
        self.events = EventChannel("primary")
        self._records: Dict[str, Record] = {}
        self._lock = threading.RLock()
        self._publish_lock = threading.RLock()

        if records is None and path is not None and path.exists():
            records = load_snapshot(path).records
        for record in records or []:
            self._records[record.id] = record.model_copy()

    @classmethod
    def from_file(cls, path: Path) -> "MemoryPrimaryStore":
        return cls(path=path)

    # ─── Reads ──────────────────────────────────────────────

    def list_all(self) -> List[Record]:
        with self._lock:
            return [r.model_copy() for r in self._records.values()]

    def count_all(self, origin: str = "", form_action_origin: str = "", http_realm: str = "") -> int:
        query = RecordQuery.counting(origin, form_action_origin, http_realm)
        with self._lock:
            return sum(1 for r in self._records.values() if query.matches(r))

    def find_match(self, record: Record) -> Optional[Record]:
        with self._lock:
            for stored in self._records.values():
                if stored.matches(record):
                    return stored.model_copy()
        return None

    # ─── Events ─────────────────────────────────────────────

    def subscribe(self, handler: Callable, name: str = "") -> Subscription:
        return self.events.subscribe(handler, name)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.events.unsubscribe(subscription)

    # ─── Mutations ──────────────────────────────────────────

    def add(self, record: Record) -> Record:
        """Add a record and publish Added."""
        with self._publish_lock:
            with self._lock:
                if record.id in self._records:
                    raise DuplicateRecordError(f"id {record.id} already exists", record.id)
                existing = self._find_identity(record)
                if existing is not None:
                    raise DuplicateRecordError(
                        f"a record for {record.describe()} already exists", existing.id
                    )
                stored = record.model_copy()
                self._records[stored.id] = stored
                self._persist()
            self.events.publish(Added(record=stored.model_copy()))
        return stored.model_copy()

    def modify(self, old: Record, new: Record) -> Record:
        """Replace the record matching `old` with `new` and publish Modified."""
        with self._publish_lock:
            with self._lock:
                stored = self._records.get(old.id) or self._find_identity(old)
                if stored is None:
                    raise NotFoundError(f"no record matches {old.describe()}", old.id)
                updated = stored.replaced_by(new)
                clash = self._find_identity(updated)
                if clash is not None and clash.id != stored.id:
                    raise DuplicateRecordError(
                        f"a record for {updated.describe()} already exists", clash.id
                    )
                self._records[stored.id] = updated
                self._persist()
            self.events.publish(Modified(old=stored.model_copy(), new=updated.model_copy()))
        return updated.model_copy()

    def remove(self, record: Record) -> None:
        """Remove the record matching `record` and publish Removed."""
        with self._publish_lock:
            with self._lock:
                stored = self._records.get(record.id) or self._find_identity(record)
                if stored is None:
                    raise NotFoundError(f"no record matches {record.describe()}", record.id)
                del self._records[stored.id]
                self._persist()
            self.events.publish(Removed(record=stored.model_copy()))

    def remove_all(self) -> None:
        """Remove every record and publish RemovedAll."""
        with self._publish_lock:
            with self._lock:
                self._records.clear()
                self._persist()
            self.events.publish(RemovedAll())

    def _find_identity(self, record: Record) -> Optional[Record]:
        for stored in self._records.values():
            if stored.matches(record):
                return stored
        return None

    def _persist(self) -> None:
        if self.path is not None:
            save_snapshot(Snapshot(records=list(self._records.values())), self.path)


def validate_for_secondary(record: Record) -> Optional[str]:
    """
    Strict validation applied by the secondary store.

    Returns an error message, or None if the record is acceptable.
    """
    if record.origin == ".":
        return "origin '.' is not a valid origin"
    try:
        parts = urlsplit(record.origin)
        host = parts.hostname
    except ValueError as e:
        return f"origin {record.origin!r} is malformed: {e}"
    if not parts.scheme or not host:
        return f"origin {record.origin!r} is not a scheme://host origin"
    if not host.isascii():
        return f"origin host {host!r} is not ASCII"

    if record.form_action_origin:
        if record.form_action_origin == ".":
            return "formActionOrigin '.' is not a valid origin"
        try:
            action_host = urlsplit(record.form_action_origin).hostname or ""
        except ValueError as e:
            return f"formActionOrigin {record.form_action_origin!r} is malformed: {e}"
        if not action_host.isascii():
            return f"formActionOrigin host {action_host!r} is not ASCII"
        if record.http_realm:
            return "a record cannot have both formActionOrigin and httpRealm"

    return None


class MemorySecondaryStore(SecondaryStore):
    """
    Strict in-memory replica.

    Must be initialized before use. Enforces unique ids and identities,
    validates records, and keeps the migration checkpoint in a metadata
    map. bulk_insert() commits all records or none.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        reject: Optional[RejectHook] = None,
        initialize_error: Optional[Exception] = None,
    ):
        self.path = path
        self.reject = reject
        self.initialize_error = initialize_error
        self.initialize_calls = 0
        self._records: Dict[str, Record] = {}
        self._meta: Dict[str, Optional[str]] = {}
        self._initialized = False
        self._lock = threading.RLock()

    # ─── Lifecycle ──────────────────────────────────────────

    def initialize(self) -> None:
        with self._lock:
            self.initialize_calls += 1
            if self.initialize_error is not None:
                raise InitializationError(
                    f"secondary store failed to open: {self.initialize_error}"
                ) from self.initialize_error
            if self.path is not None and self.path.exists():
                try:
                    snapshot = load_snapshot(self.path)
                except (OSError, ValueError) as e:
                    raise InitializationError(
                        f"secondary store at {self.path} is unreadable: {e}"
                    ) from e
                self._records = {r.id: r for r in snapshot.records}
                self._meta = dict(snapshot.meta)
            self._initialized = True
            logger.info(
                f"Secondary store ready ({len(self._records)} records"
                f"{', ' + str(self.path) if self.path else ''})"
            )

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _require_open(self) -> None:
        if not self._initialized:
            raise InitializationError("secondary store is not initialized")

    # ─── Checkpoint ─────────────────────────────────────────

    def get_checkpoint(self) -> Optional[str]:
        with self._lock:
            self._require_open()
            return self._meta.get(CHECKPOINT_KEY)

    def set_checkpoint(self, checkpoint: Optional[str]) -> None:
        with self._lock:
            self._require_open()
            self._meta[CHECKPOINT_KEY] = checkpoint
            self._persist()

    # ─── Bulk ───────────────────────────────────────────────

    def clear_all(self) -> None:
        with self._lock:
            self._require_open()
            self._records.clear()
            self._persist()

    def bulk_insert(self, records: Sequence[Record]) -> BulkInsertOutcome:
        with self._lock:
            self._require_open()
            staged: Dict[str, Record] = dict(self._records)
            outcome = BulkInsertOutcome()

            for record in records:
                error = self._check_insert(record, staged)
                if error is not None:
                    kind, message = error
                    outcome.results.append(InsertResult.failed(record.id, kind, message))
                    continue
                staged[record.id] = record.model_copy()
                outcome.results.append(InsertResult.success(record.id))

            if outcome.ok:
                self._records = staged
            else:
                self._records = {}
                logger.warning(f"Bulk insert rolled back: {outcome.summary()}")
            self._persist()
            return outcome

    # ─── Single-record operations ───────────────────────────

    def insert(self, record: Record) -> Record:
        with self._lock:
            self._require_open()
            error = self._check_insert(record, self._records)
            if error is not None:
                self._raise(error, record.id)
            stored = record.model_copy()
            self._records[stored.id] = stored
            self._persist()
            return stored.model_copy()

    def update(self, record_id: str, record: Record) -> Record:
        with self._lock:
            self._require_open()
            current = self._records.get(record_id)
            if current is None:
                raise NotFoundError(f"no record with id {record_id}", record_id)
            updated = current.replaced_by(record)
            problem = self._validate(updated)
            if problem is not None:
                raise InvalidRecordError(problem, record_id)
            for other in self._records.values():
                if other.id != record_id and other.matches(updated):
                    raise DuplicateRecordError(
                        f"a record for {updated.describe()} already exists", other.id
                    )
            self._records[record_id] = updated
            self._persist()
            return updated.model_copy()

    def delete(self, record_id: str) -> None:
        with self._lock:
            self._require_open()
            if record_id not in self._records:
                raise NotFoundError(f"no record with id {record_id}", record_id)
            del self._records[record_id]
            self._persist()

    def delete_many(self, record_ids: Iterable[str]) -> int:
        with self._lock:
            self._require_open()
            removed = 0
            for record_id in list(record_ids):
                if self._records.pop(record_id, None) is not None:
                    removed += 1
            self._persist()
            return removed

    # ─── Reads ──────────────────────────────────────────────

    def list(self) -> List[Record]:
        with self._lock:
            self._require_open()
            return [r.model_copy() for r in self._records.values()]

    def get(self, record_id: str) -> Optional[Record]:
        with self._lock:
            self._require_open()
            record = self._records.get(record_id)
            return record.model_copy() if record else None

    def search(self, query: RecordQuery) -> List[Record]:
        with self._lock:
            self._require_open()
            return [r.model_copy() for r in self._records.values() if query.matches(r)]

    # ─── Internals ──────────────────────────────────────────

    def _validate(self, record: Record) -> Optional[str]:
        problem = validate_for_secondary(record)
        if problem is None and self.reject is not None:
            problem = self.reject(record)
        return problem

    def _check_insert(self, record: Record, existing: Dict[str, Record]):
        problem = self._validate(record)
        if problem is not None:
            return ErrorKind.INVALID, problem
        if record.id in existing:
            return ErrorKind.DUPLICATE, f"id {record.id} already exists"
        for other in existing.values():
            if other.matches(record):
                return ErrorKind.DUPLICATE, f"a record for {record.describe()} already exists"
        return None

    @staticmethod
    def _raise(error, record_id: str) -> None:
        kind, message = error
        if kind is ErrorKind.DUPLICATE:
            raise DuplicateRecordError(message, record_id)
        raise InvalidRecordError(message, record_id)

    def _persist(self) -> None:
        if self.path is not None:
            save_snapshot(
                Snapshot(records=list(self._records.values()), meta=dict(self._meta)),
                self.path,
            )
