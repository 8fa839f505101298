"""
Store Base Classes — Contracts for the primary and secondary stores.

The mirror engine only talks to stores through these interfaces. The
storage engines behind them (files, databases, encryption) are the
implementer's concern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional, Sequence

from ..models.query import RecordQuery
from ..models.record import Record
from ..models.results import BulkInsertOutcome
from .channel import Subscription


class PrimaryStore(ABC):
    """
    The authoritative store.

    Publishes a MutationEvent after each change, in mutation order.
    """

    @abstractmethod
    def list_all(self) -> List[Record]:
        """Every record currently stored."""
        pass

    def compute_checksum(self) -> Optional[str]:
        """
        Store-provided content fingerprint.

        Return None to let the ChecksumGate compute one over list_all().
        """
        return None

    @abstractmethod
    def subscribe(self, handler: Callable, name: str = "") -> Subscription:
        """Register a mutation event handler."""
        pass

    @abstractmethod
    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a handler registered with subscribe()."""
        pass

    @abstractmethod
    def count_all(
        self,
        origin: str = "",
        form_action_origin: str = "",
        http_realm: str = "",
    ) -> int:
        """Count records; empty filters match everything."""
        pass


class SecondaryStore(ABC):
    """
    The replica kept consistent with the primary.

    Direct calls raise DuplicateRecordError / NotFoundError /
    InvalidRecordError on business-rule violations.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Open the store. Raises InitializationError on failure."""
        pass

    @property
    @abstractmethod
    def initialized(self) -> bool:
        pass

    @abstractmethod
    def get_checkpoint(self) -> Optional[str]:
        pass

    @abstractmethod
    def set_checkpoint(self, checkpoint: Optional[str]) -> None:
        pass

    @abstractmethod
    def clear_all(self) -> None:
        """Remove every record. The checkpoint is left alone."""
        pass

    @abstractmethod
    def bulk_insert(self, records: Sequence[Record]) -> BulkInsertOutcome:
        """
        Insert all records or none.

        Returns per-record results. If any record fails, nothing is
        committed and the store is left empty.
        """
        pass

    @abstractmethod
    def insert(self, record: Record) -> Record:
        pass

    @abstractmethod
    def update(self, record_id: str, record: Record) -> Record:
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        pass

    @abstractmethod
    def delete_many(self, record_ids: Iterable[str]) -> int:
        pass

    def delete_all(self) -> int:
        """Delete every record through delete_many()."""
        return self.delete_many([r.id for r in self.list()])

    @abstractmethod
    def list(self) -> List[Record]:
        pass

    @abstractmethod
    def get(self, record_id: str) -> Optional[Record]:
        pass

    @abstractmethod
    def search(self, query: RecordQuery) -> List[Record]:
        pass

    def find_match(self, record: Record) -> Optional[Record]:
        """Stored record with the same identity fields as `record`."""
        for candidate in self.search(RecordQuery.identity_of(record)):
            if candidate.matches(record):
                return candidate
        return None

    def count_all(
        self,
        origin: str = "",
        form_action_origin: str = "",
        http_realm: str = "",
    ) -> int:
        return len(self.search(RecordQuery.counting(origin, form_action_origin, http_realm)))
