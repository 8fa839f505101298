"""
Store Results — Per-record outcomes reported by the secondary store.

Bulk operations never raise for a single bad record. Each record gets a
result, and the caller decides what the batch as a whole means.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Kinds of store errors."""

    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    INITIALIZATION = "initialization"
    INTERNAL = "internal"

    @property
    def fatal(self) -> bool:
        # Only a store that failed to open is beyond recovery for the caller
        return self is ErrorKind.INITIALIZATION


class ErrorDetails(BaseModel):
    """Details about a failed record operation."""

    kind: ErrorKind
    message: str


class InsertResult(BaseModel):
    """Result of inserting one record."""

    status: Literal["ok", "failed"]
    record_id: Optional[str] = None
    ts_iso: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    error: Optional[ErrorDetails] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, record_id: str) -> "InsertResult":
        """Create a successful result."""
        return cls(status="ok", record_id=record_id)

    @classmethod
    def failed(
        cls,
        record_id: Optional[str],
        kind: ErrorKind,
        message: str,
    ) -> "InsertResult":
        """Create a failed result."""
        return cls(
            status="failed",
            record_id=record_id,
            error=ErrorDetails(kind=kind, message=message),
        )


class BulkInsertOutcome(BaseModel):
    """All per-record results of a bulk insert."""

    results: List[InsertResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> List[InsertResult]:
        return [r for r in self.results if not r.ok]

    @property
    def inserted(self) -> int:
        return sum(1 for r in self.results if r.ok)

    def summary(self) -> str:
        """One-line description of the failures, for logs and errors."""
        failures = self.failures
        if not failures:
            return f"{self.inserted} records inserted"
        first = failures[0]
        detail = first.error.message if first.error else "unknown error"
        return (
            f"{len(failures)}/{len(self.results)} records failed "
            f"(first: {first.record_id}: {detail})"
        )
