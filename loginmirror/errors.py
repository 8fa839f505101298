"""
Errors — Exception taxonomy for the mirror engine and its stores.

## Kinds

- InitializationError: the secondary store failed to open (fatal to the
  activation attempt).
- MigrationError: a rolling migration's bulk load failed. The secondary
  store is left empty and the checkpoint untouched.
- MirrorApplyError: one mutation event could not be replayed. Recorded
  through metrics, never raised to the primary store's caller.
- DuplicateRecordError / NotFoundError / InvalidRecordError: business
  rule errors raised by direct store calls.

Every error carries an ErrorKind so callers can tell recoverable
business errors from fatal ones without matching on class names.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models.results import ErrorKind, InsertResult


class MirrorError(Exception):
    """Base class for all mirror engine errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def fatal(self) -> bool:
        return self.kind.fatal


class ConfigurationError(MirrorError):
    """Raised when configuration is missing or invalid."""


class InitializationError(MirrorError):
    """Raised when the secondary store cannot be opened."""

    kind = ErrorKind.INITIALIZATION


class MigrationError(MirrorError):
    """Raised when a rolling migration could not load every record."""

    def __init__(self, message: str, failures: Optional[List[InsertResult]] = None):
        self.failures = failures or []
        super().__init__(message, details={"failed": len(self.failures)})


class MirrorApplyError(MirrorError):
    """A single mutation event failed to apply to the secondary store."""

    def __init__(
        self,
        operation: str,
        message: str,
        record_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.operation = operation
        self.record_id = record_id
        self.cause = cause
        if cause is not None and isinstance(cause, MirrorError):
            self.kind = cause.kind
        super().__init__(message, details={"operation": operation, "record_id": record_id})


class StoreError(MirrorError):
    """Base class for business-rule errors raised by a store."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message, details={"record_id": record_id})


class DuplicateRecordError(StoreError):
    """A record with the same id or identity already exists."""

    kind = ErrorKind.DUPLICATE


class NotFoundError(StoreError):
    """No record matches the requested id or identity."""

    kind = ErrorKind.NOT_FOUND


class InvalidRecordError(StoreError):
    """The record does not pass the store's validation."""

    kind = ErrorKind.INVALID
