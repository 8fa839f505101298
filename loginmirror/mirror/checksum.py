"""
Checksum Gate — Order-independent content fingerprint of a store.

Each record is hashed over its canonical serialization. The per-record
digests are sorted before being combined, so the order a store returns
its records in never changes the result. An empty store has no
fingerprint and never needs a migration.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Iterable, Optional

from ..models.record import Record
from ..stores.base import PrimaryStore

logger = logging.getLogger(__name__)

FINGERPRINT_PREFIX = "sha256:"


def record_digest(record: Record) -> str:
    return hashlib.sha256(record.canonical_json().encode("utf-8")).hexdigest()


def fingerprint_records(records: Iterable[Record]) -> Optional[str]:
    """Fingerprint of a record collection, or None if it is empty."""
    digests = sorted(record_digest(r) for r in records)
    if not digests:
        return None

    combined = hashlib.sha256()
    for digest in digests:
        combined.update(digest.encode("ascii"))
        combined.update(b"\n")
    return FINGERPRINT_PREFIX + combined.hexdigest()


def compute_fingerprint(store: PrimaryStore) -> Optional[str]:
    """
    Fingerprint of everything in `store`.

    A checksum the store computes itself takes precedence.
    """
    provided = store.compute_checksum()
    if provided:
        return provided
    fingerprint = fingerprint_records(store.list_all())
    logger.debug(f"[migration] Computed fingerprint {fingerprint}")
    return fingerprint
