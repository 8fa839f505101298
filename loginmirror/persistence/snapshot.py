"""
Store Snapshots — JSON file backend for the reference stores.

A snapshot holds the records of one store and its metadata map:

    {"version": 1, "records": [...], "meta": {"checkpoint": "..."}}

Records use the camelCase field names of the JSON export format, so a
plain export of the primary store is also a valid snapshot.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from ..models.record import Record

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass
class Snapshot:
    """Records plus store metadata."""

    records: List[Record] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


def load_snapshot(path: Path) -> Snapshot:
    """
    Load a snapshot from a JSON file.

    A bare JSON list is read as a list of records with no metadata.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If a record is malformed
    """
    logger.debug(f"Loading snapshot from {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        raw_records, meta = data, {}
    else:
        raw_records = data.get("records") or data.get("logins") or []
        meta = data.get("meta") or {}

    records = [Record.from_dict(item) for item in raw_records]
    logger.debug(f"Snapshot loaded: {len(records)} records from {path.name}")
    return Snapshot(records=records, meta=dict(meta))


def save_snapshot(snapshot: Snapshot, path: Path) -> None:
    """
    Save a snapshot to a JSON file.

    Uses atomic write (write to temp, then rename) to prevent corruption.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = path.with_suffix(path.suffix + ".tmp")

    data = {
        "version": SNAPSHOT_VERSION,
        "records": [r.to_dict() for r in snapshot.records],
        "meta": snapshot.meta,
    }
    with temp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")

    temp_path.replace(path)
    logger.debug(f"Snapshot saved: {len(snapshot.records)} records → {path.name}")
