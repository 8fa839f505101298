"""
Audit Ledger — Append-only NDJSON log of mirror lifecycle events.

Each line is one JSON object. Events are never edited, only appended.
Record contents (and passwords in particular) are never written; only
ids and counts are.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4


class AuditWriter:
    """
    Append-only NDJSON audit ledger writer.

    Usage:
        audit = AuditWriter(Path("audit/mirror.ndjson"))
        audit.emit("migration_complete", details={"migrated": 12})
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    def emit(
        self,
        event_type: str,
        level: str = "info",
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Emit an audit event.

        Args:
            event_type: activation, deactivation, migration_start, ...
            level: info, warning or error
            details: Additional event details

        Returns:
            Generated event_id
        """
        event_id = f"E-{uuid4().hex[:8].upper()}"
        entry: Dict[str, Any] = {
            "ts_iso": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event_id": event_id,
            "level": level,
            "type": event_type,
        }
        if details is not None:
            entry["details"] = details

        line = json.dumps(entry, default=str) + "\n"
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

        return event_id

    def read(self) -> List[Dict[str, Any]]:
        """All events written so far, oldest first."""
        events = []
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    events.append(json.loads(line))
        return events

