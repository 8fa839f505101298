"""
Mirror State — Track activation and sync status of the mirror.

State is stored in state/login_mirror_status.json, separate from both
stores so that reading it never touches the secondary store.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path("state") / "login_mirror_status.json"


@dataclass
class SyncStatus:
    """Status of one sync path (rolling migration or live mirroring)."""

    last_sync_iso: Optional[str] = None
    status: str = "unknown"  # ok, failed, noop, unknown
    last_error: Optional[str] = None
    detail: Optional[str] = None  # e.g. "12 records", "add {guid}"
    fingerprint: Optional[str] = None  # checkpoint written by the last migration

    def _touch(self) -> None:
        self.last_sync_iso = datetime.now(timezone.utc).isoformat()

    def mark_ok(self, detail: Optional[str] = None, fingerprint: Optional[str] = None):
        self._touch()
        self.status = "ok"
        self.last_error = None
        self.detail = detail
        if fingerprint is not None:
            self.fingerprint = fingerprint

    def mark_noop(self, detail: Optional[str] = None):
        self._touch()
        self.status = "noop"
        self.detail = detail

    def mark_failed(self, error: str, detail: Optional[str] = None):
        self._touch()
        self.status = "failed"
        self.last_error = error
        if detail is not None:
            self.detail = detail


@dataclass
class MirrorState:
    """Complete mirror status."""

    activation: str = "disabled"
    activated_at_iso: Optional[str] = None
    migration: SyncStatus = field(default_factory=SyncStatus)
    mirroring: SyncStatus = field(default_factory=SyncStatus)
    path: Optional[Path] = field(default=None, repr=False, compare=False)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "MirrorState":
        """Load mirror status from file; a missing or corrupt file yields defaults."""
        path = path or DEFAULT_STATE_PATH

        if not path.exists():
            return cls(path=path)

        try:
            with open(path) as f:
                data = json.load(f)
            state = cls._from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to load mirror status: {e}")
            state = cls()
        state.path = path
        return state

    def save(self, path: Optional[Path] = None) -> None:
        path = path or self.path or DEFAULT_STATE_PATH
        path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = path.with_suffix(path.suffix + ".tmp")
        with open(temp_path, "w") as f:
            json.dump(self.to_dict(), f, indent=4, default=str)
        temp_path.replace(path)

    def mark_activation(self, active: bool) -> None:
        self.activation = "enabled" if active else "disabled"
        if active:
            self.activated_at_iso = datetime.now(timezone.utc).isoformat()

    @classmethod
    def _from_dict(cls, data: dict) -> "MirrorState":
        state = cls(
            activation=data.get("activation", "disabled"),
            activated_at_iso=data.get("activated_at_iso"),
        )
        for layer in ("migration", "mirroring"):
            layer_data = data.get(layer) or {}
            setattr(
                state,
                layer,
                SyncStatus(
                    last_sync_iso=layer_data.get("last_sync_iso"),
                    status=layer_data.get("status", "unknown"),
                    last_error=layer_data.get("last_error"),
                    detail=layer_data.get("detail"),
                    fingerprint=layer_data.get("fingerprint"),
                ),
            )
        return state

    def to_dict(self) -> dict:
        return {
            "activation": self.activation,
            "activated_at_iso": self.activated_at_iso,
            "migration": asdict(self.migration),
            "mirroring": asdict(self.mirroring),
        }
