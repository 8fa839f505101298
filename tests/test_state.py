"""
Tests for the mirror status file, the audit ledger and log formatting.
"""

from __future__ import annotations

import json
import logging

from loginmirror.logging_config import HumanFormatter, JSONFormatter
from loginmirror.mirror.state import MirrorState, SyncStatus
from loginmirror.persistence.audit import AuditWriter


class TestSyncStatus:
    """Tests for SyncStatus transitions."""

    def test_mark_ok_clears_error(self):
        status = SyncStatus()
        status.mark_failed("boom", detail="add")

        status.mark_ok(detail="2 records", fingerprint="sha256:x")

        assert status.status == "ok"
        assert status.last_error is None
        assert status.fingerprint == "sha256:x"
        assert status.last_sync_iso is not None

    def test_noop_keeps_fingerprint(self):
        status = SyncStatus()
        status.mark_ok(fingerprint="sha256:x")

        status.mark_noop(detail="checksums match")

        assert status.status == "noop"
        assert status.fingerprint == "sha256:x"


class TestMirrorState:
    """Tests for MirrorState persistence."""

    def test_missing_file_defaults(self, tmp_path):
        state = MirrorState.load(tmp_path / "status.json")

        assert state.activation == "disabled"
        assert state.migration.status == "unknown"

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "state" / "status.json"
        state = MirrorState.load(path)
        state.mark_activation(True)
        state.mirroring.mark_failed("not found", detail="remove")

        state.save()
        loaded = MirrorState.load(path)

        assert loaded.activation == "enabled"
        assert loaded.activated_at_iso == state.activated_at_iso
        assert loaded.mirroring.status == "failed"
        assert loaded.mirroring.detail == "remove"

    def test_corrupt_file_defaults(self, tmp_path):
        path = tmp_path / "status.json"
        path.write_text("{nope")

        state = MirrorState.load(path)

        assert state.activation == "disabled"
        assert state.path == path


class TestAuditWriter:
    """Tests for the NDJSON audit ledger."""

    def test_emit_and_read(self, tmp_path):
        audit = AuditWriter(tmp_path / "audit" / "mirror.ndjson")

        event_id = audit.emit("migration_complete", details={"migrated": 3})
        audit.emit("mirror_failure", level="error")

        events = audit.read()
        assert [e["type"] for e in events] == ["migration_complete", "mirror_failure"]
        assert events[0]["event_id"] == event_id
        assert events[0]["details"] == {"migrated": 3}
        assert events[1]["level"] == "error"
        assert "details" not in events[1]

    def test_append_only(self, tmp_path):
        path = tmp_path / "mirror.ndjson"
        AuditWriter(path).emit("activation")
        AuditWriter(path).emit("deactivation")

        assert len(path.read_text().splitlines()) == 2


class TestFormatters:
    """Tests for the log formatters."""

    def _record(self, **extra):
        record = logging.LogRecord("loginmirror.mirror.change_mirror", logging.ERROR, __file__, 1, "[mirror] add failed", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_extra_fields(self):
        line = JSONFormatter().format(self._record(operation="add", record_id="{a}"))

        data = json.loads(line)
        assert data["level"] == "ERROR"
        assert data["message"] == "[mirror] add failed"
        assert data["operation"] == "add"
        assert data["record_id"] == "{a}"
        assert "checkpoint" not in data

    def test_human_format(self):
        line = HumanFormatter().format(self._record())

        assert "[change_mirror  ]" in line
        assert line.endswith("[mirror] add failed")
