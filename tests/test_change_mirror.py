"""
Tests for the change mirror.

Most tests use the blocking context from conftest so each primary
mutation is mirrored before the call returns. TestQueuedMirror covers
the worker thread.
"""

from __future__ import annotations

import threading
import time
from unittest import mock

import pytest

from conftest import make_record
from loginmirror.mirror import compat
from loginmirror.mirror.change_mirror import (
    OP_ADD,
    OP_MODIFY,
    OP_REMOVE,
    OP_REMOVE_ALL,
    OP_UNKNOWN,
    ChangeMirror,
)
from loginmirror.mirror.config import MirrorSettings
from loginmirror.mirror.context import MirrorContext
from loginmirror.models.events import Added, Modified, Removed
from loginmirror.policy.source import PolicySource
from loginmirror.stores.memory import MemorySecondaryStore


@pytest.fixture
def mirror(context):
    mirror = ChangeMirror(context)
    mirror.subscribe()
    yield mirror
    mirror.close()


class TestApplyEvents:
    """Tests for each event variant."""

    def test_added(self, mirror, primary, secondary, context):
        record = primary.add(make_record())

        assert secondary.get(record.id) is not None
        assert context.metrics.applied_count(OP_ADD) == 1
        assert context.metrics.diff_count == 0

    def test_modified_resolves_by_identity(self, mirror, primary, secondary):
        """Modified finds the secondary copy through the old identity fields."""
        old = primary.add(make_record(username="alice"))
        new = make_record(username="alice2", password="changed")

        primary.modify(old, new)

        assert secondary.find_match(old) is None
        match = secondary.find_match(new)
        assert match is not None
        assert match.password == "changed"
        assert secondary.count_all() == 1

    def test_modified_secondary_id_differs(self, context, primary, secondary):
        """The secondary copy is found even when its id differs from the primary's."""
        mirror = ChangeMirror(context)
        old = make_record()
        secondary.insert(old.model_copy(update={"id": "{secondary-copy}"}))

        changed = mirror.apply(Modified(old=old, new=old.model_copy(update={"password": "x"})))

        assert changed
        assert secondary.get("{secondary-copy}").password == "x"

    def test_removed(self, mirror, primary, secondary):
        record = primary.add(make_record())

        primary.remove(record)

        assert secondary.count_all() == 0

    def test_removed_all(self, mirror, primary, secondary, context):
        for name in ("a", "b", "c"):
            primary.add(make_record(username=name))

        with mock.patch.object(context, "record_diff", wraps=context.record_diff) as record_diff:
            primary.remove_all()

        assert secondary.count_all() == 0
        assert context.metrics.applied_count(OP_REMOVE_ALL) == 1
        record_diff.assert_not_called()

    def test_event_ordering(self, context, secondary):
        """Added, Modified, Removed of one record leaves no trace."""
        mirror = ChangeMirror(context)
        a = make_record()
        a2 = a.model_copy(update={"password": "changed"})

        for event in (Added(record=a), Modified(old=a, new=a2), Removed(record=a2)):
            assert mirror.apply(event)

        assert secondary.list() == []

    def test_concrete_scenario(self, context, primary, secondary):
        """R1 migrated elsewhere, R2 mirrored, R1 removed: only R2 remains."""
        r1 = primary.add(make_record(username="u", origin="https://a.example"))
        secondary.insert(r1)
        mirror = ChangeMirror(context)
        mirror.subscribe()

        r2 = primary.add(make_record(username="v", origin="https://b.example"))
        assert sorted(r.id for r in secondary.list()) == sorted([r1.id, r2.id])

        primary.remove(r1)
        assert [r.id for r in secondary.list()] == [r2.id]
        mirror.close()

    def test_concurrent_writers_keep_secondary_current(self, context, primary, secondary):
        """An add still being delivered is mirrored before a later modify."""
        delivering = threading.Event()

        def slow_subscriber(event):
            if isinstance(event, Added):
                delivering.set()
                time.sleep(0.2)

        primary.subscribe(slow_subscriber)
        mirror = ChangeMirror(context)
        mirror.subscribe()
        record = make_record()

        writer = threading.Thread(target=primary.add, args=(record,))
        writer.start()
        assert delivering.wait(timeout=5)
        primary.modify(record, make_record(password="v2"))
        writer.join(timeout=5)

        assert secondary.get(record.id).password == "v2"
        assert context.metrics.failures() == []
        mirror.close()


class TestPolicyGate:
    """Tests that the policy source is read for every event."""

    def _mirror(self, primary, secondary, policy):
        context = MirrorContext(
            primary=primary,
            secondary=secondary,
            settings=MirrorSettings(blocking=True),
            policy=policy,
        )
        mirror = ChangeMirror(context)
        mirror.subscribe()
        return mirror

    def test_lock_without_notification_stops_mirroring(self, primary, secondary):
        locked = {"value": False}
        mirror = self._mirror(primary, secondary, PolicySource(enabled=True, blocked=lambda: locked["value"]))
        kept = primary.add(make_record(username="a"))

        locked["value"] = True
        primary.add(make_record(username="b"))

        assert [r.id for r in secondary.list()] == [kept.id]
        assert mirror.context.metrics.failures() == []

        locked["value"] = False
        primary.add(make_record(username="c"))
        assert secondary.count_all() == 2
        mirror.close()

    def test_flag_off_skips_events(self, primary, secondary):
        policy = PolicySource(enabled=True)
        mirror = self._mirror(primary, secondary, policy)

        policy.set_enabled(False)

        assert not mirror.apply(Added(record=make_record()))
        assert secondary.count_all() == 0
        mirror.close()


class TestFailureIsolation:
    """Tests that failures are recorded and never propagate."""

    def test_operation_labels(self, context):
        """Failures are labelled with the login telemetry operation names."""
        mirror = ChangeMirror(context)

        mirror.apply(Removed(record=make_record()))

        assert (OP_ADD, OP_MODIFY, OP_REMOVE, OP_REMOVE_ALL) == (
            "add-login",
            "modify-login",
            "remove-login",
            "remove-all-logins",
        )
        output = context.metrics.registry.export_prometheus()
        assert 'migration_failure_total{operation="remove-login"}' in output

    def test_rejected_add_recorded(self, primary):
        """A rejected record never fails the primary add and the next event still applies."""
        secondary = MemorySecondaryStore(reject=lambda r: "rejected" if r.username == "bob" else None)
        secondary.initialize()
        context = MirrorContext(
            primary=primary, secondary=secondary, settings=MirrorSettings(blocking=True)
        )
        mirror = ChangeMirror(context)
        mirror.subscribe()

        bob = primary.add(make_record(username="bob"))
        carol = primary.add(make_record(username="carol"))

        assert primary.count_all() == 2
        assert [r.id for r in secondary.list()] == [carol.id]
        [failure] = context.metrics.failures(OP_ADD)
        assert failure.record_id == bob.id
        assert failure.error_message == "rejected"
        assert context.metrics.failure_count(OP_ADD) == 1
        mirror.close()

    def test_remove_missing(self, context):
        """Removing a record the secondary never had is a recorded failure."""
        mirror = ChangeMirror(context)
        record = make_record()

        assert not mirror.apply(Removed(record=record))

        [failure] = context.metrics.failures(OP_REMOVE)
        assert failure.record_id == record.id

    def test_modify_missing(self, context):
        mirror = ChangeMirror(context)
        old = make_record()

        assert not mirror.apply(Modified(old=old, new=make_record(password="x")))
        assert context.metrics.failure_count(OP_MODIFY) == 1

    def test_unknown_event(self, context):
        """An unrecognized event is logged and recorded, not raised."""
        mirror = ChangeMirror(context)

        assert not mirror.apply(object())
        assert context.metrics.failure_count(OP_UNKNOWN) == 1

    def test_unexpected_store_error(self, context, secondary):
        mirror = ChangeMirror(context)

        with mock.patch.object(secondary, "insert", side_effect=RuntimeError("io error")):
            assert not mirror.apply(Added(record=make_record()))

        assert context.metrics.failures(OP_ADD)[0].error_message == "io error"

    def test_failure_written_to_status_and_audit(self, tmp_path, primary, secondary):
        settings = MirrorSettings(
            blocking=True,
            state_file=tmp_path / "status.json",
            audit_file=tmp_path / "audit.ndjson",
        )
        context = MirrorContext(primary=primary, secondary=secondary, settings=settings)
        mirror = ChangeMirror(context)

        mirror.apply(Removed(record=make_record()))

        assert context.status.mirroring.status == "failed"
        [event] = context.audit.read()
        assert event["type"] == "mirror_failure"
        assert event["details"]["operation"] == OP_REMOVE


class TestIncompatibleEvents:
    """Tests for incompatible records arriving as events."""

    def test_attempted_by_default(self, mirror, primary, context):
        primary.add(make_record(origin="https://bücher.example"))

        assert context.metrics.incompatible_count(compat.FIELD_ORIGIN, compat.KIND_NON_ASCII) == 1
        assert context.metrics.failure_count(OP_ADD) == 1

    def test_preskip(self, primary, secondary):
        context = MirrorContext(
            primary=primary,
            secondary=secondary,
            settings=MirrorSettings(blocking=True, preskip_incompatible=True),
        )
        mirror = ChangeMirror(context)
        mirror.subscribe()

        primary.add(make_record(form_action_origin="."))

        assert secondary.count_all() == 0
        assert context.metrics.failure_count(OP_ADD) == 0
        assert context.metrics.incompatible_count(compat.FIELD_FORM_ACTION_ORIGIN, compat.KIND_DOT) == 1
        assert context.metrics.registry.counter("skipped_incompatible_total").get() == 1
        mirror.close()


class TestLifecycle:
    """Tests for subscribe and close."""

    def test_subscribe_twice_keeps_one_handler(self, context, primary):
        mirror = ChangeMirror(context)

        first = mirror.subscribe()
        second = mirror.subscribe()

        assert first is second
        assert primary.events.subscriber_count == 1
        mirror.close()

    def test_close_stops_mirroring(self, context, primary, secondary):
        mirror = ChangeMirror(context)
        mirror.subscribe()
        mirror.close()

        primary.add(make_record())

        assert secondary.count_all() == 0
        assert primary.events.subscriber_count == 0
        assert not mirror.subscribed

    def test_closed_mirror_cannot_resubscribe(self, context):
        mirror = ChangeMirror(context)
        mirror.close()

        with pytest.raises(RuntimeError):
            mirror.subscribe()


class TestQueuedMirror:
    """Tests for the worker-thread mode."""

    def test_events_applied_in_order(self, primary, secondary):
        context = MirrorContext(
            primary=primary, secondary=secondary, settings=MirrorSettings(blocking=False)
        )
        mirror = ChangeMirror(context)
        mirror.subscribe()

        record = primary.add(make_record())
        primary.modify(record, make_record(password="v2"))
        primary.modify(record, make_record(password="v3"))
        others = [primary.add(make_record(username=f"user{i}")) for i in range(10)]
        primary.remove(others[0])

        assert mirror.flush(timeout=5)
        assert secondary.get(record.id).password == "v3"
        assert secondary.count_all() == 10
        assert context.metrics.failures() == []
        mirror.close()

    def test_applied_off_the_publisher_thread(self, primary, secondary):
        context = MirrorContext(
            primary=primary, secondary=secondary, settings=MirrorSettings(blocking=False)
        )
        mirror = ChangeMirror(context)
        threads = []
        original_insert = secondary.insert

        def recording_insert(record):
            threads.append(threading.current_thread().name)
            return original_insert(record)

        with mock.patch.object(secondary, "insert", side_effect=recording_insert):
            mirror.subscribe()
            primary.add(make_record())
            assert mirror.flush(timeout=5)

        assert threads == ["login-mirror-apply"]
        mirror.close()

    def test_close_applies_queued_events(self, primary, secondary):
        """close() returns only after queued events were attempted."""
        context = MirrorContext(
            primary=primary, secondary=secondary, settings=MirrorSettings(blocking=False)
        )
        mirror = ChangeMirror(context)
        mirror.subscribe()
        for i in range(20):
            primary.add(make_record(username=f"user{i}"))

        mirror.close(timeout=5)

        assert secondary.count_all() == 20
        assert mirror.pending == 0

    def test_close_during_writes_leaves_nothing_pending(self, primary, secondary):
        """Events racing with close() are either applied or dropped, never left counted."""
        context = MirrorContext(
            primary=primary, secondary=secondary, settings=MirrorSettings(blocking=False)
        )
        mirror = ChangeMirror(context)
        mirror.subscribe()
        stop = threading.Event()

        def writer(prefix):
            i = 0
            while not stop.is_set():
                primary.add(make_record(username=f"{prefix}{i}"))
                i += 1

        writers = [threading.Thread(target=writer, args=(p,)) for p in ("a", "b", "c")]
        for t in writers:
            t.start()
        time.sleep(0.05)
        mirror.close(timeout=5)
        stop.set()
        for t in writers:
            t.join(timeout=5)

        mirror.handle(Added(record=make_record(username="late")))

        assert mirror.flush(timeout=2)
        assert mirror.pending == 0

    def test_close_timeout_drops_queued_events(self, primary, secondary):
        """A stalled worker does not hold close() past its timeout."""
        context = MirrorContext(
            primary=primary, secondary=secondary, settings=MirrorSettings(blocking=False)
        )
        mirror = ChangeMirror(context)
        started = threading.Event()
        release = threading.Event()
        original_insert = secondary.insert

        def stalled_insert(record):
            started.set()
            release.wait(timeout=5)
            return original_insert(record)

        with mock.patch.object(secondary, "insert", side_effect=stalled_insert):
            mirror.subscribe()
            first = primary.add(make_record(username="first"))
            assert started.wait(timeout=5)
            primary.add(make_record(username="second"))

            begin = time.monotonic()
            mirror.close(timeout=0.1)
            assert time.monotonic() - begin < 2

            release.set()
            assert mirror.flush(timeout=5)

        assert [r.id for r in secondary.list()] == [first.id]
