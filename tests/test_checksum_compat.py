"""
Tests for the checksum gate and the compatibility filter.
"""

from __future__ import annotations

from unittest import mock

from conftest import make_record
from loginmirror.mirror import compat
from loginmirror.mirror.checksum import (
    FINGERPRINT_PREFIX,
    compute_fingerprint,
    fingerprint_records,
    record_digest,
)
from loginmirror.stores.memory import MemoryPrimaryStore


class TestFingerprint:
    """Tests for the order-independent fingerprint."""

    def test_empty_is_none(self):
        assert fingerprint_records([]) is None
        assert compute_fingerprint(MemoryPrimaryStore()) is None

    def test_order_independent(self):
        """Permuting the records does not change the fingerprint."""
        a = make_record(username="a")
        b = make_record(username="b")
        c = make_record(username="c")

        assert fingerprint_records([a, b, c]) == fingerprint_records([c, a, b])

    def test_prefixed(self):
        assert fingerprint_records([make_record()]).startswith(FINGERPRINT_PREFIX)

    def test_content_sensitive(self):
        """Changing any field changes the fingerprint."""
        record = make_record()
        changed = record.model_copy(update={"password": "other"})

        assert record_digest(record) != record_digest(changed)
        assert fingerprint_records([record]) != fingerprint_records([changed])

    def test_added_record_changes_fingerprint(self):
        a = make_record(username="a")
        b = make_record(username="b")

        assert fingerprint_records([a]) != fingerprint_records([a, b])

    def test_store_checksum_preferred(self):
        """A checksum computed by the store is used as-is."""
        store = MemoryPrimaryStore([make_record()])

        with mock.patch.object(store, "compute_checksum", return_value="custom"):
            assert compute_fingerprint(store) == "custom"

    def test_store_records_used_by_default(self):
        record = make_record()
        store = MemoryPrimaryStore([record])

        assert compute_fingerprint(store) == fingerprint_records([record])


class TestCompatibility:
    """Tests for the compatibility classifier."""

    def test_plain_record_compatible(self):
        assert compat.classify(make_record()) == []
        assert compat.is_compatible(make_record())

    def test_unicode_host(self):
        """A raw Unicode host is flagged on both host fields."""
        findings = compat.classify(make_record(origin="https://bücher.example"))

        assert findings == [
            compat.Incompatibility(compat.FIELD_ORIGIN, compat.KIND_NON_ASCII),
            compat.Incompatibility(compat.FIELD_FORM_ACTION_ORIGIN, compat.KIND_NON_ASCII),
        ]

    def test_punycode_host(self):
        """Encoded IDN labels are flagged too."""
        record = make_record(
            origin="https://xn--bcher-kva.example",
            form_action_origin="https://example.com",
        )

        assert compat.classify(record) == [
            compat.Incompatibility(compat.FIELD_ORIGIN, compat.KIND_NON_ASCII),
        ]

    def test_dot_values(self):
        """A bare "." is flagged per field."""
        record = make_record(form_action_origin=".")

        assert compat.classify(record) == [
            compat.Incompatibility(compat.FIELD_FORM_ACTION_ORIGIN, compat.KIND_DOT),
        ]

    def test_realm_record_without_form_action(self):
        """An empty form action origin is never flagged."""
        record = make_record(http_realm="Protected")

        assert compat.is_compatible(record)

    def test_is_idn_origin(self):
        assert compat.is_idn_origin("https://пример.рф")
        assert compat.is_idn_origin("https://a.xn--p1ai")
        assert not compat.is_idn_origin("https://example.com")
        assert not compat.is_idn_origin("")
        assert not compat.is_idn_origin(".")
