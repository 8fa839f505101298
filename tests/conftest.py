"""
Shared fixtures for mirror engine tests.

Provides in-memory primary and secondary stores, a mirror context wired
to them, and a record factory. The context applies events in the
publisher's thread (blocking=True) so assertions can run right after a
primary store mutation.
"""

from __future__ import annotations

import pytest

from loginmirror.mirror.config import MirrorSettings
from loginmirror.mirror.context import MirrorContext
from loginmirror.models.record import Record
from loginmirror.stores.memory import MemoryPrimaryStore, MemorySecondaryStore


def make_record(
    username: str = "alice",
    origin: str = "https://example.com",
    form_action_origin: str | None = None,
    http_realm: str = "",
    password: str = "s3cret",
    **extra,
) -> Record:
    """A form login for `origin` unless an HTTP realm is given."""
    if form_action_origin is None:
        form_action_origin = "" if http_realm else origin
    return Record(
        origin=origin,
        form_action_origin=form_action_origin,
        http_realm=http_realm,
        username=username,
        password=password,
        **extra,
    )


@pytest.fixture
def record_factory():
    """The make_record helper, for tests that prefer a fixture."""
    return make_record


@pytest.fixture
def primary() -> MemoryPrimaryStore:
    return MemoryPrimaryStore()


@pytest.fixture
def secondary() -> MemorySecondaryStore:
    """An opened, empty secondary store."""
    store = MemorySecondaryStore()
    store.initialize()
    return store


@pytest.fixture
def settings() -> MirrorSettings:
    return MirrorSettings(enabled=True, blocking=True)


@pytest.fixture
def context(primary, secondary, settings) -> MirrorContext:
    return MirrorContext(primary=primary, secondary=secondary, settings=settings)
