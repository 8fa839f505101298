"""
Record Query — Typed search over records.

A RecordQuery names the fields to constrain (None means "any value") and
a fixed set of matching options. `RecordQuery.matches` is the single
predicate every store uses for search, count and identity lookups.

## Origin matching

Origins compare exactly unless options relax it:

- scheme_upgrades: a stored http:// origin matches a wanted https://
  origin on the same host and port.
- accept_different_subdomains: origins whose base domains are equal
  match (same scheme, or an upgrade when scheme_upgrades is set).
- accept_related_realms: with accept_different_subdomains, a stored
  host under any of `related_realms` also matches.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from .record import Record

logger = logging.getLogger(__name__)


class MatchOptions(BaseModel):
    """Options that relax origin matching."""

    accept_different_subdomains: bool = False
    accept_related_realms: bool = False
    scheme_upgrades: bool = False
    related_realms: List[str] = Field(default_factory=list)


def base_domain(host: str) -> str:
    """Last two labels of a host name (no public-suffix list)."""
    labels = [label for label in host.lower().split(".") if label]
    return ".".join(labels[-2:])


def has_root_domain(host: str, root: str) -> bool:
    host = host.lower()
    root = root.lower().lstrip(".")
    return host == root or host.endswith("." + root)


def origins_match(stored: str, wanted: str, options: Optional[MatchOptions] = None) -> bool:
    """Compare a stored origin against a wanted one."""
    if stored == wanted:
        return True
    if options is None:
        return False
    if not options.accept_different_subdomains and not options.scheme_upgrades:
        return False

    try:
        stored_url = urlsplit(stored)
        wanted_url = urlsplit(wanted)
        stored_host = stored_url.hostname or ""
        wanted_host = wanted_url.hostname or ""
        stored_port = stored_url.port
        wanted_port = wanted_url.port
    except ValueError:
        return False

    if not stored_host or not wanted_host:
        return False

    upgrade = stored_url.scheme == "http" and wanted_url.scheme == "https"

    if options.accept_different_subdomains:
        same_scheme = stored_url.scheme == wanted_url.scheme
        if base_domain(stored_host) == base_domain(wanted_host) and (
            same_scheme or (options.scheme_upgrades and upgrade)
        ):
            return True
        if options.accept_related_realms:
            for realm in options.related_realms:
                if has_root_domain(stored_host, realm):
                    return True

    if (
        options.scheme_upgrades
        and upgrade
        and stored_host == wanted_host
        and stored_port == wanted_port
    ):
        return True

    return False


class RecordQuery(BaseModel):
    """Typed search criteria."""

    id: Optional[str] = None
    origin: Optional[str] = None
    form_action_origin: Optional[str] = None
    http_realm: Optional[str] = None
    username: Optional[str] = None
    username_field: Optional[str] = None
    password_field: Optional[str] = None
    options: MatchOptions = Field(default_factory=MatchOptions)

    def constrained_fields(self) -> List[str]:
        return [
            name
            for name in (
                "id",
                "origin",
                "form_action_origin",
                "http_realm",
                "username",
                "username_field",
                "password_field",
            )
            if getattr(self, name) is not None
        ]

    def matches(self, record: Record) -> bool:
        """True if `record` satisfies every constrained field."""
        if self.id is not None:
            # An id lookup ignores every other field
            return record.id == self.id

        if self.form_action_origin is not None:
            wanted = self.form_action_origin
            # HTTP auth records have no form action and match any wanted one
            lenient = record.form_action_origin == "" or (
                wanted == "" and len(self.constrained_fields()) != 1
            )
            if not lenient and not origins_match(
                record.form_action_origin, wanted, self.options
            ):
                return False

        if self.origin is not None:
            if not origins_match(record.origin, self.origin, self.options):
                return False

        for name in ("http_realm", "username", "username_field", "password_field"):
            wanted = getattr(self, name)
            if wanted is not None and getattr(record, name) != wanted:
                return False

        return True

    @classmethod
    def identity_of(cls, record: Record) -> "RecordQuery":
        """Query for records sharing `record`'s identity fields."""
        if record.form_action_origin:
            return cls(
                origin=record.origin,
                form_action_origin=record.form_action_origin,
                username=record.username,
            )
        return cls(
            origin=record.origin,
            http_realm=record.http_realm,
            username=record.username,
        )

    @classmethod
    def counting(
        cls,
        origin: str = "",
        form_action_origin: str = "",
        http_realm: str = "",
    ) -> "RecordQuery":
        """Count filter where empty strings mean "no filter"."""
        return cls(
            origin=origin or None,
            form_action_origin=form_action_origin or None,
            http_realm=http_realm or None,
        )
