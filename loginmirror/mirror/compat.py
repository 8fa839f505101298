"""
Compatibility Filter — Classify records the secondary store mishandles.

Pure classification, used for telemetry. It never vetoes a mirror
attempt on its own; whether flagged records are skipped is decided by
the `preskip_incompatible` setting of the caller.

## Classes

- non_ascii: the host of `origin` or `form_action_origin` is an
  internationalized domain name (raw Unicode, or already punycode
  encoded with an `xn--` label).
- dot: `origin` or `form_action_origin` is exactly ".".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlsplit

from ..models.record import Record

FIELD_ORIGIN = "origin"
FIELD_FORM_ACTION_ORIGIN = "form_action_origin"

KIND_NON_ASCII = "non_ascii"
KIND_DOT = "dot"

HOST_FIELDS = (FIELD_ORIGIN, FIELD_FORM_ACTION_ORIGIN)


@dataclass(frozen=True)
class Incompatibility:
    """One flagged field of a record."""

    field: str
    kind: str


def _hostname(value: str) -> Optional[str]:
    try:
        return urlsplit(value).hostname
    except ValueError:
        return None


def is_idn_origin(value: Optional[str]) -> bool:
    """True if the origin's host needs ASCII-compatible encoding."""
    if not value:
        return False
    host = _hostname(value)
    if not host:
        return False
    if not host.isascii():
        return True
    return any(label.startswith("xn--") for label in host.split("."))


def classify(record: Record) -> List[Incompatibility]:
    """All incompatibilities of `record`, in field order."""
    found: List[Incompatibility] = []
    for field in HOST_FIELDS:
        value = getattr(record, field)
        if is_idn_origin(value):
            found.append(Incompatibility(field, KIND_NON_ASCII))
        if value == ".":
            found.append(Incompatibility(field, KIND_DOT))
    return found


def is_compatible(record: Record) -> bool:
    return not classify(record)
