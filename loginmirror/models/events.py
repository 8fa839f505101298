"""
Mutation Events — What the primary store publishes after each change.

Events are emitted in exactly the order the mutations happened. The
`kind` field is the tag; `parse_event` turns a plain dict (for example a
line of an NDJSON replay file) back into the right variant.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .record import Record


class Added(BaseModel):
    """A record was added."""

    kind: Literal["added"] = "added"
    record: Record


class Modified(BaseModel):
    """A record was changed. `old` carries the identity before the change."""

    kind: Literal["modified"] = "modified"
    old: Record
    new: Record


class Removed(BaseModel):
    """A record was removed."""

    kind: Literal["removed"] = "removed"
    record: Record


class RemovedAll(BaseModel):
    """Every record was removed."""

    kind: Literal["removed_all"] = "removed_all"


MutationEvent = Union[Added, Modified, Removed, RemovedAll]

_event_adapter: TypeAdapter = TypeAdapter(
    Annotated[MutationEvent, Field(discriminator="kind")]
)


def parse_event(data: Dict[str, Any]) -> MutationEvent:
    """Validate a dict into the matching event variant."""
    return _event_adapter.validate_python(data)


def event_record_id(event: Any) -> Optional[str]:
    """Best-effort id of the record an event refers to."""
    if isinstance(event, (Added, Removed)):
        return event.record.id
    if isinstance(event, Modified):
        return event.old.id
    return None
