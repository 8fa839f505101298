"""
Record Model — A single saved credential.

Records are created and mutated only by the primary store. The secondary
store holds derived copies. Duplicate detection uses the identity tuple
(origin, form action origin or HTTP realm, username), never the id.

Field names are snake_case; the camelCase names used by JSON exports of
the primary store are accepted as aliases.
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return "{" + str(uuid4()) + "}"


Identity = Tuple[str, str, str]


class Record(BaseModel):
    """A saved credential entry."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id, alias="guid")
    origin: str
    form_action_origin: str = Field(default="", alias="formActionOrigin")
    http_realm: str = Field(default="", alias="httpRealm")
    username: str = ""
    password: str = ""
    username_field: str = Field(default="", alias="usernameField")
    password_field: str = Field(default="", alias="passwordField")

    # Usage metadata
    times_used: int = Field(default=1, alias="timesUsed")
    time_created: int = Field(default_factory=_now_ms, alias="timeCreated")
    time_last_used: int = Field(default_factory=_now_ms, alias="timeLastUsed")
    time_password_changed: int = Field(default_factory=_now_ms, alias="timePasswordChanged")

    @field_validator(
        "form_action_origin",
        "http_realm",
        "username",
        "password",
        "username_field",
        "password_field",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def identity(self) -> Identity:
        """The duplicate-detection key of this record."""
        return (
            self.origin,
            self.form_action_origin or self.http_realm,
            self.username,
        )

    def matches(self, other: "Record") -> bool:
        """True if both records describe the same saved credential."""
        return self.identity == other.identity

    def canonical_json(self) -> str:
        """Stable serialization used for content fingerprints."""
        return json.dumps(
            self.model_dump(by_alias=False),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase names of the JSON export format."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        return cls.model_validate(data)

    def replaced_by(self, new: "Record", keep_id: Optional[str] = None) -> "Record":
        """Copy of `new` carrying this record's id (or `keep_id`)."""
        return new.model_copy(update={"id": keep_id or self.id})

    def describe(self) -> str:
        """Short human-readable label that never includes the password."""
        target = self.form_action_origin or self.http_realm or "-"
        return f"{self.username or '<no username>'}@{self.origin} ({target})"
