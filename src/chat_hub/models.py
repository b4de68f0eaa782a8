"""Durable chat message record."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MessageKind = Literal["text", "image", "audio"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return str(uuid.uuid4())


class Message(BaseModel):
    """A chat message accepted by the hub.

    Field aliases are the names used in the durable log and on the wire
    (``username``, ``type``, ``timestamp``).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_message_id)
    author: Optional[str] = Field(default=None, alias="username")
    kind: MessageKind = Field(alias="type")
    content: str
    created_at: datetime = Field(default_factory=utc_now, alias="timestamp")

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps in old logs are UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_record(self) -> Dict[str, Any]:
        """Return the JSON-ready dict stored in the message log."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Message":
        return cls.model_validate(record)
