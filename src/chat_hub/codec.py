"""Envelope codec: JSON text frames <-> typed events.

Every frame is a flat JSON object whose ``type`` field names the event;
payload fields sit beside it at the top level.

Inbound (client -> hub)::

    {"type": "registerUser", "username": "alice"}
    {"type": "typing"} / {"type": "stopTyping"}
    {"type": "chatMessage", "text": "hello"}
    {"type": "imageMessage" | "audioMessage", "filePath": "/uploads/..."}
    {"type": "pong"}

Outbound (hub -> client)::

    {"type": "userTyping" | "userStopTyping", "username": "alice"}
    {"type": "newChatMessage", "username", "id", "timestamp", "messageType", "content"}
    {"type": "ping"}

Decoding never raises: anything unparseable comes back as :class:`Unknown`.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import DecodeError
from .models import Message, MessageKind


# -----------------------------
# Inbound events
# -----------------------------
@dataclass(frozen=True)
class RegisterIdentity:
    name: str


@dataclass(frozen=True)
class TypingStart:
    pass


@dataclass(frozen=True)
class TypingStop:
    pass


@dataclass(frozen=True)
class ChatMessage:
    kind: MessageKind
    content: str


@dataclass(frozen=True)
class Pong:
    pass


@dataclass(frozen=True)
class Unknown:
    reason: str = ""


InboundEvent = Union[RegisterIdentity, TypingStart, TypingStop, ChatMessage, Pong, Unknown]

# chat frame type -> (message kind, payload field)
_CHAT_FRAMES = {
    "chatMessage": ("text", "text"),
    "imageMessage": ("image", "filePath"),
    "audioMessage": ("audio", "filePath"),
}


class _InboundFrame(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    username: Optional[str] = None
    text: Optional[str] = None
    filePath: Optional[str] = None


def parse_frame(frame: Union[str, bytes]) -> InboundEvent:
    """Parse one inbound frame, raising :class:`DecodeError` on bad input."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"frame is not UTF-8: {e}") from e
    try:
        raw = _InboundFrame.model_validate_json(frame)
    except ValidationError as e:
        raise DecodeError(f"malformed frame: {e.error_count()} error(s)") from e

    t = raw.type
    if t == "registerUser":
        name = (raw.username or "").strip()
        if not name:
            raise DecodeError("registerUser without username")
        return RegisterIdentity(name=name)
    if t == "typing":
        return TypingStart()
    if t == "stopTyping":
        return TypingStop()
    if t == "pong":
        return Pong()
    if t in _CHAT_FRAMES:
        kind, field_name = _CHAT_FRAMES[t]
        content = getattr(raw, field_name)
        if content is None or not content.strip():
            raise DecodeError(f"{t} without {field_name}")
        return ChatMessage(kind=kind, content=content)
    raise DecodeError(f"unknown frame type {t!r}")


def decode(frame: Union[str, bytes]) -> InboundEvent:
    """Decode one inbound frame; malformed input yields :class:`Unknown`."""
    try:
        return parse_frame(frame)
    except DecodeError as e:
        return Unknown(reason=str(e))


def encode_client_event(event: InboundEvent) -> str:
    """Build the frame a client would send for ``event`` (used by tests and tools)."""
    if isinstance(event, RegisterIdentity):
        return json.dumps({"type": "registerUser", "username": event.name})
    if isinstance(event, TypingStart):
        return json.dumps({"type": "typing"})
    if isinstance(event, TypingStop):
        return json.dumps({"type": "stopTyping"})
    if isinstance(event, Pong):
        return json.dumps({"type": "pong"})
    if isinstance(event, ChatMessage):
        for frame_type, (kind, field_name) in _CHAT_FRAMES.items():
            if kind == event.kind:
                return json.dumps({"type": frame_type, field_name: event.content})
    raise ValueError(f"cannot encode {event!r}")


# -----------------------------
# Outbound events
# -----------------------------
class UserTyping(BaseModel):
    type: Literal["userTyping"] = "userTyping"
    username: str


class UserStopTyping(BaseModel):
    type: Literal["userStopTyping"] = "userStopTyping"
    username: str


class NewChatMessage(BaseModel):
    type: Literal["newChatMessage"] = "newChatMessage"
    id: str
    username: Optional[str] = None
    timestamp: datetime
    message_type: MessageKind = Field(serialization_alias="messageType")
    content: str

    @classmethod
    def from_message(cls, message: Message) -> "NewChatMessage":
        return cls(
            id=message.id,
            username=message.author,
            timestamp=message.created_at,
            message_type=message.kind,
            content=message.content,
        )


class Ping(BaseModel):
    type: Literal["ping"] = "ping"


OutboundEvent = Union[UserTyping, UserStopTyping, NewChatMessage, Ping]


def encode(event: OutboundEvent) -> str:
    """Serialize an outbound event to a flat JSON frame."""
    return event.model_dump_json(by_alias=True, exclude_none=True)
