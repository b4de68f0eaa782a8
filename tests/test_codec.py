from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from chat_hub.codec import (
    ChatMessage,
    NewChatMessage,
    Ping,
    Pong,
    RegisterIdentity,
    TypingStart,
    TypingStop,
    Unknown,
    UserStopTyping,
    UserTyping,
    decode,
    encode,
    encode_client_event,
    parse_frame,
)
from chat_hub.errors import DecodeError
from chat_hub.models import Message


def test_chat_message_round_trip():
    frame = encode_client_event(ChatMessage(kind="text", content="hi"))
    assert json.loads(frame) == {"type": "chatMessage", "text": "hi"}
    assert decode(frame) == ChatMessage(kind="text", content="hi")


def test_media_messages_use_file_path():
    assert decode('{"type": "imageMessage", "filePath": "/uploads/1-2.png"}') == ChatMessage(
        kind="image", content="/uploads/1-2.png"
    )
    assert decode('{"type": "audioMessage", "filePath": "/uploads/3-4.webm"}') == ChatMessage(
        kind="audio", content="/uploads/3-4.webm"
    )


def test_simple_events():
    assert decode('{"type": "registerUser", "username": " alice "}') == RegisterIdentity("alice")
    assert decode('{"type": "typing"}') == TypingStart()
    assert decode('{"type": "stopTyping", "username": "ignored"}') == TypingStop()
    assert decode('{"type": "pong"}') == Pong()


@pytest.mark.parametrize(
    "frame",
    [
        "",
        "not json",
        "{",
        "[1, 2]",
        "42",
        '{"no_type": true}',
        '{"type": 7}',
        '{"type": "explode"}',
        '{"type": "registerUser"}',
        '{"type": "registerUser", "username": "   "}',
        '{"type": "chatMessage"}',
        '{"type": "chatMessage", "text": ""}',
        '{"type": "imageMessage", "text": "wrong field"}',
        '{"type": "chatMessage", "text": 5}',
    ],
)
def test_malformed_frames_decode_to_unknown(frame):
    event = decode(frame)
    assert isinstance(event, Unknown)
    assert event.reason


def test_parse_frame_raises_decode_error():
    with pytest.raises(DecodeError):
        parse_frame("{oops")


def test_bytes_frames():
    assert decode(b'{"type": "typing"}') == TypingStart()
    assert isinstance(decode(b"\xff\xfe"), Unknown)


def test_outbound_envelopes_are_flat():
    assert json.loads(encode(UserTyping(username="bob"))) == {"type": "userTyping", "username": "bob"}
    assert json.loads(encode(UserStopTyping(username="bob"))) == {
        "type": "userStopTyping",
        "username": "bob",
    }
    assert json.loads(encode(Ping())) == {"type": "ping"}


def test_new_chat_message_frame():
    ts = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    msg = Message(id="m1", author="alice", kind="image", content="/uploads/x.png", created_at=ts)
    frame = json.loads(encode(NewChatMessage.from_message(msg)))
    assert frame["type"] == "newChatMessage"
    assert frame["id"] == "m1"
    assert frame["username"] == "alice"
    assert frame["messageType"] == "image"
    assert frame["content"] == "/uploads/x.png"
    assert datetime.fromisoformat(frame["timestamp"].replace("Z", "+00:00")) == ts
    assert "message_type" not in frame
