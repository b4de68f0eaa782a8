from __future__ import annotations

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from chat_hub.config import HubSettings
from chat_hub.server import create_app


def _settings(tmp_path: Path, **overrides) -> HubSettings:
    return HubSettings(
        data_dir=str(tmp_path / "data"),
        uploads_dir=str(tmp_path / "public" / "uploads"),
        **overrides,
    )


def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


@pytest.fixture
def app(tmp_path: Path):
    return create_app(settings=_settings(tmp_path))


def test_health_and_empty_history(app):
    with TestClient(app) as client:
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert body["connections"] == 0
        assert body["liveness_running"] is True

        r = client.get("/messages")
        assert r.status_code == 200
        assert r.json() == []


def test_register_rules(app):
    client = TestClient(app)
    r = client.post("/register", json={"username": "alice"})
    assert r.status_code == 201
    assert r.json() == {"success": True}

    r = client.post("/register", json={"username": "ALICE"})
    assert r.status_code == 409
    assert r.json()["message"] == "This username is already taken."

    for bad in ({"username": "a"}, {"username": "   "}, {}):
        r = client.post("/register", json=bad)
        assert r.status_code == 400
        assert "at least 2 characters" in r.json()["message"]

    assert app.state.hub.users.names() == ["alice"]


def test_upload_and_serve(app):
    client = TestClient(app)
    r = client.post("/upload", files={"media": ("photo.png", b"\x89PNG fake", "image/png")})
    assert r.status_code == 201
    path = r.json()["filePath"]
    assert path.startswith("/uploads/") and path.endswith(".png")

    r = client.get(path)
    assert r.status_code == 200
    assert r.content == b"\x89PNG fake"


def test_upload_without_file(app):
    client = TestClient(app)
    r = client.post("/upload", data={"note": "no file here"})
    assert r.status_code == 400
    assert r.json() == {"message": "No file uploaded."}


def test_websocket_chat_round_trip(app):
    hub = app.state.hub
    with TestClient(app) as client:
        with client.websocket_connect("/") as alice, client.websocket_connect("/") as bob:
            _wait_for(lambda: len(hub.registry) == 2)
            assert client.get("/health").json()["connections"] == 2

            bob.send_json({"type": "typing"})
            assert alice.receive_json() == {"type": "userTyping", "username": "Anonymous"}

            alice.send_json({"type": "registerUser", "username": "alice"})
            alice.send_text("this is not json")
            alice.send_json({"type": "chatMessage", "text": "hello"})

            for ws in (alice, bob):
                frame = ws.receive_json()
                assert frame["type"] == "newChatMessage"
                assert frame["username"] == "alice"
                assert frame["content"] == "hello"
                assert frame["messageType"] == "text"

            history = client.get("/messages").json()
            assert len(history) == 1
            assert history[0]["username"] == "alice"
            assert history[0]["type"] == "text"
            assert history[0]["content"] == "hello"
            assert history[0]["id"] == frame["id"]

        # alice and bob hung up; alice was named, so a stop-typing went out
        _wait_for(lambda: hub.stats.get("connections_closed") == 2)
        assert len(hub.registry) == 0
        assert hub.stats.get("frames_dropped") == 1


def test_disconnect_notifies_remaining_peers(app):
    hub = app.state.hub
    with TestClient(app) as client:
        with client.websocket_connect("/") as watcher:
            with client.websocket_connect("/") as leaver:
                _wait_for(lambda: len(hub.registry) == 2)
                leaver.send_json({"type": "registerUser", "username": "carol"})
                _wait_for(lambda: "carol" in client.get("/health").json()["identities"])
            assert watcher.receive_json() == {"type": "userStopTyping", "username": "carol"}


def test_history_survives_restart(tmp_path: Path):
    settings = _settings(tmp_path)
    app = create_app(settings=settings)
    with TestClient(app) as client:
        with client.websocket_connect("/") as ws:
            ws.send_json({"type": "registerUser", "username": "dave"})
            ws.send_json({"type": "audioMessage", "filePath": "/uploads/9-9.webm"})
            assert ws.receive_json()["messageType"] == "audio"

    restarted = create_app(settings=settings)
    history = TestClient(restarted).get("/messages").json()
    assert [(m["username"], m["type"], m["content"]) for m in history] == [
        ("dave", "audio", "/uploads/9-9.webm")
    ]


def test_public_dir_is_served(tmp_path: Path):
    public = tmp_path / "site"
    public.mkdir()
    (public / "index.html").write_text("<h1>chat</h1>", encoding="utf-8")
    app = create_app(settings=_settings(tmp_path, public_dir=str(public)))
    client = TestClient(app)
    r = client.get("/")
    assert r.status_code == 200
    assert "<h1>chat</h1>" in r.text
    assert client.get("/messages").json() == []
