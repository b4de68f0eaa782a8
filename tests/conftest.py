"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from chat_hub.broadcast import Broadcaster  # noqa: E402
from chat_hub.registry import ConnectionRegistry  # noqa: E402
from chat_hub.session import SessionLifecycle  # noqa: E402
from chat_hub.stats import HubStats  # noqa: E402
from chat_hub.store import MessageStore  # noqa: E402


class FakeTransport:
    """In-memory stand-in for a WebSocket."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[str] = []
        self.fail = fail
        self.close_code: Optional[int] = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.close_code = code

    def frames(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        out = [json.loads(s) for s in self.sent]
        if kind is not None:
            out = [f for f in out if f.get("type") == kind]
        return out


class HubParts:
    """Core components wired together without the HTTP layer."""

    def __init__(self, data_dir: Path) -> None:
        self.stats = HubStats()
        self.store = MessageStore(str(data_dir))
        self.store.load()
        self.registry = ConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry, stats=self.stats)
        self.session = SessionLifecycle(self.registry, self.broadcaster, self.store, stats=self.stats)


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for the message log during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture
def transport_factory() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture
def hub(tmp_data_dir: Path) -> HubParts:
    return HubParts(tmp_data_dir)


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    import os

    monkeypatch.delenv("CHAT_HUB_CONFIG", raising=False)
    for var in list(os.environ):
        if var.startswith("CHAT_HUB__"):
            monkeypatch.delenv(var, raising=False)
    yield
