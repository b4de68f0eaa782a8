"""Username registration backed by a JSON list on disk."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .store import read_json_list, write_json

logger = logging.getLogger("chat_hub.users")


@dataclass(frozen=True)
class RegistrationResult:
    accepted: bool
    status: int
    reason: str = ""


class UserRegistry:
    """Case-insensitive set of claimed usernames, persisted to ``users.json``.

    Only this HTTP-facing registry enforces uniqueness; the socket layer
    trusts whatever name a client later declares.
    """

    FILENAME = "users.json"

    def __init__(self, data_dir: str, *, min_chars: int = 2) -> None:
        self.root = Path(data_dir)
        self.root.mkdir(parents=True, exist_ok=True)
        self.path = self.root / self.FILENAME
        self.min_chars = min_chars
        self._lock = threading.Lock()
        self._names: List[str] = [str(n) for n in read_json_list(self.path)]
        if not self.path.exists():
            write_json(self.path, self._names)

    def register(self, name: str) -> RegistrationResult:
        name = (name or "").strip()
        if len(name) < self.min_chars:
            return RegistrationResult(
                False, 400, f"Username must be at least {self.min_chars} characters."
            )
        with self._lock:
            if any(n.lower() == name.lower() for n in self._names):
                return RegistrationResult(False, 409, "This username is already taken.")
            names = self._names + [name]
            write_json(self.path, names)
            self._names = names
        logger.info("Registered username %r", name)
        return RegistrationResult(True, 201)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._names)
