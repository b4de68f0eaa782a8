"""Disk-backed chat history (thread-safe, atomic rewrites)."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .errors import PersistenceError
from .models import Message

logger = logging.getLogger("chat_hub.store")


# -----------------------------
# Helpers
# -----------------------------
def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent)) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    os.replace(tmp_name, path)


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, obj: Any) -> None:
    _atomic_write_text(path, json.dumps(obj, ensure_ascii=False, indent=2))


def read_json_list(path: Path) -> List[Any]:
    """Read a JSON array file; missing file is an empty list.

    A file that does not parse (or is not an array) is renamed to
    ``<name>.corrupt.json`` and treated as empty.
    """
    if not path.exists():
        return []
    try:
        data = _read_json(path)
        if not isinstance(data, list):
            raise ValueError(f"expected a JSON array, got {type(data).__name__}")
        return data
    except (ValueError, UnicodeDecodeError) as e:
        bad = path.with_suffix(".corrupt.json")
        logger.warning("Unreadable log %s (%s); moving it to %s", path, e, bad)
        path.replace(bad)
        return []


# -----------------------------
# MessageStore
# -----------------------------
class MessageStore:
    """Append-only chat history, cached in memory and mirrored to one JSON file.

    Layout:
        data_dir/
          messages.json     # list[dict], oldest first

    Every durable write rewrites the whole file from the in-memory sequence
    under a single writer lock, so after any successful append the file and
    the cache agree. A failed write leaves the cache ahead of the file until
    the next successful append.
    """

    FILENAME = "messages.json"

    def __init__(self, data_dir: str) -> None:
        self.root = Path(data_dir)
        # An unusable data dir is fatal at startup; let OSError propagate.
        self.root.mkdir(parents=True, exist_ok=True)
        self.path = self.root / self.FILENAME
        self._lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._messages: List[Message] = []
        self._records: List[Dict[str, Any]] = []
        self.durable_count = 0

    # --------- core API ----------
    def load(self) -> List[Message]:
        """Replace the cache with the durable log contents and return them."""
        records = read_json_list(self.path)
        messages: List[Message] = []
        for i, rec in enumerate(records):
            try:
                messages.append(Message.from_record(rec))
            except ValidationError as e:
                logger.warning("Skipping invalid record %d in %s: %s", i, self.path, e.error_count())
        with self._lock:
            self._messages = messages
            self._records = [m.to_record() for m in messages]
            self.durable_count = len(messages)
        logger.info("Loaded %d message(s) from %s", len(messages), self.path)
        if not self.path.exists():
            # Materialize an empty log so the file layout exists from startup.
            write_json(self.path, [])
        return list(messages)

    def append(self, message: Message) -> None:
        """Add ``message`` to the cache, then persist the full sequence.

        Raises
        ------
        PersistenceError
            If the durable write fails. The message stays in the cache.
        """
        with self._write_lock:
            with self._lock:
                self._messages.append(message)
                self._records.append(message.to_record())
                records = list(self._records)
            try:
                write_json(self.path, records)
            except (OSError, TypeError, ValueError) as e:
                raise PersistenceError(message.id, e) from e
            with self._lock:
                self.durable_count = len(records)

    def all(self) -> Tuple[Message, ...]:
        """Snapshot of the ordered history."""
        with self._lock:
            return tuple(self._messages)

    def latest(self) -> Optional[Message]:
        with self._lock:
            return self._messages[-1] if self._messages else None

    @property
    def lagging(self) -> int:
        """Number of cached messages not yet in the durable log."""
        with self._lock:
            return len(self._messages) - self.durable_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
