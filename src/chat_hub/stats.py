"""Counters for hub activity, exposed through the health endpoint."""

from __future__ import annotations

import threading
import time
from typing import Dict

COUNTERS = (
    "frames_in",
    "frames_dropped",
    "chat_accepted",
    "chat_rejected",
    "persist_failures",
    "broadcasts",
    "deliveries",
    "delivery_failures",
    "pings_out",
    "pongs_in",
    "evictions",
    "connections_opened",
    "connections_closed",
)


class HubStats:
    """Thread-safe named counters plus process uptime."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in COUNTERS}
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self.started_monotonic
