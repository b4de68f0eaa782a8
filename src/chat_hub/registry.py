"""Live connection registry.

Each accepted socket becomes a :class:`Connection` record owned by the
:class:`ConnectionRegistry`. The raw set is never handed out: callers either
take a snapshot or run an action over the live set with :meth:`for_each`.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from .errors import DeliveryError
from .models import utc_now

logger = logging.getLogger("chat_hub.registry")


class Transport(Protocol):
    """The slice of a WebSocket the hub needs (Starlette's WebSocket fits)."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class Liveness(str, enum.Enum):
    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"


def _new_conn_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(eq=False)
class Connection:
    """One live socket plus the session state bound to it."""

    transport: Transport
    id: str = field(default_factory=_new_conn_id)
    identity: Optional[str] = None
    liveness: Liveness = Liveness.CONFIRMED
    connected_at: datetime = field(default_factory=utc_now)
    closed: bool = False

    def confirm(self) -> None:
        self.liveness = Liveness.CONFIRMED

    async def send(self, frame: str, timeout: Optional[float] = None) -> None:
        """Send one frame, wrapping any transport failure in DeliveryError."""
        if self.closed:
            raise DeliveryError(self.id, ConnectionError("connection already removed"))
        try:
            if timeout:
                await asyncio.wait_for(self.transport.send_text(frame), timeout)
            else:
                await self.transport.send_text(frame)
        except Exception as e:
            raise DeliveryError(self.id, e) from e


Predicate = Callable[[Connection], bool]
Action = Callable[[Connection], Awaitable[None]]


def everyone(conn: Connection) -> bool:
    return True


def all_except(excluded: Connection) -> Predicate:
    """Predicate matching every connection but ``excluded``."""
    return lambda conn: conn is not excluded


class ConnectionRegistry:
    """Set of live connections, safe to mutate and iterate from many tasks."""

    def __init__(self) -> None:
        self._conns: Dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    async def add(self, conn: Connection) -> None:
        async with self._lock:
            conn.closed = False
            self._conns[conn.id] = conn
        logger.debug("Registered connection conn_id=%s", conn.id)

    async def remove(self, conn: Connection) -> bool:
        """Remove ``conn``; returns False if it was already gone.

        The record is flagged closed so an in-flight :meth:`for_each` that
        already captured it skips it instead of sending.
        """
        async with self._lock:
            removed = self._conns.pop(conn.id, None) is not None
            conn.closed = True
        if removed:
            logger.debug("Removed connection conn_id=%s", conn.id)
        return removed

    async def snapshot(self) -> List[Connection]:
        async with self._lock:
            return [c for c in self._conns.values() if not c.closed]

    async def for_each(self, action: Action, predicate: Predicate = everyone) -> int:
        """Apply ``action`` concurrently to every live connection matching ``predicate``.

        The live set is captured at call time. Returns the number of
        connections the action ran on; ones removed mid-flight are skipped
        and not counted. An action that raises is logged; it
        does not stop the others.
        """
        targets = [c for c in await self.snapshot() if predicate(c)]
        if not targets:
            return 0

        ran = 0

        async def _guarded(conn: Connection) -> None:
            nonlocal ran
            if conn.closed:
                return
            ran += 1
            await action(conn)

        results = await asyncio.gather(*(_guarded(c) for c in targets), return_exceptions=True)
        for conn, res in zip(targets, results):
            if isinstance(res, Exception):
                logger.error(
                    "Action failed on conn_id=%s: %r",
                    conn.id,
                    res,
                    extra={"conn_id": conn.id, "error": repr(res)},
                )
        return ran

    async def identities(self) -> List[str]:
        return sorted({c.identity for c in await self.snapshot() if c.identity})

    def __len__(self) -> int:
        return len(self._conns)
