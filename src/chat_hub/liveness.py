"""Periodic ping/pong check that reclaims silently dropped connections.

Each cycle:
1. every connection still UNCONFIRMED from the previous cycle is evicted;
2. every remaining connection is marked UNCONFIRMED and sent ``{"type": "ping"}``.

Any inbound frame flips it back to CONFIRMED, so chatting clients never
need to answer explicitly; an idle client must reply ``{"type": "pong"}``.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, List, Optional

from .broadcast import Broadcaster
from .codec import Ping
from .registry import Connection, ConnectionRegistry, Liveness
from .stats import HubStats

logger = logging.getLogger("chat_hub.liveness")

EvictHandler = Callable[[Connection], Awaitable[None]]


class LivenessMonitor:
    def __init__(
        self,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        on_evict: EvictHandler,
        *,
        interval_s: float = 30.0,
        stats: Optional[HubStats] = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.registry = registry
        self.broadcaster = broadcaster
        self.on_evict = on_evict
        self.interval_s = float(interval_s)
        self.stats = stats or broadcaster.stats
        self._task: Optional[asyncio.Task] = None

    async def tick(self) -> List[Connection]:
        """Run one probe cycle; returns the evicted connections."""
        conns = await self.registry.snapshot()
        stale = [c for c in conns if c.liveness is Liveness.UNCONFIRMED]
        for conn in stale:
            logger.info(
                "Evicting unresponsive connection conn_id=%s identity=%s",
                conn.id,
                conn.identity,
                extra={"conn_id": conn.id, "identity": conn.identity},
            )
            self.stats.inc("evictions")
            await self.on_evict(conn)

        live = [c for c in conns if c.liveness is Liveness.CONFIRMED and not c.closed]
        for conn in live:
            conn.liveness = Liveness.UNCONFIRMED
        await asyncio.gather(*(self._probe(c) for c in live))
        return stale

    async def _probe(self, conn: Connection) -> None:
        if await self.broadcaster.send_to(conn, Ping()):
            self.stats.inc("pings_out")

    async def run(self) -> None:
        logger.info("Liveness monitor running every %.1fs", self.interval_s)
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.tick()
            except Exception:
                logger.exception("Liveness cycle failed; retrying next interval")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="liveness-monitor")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
