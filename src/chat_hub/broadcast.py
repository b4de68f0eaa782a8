"""Best-effort fan-out of outbound events to live connections."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .codec import OutboundEvent, encode
from .errors import DeliveryError
from .registry import Connection, ConnectionRegistry, Predicate, all_except, everyone
from .stats import HubStats

logger = logging.getLogger("chat_hub.broadcast")


@dataclass
class BroadcastResult:
    recipients: int = 0
    delivered: int = 0
    failed: List[str] = field(default_factory=list)


class Broadcaster:
    """Serializes an event once and sends the frame to a subset of the registry.

    Delivery is fire-and-forget: a recipient whose send fails is logged and
    counted, and the remaining recipients still get the frame. Nothing is
    raised to the caller.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        *,
        stats: Optional[HubStats] = None,
        send_timeout_s: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.stats = stats or HubStats()
        self.send_timeout_s = send_timeout_s

    async def broadcast_to_all(self, event: OutboundEvent) -> BroadcastResult:
        """Send ``event`` to every live connection, sender included."""
        return await self._fan_out(event, everyone)

    async def broadcast_to_others(self, sender: Connection, event: OutboundEvent) -> BroadcastResult:
        """Send ``event`` to every live connection except ``sender``."""
        return await self._fan_out(event, all_except(sender))

    async def send_to(self, conn: Connection, event: OutboundEvent) -> bool:
        """Send ``event`` to one connection; False if delivery failed."""
        try:
            await conn.send(encode(event), timeout=self.send_timeout_s)
        except DeliveryError as e:
            self._log_failure(conn, event, e)
            return False
        return True

    async def _fan_out(self, event: OutboundEvent, predicate: Predicate) -> BroadcastResult:
        frame = encode(event)
        result = BroadcastResult()

        async def deliver(conn: Connection) -> None:
            try:
                await conn.send(frame, timeout=self.send_timeout_s)
            except DeliveryError as e:
                result.failed.append(conn.id)
                self._log_failure(conn, event, e)
                return
            result.delivered += 1

        result.recipients = await self.registry.for_each(deliver, predicate)
        self.stats.inc("broadcasts")
        self.stats.inc("deliveries", result.delivered)
        logger.debug(
            "Broadcast %s to %d/%d connection(s)",
            event.type,
            result.delivered,
            result.recipients,
        )
        return result

    def _log_failure(self, conn: Connection, event: OutboundEvent, err: DeliveryError) -> None:
        self.stats.inc("delivery_failures")
        logger.warning(
            "Delivery of %s failed conn_id=%s identity=%s: %r",
            event.type,
            conn.id,
            conn.identity,
            err.cause,
            extra={"conn_id": conn.id, "identity": conn.identity, "error": repr(err.cause)},
        )
