"""Session lifecycle: identity binding, typing presence and chat publishing."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional, Set, Union

from starlette.concurrency import run_in_threadpool

from .broadcast import Broadcaster
from .codec import (
    ChatMessage,
    InboundEvent,
    NewChatMessage,
    Pong,
    RegisterIdentity,
    TypingStart,
    TypingStop,
    Unknown,
    UserStopTyping,
    UserTyping,
    decode,
)
from .errors import IdentityMissingError, PersistenceError
from .models import Message, utc_now
from .registry import Connection, ConnectionRegistry, Transport
from .stats import HubStats
from .store import MessageStore

logger = logging.getLogger("chat_hub.session")

# Name shown for typing events from a connection that never registered.
ANONYMOUS = "Anonymous"


class SessionLifecycle:
    """
    Routes decoded inbound events for every connection.

    - RegisterIdentity binds a display name to the connection (no broadcast).
    - TypingStart/TypingStop go to everyone but the sender.
    - ChatMessage needs a bound identity; unregistered senders are dropped
      without a reply. Accepted messages are stored, then broadcast to
      everyone including the sender, whether or not the store write succeeded.
    - Teardown of a named connection broadcasts a final userStopTyping.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        store: MessageStore,
        *,
        stats: Optional[HubStats] = None,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.store = store
        self.stats = stats or broadcaster.stats
        # Serializes stamp -> append -> broadcast so every socket sees log order.
        self._publish_lock = asyncio.Lock()
        # In-flight teardown tasks.
        self._teardowns: Set[asyncio.Task] = set()

    # --------- connection lifecycle ----------
    async def connect(self, transport: Transport) -> Connection:
        conn = Connection(transport=transport)
        await self.registry.add(conn)
        self.stats.inc("connections_opened")
        logger.info("Client connected conn_id=%s", conn.id, extra={"conn_id": conn.id})
        return conn

    async def disconnect(self, conn: Connection) -> None:
        """Tear down ``conn``. Only the first call for a connection has effect.

        The work runs in a tracked task shielded from the caller, so the
        connection task being cancelled mid-teardown still lets peers get
        the final userStopTyping.
        """
        task = asyncio.ensure_future(self._teardown(conn))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)
        await asyncio.shield(task)

    async def wait_closed(self) -> None:
        """Wait for every in-flight teardown to finish."""
        if self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)

    async def _teardown(self, conn: Connection) -> None:
        if not await self.registry.remove(conn):
            return
        self.stats.inc("connections_closed")
        logger.info(
            "Client %s disconnected conn_id=%s",
            conn.identity or "",
            conn.id,
            extra={"conn_id": conn.id, "identity": conn.identity},
        )
        if conn.identity:
            await self.broadcaster.broadcast_to_all(UserStopTyping(username=conn.identity))

    async def evict(self, conn: Connection) -> None:
        """Force-close an unresponsive connection, then tear it down."""
        try:
            await conn.transport.close(code=1001, reason="liveness timeout")
        except Exception as e:
            # The peer is presumed gone; a failing close changes nothing.
            logger.debug("Close during eviction failed conn_id=%s: %r", conn.id, e)
        await self.disconnect(conn)

    # --------- inbound ----------
    async def handle_frame(self, conn: Connection, frame: Union[str, bytes]) -> None:
        self.stats.inc("frames_in")
        # Any inbound frame counts as a pong.
        conn.confirm()
        await self.dispatch(conn, decode(frame))

    async def dispatch(self, conn: Connection, event: InboundEvent) -> None:
        if isinstance(event, Unknown):
            self.stats.inc("frames_dropped")
            logger.debug("Dropping frame conn_id=%s: %s", conn.id, event.reason)
        elif isinstance(event, RegisterIdentity):
            conn.identity = event.name
            logger.info("Registered identity %r conn_id=%s", event.name, conn.id)
        elif isinstance(event, TypingStart):
            await self.broadcaster.broadcast_to_others(
                conn, UserTyping(username=conn.identity or ANONYMOUS)
            )
        elif isinstance(event, TypingStop):
            await self.broadcaster.broadcast_to_others(
                conn, UserStopTyping(username=conn.identity or ANONYMOUS)
            )
        elif isinstance(event, Pong):
            conn.confirm()
            self.stats.inc("pongs_in")
        elif isinstance(event, ChatMessage):
            try:
                await self.publish(conn, event)
            except IdentityMissingError as e:
                self.stats.inc("chat_rejected")
                logger.debug("Rejected chat message conn_id=%s: %s", conn.id, e)

    async def publish(self, conn: Connection, event: ChatMessage) -> Message:
        """Stamp, store and broadcast one chat message.

        Raises
        ------
        IdentityMissingError
            If the connection has not registered a name.
        """
        if not conn.identity:
            raise IdentityMissingError(f"connection {conn.id} has no registered identity")

        async with self._publish_lock:
            message = Message(
                author=conn.identity,
                kind=event.kind,
                content=event.content,
                created_at=self._next_timestamp(),
            )
            try:
                await run_in_threadpool(self.store.append, message)
            except PersistenceError as e:
                self.stats.inc("persist_failures")
                logger.error(
                    "Message %s kept in memory only: %s",
                    message.id,
                    e.cause,
                    extra={"message_id": message.id, "error": repr(e.cause)},
                )
            self.stats.inc("chat_accepted")
            await self.broadcaster.broadcast_to_all(NewChatMessage.from_message(message))
        return message

    def _next_timestamp(self) -> datetime:
        now = utc_now()
        last = self.store.latest()
        if last is not None and last.created_at > now:
            return last.created_at
        return now
