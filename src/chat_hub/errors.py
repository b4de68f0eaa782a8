"""Error taxonomy for the chat hub.

None of these is fatal to the process. They are raised at the point of
failure and handled (logged, counted) by the component that owns recovery.
"""
from __future__ import annotations

from typing import Optional


class ChatHubError(Exception):
    """Base class for all chat hub errors."""


class DecodeError(ChatHubError):
    """An inbound frame was malformed or carried an unknown discriminator."""


class PersistenceError(ChatHubError):
    """Writing the durable message log failed.

    The message is already in the in-memory history when this is raised.
    """

    def __init__(self, message_id: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"failed to persist message {message_id}: {cause}")
        self.message_id = message_id
        self.cause = cause


class DeliveryError(ChatHubError):
    """Sending a frame to one recipient failed."""

    def __init__(self, conn_id: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"delivery to connection {conn_id} failed: {cause!r}")
        self.conn_id = conn_id
        self.cause = cause


class IdentityMissingError(ChatHubError):
    """A chat message arrived on a connection with no bound identity."""
