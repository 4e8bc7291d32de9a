"""
Message channel contract.

This module defines the *interface only*: no session logic, no audio
handling, no retries or reconnect policy live here.

Key invariants:
- The channel carries named messages with JSON-compatible payloads.
- Connection lifecycle is delivered through the same subscription
  mechanism as messages, under CONNECT_EVENT / DISCONNECT_EVENT.
- The channel never inspects payloads and never makes session decisions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

CONNECT_EVENT = "connect"
DISCONNECT_EVENT = "disconnect"

MessageHandler = Callable[[Any], Awaitable[None]]


class ChannelError(Exception):
    """
    Raised when the channel cannot connect or cannot send.

    Senders decide what a failure means: audio senders drop the frame,
    control senders treat it as a transport disconnect.
    """


class MessageChannel(ABC):
    """
    Abstract bidirectional named-message channel.

    Note: handlers must be async.

    Implementations are responsible for:
    - Connecting / disconnecting the underlying transport
    - Delivering inbound messages to every handler registered for the name
    - Delivering CONNECT_EVENT (payload None) and DISCONNECT_EVENT
      (payload {"reason": str | None})

    Non-responsibilities:
    - No payload validation (see protocol.messages)
    - No session state
    - No buffering of messages while disconnected
    """

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True while the transport is up."""
        raise NotImplementedError

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection.

        Raises:
            ChannelError if the remote end is unreachable.
        """
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Idempotent."""
        raise NotImplementedError

    @abstractmethod
    async def send(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """
        Send one named message.

        Contract:
        - payload None sends the message without data
        - MUST raise ChannelError when the channel is down or the send fails
        - MUST NOT retry internally
        """
        raise NotImplementedError

    @abstractmethod
    def on(self, event: str, handler: MessageHandler) -> None:
        """
        Subscribe handler to a message name.

        Multiple handlers per name are called in registration order.
        """
        raise NotImplementedError
