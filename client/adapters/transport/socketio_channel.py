"""
Socket.IO message channel.

Implements MessageChannel over a python-socketio AsyncClient, the
transport the speech-to-speech service speaks.

Role in the system:
- Connects to the service (websocket first, long-polling fallback).
- Forwards every subscribed inbound message to its async handlers.
- Emits outbound named messages.

Architectural constraints:
- Reconnect backoff and heartbeats belong to the Socket.IO client.
- A reconnect is reported as DISCONNECT_EVENT followed by CONNECT_EVENT;
  the session layer treats that as a fresh connection.
"""

from __future__ import annotations

from typing import Any

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError
from socketio.exceptions import SocketIOError

from adapters.transport.base import (
    CONNECT_EVENT,
    DISCONNECT_EVENT,
    ChannelError,
    MessageChannel,
    MessageHandler,
)


class SocketIOChannel(MessageChannel):
    """
    python-socketio backed channel.

    Design:
    - One AsyncClient per channel, one channel per gateway
    - One dispatch callback per subscribed event name; fan-out is ours
    """

    def __init__(
        self,
        *,
        url: str,
        transports: tuple[str, ...] = ("websocket", "polling"),
        reconnection: bool = True,
        client: socketio.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._transports = transports
        self._sio = client or socketio.AsyncClient(
            reconnection=reconnection,
            logger=False,
            engineio_logger=False,
        )
        self._handlers: dict[str, list[MessageHandler]] = {}

    # ------------------------------------------------------------------
    # MessageChannel
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    async def connect(self) -> None:
        try:
            await self._sio.connect(self._url, transports=list(self._transports))
        except SocketIOConnectionError as e:
            raise ChannelError(f"connect failed: {e}") from e

    async def disconnect(self) -> None:
        if self._sio.connected:
            await self._sio.disconnect()

    async def send(self, event: str, payload: dict[str, Any] | None = None) -> None:
        if not self._sio.connected:
            raise ChannelError(f"cannot send {event!r}: not connected")
        try:
            if payload is None:
                await self._sio.emit(event)
            else:
                await self._sio.emit(event, payload)
        except SocketIOError as e:
            raise ChannelError(f"send {event!r} failed: {e}") from e
        except (TypeError, ValueError) as e:
            # Packet.encode rejects payloads json cannot serialize
            raise ChannelError(f"send {event!r} failed: unencodable payload: {e}") from e

    def on(self, event: str, handler: MessageHandler) -> None:
        if event not in self._handlers:
            self._handlers[event] = []
            self._sio.on(event, self._make_dispatch(event))
        self._handlers[event].append(handler)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _make_dispatch(self, event: str) -> Any:
        async def _dispatch(*args: Any) -> None:
            if event == CONNECT_EVENT:
                payload: Any = None
            elif event == DISCONNECT_EVENT:
                # Newer clients pass a reason argument, older ones pass nothing
                payload = {"reason": str(args[0]) if args else None}
            else:
                payload = args[0] if args else None

            for handler in list(self._handlers.get(event, ())):
                await handler(payload)

        return _dispatch
