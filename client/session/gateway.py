"""
Session gateway.

Responsibilities:
- Owns VoiceSession lifecycle and wiring
- Tracks connection_status independently of orchestrator state
- Routes inbound channel messages -> orchestrator events
- Routes captured audio -> outbound pipeline
- Validates local requests (start / stop) before they become events
- Mirrors runtime state for status queries only

NOT responsible for:
- Executing commands (Runtime)
- Any state machine logic (reducer)
"""

from __future__ import annotations

import time
from functools import partial
from typing import Any, TYPE_CHECKING
from uuid import uuid4

from adapters.transport.base import (
    CONNECT_EVENT,
    DISCONNECT_EVENT,
    ChannelError,
    MessageChannel,
)
from audio.outbound import OutboundAudioPipeline
from audio.playback import AudioSink, NullSink, PlaybackPipeline
from functions.broker import InvocationBroker
from functions.registry import FunctionRegistry
from observability.logger import log_event
from orchestrator.enums.state import State
from orchestrator.events import (
    Event,
    EventType,
    StartRequested,
    StopRequested,
    TransportConnected,
    TransportDisconnected,
)
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import CaptureSourceProtocol, RuntimeExecutionContext
from orchestrator.state_dataclass import OrchestratorState
from protocol.messages import INBOUND_MESSAGES, ProtocolError, parse_inbound
from session.connection_status import ConnectionStatus
from session.voice_session import NotificationListener, Notification, VoiceSession

if TYPE_CHECKING:
    from config import AppConfig


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


class InvalidRequest(Exception):
    """
    A local request that cannot be honored in the current situation.

    Raised for: start while not idle, start without an auth key,
    start while the channel is down.
    """


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """
    One gateway == one voice session object.

    Sequential calls (start, stop, start, ...) reuse the session; a
    session in ERROR is finished for good and needs a new gateway.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        channel: MessageChannel,
        registry: FunctionRegistry,
        sink: AudioSink | None = None,
        capture: CaptureSourceProtocol | None = None,
    ) -> None:
        self._config = config
        self._closed = False

        session_id = _new_session_id()
        self.session = VoiceSession(session_id=session_id, channel=channel)
        self.session.registry = registry
        self.session.outbound = OutboundAudioPipeline(channel=channel, session_id=session_id)
        self.session.playback = PlaybackPipeline(sink=sink or NullSink(), session_id=session_id)
        self.session.broker = InvocationBroker(
            registry=registry,
            channel=channel,
            session_id=session_id,
        )
        if capture is not None:
            self.session.attach_capture(capture)

        # Runtime last: it reads the resources above through the context
        runtime = Runtime(
            initial_state=OrchestratorState(),
            context=RuntimeExecutionContext(session=self.session),
        )
        self.session.attach_runtime(runtime)

        channel.on(CONNECT_EVENT, self._on_connect)
        channel.on(DISCONNECT_EVENT, self._on_disconnect)
        for name in INBOUND_MESSAGES:
            channel.on(name, partial(self._on_message, name))

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def state(self) -> State:
        return self._runtime.state.state

    @property
    def orchestrator_state(self) -> OrchestratorState:
        return self._runtime.state

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.session.connection_status

    @property
    def registry(self) -> FunctionRegistry:
        assert self.session.registry is not None
        return self.session.registry

    @property
    def _runtime(self) -> Runtime:
        runtime = self.session.runtime
        assert runtime is not None, "Runtime must exist after construction"
        return runtime

    def attach_capture(self, capture: CaptureSourceProtocol) -> None:
        """Attach a capture source; takes effect at the next session_ready."""
        self.session.attach_capture(capture)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Connect the channel.

        Raises:
            ChannelError if the server is unreachable.
        """
        channel = self._channel
        self.session.connection_status = ConnectionStatus.CONNECTING
        try:
            await channel.connect()
        except ChannelError as e:
            self.session.connection_status = ConnectionStatus.DOWN
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CONNECT_FAILED",
                **self.session.log_context(),
                "error": str(e),
            })
            raise
        if channel.connected:
            self.session.connection_status = ConnectionStatus.UP

    async def _on_connect(self, _payload: Any) -> None:
        self.session.connection_status = ConnectionStatus.UP
        await self._dispatch(
            TransportConnected(
                event_type=EventType.TRANSPORT_CONNECTED,
                ts_ms=_now_ms(),
            )
        )

    async def _on_disconnect(self, payload: Any) -> None:
        self.session.connection_status = ConnectionStatus.DOWN
        reason = payload.get("reason") if isinstance(payload, dict) else None
        await self._dispatch(
            TransportDisconnected(
                event_type=EventType.TRANSPORT_DISCONNECTED,
                ts_ms=_now_ms(),
                reason=reason,
            )
        )

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    async def _on_message(self, name: str, data: Any) -> None:
        try:
            event = parse_inbound(name, data, ts_ms=_now_ms())
        except ProtocolError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PROTOCOL_ERROR",
                **self.session.log_context(),
                "message": name,
                "error": str(e),
            })
            return
        await self._dispatch(event)

    # ------------------------------------------------------------------
    # Local requests
    # ------------------------------------------------------------------

    async def start_call(
        self,
        auth_key: str | None = None,
        system_message: str | None = None,
        voice: str | None = None,
    ) -> None:
        """
        Request a new session.

        Missing arguments fall back to the configured defaults. The
        declared function set is snapshotted here.

        Raises:
            InvalidRequest if not idle, no auth key, or not connected.
        """
        key = auth_key or self._config.auth_key
        if not key:
            raise InvalidRequest("an auth key is required")

        state = self.state
        if state is not State.IDLE:
            raise InvalidRequest(f"cannot start a call while {state.value}")

        if not self._channel.connected:
            raise InvalidRequest("not connected to the server")

        await self._dispatch(
            StartRequested(
                event_type=EventType.START_REQUESTED,
                ts_ms=_now_ms(),
                auth_key=key,
                system_message=system_message or self._config.system_message,
                voice=voice or self._config.voice,
                functions=self.registry.descriptors(),
            )
        )

    async def stop_call(self) -> bool:
        """
        Request the current session to stop.

        Returns False when there is nothing to stop.
        """
        if self.state not in (State.AUTHENTICATING, State.ACTIVE):
            return False
        await self._dispatch(
            StopRequested(event_type=EventType.STOP_REQUESTED, ts_ms=_now_ms())
        )
        return True

    def submit_capture(self, pcm_bytes: bytes) -> bool:
        """
        Capture entry point (runs on the loop thread).

        Returns True if the chunk was queued; False while not ACTIVE.
        """
        outbound = self.session.outbound
        if outbound is None:
            return False
        return outbound.submit(pcm_bytes)

    # ------------------------------------------------------------------
    # Notifications / status
    # ------------------------------------------------------------------

    def add_listener(self, listener: NotificationListener) -> None:
        """
        Subscribe to notifications.

        Listeners run inside event handling and must not block.
        """
        self.session.add_listener(listener)

    def drain_notifications(self) -> tuple[Notification, ...]:
        return self.session.drain_notifications()

    def status(self) -> dict[str, Any]:
        s = self._runtime.state
        duration_s: float | None = None
        if s.state is State.ACTIVE and s.started_at_ms is not None:
            duration_s = max(0, _now_ms() - s.started_at_ms) / 1000.0

        outbound = self.session.outbound
        playback = self.session.playback
        broker = self.session.broker
        return {
            "session_id": self.session.session_id,
            "state": s.state.value,
            "connection_status": self.session.connection_status.value,
            "generation": s.generation,
            "credits": s.credits_remaining,
            "cost_per_minute": s.cost_per_minute,
            "functions_declared": len(self.registry),
            "functions_loaded": s.functions_loaded,
            "call_duration_s": duration_s,
            "end_reason": s.end_reason,
            "total_credits_used": s.total_credits_used,
            "last_error": s.last_error,
            "outbound": outbound.snapshot() if outbound is not None else None,
            "playback": playback.snapshot() if playback is not None else None,
            "outstanding_invocations": broker.outstanding() if broker is not None else [],
        }

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """
        Tear down everything this gateway owns. Idempotent.

        An active call is stopped first (best effort) so the server stops
        billing before the socket goes away.
        """
        if self._closed:
            return
        self._closed = True

        if self.state in (State.AUTHENTICATING, State.ACTIVE) and self._channel.connected:
            await self.stop_call()

        await self._runtime.shutdown()

        capture = self.session.capture
        if capture is not None:
            capture.stop()
        if self.session.outbound is not None:
            await self.session.outbound.aclose()
        if self.session.playback is not None:
            await self.session.playback.aclose()
        if self.session.broker is not None:
            await self.session.broker.aclose()

        await self._channel.disconnect()
        self.session.connection_status = ConnectionStatus.DOWN

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "GATEWAY_CLOSED",
            **self.session.log_context(),
        })

    # ------------------------------------------------------------------
    # Reducer dispatch
    # ------------------------------------------------------------------

    @property
    def _channel(self) -> MessageChannel:
        channel = self.session.channel
        assert channel is not None
        return channel

    async def _dispatch(self, event: Event) -> None:
        """Forward event into runtime; runtime owns all orchestration."""
        await self._runtime.handle_event(event)
