"""
Runtime execution shell for a single voice session.

Responsibilities:
- Own orchestrator state
- Call pure reducer
- Execute commands with side effects (channel, pipelines, broker, timers)
- Schedule and cancel timers
- Convert timer expiry and control-send failures into events
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import TYPE_CHECKING

from adapters.transport.base import ChannelError
from orchestrator.commands import (
    CancelTimer,
    Command,
    DispatchInvocation,
    LogEvent,
    Notify,
    PlayAudio,
    ResetInvocations,
    SendMessage,
    StartAudio,
    StartTimer,
    StopAudio,
)
from orchestrator.events import (
    AuthTimeout,
    Event,
    EventType,
    StopTimeout,
    TransportDisconnected,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import OrchestratorState
from observability.logger import log_event


if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for a single voice session.

    Responsibilities:
    - Own the authoritative orchestrator state
    - Act as the universal event sink for the session
      (gateway events, timer events, send failures)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - Events are handled one at a time, in arrival order
    - All side effects occur *after* state has been updated
    - Runtime never performs orchestration logic itself
    - Events raised while executing commands are deferred until the
      current event's commands have all run
    """

    def __init__(
        self,
        *,
        initial_state: OrchestratorState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._lock = asyncio.Lock()
        self._deferred: deque[Event] = deque()

    @property
    def state(self) -> OrchestratorState:
        """
        Return the current immutable orchestrator state.

        Consumers must never modify this state directly.
        """
        return self._state

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Swap in the new state
        3. Execute all emitted commands sequentially
        4. Process any events deferred by step 3

        This method is the *only* entry point for events affecting
        orchestrator state. The lock serializes callers in arrival order.
        """
        async with self._lock:
            await self._process(event)
            while self._deferred:
                await self._process(self._deferred.popleft())

    async def _process(self, event: Event) -> None:
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

    async def shutdown(self) -> None:
        """
        Cancel all in-flight timers and wait for them to finish.

        Called by the gateway on close.
        """
        tasks = [t for t in self._timers.values() if t is not asyncio.current_task()]
        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:  # pylint: disable=too-many-branches
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
                "connection_status": self._ctx.connection_status.value,
            })

        elif isinstance(cmd, SendMessage):
            await self._send_control(cmd)

        elif isinstance(cmd, PlayAudio):
            playback = self._ctx.playback
            if playback is not None:
                playback.accept(cmd.audio_data, generation=cmd.generation)

        elif isinstance(cmd, StartAudio):
            if self._ctx.outbound is not None:
                self._ctx.outbound.open(cmd.generation)
            if self._ctx.playback is not None:
                self._ctx.playback.open(cmd.generation)
            self._start_capture()

        elif isinstance(cmd, StopAudio):
            self._stop_capture()
            if self._ctx.outbound is not None:
                self._ctx.outbound.close()
            if self._ctx.playback is not None:
                self._ctx.playback.close()
                self._ctx.playback.clear()

        elif isinstance(cmd, DispatchInvocation):
            assert self._ctx.broker is not None, "Invocation broker missing"
            self._ctx.broker.dispatch(
                call_id=cmd.call_id,
                function_name=cmd.function_name,
                arguments=cmd.arguments,
                generation=cmd.generation,
            )

        elif isinstance(cmd, ResetInvocations):
            if self._ctx.broker is not None:
                self._ctx.broker.reset()

        elif isinstance(cmd, Notify):
            self._ctx.publish(cmd.kind, cmd.data, _now_ms())

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
                generation=cmd.generation,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_NOT_HANDLED",
                "session_id": self._ctx.session_id,
                "command_type": type(cmd).__name__,
            })

    async def _send_control(self, cmd: SendMessage) -> None:
        channel = self._ctx.channel
        try:
            if channel is None:
                raise ChannelError("no channel attached")
            await channel.send(cmd.event_name, cmd.payload)
        except ChannelError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CONTROL_SEND_FAILED",
                "session_id": self._ctx.session_id,
                "message": cmd.event_name,
                "error": str(e),
            })
            # A lost control message leaves server state unknown
            self._deferred.append(
                TransportDisconnected(
                    event_type=EventType.TRANSPORT_DISCONNECTED,
                    ts_ms=_now_ms(),
                    reason="send_failed",
                )
            )
            return

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CONTROL_SENT",
            "session_id": self._ctx.session_id,
            "message": cmd.event_name,
        })

    # ------------------------------------------------------------------
    # Capture device
    # ------------------------------------------------------------------

    def _start_capture(self) -> None:
        capture = self._ctx.capture
        if capture is None:
            return
        try:
            capture.start()
        except Exception as e:  # pylint: disable=broad-exception-caught
            # Device failure is local: the call continues without a mic
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CAPTURE_START_FAILED",
                "session_id": self._ctx.session_id,
                "error": str(e),
                "error_type": type(e).__name__,
            })
            self._ctx.publish("audio_device_error", {"error": str(e)}, _now_ms())

    def _stop_capture(self) -> None:
        capture = self._ctx.capture
        if capture is None:
            return
        try:
            capture.stop()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CAPTURE_STOP_FAILED",
                "session_id": self._ctx.session_id,
                "error": str(e),
                "error_type": type(e).__name__,
            })

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
        generation: int,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter handle_event() when they expire,
        maintaining the single event entry point invariant.
        """
        self._cancel_timer(timer_id)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)

                if self._timers.get(timer_id) is asyncio.current_task():
                    del self._timers[timer_id]

                event = self._construct_timeout_event(
                    timeout_event_type=timeout_event_type,
                    generation=generation,
                )
                await self.handle_event(event)

            except asyncio.CancelledError:
                # Timer was cancelled - this is normal
                return

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent. A timer never cancels itself while delivering its event.
        """
        task = self._timers.pop(timer_id, None)
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    def _construct_timeout_event(
        self,
        *,
        timeout_event_type: EventType,
        generation: int,
    ) -> Event:
        """
        Construct the timeout event for a fired timer.

        The generation is the one the timer was armed for, not the
        current one; the reducer drops stale timeouts.
        """
        ts = _now_ms()

        if timeout_event_type is EventType.AUTH_TIMEOUT:
            return AuthTimeout(
                event_type=EventType.AUTH_TIMEOUT,
                ts_ms=ts,
                generation=generation,
            )

        if timeout_event_type is EventType.STOP_TIMEOUT:
            return StopTimeout(
                event_type=EventType.STOP_TIMEOUT,
                ts_ms=ts,
                generation=generation,
            )

        raise ValueError(f"Unknown timeout event type: {timeout_event_type}")
