"""
Voice session container.

- Explicit owner of every session sub-resource (channel, pipelines,
  broker, registry, runtime)
- Owns connection status (mutable, gateway-controlled)
- Owns the user-visible notification history
- Owned and mutated by SessionGateway
- NOT a state machine
- Contains no orchestration logic
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, TYPE_CHECKING

from constants import NOTIFICATION_HISTORY_MAX
from session.connection_status import ConnectionStatus

if TYPE_CHECKING:
    from adapters.transport.base import MessageChannel
    from audio.outbound import OutboundAudioPipeline
    from audio.playback import PlaybackPipeline
    from functions.broker import InvocationBroker
    from functions.registry import FunctionRegistry
    from orchestrator.runtime import Runtime


# ---------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Notification:
    """
    One user-visible occurrence.

    kind is stable ("session_ready", "auth_failed", "disconnected", ...);
    every terminal condition has its own kind.
    """
    kind: str
    data: dict[str, Any]
    ts_ms: int


NotificationListener = Callable[[Notification], None]


# ---------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------

@dataclass
class VoiceSession:
    """Mutable runtime container for a single voice session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Connection / gateway-controlled state
    # ------------------------------------------------------------------

    connection_status: ConnectionStatus = ConnectionStatus.DOWN
    channel: MessageChannel | None = None

    # ------------------------------------------------------------------
    # Runtime (executes commands + owns authoritative state)
    # ------------------------------------------------------------------

    runtime: Runtime | None = None

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    outbound: OutboundAudioPipeline | None = None
    playback: PlaybackPipeline | None = None
    capture: Any = None  # Type: CaptureSourceProtocol in practice

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    registry: FunctionRegistry | None = None
    broker: InvocationBroker | None = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def __post_init__(self) -> None:
        self._notifications: deque[Notification] = deque(maxlen=NOTIFICATION_HISTORY_MAX)
        self._listeners: list[NotificationListener] = []

    # ------------------------------------------------------------------
    # Wiring helpers (called by SessionGateway)
    # ------------------------------------------------------------------

    def attach_runtime(self, runtime: Runtime) -> None:
        """
        Attach the runtime executor.

        Must be called after pipelines and broker are attached.
        """
        self.runtime = runtime

    def attach_capture(self, capture: Any) -> None:
        """Attach a capture source exposing start() / stop()."""
        self.capture = capture

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def add_listener(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def publish(self, kind: str, data: dict[str, Any], ts_ms: int) -> Notification:
        """Record a notification and hand it to every listener, in order."""
        note = Notification(kind=kind, data=data, ts_ms=ts_ms)
        self._notifications.append(note)
        for listener in list(self._listeners):
            listener(note)
        return note

    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._notifications)

    def drain_notifications(self) -> tuple[Notification, ...]:
        """
        Drain the notification history.

        Returns a FIFO-ordered tuple; the history is empty afterwards.
        """
        if not self._notifications:
            return ()
        out = tuple(self._notifications)
        self._notifications.clear()
        return out

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "connection_status": self.connection_status.value,
        }
