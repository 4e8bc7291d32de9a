"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution (channel, pipelines, broker, capture).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from session.connection_status import ConnectionStatus

if TYPE_CHECKING:
    from adapters.transport.base import MessageChannel
    from session.voice_session import VoiceSession


# ---------------------------------------------------------------------
# Capability Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class CaptureSourceProtocol(Protocol):
    """Microphone-like source feeding OutboundAudioPipeline.submit()."""
    def start(self) -> None: ...
    def stop(self) -> None: ...


class OutboundPipelineProtocol(Protocol):
    def open(self, generation: int) -> None: ...
    def close(self) -> None: ...


class PlaybackPipelineProtocol(Protocol):
    def open(self, generation: int) -> None: ...
    def close(self) -> None: ...
    def clear(self) -> None: ...
    def accept(self, audio_data: str, *, generation: int) -> bool: ...


class BrokerProtocol(Protocol):
    def dispatch(
        self,
        *,
        call_id: str,
        function_name: str,
        arguments: dict[str, Any],
        generation: int,
    ) -> bool: ...
    def reset(self) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    This object provides *live views* into session-owned resources
    so Runtime does not need to synchronize or cache anything.

    Runtime is allowed to:
    - Send control messages
    - Open / close pipelines, start / stop capture
    - Dispatch and reset invocations
    - Publish notifications

    Runtime is NOT allowed to:
    - Mutate session state directly
    - Perform orchestration decisions
    """

    def __init__(self, session: VoiceSession) -> None:
        self.session = session

    # ----------------------------
    # Session metadata
    # ----------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.session.connection_status

    # ----------------------------
    # Resources
    # ----------------------------

    @property
    def channel(self) -> MessageChannel | None:
        return self.session.channel

    @property
    def outbound(self) -> OutboundPipelineProtocol | None:
        return self.session.outbound

    @property
    def playback(self) -> PlaybackPipelineProtocol | None:
        return self.session.playback

    @property
    def broker(self) -> BrokerProtocol | None:
        return self.session.broker

    @property
    def capture(self) -> CaptureSourceProtocol | None:
        return self.session.capture

    # ----------------------------
    # Notifications
    # ----------------------------

    def publish(self, kind: str, data: dict[str, Any], ts_ms: int) -> None:
        self.session.publish(kind, data, ts_ms)
