"""
Side-effect command definitions for the session reducer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from orchestrator.events import EventType

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Transport
    SEND_MESSAGE = "SEND_MESSAGE"

    # Audio
    START_AUDIO = "START_AUDIO"
    STOP_AUDIO = "STOP_AUDIO"
    PLAY_AUDIO = "PLAY_AUDIO"

    # Functions
    DISPATCH_INVOCATION = "DISPATCH_INVOCATION"
    RESET_INVOCATIONS = "RESET_INVOCATIONS"

    # User-visible
    NOTIFY = "NOTIFY"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Transport Commands
# =============================================================================

@dataclass(frozen=True)
class SendMessage(Command):
    """
    Send one named control message through the channel.

    A send failure is reported back to the reducer as a transport
    disconnect by the runtime.
    """
    event_name: str
    payload: dict[str, Any] | None = None
    command_type: CommandType = CommandType.SEND_MESSAGE


# =============================================================================
# Audio Commands
# =============================================================================

@dataclass(frozen=True)
class StartAudio(Command):
    """Open capture + playback pipelines for the given session generation."""
    generation: int
    command_type: CommandType = CommandType.START_AUDIO


@dataclass(frozen=True)
class StopAudio(Command):
    """
    Stop accepting audio in both directions.

    Queued-but-unsent capture frames and queued synthesized audio are
    discarded. A send or playback already in flight completes.
    """
    command_type: CommandType = CommandType.STOP_AUDIO


@dataclass(frozen=True)
class PlayAudio(Command):
    """Hand one encoded synthesized chunk to the playback pipeline."""
    audio_data: str
    generation: int
    command_type: CommandType = CommandType.PLAY_AUDIO


# =============================================================================
# Function Commands
# =============================================================================

@dataclass(frozen=True)
class DispatchInvocation(Command):
    """
    Run a local function for a remote invocation request.

    The broker must send exactly one result for call_id.
    """
    call_id: str
    function_name: str
    arguments: dict[str, Any]
    generation: int
    command_type: CommandType = CommandType.DISPATCH_INVOCATION


@dataclass(frozen=True)
class ResetInvocations(Command):
    """Forget all outstanding invocations; late results are discarded."""
    command_type: CommandType = CommandType.RESET_INVOCATIONS


# =============================================================================
# User-visible Commands
# =============================================================================

@dataclass(frozen=True)
class Notify(Command):
    """
    Publish a user-visible notification.

    kind is a stable string (e.g. "session_ready", "auth_failed");
    every terminal condition has its own kind.
    """
    kind: str
    data: dict[str, Any]
    command_type: CommandType = CommandType.NOTIFY


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start a named timer.

    On expiration, the runtime must inject the specified timeout event.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    generation: int
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
