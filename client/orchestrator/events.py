"""
Unified event definitions for the session reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Timer events carry the session generation they were armed for, so the
reducer can drop timeouts that outlived their session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from functions.descriptors import FunctionDescriptor


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Local requests
    # ------------------------------------------------------------------
    START_REQUESTED = "START_REQUESTED"
    STOP_REQUESTED = "STOP_REQUESTED"

    # ------------------------------------------------------------------
    # Transport lifecycle
    # ------------------------------------------------------------------
    TRANSPORT_CONNECTED = "TRANSPORT_CONNECTED"
    TRANSPORT_DISCONNECTED = "TRANSPORT_DISCONNECTED"

    # ------------------------------------------------------------------
    # Authentication / session lifecycle (server)
    # ------------------------------------------------------------------
    AUTH_SUCCEEDED = "AUTH_SUCCEEDED"
    AUTH_FAILED = "AUTH_FAILED"
    SESSION_READY = "SESSION_READY"
    SESSION_ENDED = "SESSION_ENDED"
    SERVER_ERROR = "SERVER_ERROR"

    # ------------------------------------------------------------------
    # Conversation traffic (server)
    # ------------------------------------------------------------------
    TEXT_UPDATE = "TEXT_UPDATE"
    AUDIO_CHUNK_RECEIVED = "AUDIO_CHUNK_RECEIVED"

    # ------------------------------------------------------------------
    # Function invocation (server)
    # ------------------------------------------------------------------
    INVOCATION_REQUESTED = "INVOCATION_REQUESTED"
    INVOCATION_ACKNOWLEDGED = "INVOCATION_ACKNOWLEDGED"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    AUTH_TIMEOUT = "AUTH_TIMEOUT"
    STOP_TIMEOUT = "STOP_TIMEOUT"

    # ------------------------------------------------------------------
    # Fatal
    # ------------------------------------------------------------------
    FATAL_ERROR = "FATAL_ERROR"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Local Requests
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """
    Local request to start a voice session.

    functions is the complete vocabulary the remote side may invoke
    for the session; it is frozen at this point.
    """
    auth_key: str
    system_message: str
    voice: str
    functions: tuple[FunctionDescriptor, ...] = ()


@dataclass(frozen=True)
class StopRequested(Event):
    """Local request to stop the current session."""


# =============================================================================
# Transport Lifecycle
# =============================================================================

@dataclass(frozen=True)
class TransportConnected(Event):
    """Underlying connection established (or re-established)."""


@dataclass(frozen=True)
class TransportDisconnected(Event):
    """Underlying connection lost. Server-side session state is unknown."""
    reason: str | None = None


# =============================================================================
# Authentication / Session Lifecycle
# =============================================================================

@dataclass(frozen=True)
class AuthSucceeded(Event):
    """Key accepted. Session is not usable until SessionReady."""
    credits_remaining: float | None = None


@dataclass(frozen=True)
class AuthFailed(Event):
    """Key rejected or insufficient credits."""
    reason: str
    credits_remaining: float | None = None


@dataclass(frozen=True)
class SessionReady(Event):
    """Server finished session setup; audio may flow."""
    cost_per_minute: float
    functions_loaded: int
    message: str = ""


@dataclass(frozen=True)
class SessionEnded(Event):
    """
    Server closed the session.

    Usage figures are optional; the server is authoritative for credits.
    """
    reason: str | None = None
    total_credits_used: float | None = None
    remaining_credits: float | None = None


@dataclass(frozen=True)
class ServerError(Event):
    """Server-signaled runtime error (rate limiting, credit exhaustion, ...)."""
    error_type: str | None
    message: str


# =============================================================================
# Conversation Traffic
# =============================================================================

@dataclass(frozen=True)
class TextUpdate(Event):
    """Text rendition of the model's speech."""
    text: str


@dataclass(frozen=True)
class AudioChunkReceived(Event):
    """
    One synthesized audio chunk, still encoded.

    Decoding happens in the playback pipeline, not in the reducer.
    """
    audio_data: str


# =============================================================================
# Function Invocation
# =============================================================================

@dataclass(frozen=True)
class InvocationRequested(Event):
    """Remote model asks for a local function to run."""
    call_id: str
    function_name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class InvocationAcknowledged(Event):
    """Server confirms it consumed a function result."""
    function_name: str
    result: Any = None


# =============================================================================
# Timers
# =============================================================================

@dataclass(frozen=True)
class AuthTimeout(Event):
    """SessionReady did not arrive within AUTH_TIMEOUT_MS."""
    generation: int


@dataclass(frozen=True)
class StopTimeout(Event):
    """SessionEnded did not arrive within STOP_ACK_TIMEOUT_MS after stop."""
    generation: int


# =============================================================================
# Fatal
# =============================================================================

@dataclass(frozen=True)
class FatalError(Event):
    """Non-recoverable error. The session enters ERROR for good."""
    reason: str
    context: dict[str, Any] | None = None
