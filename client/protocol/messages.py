"""
Named-message wire protocol for the speech-to-speech service.

Transport:
- Socket.IO named events carrying JSON objects
- Audio travels inside JSON as base64 PCM16LE text

Outbound (client -> server):
    start_call         {auth_key, system_message, voice_choice, custom_functions}
    stop_call          (no data)
    audio_data         {audio_data, has_audio, max_amplitude}
    function_response  {call_id, function_name, result}

Inbound (server -> client):
    auth_success       {credits}
    auth_failed        {message, credits}
    session_ready      {message, functions_loaded, cost_per_minute}
    session_ended      {reason, total_credits_used, remaining_credits}
    text_response      {text}
    audio_response     {audio_data}
    function_called    {function_name, arguments, call_id}
    function_result    {function_name, result}
    error              {type, message}

Rules:
- Builders and parsers are pure; no I/O here.
- Inbound parsing is the only place wire field names meet reducer events.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Final, Mapping, Sequence

from constants import DEFAULT_COST_PER_MINUTE
from functions.descriptors import FunctionDescriptor
from orchestrator.events import (
    AudioChunkReceived,
    AuthFailed,
    AuthSucceeded,
    Event,
    EventType,
    InvocationAcknowledged,
    InvocationRequested,
    ServerError,
    SessionEnded,
    SessionReady,
    TextUpdate,
)

# =============================================================================
# Message names
# =============================================================================

# Outbound
START_CALL: Final[str] = "start_call"
STOP_CALL: Final[str] = "stop_call"
AUDIO_DATA: Final[str] = "audio_data"
FUNCTION_RESPONSE: Final[str] = "function_response"

# Inbound
AUTH_SUCCESS: Final[str] = "auth_success"
AUTH_FAILED: Final[str] = "auth_failed"
SESSION_READY: Final[str] = "session_ready"
SESSION_ENDED: Final[str] = "session_ended"
TEXT_RESPONSE: Final[str] = "text_response"
AUDIO_RESPONSE: Final[str] = "audio_response"
FUNCTION_CALLED: Final[str] = "function_called"
FUNCTION_RESULT: Final[str] = "function_result"
ERROR: Final[str] = "error"


# =============================================================================
# Errors
# =============================================================================

class ProtocolError(ValueError):
    """Base class for inbound messages that cannot be mapped to an event."""


class UnknownMessage(ProtocolError):
    """Message name is not part of the inbound vocabulary."""


class MalformedMessage(ProtocolError):
    """Message name is known but its data is missing or mistyped."""


# =============================================================================
# Outbound payload builders
# =============================================================================

def build_start_call(
    *,
    auth_key: str,
    system_message: str,
    voice: str,
    functions: Sequence[FunctionDescriptor],
) -> dict[str, Any]:
    return {
        "auth_key": auth_key,
        "system_message": system_message,
        "voice_choice": voice,
        "custom_functions": [f.to_wire() for f in functions],
    }


def build_audio_data(
    *,
    audio_data: str,
    has_audio: bool,
    max_amplitude: float,
) -> dict[str, Any]:
    return {
        "audio_data": audio_data,
        "has_audio": has_audio,
        "max_amplitude": max_amplitude,
    }


def build_function_response(
    *,
    call_id: str,
    function_name: str,
    result: Mapping[str, Any],
) -> dict[str, Any]:
    return {
        "call_id": call_id,
        "function_name": function_name,
        "result": dict(result),
    }


# =============================================================================
# Field helpers
# =============================================================================

def _require_mapping(name: str, data: Any) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise MalformedMessage(f"{name}: expected object, got {type(data).__name__}")
    return data


def _require_str(name: str, data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise MalformedMessage(f"{name}: field {key!r} must be a string")
    return value


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    return str(value)


def _optional_float(name: str, data: Mapping[str, Any], key: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; never a credit figure
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedMessage(f"{name}: field {key!r} must be a number")
    return float(value)


def _arguments(name: str, data: Mapping[str, Any]) -> dict[str, Any]:
    raw = data.get("arguments")
    if raw is None:
        return {}
    if isinstance(raw, str):
        # Some model backends forward arguments as a JSON string
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise MalformedMessage(f"{name}: arguments are not valid JSON") from e
    if not isinstance(raw, Mapping):
        raise MalformedMessage(f"{name}: arguments must be an object")
    return dict(raw)


# =============================================================================
# Inbound parsers
# =============================================================================

def _parse_auth_success(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    return AuthSucceeded(
        event_type=EventType.AUTH_SUCCEEDED,
        ts_ms=ts_ms,
        credits_remaining=_optional_float(name, data, "credits"),
    )


def _parse_auth_failed(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    return AuthFailed(
        event_type=EventType.AUTH_FAILED,
        ts_ms=ts_ms,
        reason=_optional_str(data, "message") or "authentication failed",
        credits_remaining=_optional_float(name, data, "credits"),
    )


def _parse_session_ready(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    cost = _optional_float(name, data, "cost_per_minute")
    loaded = _optional_float(name, data, "functions_loaded")
    return SessionReady(
        event_type=EventType.SESSION_READY,
        ts_ms=ts_ms,
        cost_per_minute=DEFAULT_COST_PER_MINUTE if cost is None else cost,
        functions_loaded=0 if loaded is None else int(loaded),
        message=_optional_str(data, "message") or "",
    )


def _parse_session_ended(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    return SessionEnded(
        event_type=EventType.SESSION_ENDED,
        ts_ms=ts_ms,
        reason=_optional_str(data, "reason"),
        total_credits_used=_optional_float(name, data, "total_credits_used"),
        remaining_credits=_optional_float(name, data, "remaining_credits"),
    )


def _parse_text_response(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    return TextUpdate(
        event_type=EventType.TEXT_UPDATE,
        ts_ms=ts_ms,
        text=_require_str(name, data, "text"),
    )


def _parse_audio_response(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    return AudioChunkReceived(
        event_type=EventType.AUDIO_CHUNK_RECEIVED,
        ts_ms=ts_ms,
        audio_data=_require_str(name, data, "audio_data"),
    )


def _parse_function_called(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    call_id = data.get("call_id")
    if call_id is None or str(call_id) == "":
        raise MalformedMessage(f"{name}: missing call_id")
    return InvocationRequested(
        event_type=EventType.INVOCATION_REQUESTED,
        ts_ms=ts_ms,
        call_id=str(call_id),
        function_name=_require_str(name, data, "function_name"),
        arguments=_arguments(name, data),
    )


def _parse_function_result(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    return InvocationAcknowledged(
        event_type=EventType.INVOCATION_ACKNOWLEDGED,
        ts_ms=ts_ms,
        function_name=_require_str(name, data, "function_name"),
        result=data.get("result"),
    )


def _parse_error(name: str, data: Mapping[str, Any], ts_ms: int) -> Event:
    return ServerError(
        event_type=EventType.SERVER_ERROR,
        ts_ms=ts_ms,
        error_type=_optional_str(data, "type"),
        message=_optional_str(data, "message") or "unknown server error",
    )


_PARSERS: dict[str, Callable[[str, Mapping[str, Any], int], Event]] = {
    AUTH_SUCCESS: _parse_auth_success,
    AUTH_FAILED: _parse_auth_failed,
    SESSION_READY: _parse_session_ready,
    SESSION_ENDED: _parse_session_ended,
    TEXT_RESPONSE: _parse_text_response,
    AUDIO_RESPONSE: _parse_audio_response,
    FUNCTION_CALLED: _parse_function_called,
    FUNCTION_RESULT: _parse_function_result,
    ERROR: _parse_error,
}

INBOUND_MESSAGES: Final[tuple[str, ...]] = tuple(_PARSERS)


def parse_inbound(name: str, data: Any, *, ts_ms: int) -> Event:
    """
    Map one inbound wire message to a reducer event.

    Raises:
        UnknownMessage if name is not an inbound message
        MalformedMessage if data is missing required fields or mistyped
    """
    parser = _PARSERS.get(name)
    if parser is None:
        raise UnknownMessage(f"unknown inbound message {name!r}")
    return parser(name, _require_mapping(name, data), ts_ms)
