"""
Pure session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

# Reducer owns timer semantics; runtime must not cancel timers implicitly.
# Audio chunks in ACTIVE are the hot path: PlayAudio only, no LogEvent.

from __future__ import annotations

import json
from dataclasses import replace
from typing import Any

from constants import AUTH_TIMEOUT_MS, RESULT_PREVIEW_CHARS, STOP_ACK_TIMEOUT_MS
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
from orchestrator.enums.state import State
from orchestrator.events import (
    AudioChunkReceived,
    AuthFailed,
    AuthSucceeded,
    AuthTimeout,
    Event,
    EventType,
    FatalError,
    InvocationAcknowledged,
    InvocationRequested,
    ServerError,
    SessionEnded,
    SessionReady,
    StartRequested,
    StopRequested,
    StopTimeout,
    TextUpdate,
    TransportConnected,
    TransportDisconnected,
)
from orchestrator.state_dataclass import OrchestratorState
from protocol.messages import START_CALL, STOP_CALL, build_start_call


# =============================================================================
# Timer IDs
# =============================================================================

TIMER_AUTH = "auth_timeout"
TIMER_STOP_ACK = "stop_ack_timeout"

_IN_SESSION = frozenset({State.AUTHENTICATING, State.ACTIVE, State.ENDING})


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: OrchestratorState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "generation": state.generation,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    """Side effects first, then decision logs, then state_changed logs."""
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _state_changed(
    prev: OrchestratorState,
    new: OrchestratorState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": prev.state.value,
            "to_state": new.state.value,
            "source": source,
        },
    )


def _ignore(
    state: OrchestratorState, event: Event, reason: str
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _teardown_commands() -> tuple[Command, ...]:
    """
    Full resource teardown.

    - Both pipelines closed and emptied
    - Outstanding invocations forgotten (late results are discarded)
    - All session timers cancelled
    """
    return (
        StopAudio(),
        ResetInvocations(),
        CancelTimer(timer_id=TIMER_AUTH),
        CancelTimer(timer_id=TIMER_STOP_ACK),
    )


def _end_session(
    state: OrchestratorState,
    event: Event,
    *,
    source: str,
    notify_kind: str,
    notify_data: dict[str, Any],
    end_reason: str | None,
    last_error: str | None = None,
    extra: tuple[Command, ...] = (),
    **fields: Any,
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """Transition to IDLE with full teardown and a terminal notification."""
    new_state = replace(
        state,
        state=State.IDLE,
        end_reason=end_reason,
        last_error=last_error,
        **fields,
    )
    return new_state, _logs_last(
        _teardown_commands()
        + extra
        + (
            Notify(kind=notify_kind, data=notify_data),
            _log(state, event, source, notify_data),
            _state_changed(state, new_state, event, source),
        )
    )


def _preview(result: Any) -> str:
    try:
        text = json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError):
        text = repr(result)
    if len(text) > RESULT_PREVIEW_CHARS:
        return text[:RESULT_PREVIEW_CHARS] + "..."
    return text


# =============================================================================
# Reducer
# =============================================================================

def reduce(  # pylint: disable=too-many-return-statements,too-many-branches
    state: OrchestratorState, event: Event
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Pure reducer for the voice session state machine.

    Given the current state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Generation-safe: ignores timer events armed for an older session
    """

    # ------------------------------------------------------------------
    # ERROR gating
    # ------------------------------------------------------------------
    if state.state is State.ERROR:
        return _ignore(state, event, "in_error_state")

    if isinstance(event, FatalError):
        fatal_state = replace(state, state=State.ERROR, last_error=event.reason)
        data = {"reason": event.reason, "context": event.context or {}}
        return fatal_state, _logs_last(
            _teardown_commands()
            + (
                Notify(kind="fatal_error", data=data),
                _log(state, event, "fatal_error", data),
                _state_changed(state, fatal_state, event, "fatal_error"),
            )
        )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    if isinstance(event, TransportConnected):
        return state, (_log(state, event, "transport_connected"),)

    if isinstance(event, TransportDisconnected):
        was_in_session = state.state in _IN_SESSION
        return _end_session(
            state,
            event,
            source="transport_disconnected",
            notify_kind="disconnected",
            notify_data={
                "reason": event.reason,
                "was_in_session": was_in_session,
            },
            end_reason="transport_disconnected" if was_in_session else state.end_reason,
            last_error=state.last_error,
        )

    # ------------------------------------------------------------------
    # Timers (generation-gated)
    # ------------------------------------------------------------------
    if isinstance(event, AuthTimeout):
        if event.generation != state.generation or state.state is not State.AUTHENTICATING:
            return _ignore(state, event, "auth_timeout_stale")
        return _end_session(
            state,
            event,
            source="auth_timeout",
            notify_kind="auth_timeout",
            notify_data={"timeout_ms": AUTH_TIMEOUT_MS},
            end_reason="auth_timeout",
            last_error="auth_timeout",
            # Server may still be setting up; tell it we gave up
            extra=(SendMessage(event_name=STOP_CALL),),
        )

    if isinstance(event, StopTimeout):
        if event.generation != state.generation or state.state is not State.ENDING:
            return _ignore(state, event, "stop_timeout_stale")
        return _end_session(
            state,
            event,
            source="stop_timeout",
            notify_kind="stop_timeout",
            notify_data={"timeout_ms": STOP_ACK_TIMEOUT_MS},
            end_reason="stop_timeout",
        )

    # ------------------------------------------------------------------
    # Session-wide server events
    # ------------------------------------------------------------------
    if isinstance(event, SessionEnded):
        if state.state not in _IN_SESSION:
            return _ignore(state, event, "session_ended_while_idle")
        credits = (
            event.remaining_credits
            if event.remaining_credits is not None
            else state.credits_remaining
        )
        return _end_session(
            state,
            event,
            source="session_ended",
            notify_kind="session_ended",
            notify_data={
                "reason": event.reason,
                "total_credits_used": event.total_credits_used,
                "remaining_credits": event.remaining_credits,
            },
            end_reason=event.reason or "session_ended",
            total_credits_used=event.total_credits_used,
            credits_remaining=credits,
        )

    if isinstance(event, ServerError):
        if state.state not in _IN_SESSION:
            return state, (
                Notify(
                    kind="server_error",
                    data={"error_type": event.error_type, "message": event.message},
                ),
                _log(state, event, "server_error_while_idle", {"message": event.message}),
            )
        return _end_session(
            state,
            event,
            source="server_error",
            notify_kind="server_error",
            notify_data={"error_type": event.error_type, "message": event.message},
            end_reason="server_error",
            last_error=event.message,
        )

    if isinstance(event, StartRequested) and state.state is not State.IDLE:
        return _ignore(state, event, "start_while_not_idle")

    # ==================================================================
    # IDLE
    # ==================================================================
    if state.state is State.IDLE:
        if isinstance(event, StartRequested):
            if not event.auth_key:
                return state, (
                    Notify(kind="start_rejected", data={"reason": "auth key is required"}),
                    _log(state, event, "start_rejected", {"reason": "empty_auth_key"}),
                )

            generation = state.generation + 1
            new_state = replace(
                state,
                state=State.AUTHENTICATING,
                generation=generation,
                auth_key=event.auth_key,
                system_message=event.system_message,
                voice=event.voice,
                functions=event.functions,
                credits_remaining=None,
                cost_per_minute=None,
                functions_loaded=0,
                started_at_ms=None,
                end_reason=None,
                total_credits_used=None,
                last_error=None,
            )
            return new_state, _logs_last((
                SendMessage(
                    event_name=START_CALL,
                    payload=build_start_call(
                        auth_key=event.auth_key,
                        system_message=event.system_message,
                        voice=event.voice,
                        functions=event.functions,
                    ),
                ),
                StartTimer(
                    timer_id=TIMER_AUTH,
                    duration_ms=AUTH_TIMEOUT_MS,
                    timeout_event_type=EventType.AUTH_TIMEOUT,
                    generation=generation,
                ),
                Notify(
                    kind="call_starting",
                    data={
                        "voice": event.voice,
                        "functions": [f.name for f in event.functions],
                    },
                ),
                _log(
                    new_state,
                    event,
                    "start_call",
                    {"voice": event.voice, "functions": len(event.functions)},
                ),
                _state_changed(state, new_state, event, "start_requested"),
            ))

        return _ignore(state, event, "idle_unhandled")

    # ==================================================================
    # Stop (AUTHENTICATING | ACTIVE)
    # ==================================================================
    if isinstance(event, StopRequested):
        if state.state is State.ENDING:
            return _ignore(state, event, "already_ending")

        new_state = replace(state, state=State.ENDING)
        return new_state, _logs_last((
            StopAudio(),
            CancelTimer(timer_id=TIMER_AUTH),
            SendMessage(event_name=STOP_CALL),
            StartTimer(
                timer_id=TIMER_STOP_ACK,
                duration_ms=STOP_ACK_TIMEOUT_MS,
                timeout_event_type=EventType.STOP_TIMEOUT,
                generation=state.generation,
            ),
            Notify(kind="call_stopping", data={}),
            _log(state, event, "stop_call"),
            _state_changed(state, new_state, event, "stop_requested"),
        ))

    # ==================================================================
    # AUTHENTICATING
    # ==================================================================
    if state.state is State.AUTHENTICATING:
        if isinstance(event, AuthSucceeded):
            new_state = replace(state, credits_remaining=event.credits_remaining)
            return new_state, (
                Notify(kind="auth_succeeded", data={"credits": event.credits_remaining}),
                _log(new_state, event, "auth_succeeded", {"credits": event.credits_remaining}),
            )

        if isinstance(event, AuthFailed):
            credits = (
                event.credits_remaining
                if event.credits_remaining is not None
                else state.credits_remaining
            )
            return _end_session(
                state,
                event,
                source="auth_failed",
                notify_kind="auth_failed",
                notify_data={"reason": event.reason, "credits": event.credits_remaining},
                end_reason="auth_failed",
                last_error=event.reason,
                credits_remaining=credits,
            )

        if isinstance(event, SessionReady):
            new_state = replace(
                state,
                state=State.ACTIVE,
                cost_per_minute=event.cost_per_minute,
                functions_loaded=event.functions_loaded,
                started_at_ms=event.ts_ms,
            )
            data = {
                "message": event.message,
                "functions_loaded": event.functions_loaded,
                "cost_per_minute": event.cost_per_minute,
            }
            return new_state, _logs_last((
                CancelTimer(timer_id=TIMER_AUTH),
                StartAudio(generation=state.generation),
                Notify(kind="session_ready", data=data),
                _log(new_state, event, "session_ready", data),
                _state_changed(state, new_state, event, "session_ready"),
            ))

        return _ignore(state, event, "authenticating_unhandled")

    # ==================================================================
    # ACTIVE
    # ==================================================================
    if state.state is State.ACTIVE:
        if isinstance(event, AudioChunkReceived):
            return state, (
                PlayAudio(audio_data=event.audio_data, generation=state.generation),
            )

        if isinstance(event, TextUpdate):
            return state, (
                Notify(kind="text", data={"text": event.text}),
                _log(state, event, "text_update", {"chars": len(event.text)}),
            )

        if isinstance(event, InvocationRequested):
            return state, (
                DispatchInvocation(
                    call_id=event.call_id,
                    function_name=event.function_name,
                    arguments=event.arguments,
                    generation=state.generation,
                ),
                Notify(
                    kind="function_called",
                    data={
                        "call_id": event.call_id,
                        "function_name": event.function_name,
                        "arguments": event.arguments,
                    },
                ),
                _log(
                    state,
                    event,
                    "dispatch_invocation",
                    {"call_id": event.call_id, "function_name": event.function_name},
                ),
            )

        if isinstance(event, InvocationAcknowledged):
            preview = _preview(event.result)
            return state, (
                Notify(
                    kind="function_result",
                    data={"function_name": event.function_name, "preview": preview},
                ),
                _log(state, event, "invocation_acknowledged", {"function_name": event.function_name}),
            )

        return _ignore(state, event, "active_unhandled")

    # ==================================================================
    # ENDING
    # ==================================================================
    if state.state is State.ENDING:
        if isinstance(event, InvocationAcknowledged):
            return state, (
                _log(state, event, "invocation_acknowledged", {"function_name": event.function_name}),
            )
        return _ignore(state, event, "ending_unhandled")

    return _ignore(state, event, "unknown_state")
