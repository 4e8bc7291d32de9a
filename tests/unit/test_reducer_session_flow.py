# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

from constants import AUTH_TIMEOUT_MS, STOP_ACK_TIMEOUT_MS
from functions.descriptors import FunctionDescriptor
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
from orchestrator.reducer import TIMER_AUTH, TIMER_STOP_ACK, reduce
from orchestrator.state_dataclass import OrchestratorState
from protocol.messages import START_CALL, STOP_CALL


# ---------------------------------------------------------------------
# Event helpers (mirror gateway / runtime construction)
# ---------------------------------------------------------------------

WEATHER = FunctionDescriptor(name="getWeather", description="Weather lookup")


def start(auth_key: str = "key-1", ts_ms: int = 0) -> StartRequested:
    return StartRequested(
        event_type=EventType.START_REQUESTED,
        ts_ms=ts_ms,
        auth_key=auth_key,
        system_message="be helpful",
        voice="female",
        functions=(WEATHER,),
    )


def stop(ts_ms: int = 0) -> StopRequested:
    return StopRequested(event_type=EventType.STOP_REQUESTED, ts_ms=ts_ms)


def auth_ok(credits: float | None = 100.0) -> AuthSucceeded:
    return AuthSucceeded(event_type=EventType.AUTH_SUCCEEDED, ts_ms=0, credits_remaining=credits)


def auth_failed(reason: str = "invalid key") -> AuthFailed:
    return AuthFailed(event_type=EventType.AUTH_FAILED, ts_ms=0, reason=reason)


def ready(ts_ms: int = 1000) -> SessionReady:
    return SessionReady(
        event_type=EventType.SESSION_READY,
        ts_ms=ts_ms,
        cost_per_minute=1.5,
        functions_loaded=1,
        message="ready",
    )


def ended(reason: str | None = "user_stopped") -> SessionEnded:
    return SessionEnded(
        event_type=EventType.SESSION_ENDED,
        ts_ms=0,
        reason=reason,
        total_credits_used=2.5,
        remaining_credits=97.5,
    )


def disconnected(reason: str = "transport close") -> TransportDisconnected:
    return TransportDisconnected(
        event_type=EventType.TRANSPORT_DISCONNECTED, ts_ms=0, reason=reason
    )


def audio(data: str = "AAA=") -> AudioChunkReceived:
    return AudioChunkReceived(event_type=EventType.AUDIO_CHUNK_RECEIVED, ts_ms=0, audio_data=data)


def invocation(call_id: str = "c1") -> InvocationRequested:
    return InvocationRequested(
        event_type=EventType.INVOCATION_REQUESTED,
        ts_ms=0,
        call_id=call_id,
        function_name="getWeather",
        arguments={"city": "London"},
    )


def auth_timeout(generation: int) -> AuthTimeout:
    return AuthTimeout(event_type=EventType.AUTH_TIMEOUT, ts_ms=0, generation=generation)


def stop_timeout(generation: int) -> StopTimeout:
    return StopTimeout(event_type=EventType.STOP_TIMEOUT, ts_ms=0, generation=generation)


def of_type(commands: tuple[Command, ...], cls: type) -> list:
    return [c for c in commands if isinstance(c, cls)]


def notify_kinds(commands: tuple[Command, ...]) -> list[str]:
    return [c.kind for c in of_type(commands, Notify)]


def decisions(commands: tuple[Command, ...]) -> list[str]:
    return [c.event["decision"] for c in of_type(commands, LogEvent)]


def active_state() -> OrchestratorState:
    s, _ = reduce(OrchestratorState(), start())
    s, _ = reduce(s, auth_ok())
    s, _ = reduce(s, ready())
    return s


def assert_full_teardown(commands: tuple[Command, ...]) -> None:
    assert of_type(commands, StopAudio)
    assert of_type(commands, ResetInvocations)
    cancelled = {c.timer_id for c in of_type(commands, CancelTimer)}
    assert cancelled == {TIMER_AUTH, TIMER_STOP_ACK}


# ---------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------

def test_start_from_idle_authenticates():
    s0 = OrchestratorState()
    s1, cmds = reduce(s0, start())

    assert s1.state is State.AUTHENTICATING
    assert s1.generation == 1
    assert s1.auth_key == "key-1"
    assert s1.functions == (WEATHER,)

    [send] = of_type(cmds, SendMessage)
    assert send.event_name == START_CALL
    assert send.payload["voice_choice"] == "female"
    assert send.payload["custom_functions"] == [WEATHER.to_wire()]

    [timer] = of_type(cmds, StartTimer)
    assert timer.timer_id == TIMER_AUTH
    assert timer.duration_ms == AUTH_TIMEOUT_MS
    assert timer.generation == 1

    assert notify_kinds(cmds) == ["call_starting"]


def test_start_with_empty_key_is_rejected():
    s0 = OrchestratorState()
    s1, cmds = reduce(s0, start(auth_key=""))

    assert s1 is s0
    assert not of_type(cmds, SendMessage)
    assert notify_kinds(cmds) == ["start_rejected"]


def test_start_while_active_is_ignored():
    s = active_state()
    s2, cmds = reduce(s, start(auth_key="other"))

    assert s2 is s
    assert s2.generation == 1
    assert not of_type(cmds, SendMessage)
    assert decisions(cmds) == ["ignore"]
    assert cmds[0].event["details"]["reason"] == "start_while_not_idle"


def test_each_start_bumps_generation():
    s = active_state()
    s, _ = reduce(s, ended())
    s, _ = reduce(s, start())

    assert s.generation == 2
    assert s.state is State.AUTHENTICATING
    assert s.credits_remaining is None
    assert s.end_reason is None


# ---------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------

def test_auth_success_records_credits_and_stays_authenticating():
    s, _ = reduce(OrchestratorState(), start())
    s2, cmds = reduce(s, auth_ok(55.0))

    assert s2.state is State.AUTHENTICATING
    assert s2.credits_remaining == 55.0
    assert notify_kinds(cmds) == ["auth_succeeded"]


def test_auth_failed_returns_to_idle_with_reason():
    s, _ = reduce(OrchestratorState(), start())
    s2, cmds = reduce(s, auth_failed("insufficient credits"))

    assert s2.state is State.IDLE
    assert s2.last_error == "insufficient credits"
    assert s2.end_reason == "auth_failed"
    assert_full_teardown(cmds)
    [note] = of_type(cmds, Notify)
    assert note.kind == "auth_failed"
    assert note.data["reason"] == "insufficient credits"


def test_session_ready_activates_audio_for_current_generation():
    s, _ = reduce(OrchestratorState(), start())
    s, _ = reduce(s, auth_ok())
    s2, cmds = reduce(s, ready(ts_ms=4321))

    assert s2.state is State.ACTIVE
    assert s2.cost_per_minute == 1.5
    assert s2.functions_loaded == 1
    assert s2.started_at_ms == 4321
    assert of_type(cmds, StartAudio) == [StartAudio(generation=1)]
    assert [c.timer_id for c in of_type(cmds, CancelTimer)] == [TIMER_AUTH]
    assert notify_kinds(cmds) == ["session_ready"]


def test_auth_timeout_for_current_generation_gives_up():
    s, _ = reduce(OrchestratorState(), start())
    s2, cmds = reduce(s, auth_timeout(1))

    assert s2.state is State.IDLE
    assert s2.end_reason == "auth_timeout"
    assert_full_teardown(cmds)
    assert [c.event_name for c in of_type(cmds, SendMessage)] == [STOP_CALL]
    assert notify_kinds(cmds) == ["auth_timeout"]


def test_stale_auth_timeout_is_ignored():
    s = active_state()
    s, _ = reduce(s, ended())
    s, _ = reduce(s, start())  # generation 2

    s2, cmds = reduce(s, auth_timeout(1))

    assert s2 is s
    assert decisions(cmds) == ["ignore"]


def test_auth_timeout_after_ready_is_ignored():
    s = active_state()
    s2, _ = reduce(s, auth_timeout(1))

    assert s2 is s


# ---------------------------------------------------------------------
# Active
# ---------------------------------------------------------------------

def test_audio_in_active_is_play_only():
    s = active_state()
    s2, cmds = reduce(s, audio("QUJD"))

    assert s2 is s
    assert cmds == (PlayAudio(audio_data="QUJD", generation=1),)


def test_audio_outside_active_is_ignored():
    s, _ = reduce(OrchestratorState(), start())
    _, cmds = reduce(s, audio())

    assert not of_type(cmds, PlayAudio)


def test_text_update_notifies():
    s = active_state()
    _, cmds = reduce(s, TextUpdate(event_type=EventType.TEXT_UPDATE, ts_ms=0, text="Hello"))

    [note] = of_type(cmds, Notify)
    assert note.kind == "text"
    assert note.data == {"text": "Hello"}


def test_invocation_dispatched_with_generation():
    s = active_state()
    _, cmds = reduce(s, invocation("c7"))

    [dispatch] = of_type(cmds, DispatchInvocation)
    assert dispatch.call_id == "c7"
    assert dispatch.function_name == "getWeather"
    assert dispatch.arguments == {"city": "London"}
    assert dispatch.generation == 1
    assert notify_kinds(cmds) == ["function_called"]


def test_invocation_outside_active_is_ignored():
    s, _ = reduce(OrchestratorState(), start())
    _, cmds = reduce(s, invocation())

    assert not of_type(cmds, DispatchInvocation)


def test_acknowledgement_preview_is_truncated():
    s = active_state()
    ack = InvocationAcknowledged(
        event_type=EventType.INVOCATION_ACKNOWLEDGED,
        ts_ms=0,
        function_name="getWeather",
        result={"data": "x" * 500},
    )
    _, cmds = reduce(s, ack)

    [note] = of_type(cmds, Notify)
    assert note.kind == "function_result"
    assert note.data["preview"].endswith("...")
    assert len(note.data["preview"]) == 103


# ---------------------------------------------------------------------
# Stop / end
# ---------------------------------------------------------------------

def test_stop_from_active_enters_ending():
    s = active_state()
    s2, cmds = reduce(s, stop())

    assert s2.state is State.ENDING
    assert of_type(cmds, StopAudio)
    assert [c.event_name for c in of_type(cmds, SendMessage)] == [STOP_CALL]
    [timer] = of_type(cmds, StartTimer)
    assert timer.timer_id == TIMER_STOP_ACK
    assert timer.duration_ms == STOP_ACK_TIMEOUT_MS
    assert timer.generation == 1


def test_stop_while_ending_is_ignored():
    s, _ = reduce(active_state(), stop())
    s2, cmds = reduce(s, stop())

    assert s2 is s
    assert not of_type(cmds, SendMessage)


def test_stop_while_idle_is_ignored():
    s0 = OrchestratorState()
    s1, cmds = reduce(s0, stop())

    assert s1 is s0
    assert not of_type(cmds, SendMessage)


def test_session_ended_after_stop_records_usage():
    s, _ = reduce(active_state(), stop())
    s2, cmds = reduce(s, ended("user_stopped"))

    assert s2.state is State.IDLE
    assert s2.total_credits_used == 2.5
    assert s2.credits_remaining == 97.5
    assert s2.end_reason == "user_stopped"
    assert_full_teardown(cmds)
    assert notify_kinds(cmds) == ["session_ended"]


def test_server_initiated_end_from_active():
    s2, cmds = reduce(active_state(), ended("insufficient_user_credits"))

    assert s2.state is State.IDLE
    [note] = of_type(cmds, Notify)
    assert note.data["reason"] == "insufficient_user_credits"


def test_stop_timeout_closes_locally():
    s, _ = reduce(active_state(), stop())
    s2, cmds = reduce(s, stop_timeout(1))

    assert s2.state is State.IDLE
    assert s2.end_reason == "stop_timeout"
    assert notify_kinds(cmds) == ["stop_timeout"]


def test_stop_timeout_from_older_generation_is_ignored():
    s, _ = reduce(active_state(), stop())
    s2, _ = reduce(s, stop_timeout(0))

    assert s2 is s


def test_session_ended_while_idle_is_ignored():
    s0 = OrchestratorState()
    s1, cmds = reduce(s0, ended())

    assert s1 is s0
    assert decisions(cmds) == ["ignore"]


def test_ending_ignores_audio_and_invocations():
    s, _ = reduce(active_state(), stop())

    _, audio_cmds = reduce(s, audio())
    _, call_cmds = reduce(s, invocation())

    assert not of_type(audio_cmds, PlayAudio)
    assert not of_type(call_cmds, DispatchInvocation)


# ---------------------------------------------------------------------
# Errors / connection
# ---------------------------------------------------------------------

def test_server_error_in_session_returns_to_idle():
    s2, cmds = reduce(
        active_state(),
        ServerError(event_type=EventType.SERVER_ERROR, ts_ms=0, error_type="x", message="boom"),
    )

    assert s2.state is State.IDLE
    assert s2.last_error == "boom"
    assert_full_teardown(cmds)
    assert notify_kinds(cmds) == ["server_error"]


def test_server_error_while_idle_only_notifies():
    s0 = OrchestratorState()
    s1, cmds = reduce(
        s0,
        ServerError(event_type=EventType.SERVER_ERROR, ts_ms=0, error_type=None, message="boom"),
    )

    assert s1 is s0
    assert notify_kinds(cmds) == ["server_error"]
    assert not of_type(cmds, StopAudio)


def test_disconnect_mid_session_tears_down():
    s2, cmds = reduce(active_state(), disconnected())

    assert s2.state is State.IDLE
    assert s2.end_reason == "transport_disconnected"
    assert_full_teardown(cmds)
    [note] = of_type(cmds, Notify)
    assert note.kind == "disconnected"
    assert note.data == {"reason": "transport close", "was_in_session": True}


def test_transport_connected_only_logs():
    s0 = OrchestratorState()
    s1, cmds = reduce(s0, TransportConnected(event_type=EventType.TRANSPORT_CONNECTED, ts_ms=0))

    assert s1 is s0
    assert all(isinstance(c, LogEvent) for c in cmds)


def test_fatal_error_is_terminal():
    s, cmds = reduce(
        active_state(),
        FatalError(event_type=EventType.FATAL_ERROR, ts_ms=0, reason="invariant broken"),
    )

    assert s.state is State.ERROR
    assert_full_teardown(cmds)
    assert notify_kinds(cmds) == ["fatal_error"]

    for event in (start(), disconnected(), ready(), stop()):
        s2, cmds2 = reduce(s, event)
        assert s2 is s
        assert cmds2[0].event["details"]["reason"] == "in_error_state"


# ---------------------------------------------------------------------
# Command ordering
# ---------------------------------------------------------------------

def test_state_changed_log_is_last():
    _, cmds = reduce(active_state(), stop())

    assert isinstance(cmds[-1], LogEvent)
    assert cmds[-1].event["decision"] == "state_changed"
    assert cmds[-1].event["details"] == {
        "from_state": "ACTIVE",
        "to_state": "ENDING",
        "source": "stop_requested",
    }
    first_log = next(i for i, c in enumerate(cmds) if isinstance(c, LogEvent))
    assert all(isinstance(c, LogEvent) for c in cmds[first_log:])


def test_reducer_does_not_mutate_input_state():
    s = active_state()
    snapshot = replace(s)
    reduce(s, disconnected())

    assert s == snapshot
