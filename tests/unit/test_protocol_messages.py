# pylint: disable=missing-module-docstring,missing-function-docstring
import pytest

from constants import DEFAULT_COST_PER_MINUTE
from functions.descriptors import FunctionDescriptor, ParameterSpec
from orchestrator.events import (
    AudioChunkReceived,
    AuthFailed,
    AuthSucceeded,
    EventType,
    InvocationAcknowledged,
    InvocationRequested,
    ServerError,
    SessionEnded,
    SessionReady,
    TextUpdate,
)
from protocol.messages import (
    INBOUND_MESSAGES,
    MalformedMessage,
    ProtocolError,
    UnknownMessage,
    build_audio_data,
    build_function_response,
    build_start_call,
    parse_inbound,
)


# ---------------------------------------------------------------------
# Outbound builders
# ---------------------------------------------------------------------

def test_start_call_payload_shape():
    fn = FunctionDescriptor(
        name="getWeather",
        description="Weather lookup",
        parameters=(ParameterSpec("city", "string", "City name", required=True),),
    )

    payload = build_start_call(
        auth_key="k1",
        system_message="be brief",
        voice="female",
        functions=(fn,),
    )

    assert payload == {
        "auth_key": "k1",
        "system_message": "be brief",
        "voice_choice": "female",
        "custom_functions": [
            {
                "name": "getWeather",
                "description": "Weather lookup",
                "parameters": [
                    {
                        "name": "city",
                        "type": "string",
                        "description": "City name",
                        "required": True,
                    }
                ],
            }
        ],
    }


def test_audio_data_and_function_response_payloads():
    assert build_audio_data(audio_data="AAA=", has_audio=False, max_amplitude=0.0) == {
        "audio_data": "AAA=",
        "has_audio": False,
        "max_amplitude": 0.0,
    }
    assert build_function_response(
        call_id="c1", function_name="f", result={"status": "success"}
    ) == {"call_id": "c1", "function_name": "f", "result": {"status": "success"}}


# ---------------------------------------------------------------------
# Inbound parsing
# ---------------------------------------------------------------------

def test_inbound_vocabulary():
    assert set(INBOUND_MESSAGES) == {
        "auth_success",
        "auth_failed",
        "session_ready",
        "session_ended",
        "text_response",
        "audio_response",
        "function_called",
        "function_result",
        "error",
    }


def test_auth_success():
    event = parse_inbound("auth_success", {"credits": 42}, ts_ms=5)

    assert isinstance(event, AuthSucceeded)
    assert event.event_type is EventType.AUTH_SUCCEEDED
    assert event.ts_ms == 5
    assert event.credits_remaining == 42.0


def test_auth_failed_defaults_reason():
    event = parse_inbound("auth_failed", {}, ts_ms=0)

    assert isinstance(event, AuthFailed)
    assert event.reason == "authentication failed"
    assert event.credits_remaining is None


def test_session_ready_defaults():
    event = parse_inbound("session_ready", None, ts_ms=0)

    assert isinstance(event, SessionReady)
    assert event.cost_per_minute == DEFAULT_COST_PER_MINUTE
    assert event.functions_loaded == 0
    assert event.message == ""


def test_session_ended_fields():
    event = parse_inbound(
        "session_ended",
        {"reason": "insufficient_user_credits", "total_credits_used": 1.25, "remaining_credits": 0},
        ts_ms=0,
    )

    assert isinstance(event, SessionEnded)
    assert event.reason == "insufficient_user_credits"
    assert event.total_credits_used == 1.25
    assert event.remaining_credits == 0.0


def test_text_and_audio():
    text = parse_inbound("text_response", {"text": "hi"}, ts_ms=0)
    audio = parse_inbound("audio_response", {"audio_data": "AAA="}, ts_ms=0)

    assert isinstance(text, TextUpdate) and text.text == "hi"
    assert isinstance(audio, AudioChunkReceived) and audio.audio_data == "AAA="


def test_function_called_with_object_arguments():
    event = parse_inbound(
        "function_called",
        {"function_name": "getWeather", "arguments": {"city": "London"}, "call_id": 17},
        ts_ms=0,
    )

    assert isinstance(event, InvocationRequested)
    assert event.call_id == "17"
    assert event.arguments == {"city": "London"}


def test_function_called_with_json_string_arguments():
    event = parse_inbound(
        "function_called",
        {"function_name": "getWeather", "arguments": '{"city": "Paris"}', "call_id": "c9"},
        ts_ms=0,
    )

    assert event.arguments == {"city": "Paris"}


def test_function_called_missing_arguments_is_empty():
    event = parse_inbound("function_called", {"function_name": "f", "call_id": "c"}, ts_ms=0)

    assert event.arguments == {}


def test_function_result_and_error():
    ack = parse_inbound("function_result", {"function_name": "f", "result": {"ok": 1}}, ts_ms=0)
    err = parse_inbound("error", {"type": "rate_limit", "message": "slow down"}, ts_ms=0)

    assert isinstance(ack, InvocationAcknowledged) and ack.result == {"ok": 1}
    assert isinstance(err, ServerError)
    assert err.error_type == "rate_limit"
    assert err.message == "slow down"


def test_error_without_message_gets_default():
    err = parse_inbound("error", {}, ts_ms=0)

    assert err.message == "unknown server error"
    assert err.error_type is None


# ---------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------

def test_unknown_message():
    with pytest.raises(UnknownMessage):
        parse_inbound("welcome_bonus", {}, ts_ms=0)


@pytest.mark.parametrize(
    "name,data",
    [
        ("auth_success", ["not", "an", "object"]),
        ("auth_success", {"credits": "lots"}),
        ("auth_success", {"credits": True}),
        ("text_response", {}),
        ("audio_response", {"audio_data": 123}),
        ("function_called", {"function_name": "f"}),
        ("function_called", {"function_name": "f", "call_id": "c", "arguments": "{broken"}),
        ("function_called", {"function_name": "f", "call_id": "c", "arguments": [1, 2]}),
        ("function_result", {"result": {}}),
    ],
)
def test_malformed_messages(name, data):
    with pytest.raises(MalformedMessage):
        parse_inbound(name, data, ts_ms=0)


def test_protocol_errors_share_a_base():
    assert issubclass(UnknownMessage, ProtocolError)
    assert issubclass(MalformedMessage, ProtocolError)
