# pylint: disable=missing-module-docstring,missing-function-docstring

import io
import json
from typing import Any

import pytest

from observability import logger, metrics


@pytest.fixture(autouse=True)
def _restore_logger():
    yield
    logger.configure()


def test_log_event_emits_valid_jsonl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    Logger contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    captured: list[str] = []

    def fake_print(line: str) -> None:
        captured.append(line)

    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", fake_print)

    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
        "text": "Grüße",
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1
    assert "\n" not in captured[0]

    # Payload must be preserved exactly
    assert json.loads(captured[0]) == payload


def test_unserializable_event_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    logger.log_event({"ts_ms": 7, "event_type": "BAD", "obj": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 7
    assert "BAD" in decoded["original_event_repr"]


def test_configured_stream_receives_lines() -> None:
    stream = io.StringIO()
    logger.configure(stream=stream)

    logger.log_event({"event_type": "A"})
    logger.log_event({"event_type": "B"})

    lines = stream.getvalue().splitlines()
    assert [json.loads(line)["event_type"] for line in lines] == ["A", "B"]


def test_disabled_logger_is_silent(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    logger.configure(enabled=False)

    logger.log_event({"event_type": "HIDDEN"})

    assert captured == []


# ---------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------

def test_handler_timing_emits_one_metric_even_on_error(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(metrics, "log_event", events.append)

    with pytest.raises(RuntimeError):
        with metrics.time_invocation(function_name="getWeather", call_id="c1", session_id="s1"):
            raise RuntimeError("boom")

    [event] = events
    assert event["event_type"] == "METRIC_TIMER"
    assert event["metric"] == "function_handler"
    assert event["outcome"] == "error"
    assert event["session_id"] == "s1"
    assert event["call_id"] == "c1"
    assert event["value_ms"] >= 0


def test_handler_timing_reports_success(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(metrics, "log_event", events.append)

    with metrics.time_invocation(function_name="saveNote", call_id="c2"):
        pass

    assert [e["outcome"] for e in events] == ["ok"]
    assert events[0]["function_name"] == "saveNote"
