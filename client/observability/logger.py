"""
JSONL event logger.

- Write one JSON object per line
- Output to stderr by default, or a configured stream (log file)
- No buffering, no batching
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
from typing import Any, Callable, Mapping, TextIO


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests, swappable via configure())
# ------------------------------------------------------------------

_stream: TextIO | None = None
_enabled: bool = True


def _stream_print(line: str) -> None:
    out = _stream if _stream is not None else sys.stderr
    out.write(line + "\n")
    out.flush()

_print: Callable[[str], None] = _stream_print


def configure(*, enabled: bool = True, stream: TextIO | None = None) -> None:
    """
    Select where log lines go.

    stream=None writes to stderr so stdout stays free for the terminal UI.
    enabled=False turns log_event into a no-op.
    """
    global _stream, _enabled  # pylint: disable=global-statement
    _stream = stream
    _enabled = enabled


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, session_id, state, etc.

    This function:
    - Serializes to JSON
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    if not _enabled:
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
