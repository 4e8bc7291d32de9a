"""
Handler timing.

One METRIC_TIMER event per function handler run, emitted through
observability.logger. Durations use monotonic time; ts_ms is wall-clock.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from typing import Iterator

from observability.logger import log_event


@contextmanager
def time_invocation(
    *,
    function_name: str,
    call_id: str,
    session_id: str | None = None,
) -> Iterator[None]:
    """
    Time one handler run.

    The metric is emitted exactly once, with the outcome of the block:
    "ok", "error" (exception propagated) or "cancelled".
    """
    start_ns = time.monotonic_ns()
    outcome = "ok"
    try:
        yield
    except asyncio.CancelledError:
        outcome = "cancelled"
        raise
    except Exception:
        outcome = "error"
        raise
    finally:
        log_event({
            "ts_ms": time.time_ns() // 1_000_000,
            "event_type": "METRIC_TIMER",
            "metric": "function_handler",
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "outcome": outcome,
            "session_id": session_id,
            "call_id": call_id,
            "function_name": function_name,
        })
