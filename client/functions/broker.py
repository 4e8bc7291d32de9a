"""
Function invocation broker.

Responsibilities:
- Own the call_id -> outstanding invocation map (only writer)
- Run the named handler for each invocation in its own task
- Send exactly one function_response per call_id, exactly once
- Discard results with no outstanding invocation (duplicate, unknown,
  or arriving after teardown) with a diagnostic

Non-responsibilities:
- NO session state decisions
- NO forced cancellation of running handlers on teardown
- NO ordering guarantees between invocations
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from dataclasses import dataclass
from typing import Any, Mapping

from adapters.transport.base import ChannelError, MessageChannel
from functions.registry import FunctionRegistry
from observability.logger import log_event
from observability.metrics import time_invocation
from protocol.messages import FUNCTION_RESPONSE, build_function_response


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class _Outstanding:
    call_id: str
    function_name: str
    generation: int


# ---------------------------------------------------------------------
# Result shaping
# ---------------------------------------------------------------------

def unknown_function_result(name: str, available: list[str]) -> dict[str, Any]:
    return {
        "status": "error",
        "error": f"Function '{name}' not implemented",
        "message": "This function is not available on this client",
        "available": available,
    }


def handler_error_result(exc: BaseException) -> dict[str, Any]:
    return {
        "status": "error",
        "error": str(exc) or type(exc).__name__,
        "error_type": type(exc).__name__,
    }


def normalize_result(raw: Any) -> dict[str, Any]:
    """
    Shape a handler return value into a result payload.

    Mappings carrying their own "status" pass through; anything else is
    wrapped as a success.
    """
    if isinstance(raw, Mapping) and "status" in raw:
        return dict(raw)
    return {"status": "success", "data": raw}


def unencodable_result_error(result: Mapping[str, Any]) -> TypeError | ValueError | None:
    """Return the json error for a result the wire cannot carry, else None."""
    try:
        json.dumps(result)
    except (TypeError, ValueError) as exc:
        return exc
    return None


# ---------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------

class InvocationBroker:
    """
    Per-session invocation broker.

    Lifecycle of one call:
    1. dispatch(call_id, ...) inserts the outstanding entry, starts a task
    2. task runs the handler (or synthesizes an unknown-function result)
    3. complete(call_id, ...) removes the entry and sends the result

    reset() drops all entries; handler tasks keep running and their
    results are discarded when they arrive.
    """

    def __init__(
        self,
        *,
        registry: FunctionRegistry,
        channel: MessageChannel,
        session_id: str | None = None,
    ) -> None:
        self._registry = registry
        self._channel = channel
        self._session_id = session_id
        self._outstanding: dict[str, _Outstanding] = {}
        # call ids already dispatched in the current generation
        self._dispatched: set[str] = set()
        self._dispatched_generation: int | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def outstanding(self) -> list[str]:
        return list(self._outstanding)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self,
        *,
        call_id: str,
        function_name: str,
        arguments: dict[str, Any],
        generation: int,
    ) -> bool:
        """
        Register an invocation and start its handler task.

        Returns False (and runs nothing) if call_id was already dispatched
        in this generation, whether or not its result has been sent.
        """
        if generation != self._dispatched_generation:
            self._dispatched.clear()
            self._dispatched_generation = generation

        if call_id in self._dispatched or call_id in self._outstanding:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVOCATION_DUPLICATE_IGNORED",
                "session_id": self._session_id,
                "call_id": call_id,
                "function_name": function_name,
                "outstanding": call_id in self._outstanding,
            })
            return False

        self._dispatched.add(call_id)
        self._outstanding[call_id] = _Outstanding(
            call_id=call_id,
            function_name=function_name,
            generation=generation,
        )

        task = asyncio.create_task(
            self._run(
                call_id=call_id,
                function_name=function_name,
                arguments=arguments,
                generation=generation,
            )
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(
        self,
        *,
        call_id: str,
        function_name: str,
        arguments: dict[str, Any],
        generation: int,
    ) -> None:
        handler = self._registry.get(function_name)

        if handler is None:
            result = unknown_function_result(function_name, self._registry.names())
        else:
            try:
                with time_invocation(
                    function_name=function_name,
                    call_id=call_id,
                    session_id=self._session_id,
                ):
                    raw = handler(arguments)
                    if inspect.isawaitable(raw):
                        raw = await raw
                result = normalize_result(raw)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "INVOCATION_HANDLER_FAILED",
                    "session_id": self._session_id,
                    "call_id": call_id,
                    "function_name": function_name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                })
                result = handler_error_result(exc)

            encode_error = unencodable_result_error(result)
            if encode_error is not None:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "INVOCATION_RESULT_UNENCODABLE",
                    "session_id": self._session_id,
                    "call_id": call_id,
                    "function_name": function_name,
                    "error": str(encode_error),
                })
                result = handler_error_result(encode_error)

        await self.complete(call_id, result, generation=generation)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def complete(
        self,
        call_id: str,
        result: Mapping[str, Any],
        *,
        generation: int,
    ) -> bool:
        """
        Send the result for an outstanding invocation.

        Returns True if a function_response was sent. Unknown, duplicate,
        or stale results produce no outbound message.
        """
        entry = self._outstanding.get(call_id)
        if entry is None or entry.generation != generation:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVOCATION_RESULT_DISCARDED",
                "session_id": self._session_id,
                "call_id": call_id,
                "generation": generation,
                "reason": "unknown_call_id" if entry is None else "stale_generation",
            })
            return False

        del self._outstanding[call_id]

        try:
            await self._channel.send(
                FUNCTION_RESPONSE,
                build_function_response(
                    call_id=call_id,
                    function_name=entry.function_name,
                    result=result,
                ),
            )
        except ChannelError as e:
            # Call id is consumed either way; the disconnect handler tears down
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVOCATION_RESULT_SEND_FAILED",
                "session_id": self._session_id,
                "call_id": call_id,
                "error": str(e),
            })
            return False

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "INVOCATION_RESULT_SENT",
            "session_id": self._session_id,
            "call_id": call_id,
            "function_name": entry.function_name,
            "status": result.get("status"),
        })
        return True

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Forget all outstanding invocations. Running handlers are left alone."""
        if self._outstanding:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVOCATIONS_RESET",
                "session_id": self._session_id,
                "call_ids": list(self._outstanding),
            })
        self._outstanding.clear()
        self._dispatched.clear()
        self._dispatched_generation = None

    async def wait_idle(self) -> None:
        """Wait until every handler task started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Process shutdown: forget calls and cancel handler tasks."""
        self.reset()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
