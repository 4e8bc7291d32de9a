"""
Authoritative session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from functions.descriptors import FunctionDescriptor
from orchestrator.enums.state import State


@dataclass(frozen=True)
class OrchestratorState:
    """Immutable snapshot of all session-owned control state."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: State = State.IDLE

    # Bumped on every accepted start. Timers, audio and invocation
    # results tagged with an older generation are stale.
    generation: int = 0

    # ------------------------------------------------------------------
    # Start request snapshot (frozen for the session)
    # ------------------------------------------------------------------
    auth_key: str = ""
    system_message: str = ""
    voice: str = ""
    functions: tuple[FunctionDescriptor, ...] = ()

    # ------------------------------------------------------------------
    # Server-reported session figures
    # ------------------------------------------------------------------
    credits_remaining: float | None = None
    cost_per_minute: float | None = None
    functions_loaded: int = 0
    started_at_ms: int | None = None

    # ------------------------------------------------------------------
    # Last terminal outcome
    # ------------------------------------------------------------------
    end_reason: str | None = None
    total_credits_used: float | None = None
    last_error: str | None = None
