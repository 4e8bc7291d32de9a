"""
Authoritative session state enumeration.

Rules:
- This enum defines ONLY the session lifecycle states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """
    Lifecycle of one voice session over one connection.

    These states represent session intent, NOT connection status.
    Audio flows only in ACTIVE. ERROR is terminal: leaving it requires
    a new gateway (new session object).
    """

    IDLE = "IDLE"
    AUTHENTICATING = "AUTHENTICATING"
    ACTIVE = "ACTIVE"
    ENDING = "ENDING"
    ERROR = "ERROR"
