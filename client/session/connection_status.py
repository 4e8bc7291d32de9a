"""
Connection status tracking for voice sessions.

Connection lifecycle is tracked separately from the session state machine:
connection_status: DOWN | CONNECTING | UP

This is pure data owned by SessionGateway, not by orchestrator state.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    Connection lifecycle status.

    Separate from and independent of orchestrator State enum.
    IDLE can occur with any ConnectionStatus; a start requires UP.
    """
    DOWN = "DOWN"              # Not connected
    CONNECTING = "CONNECTING"  # Connect in progress
    UP = "UP"                  # Socket.IO connection established
