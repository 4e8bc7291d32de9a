"""
BEHAVIOR CONSTANTS
------------------
Single source of truth for every value that changes runtime behavior.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (URLs, keys, devices) live in config.py.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# PCM Format (shared)
# =============================================================================

AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit, little-endian)
PCM16_FULL_SCALE: Final[float] = 32768.0

# =============================================================================
# Outbound capture (mic -> server)
# =============================================================================
# Rates are fixed per direction and never negotiated.

CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000
CAPTURE_BLOCK_MS: Final[int] = 100
CAPTURE_BLOCK_FRAMES: Final[int] = (CAPTURE_SAMPLE_RATE_HZ * CAPTURE_BLOCK_MS) // 1000

# Presence hint: a chunk is "significant" if any sample exceeds this
# normalized amplitude. Advisory only for the remote side.
SIGNIFICANT_AUDIO_THRESHOLD: Final[float] = 0.01

# Pending outbound audio bound; oldest frames are dropped beyond it
OUTBOUND_AUDIO_Q_MAX_S: Final[float] = 2.0

# Max wait for the channel to accept one audio message before dropping it
OUTBOUND_SEND_TIMEOUT_MS: Final[int] = 250

# =============================================================================
# Inbound playback (server -> speaker)
# =============================================================================

PLAYBACK_SAMPLE_RATE_HZ: Final[int] = 24_000

# Synthesized audio may arrive much faster than real time
PLAYBACK_AUDIO_Q_MAX_S: Final[float] = 120.0

# =============================================================================
# Session timing
# =============================================================================

# authenticating -> idle if session_ready never arrives
AUTH_TIMEOUT_MS: Final[int] = 15_000

# ending -> idle if session_ended never arrives after stop_call
STOP_ACK_TIMEOUT_MS: Final[int] = 5_000

# =============================================================================
# Session defaults
# =============================================================================

DEFAULT_VOICE: Final[str] = "alloy"
DEFAULT_SYSTEM_MESSAGE: Final[str] = (
    "You are a helpful AI assistant with access to various functions."
)

# Default cost reported when session_ready omits it
DEFAULT_COST_PER_MINUTE: Final[float] = 1.0

# =============================================================================
# Observability
# =============================================================================

NOTIFICATION_HISTORY_MAX: Final[int] = 200
RESULT_PREVIEW_CHARS: Final[int] = 100

