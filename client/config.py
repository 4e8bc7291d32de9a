"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import DEFAULT_SYSTEM_MESSAGE, DEFAULT_VOICE


DEFAULT_SERVER_URL = "https://sts.aivoco.on.cloud.vispark.in"


def _optional_int(value: str | None) -> int | None:
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the CLI and SessionGateway.
    """

    # ------------------------------------------------------------------
    # Remote service
    # ------------------------------------------------------------------

    server_url: str = DEFAULT_SERVER_URL
    auth_key: str | None = None

    # ------------------------------------------------------------------
    # Session defaults
    # ------------------------------------------------------------------

    voice: str = DEFAULT_VOICE
    system_message: str = DEFAULT_SYSTEM_MESSAGE

    # ------------------------------------------------------------------
    # Local functions
    # ------------------------------------------------------------------

    notes_dir: str = "./notes"

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    input_device: int | None = None
    output_device: int | None = None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    # stderr shares the terminal with the display, so logs are opt-in
    # unless they go to a file
    enable_json_logs: bool = False
    log_file: str | None = None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a device id is not an integer.
        """
        log_file = os.environ.get("LOG_FILE") or None
        return AppConfig(
            server_url=os.environ.get("S2S_SERVER_URL", DEFAULT_SERVER_URL),
            auth_key=os.environ.get("S2S_AUTH_KEY") or None,

            voice=os.environ.get("S2S_VOICE", DEFAULT_VOICE),
            system_message=os.environ.get("S2S_SYSTEM_MESSAGE", DEFAULT_SYSTEM_MESSAGE),

            notes_dir=os.environ.get("S2S_NOTES_DIR", "./notes"),

            input_device=_optional_int(os.environ.get("S2S_INPUT_DEVICE")),
            output_device=_optional_int(os.environ.get("S2S_OUTPUT_DEVICE")),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1" if log_file else "0") == "1",
            log_file=log_file,
        )
