"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No protocol constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import DEFAULT_SYSTEM_INSTRUCTION, LIVE_MODEL_DEFAULT


def _optional(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _device(name: str) -> int | str | None:
    """PortAudio accepts either a device index or a name substring."""
    value = _optional(name)
    if value is None:
        return None
    return int(value) if value.isdigit() else value


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed down to the gateway.
    A missing api_key is NOT an error here: it is reported as a
    configuration error when a call is started.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"

    # ------------------------------------------------------------------
    # Remote agent
    # ------------------------------------------------------------------

    api_key: str | None = None
    live_model: str = LIVE_MODEL_DEFAULT
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    voice_name: str | None = None

    # ------------------------------------------------------------------
    # Audio devices
    # ------------------------------------------------------------------

    input_device: int | str | None = None
    output_device: int | str | None = None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """Load configuration from environment variables."""
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            api_key=_optional("GEMINI_API_KEY") or _optional("API_KEY"),
            live_model=os.environ.get("LIVE_MODEL", LIVE_MODEL_DEFAULT),
            system_instruction=os.environ.get(
                "SYSTEM_INSTRUCTION", DEFAULT_SYSTEM_INSTRUCTION
            ),
            voice_name=_optional("VOICE_NAME"),
            input_device=_device("INPUT_DEVICE"),
            output_device=_device("OUTPUT_DEVICE"),
        )
