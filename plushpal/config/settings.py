"""
Environment-based settings for the PlushPal client.

The long-lived OpenAI API key is the only required value. Everything else
has a default taken from plushpal.config.constants.
"""

import os
from typing import List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, SecretStr

from plushpal.config.constants import (
    DEFAULT_INSTRUCTIONS,
    DEFAULT_MODALITIES,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_VOICE,
    REALTIME_SESSIONS_URL,
    REALTIME_URL,
)
from plushpal.exceptions import ConfigurationError


class Settings(BaseModel):
    """Runtime configuration for one PlushPal process."""

    api_key: SecretStr
    model: str = DEFAULT_REALTIME_MODEL
    voice: str = DEFAULT_VOICE
    instructions: str = DEFAULT_INSTRUCTIONS
    modalities: List[str] = Field(default_factory=lambda: list(DEFAULT_MODALITIES))
    sessions_url: str = REALTIME_SESSIONS_URL
    realtime_url: str = REALTIME_URL
    input_device_index: Optional[int] = None
    output_device_index: Optional[int] = None
    # No timeouts unless explicitly configured
    http_timeout: Optional[float] = None
    channel_open_timeout: Optional[float] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ)

        Returns:
            Settings: The populated settings

        Raises:
            ConfigurationError: If OPENAI_API_KEY is missing or a numeric value is invalid
        """
        env = os.environ if env is None else env

        api_key = env.get("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable not set")

        input_device_index, output_device_index = audio_device_indexes(env)
        return cls(
            api_key=api_key,
            model=env.get("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL),
            voice=env.get("OPENAI_REALTIME_VOICE", DEFAULT_VOICE),
            instructions=env.get("PLUSHPAL_INSTRUCTIONS", DEFAULT_INSTRUCTIONS),
            input_device_index=input_device_index,
            output_device_index=output_device_index,
            http_timeout=_parse_number(env, "PLUSHPAL_HTTP_TIMEOUT", float),
            channel_open_timeout=_parse_number(env, "PLUSHPAL_CHANNEL_OPEN_TIMEOUT", float),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def audio_device_indexes(env: Optional[Mapping[str, str]] = None) -> Tuple[Optional[int], Optional[int]]:
    """Return the (input, output) PyAudio device indexes configured in the environment."""
    env = os.environ if env is None else env
    return (
        _parse_number(env, "PLUSHPAL_INPUT_DEVICE", int),
        _parse_number(env, "PLUSHPAL_OUTPUT_DEVICE", int),
    )


def _parse_number(env: Mapping[str, str], name: str, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
