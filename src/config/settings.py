"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_parse_none_str="none",
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # OpenAI Realtime
    openai_api_key: str | None = Field(
        default=None,
        description="Bearer token for the Realtime API. Missing key disables the outbound leg.",
    )
    openai_realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    openai_realtime_model: str = Field(default="gpt-4o-realtime-preview-2024-10-01")
    openai_beta_header: str = Field(default="realtime=v1")

    # Session negotiation
    realtime_voice: str = Field(default="alloy")
    realtime_temperature: float = Field(default=0.8, ge=0.6, le=1.2)
    realtime_modalities: list[str] = Field(default_factory=lambda: ["text", "audio"])
    realtime_turn_detection: str = Field(default="server_vad")
    realtime_audio_format: str = Field(
        default="g711_ulaw",
        description="Used for both input and output; Twilio streams 8kHz mu-law.",
    )
    realtime_instructions: str | None = Field(
        default=None,
        description="Overrides the persona prompt shipped in prompts/system_prompt.txt.",
    )
    session_update_delay_seconds: float | None = Field(
        default=0.25,
        ge=0.0,
        description=(
            "Delay between socket open and session.update. "
            "\"none\" waits for the session.created event instead."
        ),
    )

    # Twilio
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for the media stream (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
