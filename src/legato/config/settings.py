"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.

Nested groups are not strict: values arriving from the environment are strings
and are coerced to the declared types.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.constants import (
    AudioConstants,
    LimitConstants,
    LogLevels,
    TimeConstants,
)
from ..domain.shared.messages import ErrorMessages


class DiscordSettings(BaseModel):
    """Discord bot configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    token: SecretStr = Field(
        default=SecretStr(""), validation_alias=AliasChoices("token", "bot_token", "discord_token")
    )
    command_prefix: str = Field(
        default="!",
        min_length=1,
        max_length=5,
        validation_alias=AliasChoices("command_prefix", "prefix"),
    )
    test_guild_ids: tuple[int, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("test_guild_ids", "test_guilds")
    )
    sync_on_startup: bool = True

    @field_validator("test_guild_ids", mode="before")
    @classmethod
    def validate_snowflake_ids(cls, v: tuple[int, ...] | list[int]) -> tuple[int, ...]:
        """Validate Discord snowflake IDs and convert lists to tuples."""
        # Convert list to tuple if needed (from JSON array in env vars)
        if isinstance(v, list):
            v = tuple(v)
        for snowflake in v:
            if not 0 < int(snowflake) < 2**64:
                raise ValueError(ErrorMessages.INVALID_SNOWFLAKE)
        return v


class AudioSettings(BaseModel):
    """Audio pipeline configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    ffmpeg_executable: str = AudioConstants.FFMPEG_EXECUTABLE
    reconnect_options: str = AudioConstants.FFMPEG_RECONNECT_OPTIONS
    ytdlp_format: str = AudioConstants.YTDLP_FORMAT_DEFAULT
    stream_url_ttl_seconds: float = Field(
        default=TimeConstants.STREAM_URL_CACHE_TTL,
        gt=0,
        validation_alias=AliasChoices("stream_url_ttl_seconds", "resolve_cache_ttl"),
    )
    default_volume: int = Field(default=AudioConstants.DEFAULT_VOLUME, ge=0, le=100)
    max_playlist_tracks: int = Field(default=LimitConstants.MAX_PLAYLIST_TRACKS, ge=1, le=500)


class SessionSettings(BaseModel):
    """Session lifecycle configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    ttl_hours: float = Field(default=TimeConstants.SESSION_TTL_HOURS, gt=0)
    alone_timeout_seconds: float = Field(default=TimeConstants.ALONE_TIMEOUT, gt=0)
    voice_reconnect_window_seconds: float = Field(
        default=TimeConstants.VOICE_RECONNECT_WINDOW, ge=0
    )
    sweep_interval_seconds: float = Field(default=TimeConstants.SESSION_SWEEP_INTERVAL, gt=0)
    tick_interval_seconds: float = Field(default=TimeConstants.POSITION_TICK_INTERVAL, gt=0)


class GatewaySettings(BaseModel):
    """Realtime dashboard gateway configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(
        default=3001, ge=0, le=65535, validation_alias=AliasChoices("port", "ws_port")
    )
    path: str = "/ws"
    max_clients_per_session: int = Field(
        default=LimitConstants.MAX_CLIENTS_PER_SESSION, ge=1, le=1000
    )
    heartbeat_interval_seconds: float = Field(default=TimeConstants.HEARTBEAT_INTERVAL, gt=0)
    client_timeout_seconds: float = Field(default=TimeConstants.CLIENT_TIMEOUT, gt=0)
    outbound_queue_size: int = Field(default=LimitConstants.OUTBOUND_QUEUE_SIZE, ge=2)
    max_message_bytes: int = Field(default=LimitConstants.MAX_MESSAGE_BYTES, ge=1024)
    dashboard_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("dashboard_url", "app_url", "public_app_url"),
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(ErrorMessages.INVALID_GATEWAY_PATH.format(path=v))
        return v

    def session_url(self, session_id: str) -> str:
        return f"{self.dashboard_url.rstrip('/')}/session/{session_id}"


class ServiceSettings(BaseModel):
    """Search and lyrics collaborator configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    timeout_seconds: float = Field(default=TimeConstants.SERVICE_TIMEOUT, gt=0)
    search_limit: int = Field(default=LimitConstants.MAX_SEARCH_RESULTS, ge=1, le=50)
    lyrics_api_url: str = "https://api.lyrics.ovh/v1"
    lyrics_cache_ttl_seconds: float = Field(default=TimeConstants.LYRICS_CACHE_TTL, gt=0)


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - DISCORD__TOKEN, DISCORD__COMMAND_PREFIX, etc. (nested with ``__``)
    - GATEWAY__PORT, GATEWAY__DASHBOARD_URL, SESSION__TTL_HOURS, ...
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = LogLevels.INFO

    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    services: ServiceSettings = Field(default_factory=ServiceSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels)
            )
        return v_upper


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
