"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.constants import AudioConstants, CacheConstants, ProviderConstants
from ..domain.shared.messages import ErrorMessages
from ..domain.shared.validators import parse_byte_size


class CacheSettings(BaseModel):
    """On-disk audio cache configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    directory: Path = Field(
        default=Path("data/cache"),
        validation_alias=AliasChoices("directory", "dir", "path"),
    )
    budget_bytes: int = Field(
        default=parse_byte_size(CacheConstants.DEFAULT_BUDGET),
        gt=0,
        validation_alias=AliasChoices("budget_bytes", "budget", "max_size"),
    )
    max_duration_seconds: int = Field(
        default=CacheConstants.DEFAULT_MAX_DURATION_SECONDS, ge=1, le=86_400
    )
    download_timeout_seconds: float = Field(default=600.0, gt=0)
    chunk_size: int = Field(default=64 * 1024, ge=1024, le=16 * 1024 * 1024)
    index_file_name: str = Field(default=CacheConstants.INDEX_FILE_NAME, min_length=1)
    busy_timeout_ms: int = Field(default=5000, ge=1000, le=30000)

    @field_validator("budget_bytes", mode="before")
    @classmethod
    def parse_budget(cls, v: Any) -> int:
        """Accept human-readable sizes such as ``512MB`` or ``10GB``."""
        return parse_byte_size(v)

    @property
    def index_path(self) -> Path:
        return self.directory / self.index_file_name


class ProviderSettings(BaseModel):
    """Metadata provider configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    timeout_seconds: float = Field(
        default=ProviderConstants.DEFAULT_TIMEOUT_SECONDS,
        gt=0,
        le=300,
        validation_alias=AliasChoices("timeout_seconds", "timeout"),
    )
    ytdlp_path: str = Field(
        default="yt-dlp",
        min_length=1,
        validation_alias=AliasChoices("ytdlp_path", "yt_dlp_path"),
    )
    innertube_enabled: bool = True
    innertube_client: str = Field(default=ProviderConstants.DEFAULT_INNERTUBE_CLIENT, min_length=1)
    search_limit: int = Field(default=ProviderConstants.DEFAULT_SEARCH_LIMIT, ge=1, le=20)
    ytdlp_format: str = "bestaudio/best"
    player_clients: tuple[str, ...] = ("android", "web")
    cli_max_output_bytes: int = Field(
        default=ProviderConstants.CLI_MAX_OUTPUT_BYTES, ge=64 * 1024
    )
    socket_timeout_seconds: int = Field(default=10, ge=1, le=120)
    retries: int = Field(default=3, ge=0, le=10)

    @field_validator("player_clients", mode="before")
    @classmethod
    def split_player_clients(cls, v: Any) -> tuple[str, ...]:
        """Accept a comma-separated string or a list from env vars."""
        if isinstance(v, str):
            v = [part.strip() for part in v.split(",")]
        if isinstance(v, list | tuple):
            clients = tuple(str(part) for part in v if str(part).strip())
            if not clients:
                raise ValueError(ErrorMessages.EMPTY_PLAYER_CLIENTS)
            return clients
        return v


class AudioSettings(BaseModel):
    """Audio pipeline configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    default_volume: int = Field(
        default=AudioConstants.DEFAULT_VOLUME_PERCENT,
        ge=0,
        le=100,
        validation_alias=AliasChoices("default_volume", "volume"),
    )
    ffmpeg_path: str = Field(default="ffmpeg", min_length=1)
    reconnect_delay_max: int = Field(default=5, ge=0, le=60)
    reconnect_max_retries: int | None = Field(default=None, ge=0, le=100)
    gain_ramp_step: float = Field(default=0.05, gt=0.0, le=1.0)
    fade_in_seconds: float = Field(default=0.5, ge=0.0, le=10.0)
    early_eof_tolerance_seconds: float = Field(default=5.0, ge=0.0)
    cancel_timeout_seconds: float = Field(default=5.0, gt=0.0, le=60.0)


class DuckingSettings(BaseModel):
    """Default per-guild voice-activity ducking."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = False
    target: int = Field(
        default=AudioConstants.DEFAULT_DUCK_TARGET_PERCENT,
        ge=0,
        le=100,
        validation_alias=AliasChoices("target", "target_percent"),
    )


class SegmentSkipSettings(BaseModel):
    """Segment-skip lookup configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = True
    request_timeout_seconds: float = Field(default=3.0, gt=0.0, le=30.0)
    backoff_seconds: float = Field(default=300.0, ge=0.0)


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - CACHE__DIRECTORY, CACHE__BUDGET=10GB, CACHE__MAX_DURATION_SECONDS
    - PROVIDERS__TIMEOUT_SECONDS, PROVIDERS__YTDLP_PATH
    - AUDIO__DEFAULT_VOLUME, AUDIO__RECONNECT_DELAY_MAX
    - DUCKING__ENABLED, DUCKING__TARGET
    - SEGMENT_SKIPS__ENABLED, SEGMENT_SKIPS__REQUEST_TIMEOUT_SECONDS
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    cache: CacheSettings = Field(default_factory=CacheSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    ducking: DuckingSettings = Field(default_factory=DuckingSettings)
    segment_skips: SegmentSkipSettings = Field(default_factory=SegmentSkipSettings)

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
