"""Reusable Pydantic Annotated types for domain-wide validation.

Every constrained type used across the player is defined here once,
so models can simply annotate their fields::

    from discord_media_player.domain.shared.types import DiscordSnowflake, NonEmptyStr

    class MyModel(BaseModel):
        guild_id: DiscordSnowflake
        title: NonEmptyStr
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import BeforeValidator, Field

# ── Numeric constraints ─────────────────────────────────────────────

DiscordSnowflake = Annotated[int, Field(gt=0, lt=2**64)]
"""Positive integer that fits a Discord snowflake (1 … 2^64-1)."""

NonNegativeInt = Annotated[int, Field(ge=0)]
"""Integer >= 0."""

PositiveInt = Annotated[int, Field(gt=0)]
"""Integer > 0."""

NonNegativeFloat = Annotated[float, Field(ge=0.0)]
"""Float >= 0.0."""

VolumePercent = Annotated[int, Field(ge=0, le=100)]
"""User-facing volume / duck target in percent: 0 … 100."""


# ── String constraints ──────────────────────────────────────────────

NonEmptyStr = Annotated[str, Field(min_length=1)]
"""String with at least one character."""


# ── Media constraints ──────────────────────────────────────────────

FileBytes = Annotated[int, Field(ge=0)]
"""File size in bytes: >= 0."""

BYTES_PER_KB: int = 1024
"""1 kibibyte = 1 024 bytes."""

BYTES_PER_MB: int = 1024 * 1024
"""1 mebibyte = 1 048 576 bytes."""

BYTES_PER_GB: int = 1024 * 1024 * 1024
"""1 gibibyte."""

DurationSeconds = Annotated[float, Field(ge=0.0, le=86_400.0)]
"""Media duration in seconds: 0 … 86 400 (24 hours)."""

BitrateKbps = Annotated[float, Field(ge=0.0)]
"""Bitrate in kilobits per second."""

SampleRateHz = Annotated[int, Field(gt=0)]
"""Audio sample rate in hertz."""

QueuePositionInt = Annotated[int, Field(ge=0)]
"""Zero-based queue position."""


# ── Datetime constraints ────────────────────────────────────────────

def _ensure_utc(v: datetime) -> datetime:
    """Validate that a datetime is timezone-aware and normalise to UTC."""
    if v.tzinfo is None:
        raise ValueError("datetime must be timezone-aware (UTC)")
    return v.astimezone(UTC)


UtcDatetimeField = Annotated[datetime, BeforeValidator(_ensure_utc)]
"""Timezone-aware datetime, normalised to UTC on input."""
