"""UTC timestamp helpers.

Every timestamp the player keeps is timezone-aware UTC. The cache index
stores them as ISO-8601 text, and recovered cache files start from their
``st_mtime``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from discord_media_player.domain.shared.messages import ErrorMessages


def utcnow() -> datetime:
    """Aware ``datetime`` for the current instant in UTC."""
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class UtcDateTime:
    """An aware UTC ``datetime`` plus the text form used by the cache index."""

    dt: datetime

    def __post_init__(self) -> None:
        if self.dt.tzinfo is None:
            raise ValueError(ErrorMessages.TIMEZONE_REQUIRED_UTC_DATETIME)
        object.__setattr__(self, "dt", self.dt.astimezone(UTC))

    @classmethod
    def now(cls) -> UtcDateTime:
        return cls(utcnow())

    @classmethod
    def from_iso(cls, value: str) -> UtcDateTime:
        """Parse index text; ``fromisoformat`` accepts a trailing ``Z`` as UTC."""
        return cls(datetime.fromisoformat(value))

    @classmethod
    def from_unix_seconds(cls, seconds: float) -> UtcDateTime:
        return cls(datetime.fromtimestamp(seconds, tz=UTC))

    @property
    def iso(self) -> str:
        return self.dt.isoformat()
