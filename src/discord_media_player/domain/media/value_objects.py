"""Immutable value objects for the media bounded context."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Final

from discord_media_player.domain.shared.constants import AudioConstants
from discord_media_player.domain.shared.messages import ErrorMessages

HASH_ID_LENGTH: Final[int] = 16

YOUTUBE_ID_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(
        r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/)([a-zA-Z0-9_-]{11})"
    ),
    re.compile(r"youtube\.com/(?:shorts|live)/([a-zA-Z0-9_-]{11})"),
    re.compile(r"music\.youtube\.com/watch\?(?:.*&)?v=([a-zA-Z0-9_-]{11})"),
)

BARE_VIDEO_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9_-]{11}$")


@dataclass(frozen=True)
class TrackId:
    """Logical identity of a track: a YouTube video ID or a hash of the query."""

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError(ErrorMessages.EMPTY_TRACK_ID)

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_query(cls, query: str) -> TrackId:
        """Derive a track ID from a URL, a bare video ID or a free-text search term."""
        stripped = query.strip()
        for pattern in YOUTUBE_ID_PATTERNS:
            match = pattern.search(stripped)
            if match:
                return cls(match.group(1))

        if BARE_VIDEO_ID_PATTERN.match(stripped):
            return cls(stripped)

        digest = hashlib.sha256(stripped.lower().encode()).hexdigest()[:HASH_ID_LENGTH]
        return cls(digest)


@dataclass(frozen=True)
class StartOffset:
    """Validated seek offset for starting playback at a specific timestamp."""

    seconds: float

    def __post_init__(self) -> None:
        if self.seconds < 0:
            raise ValueError(ErrorMessages.NEGATIVE_START_OFFSET)
        if self.seconds > AudioConstants.MAX_SEEK_SECONDS:
            raise ValueError(
                ErrorMessages.START_OFFSET_TOO_LARGE.format(limit=AudioConstants.MAX_SEEK_SECONDS)
            )

    def __float__(self) -> float:
        return self.seconds

    @classmethod
    def from_optional(cls, seconds: float | None) -> StartOffset | None:
        """Create from an optional number, returning None if input is None or zero."""
        if not seconds:
            return None
        return cls(float(seconds))


@dataclass(frozen=True, order=True)
class SkipRange:
    """A half-open span ``[start, end)`` of media time to leave out of playback."""

    start: float
    end: float

    def __post_init__(self) -> None:
        if self.start < 0 or self.end <= self.start:
            raise ValueError(
                ErrorMessages.INVALID_SKIP_RANGE.format(start=self.start, end=self.end)
            )

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, seconds: float) -> bool:
        return self.start <= seconds < self.end


class PlayerState(Enum):
    """Per-guild player state with enforced transitions.

    State transitions:
    - IDLE -> RESOLVING (item dequeued)
    - RESOLVING -> PLAYING (first frame scheduled)
    - PLAYING <-> PAUSED
    - PLAYING / PAUSED -> RESOLVING (skip, seek or natural end with more queued)
    - Any -> IDLE (stop, queue exhausted, unrecoverable error)
    """

    IDLE = "idle"
    RESOLVING = "resolving"
    PLAYING = "playing"
    PAUSED = "paused"

    def can_transition_to(self, target: PlayerState) -> bool:
        """Check if transition to target state is valid."""
        valid_transitions = {
            PlayerState.IDLE: {PlayerState.RESOLVING, PlayerState.IDLE},
            PlayerState.RESOLVING: {PlayerState.PLAYING, PlayerState.RESOLVING, PlayerState.IDLE},
            PlayerState.PLAYING: {PlayerState.PAUSED, PlayerState.RESOLVING, PlayerState.IDLE},
            PlayerState.PAUSED: {PlayerState.PLAYING, PlayerState.RESOLVING, PlayerState.IDLE},
        }
        return target in valid_transitions.get(self, set())

    @property
    def is_active(self) -> bool:
        return self in {PlayerState.PLAYING, PlayerState.PAUSED}


class FinishReason(Enum):
    """Reasons a playback attempt can end."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
