"""Core domain entities for the media bounded context."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from discord_media_player.domain.media.value_objects import PlayerState, TrackId
from discord_media_player.domain.shared.constants import AudioConstants
from discord_media_player.domain.shared.datetime_utils import utcnow
from discord_media_player.domain.shared.exceptions import InvalidOperationError
from discord_media_player.domain.shared.messages import ErrorMessages
from discord_media_player.domain.shared.types import (
    BitrateKbps,
    DiscordSnowflake,
    DurationSeconds,
    FileBytes,
    NonEmptyStr,
    NonNegativeFloat,
    QueuePositionInt,
    SampleRateHz,
    UtcDatetimeField,
    VolumePercent,
)
from discord_media_player.domain.shared.validators import validate_percent


class TrackReference(BaseModel):
    """What a user asked to play: a URL, a provider-native ID or a search term."""

    model_config = ConfigDict(frozen=True)

    query: NonEmptyStr
    duration_hint: DurationSeconds | None = None
    title_hint: NonEmptyStr | None = None

    @property
    def track_id(self) -> TrackId:
        return TrackId.from_query(self.query)

    @property
    def is_url(self) -> bool:
        return self.query.startswith(("http://", "https://"))


class FormatDescriptor(BaseModel):
    """One downloadable rendition of a track as reported by a provider."""

    model_config = ConfigDict(frozen=True)

    format_id: NonEmptyStr
    url: NonEmptyStr
    container: str | None = None
    audio_codec: str | None = None
    video_codec: str | None = None
    has_audio: bool = False
    has_video: bool = False
    audio_bitrate: BitrateKbps | None = None
    total_bitrate: BitrateKbps | None = None
    sample_rate: SampleRateHz | None = None
    is_live: bool = False

    @property
    def is_audio_only(self) -> bool:
        return self.has_audio and not self.has_video

    @property
    def effective_bitrate(self) -> float:
        """Audio bitrate, falling back to total bitrate, else 0."""
        return self.audio_bitrate or self.total_bitrate or 0.0


class MediaInfo(BaseModel):
    """Strictly parsed provider response."""

    model_config = ConfigDict(frozen=True)

    provider_track_id: str | None = None
    title: str | None = None
    author: str | None = None
    duration_seconds: DurationSeconds | None = None
    is_live: bool = False
    formats: tuple[FormatDescriptor, ...] = ()


class ResolvedStream(BaseModel):
    """A playable source: either a remote stream URL or a file in the local cache."""

    model_config = ConfigDict(frozen=True)

    source_track_id: NonEmptyStr
    stream_url: NonEmptyStr | None = None
    local_file_path: Path | None = None
    container: str | None = None
    audio_codec: str | None = None
    sample_rate: SampleRateHz | None = None
    bitrate: BitrateKbps | None = None
    is_live: bool = False
    duration_seconds: DurationSeconds | None = None
    provider_used: NonEmptyStr
    format_id: str | None = None
    title: str | None = None

    @model_validator(mode="after")
    def _check_source(self) -> ResolvedStream:
        if (self.stream_url is None) == (self.local_file_path is None):
            raise ValueError(ErrorMessages.STREAM_NEEDS_ONE_SOURCE)
        if self.is_live and self.local_file_path is not None:
            raise ValueError(ErrorMessages.LIVE_STREAM_FROM_FILE)
        return self

    @property
    def is_local(self) -> bool:
        return self.local_file_path is not None

    @property
    def input_target(self) -> str:
        """The string handed to FFmpeg as its input."""
        if self.local_file_path is not None:
            return str(self.local_file_path)
        return self.stream_url or ""

    @property
    def is_discord_native(self) -> bool:
        return (
            self.audio_codec == AudioConstants.PREFERRED_CODEC
            and self.container == AudioConstants.PREFERRED_CONTAINER
            and self.sample_rate == AudioConstants.PREFERRED_SAMPLE_RATE
        )


class ProviderFailure(BaseModel):
    """One provider's failed attempt, kept in priority order by the resolver."""

    model_config = ConfigDict(frozen=True)

    provider: NonEmptyStr
    error_type: str
    message: str
    extractor_breakage: bool = False

    def __str__(self) -> str:
        return f"{self.provider}: {self.message}"


class CacheEntry(BaseModel):
    """A fully written, registered audio file in the on-disk cache.

    Entries are immutable once registered; only the last access time moves.
    """

    model_config = ConfigDict(frozen=True)

    key: NonEmptyStr
    track_id: NonEmptyStr
    format_id: NonEmptyStr
    file_path: Path
    size_bytes: FileBytes
    created_at: UtcDatetimeField = Field(default_factory=utcnow)
    last_access_time: UtcDatetimeField = Field(default_factory=utcnow)
    container: str | None = None
    audio_codec: str | None = None
    sample_rate: SampleRateHz | None = None
    bitrate: BitrateKbps | None = None
    duration_seconds: DurationSeconds | None = None
    title: str | None = None
    provider: str | None = None

    def to_stream(self) -> ResolvedStream:
        """Rebuild a playable stream pointing at the cached file."""
        return ResolvedStream(
            source_track_id=self.track_id,
            local_file_path=self.file_path,
            container=self.container,
            audio_codec=self.audio_codec,
            sample_rate=self.sample_rate,
            bitrate=self.bitrate,
            is_live=False,
            duration_seconds=self.duration_seconds,
            provider_used=self.provider or "cache",
            format_id=self.format_id,
            title=self.title,
        )


class QueueItem(BaseModel):
    """A reference waiting in (or taken from) a guild's queue."""

    model_config = ConfigDict(frozen=True)

    reference: TrackReference
    requested_by: DiscordSnowflake | None = None
    enqueued_at: UtcDatetimeField = Field(default_factory=utcnow)

    @property
    def track_id(self) -> TrackId:
        return self.reference.track_id


class PlayerSession(BaseModel):
    """Aggregate holding the playback state of a single guild.

    Exclusively owned and mutated by that guild's player.
    """

    guild_id: DiscordSnowflake
    queue: list[QueueItem] = Field(default_factory=list)
    current: QueueItem | None = None
    state: PlayerState = PlayerState.IDLE
    volume: VolumePercent = AudioConstants.DEFAULT_VOLUME_PERCENT
    duck_enabled: bool = False
    duck_target: VolumePercent = AudioConstants.DEFAULT_DUCK_TARGET_PERCENT
    ducked: bool = False
    playback_position_seconds: NonNegativeFloat = 0.0
    last_error: str | None = None
    last_activity: datetime = Field(default_factory=utcnow)

    @property
    def effective_volume(self) -> float:
        """Volume percent after ducking is applied."""
        if self.duck_enabled and self.ducked:
            return self.volume * self.duck_target / 100
        return float(self.volume)

    def touch(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = utcnow()

    def enqueue(self, item: QueueItem) -> int:
        """Append an item to the end of the queue and return its position."""
        self.queue.append(item)
        self.touch()
        return len(self.queue) - 1

    def dequeue(self) -> QueueItem | None:
        """Remove and return the next item from the queue."""
        if not self.queue:
            return None
        item = self.queue.pop(0)
        self.touch()
        return item

    def remove_at(self, position: QueuePositionInt) -> QueueItem | None:
        """Remove an item at a specific queue position."""
        if 0 <= position < len(self.queue):
            item = self.queue.pop(position)
            self.touch()
            return item
        return None

    def move(self, from_pos: QueuePositionInt, to_pos: QueuePositionInt) -> bool:
        """Move an item from one queue position to another."""
        if not (0 <= from_pos < len(self.queue) and 0 <= to_pos < len(self.queue)):
            return False
        item = self.queue.pop(from_pos)
        self.queue.insert(to_pos, item)
        self.touch()
        return True

    def clear_queue(self) -> int:
        """Clear all items from the queue and return the count removed."""
        count = len(self.queue)
        self.queue.clear()
        self.touch()
        return count

    def set_volume(self, percent: int) -> None:
        self.volume = validate_percent(percent, "volume")
        self.touch()

    def set_duck_target(self, percent: int) -> None:
        self.duck_target = validate_percent(percent, "duck_target")
        self.touch()

    def transition_to(self, new_state: PlayerState) -> None:
        """Transition to a new player state."""
        if not self.state.can_transition_to(new_state):
            raise InvalidOperationError(
                operation=f"transition to {new_state.value}",
                current_state=self.state.value,
                message=ErrorMessages.INVALID_STATE_TRANSITION.format(
                    current=self.state.value, target=new_state.value
                ),
            )
        self.state = new_state
        self.touch()

    def reset(self) -> None:
        """Drop the queue and current item, back to idle."""
        self.queue.clear()
        self.current = None
        self.state = PlayerState.IDLE
        self.playback_position_seconds = 0.0
        self.touch()
