"""Port interface for a single playback's audio source chain."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from discord_media_player.domain.media.entities import ResolvedStream
from discord_media_player.domain.media.value_objects import SkipRange

if TYPE_CHECKING:
    import discord

    from ...domain.media.exceptions import StreamInterrupted


class PlaybackPipeline(ABC):
    """Turns one resolved stream into a frame source and reports on how it ended."""

    @property
    @abstractmethod
    def start_offset(self) -> float:
        """Media time the first frame corresponds to, after skipping covered ranges."""
        ...

    @property
    @abstractmethod
    def position_seconds(self) -> float:
        ...

    @abstractmethod
    def create_source(self) -> "discord.AudioSource":
        ...

    @abstractmethod
    def set_volume(self, percent: float) -> None:
        """Change the gain while playing, without restarting the source."""
        ...

    @abstractmethod
    def check_completion(self, error: Exception | None) -> "StreamInterrupted | None":
        """None for a clean end of stream, otherwise the interruption to report."""
        ...

    @abstractmethod
    def cleanup(self) -> None:
        """Release the decoder process. Must be idempotent."""
        ...


PipelineFactory = Callable[[ResolvedStream, float, float, Sequence[SkipRange]], PlaybackPipeline]
