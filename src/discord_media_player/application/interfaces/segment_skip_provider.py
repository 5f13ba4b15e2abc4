"""Port interface for looking up segments (sponsors, intros) to skip."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from discord_media_player.domain.shared.types import NonEmptyStr

if TYPE_CHECKING:
    from ...domain.media.value_objects import SkipRange


class SegmentSkipProvider(ABC):
    """Interface for a service that reports time ranges to leave out of a track."""

    @abstractmethod
    async def get_skip_ranges(self, track_id: NonEmptyStr) -> list["SkipRange"]:
        """Return the ranges to skip for a track, possibly unsorted or overlapping."""
        ...


class NullSegmentSkipProvider(SegmentSkipProvider):
    """Used when no segment-skip service is wired in."""

    async def get_skip_ranges(self, track_id: NonEmptyStr) -> list["SkipRange"]:
        return []
