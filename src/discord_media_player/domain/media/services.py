"""
Media Domain Services

Domain services containing business logic that doesn't naturally fit
within a single entity or value object: format selection, skip-range
arithmetic and cache eligibility.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from discord_media_player.domain.media.entities import FormatDescriptor
from discord_media_player.domain.media.value_objects import SkipRange
from discord_media_player.domain.shared.constants import AudioConstants, CacheConstants

BITS_PER_BYTE = 8


class FormatSelector:
    """Picks the best audio rendition for Discord voice from a provider's format list.

    Policy, first non-empty result wins:

    1. live streams: audio-only formats by descending audio bitrate
    2. audio-only opus in webm at 48 kHz, by descending audio bitrate
    3. any audio-only format, by descending audio bitrate (falling back to total bitrate)
    4. nothing

    Missing bitrates count as 0. Sorting is stable, so among equal bitrates the
    provider's original order decides.
    """

    @classmethod
    def select_best_audio(
        cls, formats: Sequence[FormatDescriptor], is_live: bool
    ) -> FormatDescriptor | None:
        audio_only = [f for f in formats if f.is_audio_only and f.url]

        if is_live:
            live = sorted(audio_only, key=lambda f: f.audio_bitrate or 0.0, reverse=True)
            if live:
                return live[0]

        native = [f for f in audio_only if cls.is_discord_native(f)]
        if native:
            return sorted(native, key=lambda f: f.audio_bitrate or 0.0, reverse=True)[0]

        if audio_only:
            return sorted(audio_only, key=lambda f: f.effective_bitrate, reverse=True)[0]

        return None

    @staticmethod
    def is_discord_native(fmt: FormatDescriptor) -> bool:
        return (
            (fmt.audio_codec or "").lower() == AudioConstants.PREFERRED_CODEC
            and (fmt.container or "").lower() == AudioConstants.PREFERRED_CONTAINER
            and fmt.sample_rate == AudioConstants.PREFERRED_SAMPLE_RATE
        )


class SkipRangePolicy:
    """Normalisation and offset arithmetic for segments to leave out of playback."""

    @staticmethod
    def normalize(
        ranges: Iterable[SkipRange | tuple[float, float]],
        duration_seconds: float | None = None,
    ) -> list[SkipRange]:
        """Sort, clamp to the media duration, drop empty spans and merge overlaps."""
        spans: list[tuple[float, float]] = []
        for item in ranges:
            start, end = (item.start, item.end) if isinstance(item, SkipRange) else item
            start = max(0.0, float(start))
            end = float(end)
            if duration_seconds is not None:
                end = min(end, float(duration_seconds))
            if end > start:
                spans.append((start, end))

        spans.sort()
        merged: list[list[float]] = []
        for start, end in spans:
            if merged and start <= merged[-1][1]:
                merged[-1][1] = max(merged[-1][1], end)
            else:
                merged.append([start, end])

        return [SkipRange(start, end) for start, end in merged]

    @staticmethod
    def effective_start(offset_seconds: float, ranges: Sequence[SkipRange]) -> float:
        """Move a start offset past any normalised range that covers it."""
        offset = offset_seconds
        for skip in ranges:
            if skip.contains(offset):
                offset = skip.end
        return offset

    @staticmethod
    def remaining(ranges: Sequence[SkipRange], after_seconds: float) -> list[SkipRange]:
        """Ranges that still lie (at least partly) after a position."""
        return [r for r in ranges if r.end > after_seconds]


@dataclass(frozen=True)
class CachePolicy:
    """Decides whether a playback may be written to the cache, and how many bytes at most."""

    budget_bytes: int
    max_duration_seconds: float = CacheConstants.DEFAULT_MAX_DURATION_SECONDS

    def is_cacheable(
        self,
        *,
        is_live: bool,
        start_offset_seconds: float | None,
        duration_seconds: float | None,
    ) -> bool:
        if is_live:
            return False
        if start_offset_seconds:
            return False
        if duration_seconds is not None and duration_seconds > self.max_duration_seconds:
            return False
        return True

    def byte_cap(self, duration_seconds: float | None, bitrate_kbps: float | None) -> int:
        """Largest write allowed for one entry.

        With an unknown duration the write is bounded by what the duration
        ceiling would take at the stream's bitrate, so an endless stream
        cannot fill the disk.
        """
        if duration_seconds is not None or not bitrate_kbps:
            return self.budget_bytes
        ceiling_bytes = int(self.max_duration_seconds * bitrate_kbps * 1000 / BITS_PER_BYTE)
        return min(self.budget_bytes, ceiling_bytes)
