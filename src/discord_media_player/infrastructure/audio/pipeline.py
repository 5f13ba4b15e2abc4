"""
FFmpeg Audio Pipeline

Turns a resolved stream into the 20 ms PCM frame source Discord consumes:
FFmpeg decodes, a skip filter drops frames inside skip ranges, and a ramped
volume transformer applies gain changes without restarting the stream.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import discord

from discord_media_player.application.interfaces.playback_pipeline import (
    PipelineFactory,
    PlaybackPipeline,
)
from discord_media_player.config.settings import AudioSettings
from discord_media_player.domain.media.entities import ResolvedStream
from discord_media_player.domain.media.exceptions import StreamInterrupted
from discord_media_player.domain.media.services import SkipRangePolicy
from discord_media_player.domain.media.value_objects import SkipRange
from discord_media_player.domain.shared.constants import AudioConstants
from discord_media_player.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

SourceFactory = Callable[[str, str, str], discord.AudioSource]


def percent_to_gain(percent: float) -> float:
    """Linear gain for a 0-100 volume percentage."""
    return max(0.0, min(100.0, float(percent))) / 100.0


@dataclass
class FFmpegConfig:
    """Configuration for FFmpeg audio processing."""

    # Reconnection settings for network inputs
    reconnect_delay_max: int = 5
    reconnect_max_retries: int | None = None

    fade_in_seconds: float = 0.5
    user_agent: str = AudioConstants.ANDROID_USER_AGENT

    @classmethod
    def from_settings(cls, settings: AudioSettings) -> FFmpegConfig:
        return cls(
            reconnect_delay_max=settings.reconnect_delay_max,
            reconnect_max_retries=settings.reconnect_max_retries,
            fade_in_seconds=settings.fade_in_seconds,
        )

    def get_before_options(
        self, *, is_network: bool, start_offset: float = 0.0, is_live: bool = False
    ) -> str:
        """Get FFmpeg before_options string (input-side flags)."""
        opts = []
        if is_network:
            opts.append("-reconnect 1")
            opts.append("-reconnect_streamed 1")
            opts.append(f"-reconnect_delay_max {self.reconnect_delay_max}")
            if self.reconnect_max_retries is not None:
                opts.append(f"-reconnect_max_retries {self.reconnect_max_retries}")
            opts.append(AudioConstants.FFMPEG_USER_AGENT_HEADER.format(user_agent=self.user_agent))
        if start_offset > 0 and not is_live:
            opts.append(f"-ss {start_offset:.3f}")
        return " ".join(opts)

    def get_options(self) -> str:
        """Get FFmpeg options string (output-side flags)."""
        opts = [AudioConstants.FFMPEG_OPTIONS_DEFAULT]
        if self.fade_in_seconds > 0:
            opts.append(AudioConstants.FFMPEG_FADE_IN_FILTER.format(duration=self.fade_in_seconds))
        return " ".join(opts)


class GainRamp:
    """Moves the applied gain towards a target by at most ``step`` per frame."""

    def __init__(self, gain: float, step: float) -> None:
        self.current = gain
        self.target = gain
        self.step = step

    def set_target(self, gain: float) -> None:
        self.target = max(0.0, gain)

    @property
    def settled(self) -> bool:
        return self.current == self.target

    def advance(self) -> float:
        delta = self.target - self.current
        if abs(delta) <= self.step:
            self.current = self.target
        else:
            self.current += self.step if delta > 0 else -self.step
        return self.current


class SkipRangeFilter(discord.AudioSource):
    """Counts frames to track media time and drops the ones inside skip ranges.

    ``ranges`` must be normalised (ascending, non-overlapping). Position is
    ``start_offset`` plus every frame read from FFmpeg, including dropped ones,
    so it stays in media time.
    """

    def __init__(
        self,
        original: discord.AudioSource,
        ranges: Sequence[SkipRange] = (),
        start_offset: float = 0.0,
    ) -> None:
        self.original = original
        self._ranges = list(ranges)
        self._start_offset = start_offset
        self._frames = 0
        self._dropped = 0
        self.finished = False

    @property
    def position_seconds(self) -> float:
        return self._start_offset + self._frames * AudioConstants.FRAME_DURATION_SECONDS

    @property
    def dropped_frames(self) -> int:
        return self._dropped

    def read(self) -> bytes:
        while True:
            data = self.original.read()
            if not data:
                self.finished = True
                return b""
            timestamp = self.position_seconds
            self._frames += 1
            if self._in_skip_range(timestamp):
                self._dropped += 1
                continue
            return data

    def _in_skip_range(self, timestamp: float) -> bool:
        while self._ranges and self._ranges[0].end <= timestamp:
            skipped = self._ranges.pop(0)
            logger.debug(LogTemplates.PIPELINE_SKIPPED_RANGE, skipped.start, skipped.end)
        return bool(self._ranges) and self._ranges[0].contains(timestamp)

    def is_opus(self) -> bool:
        return False

    def cleanup(self) -> None:
        self.original.cleanup()


class RampedVolumeTransformer(discord.PCMVolumeTransformer):
    """PCM volume transformer whose gain glides to the target instead of jumping."""

    def __init__(self, original: discord.AudioSource, gain: float, step: float) -> None:
        super().__init__(original, volume=gain)
        self._ramp = GainRamp(gain, step)

    @property
    def target_volume(self) -> float:
        return self._ramp.target

    def set_target_volume(self, gain: float) -> None:
        self._ramp.set_target(gain)

    def read(self) -> bytes:
        if not self._ramp.settled:
            self.volume = self._ramp.advance()
        return super().read()


class AudioPipeline(PlaybackPipeline):
    """One playback's source chain for a single guild.

    Built once per playback and never shared; ``create_source`` hands the
    chain to the voice transport, ``cleanup`` releases the FFmpeg process.
    """

    def __init__(
        self,
        stream: ResolvedStream,
        *,
        start_offset: float = 0.0,
        volume_percent: float = AudioConstants.DEFAULT_VOLUME_PERCENT,
        skip_ranges: Sequence[SkipRange] = (),
        settings: AudioSettings | None = None,
        source_factory: SourceFactory | None = None,
    ) -> None:
        self._stream = stream
        self._settings = settings or AudioSettings()
        self._config = FFmpegConfig.from_settings(self._settings)
        self._source_factory = source_factory or self._create_ffmpeg_source

        ranges = [] if stream.is_live else SkipRangePolicy.normalize(
            skip_ranges, stream.duration_seconds
        )
        offset = 0.0 if stream.is_live else max(0.0, start_offset)
        self._start_offset = SkipRangePolicy.effective_start(offset, ranges)
        self._ranges = SkipRangePolicy.remaining(ranges, self._start_offset)

        self._gain = percent_to_gain(volume_percent)
        self._filter: SkipRangeFilter | None = None
        self._source: RampedVolumeTransformer | None = None
        self._cleaned_up = False

    @property
    def stream(self) -> ResolvedStream:
        return self._stream

    @property
    def start_offset(self) -> float:
        return self._start_offset

    @property
    def skip_ranges(self) -> list[SkipRange]:
        return list(self._ranges)

    @property
    def before_options(self) -> str:
        return self._config.get_before_options(
            is_network=not self._stream.is_local,
            start_offset=self._start_offset,
            is_live=self._stream.is_live,
        )

    @property
    def options(self) -> str:
        return self._config.get_options()

    @property
    def position_seconds(self) -> float:
        if self._filter is None:
            return self._start_offset
        return self._filter.position_seconds

    @property
    def gain(self) -> float:
        if self._source is not None:
            return self._source.target_volume
        return self._gain

    def create_source(self) -> discord.AudioSource:
        """Build the FFmpeg -> skip filter -> volume chain (once)."""
        if self._source is not None:
            return self._source

        raw = self._source_factory(self._stream.input_target, self.before_options, self.options)
        self._filter = SkipRangeFilter(raw, self._ranges, self._start_offset)
        self._source = RampedVolumeTransformer(
            self._filter, gain=self._gain, step=self._settings.gain_ramp_step
        )
        logger.debug(
            LogTemplates.PIPELINE_CREATED,
            self._stream.source_track_id,
            "file" if self._stream.is_local else "url",
            self._start_offset,
            len(self._ranges),
        )
        return self._source

    def _create_ffmpeg_source(
        self, target: str, before_options: str, options: str
    ) -> discord.AudioSource:
        return discord.FFmpegPCMAudio(
            target,
            executable=self._settings.ffmpeg_path,
            before_options=before_options,
            options=options,
        )

    def set_volume(self, percent: float) -> None:
        """Change the gain live; the transformer ramps towards it frame by frame."""
        self._gain = percent_to_gain(percent)
        if self._source is not None:
            self._source.set_target_volume(self._gain)

    def check_completion(self, error: Exception | None) -> StreamInterrupted | None:
        """Classify the end of playback: None for a clean end, otherwise the interruption."""
        position = self.position_seconds
        if error is not None:
            return StreamInterrupted(
                ErrorMessages.STREAM_TRANSPORT_ERROR.format(error=error), position
            )

        duration = self._stream.duration_seconds
        if self._stream.is_live or duration is None:
            return None
        if position + self._settings.early_eof_tolerance_seconds < duration:
            return StreamInterrupted(
                ErrorMessages.STREAM_ENDED_EARLY.format(position=position, duration=duration),
                position,
            )
        return None

    def cleanup(self) -> None:
        """Terminate FFmpeg. Safe to call more than once."""
        if self._cleaned_up:
            return
        self._cleaned_up = True
        if self._source is not None:
            try:
                self._source.cleanup()
            except (OSError, discord.ClientException) as e:
                logger.debug(LogTemplates.FFMPEG_SOURCE_CLEANUP_ERROR, e)


def make_pipeline_factory(settings: AudioSettings) -> PipelineFactory:
    """Bind audio settings into the factory a guild player calls once per playback."""

    def factory(
        stream: ResolvedStream,
        start_offset: float,
        volume_percent: float,
        skip_ranges: Sequence[SkipRange],
    ) -> AudioPipeline:
        return AudioPipeline(
            stream,
            start_offset=start_offset,
            volume_percent=volume_percent,
            skip_ranges=skip_ranges,
            settings=settings,
        )

    return factory
