"""Tests for the FFmpeg pipeline: option building, skip filtering and gain ramps."""

from pathlib import Path

import discord
import pytest

from discord_media_player.config.settings import AudioSettings
from discord_media_player.domain.media.exceptions import StreamInterrupted
from discord_media_player.domain.media.value_objects import SkipRange
from discord_media_player.infrastructure.audio.pipeline import (
    AudioPipeline,
    FFmpegConfig,
    GainRamp,
    RampedVolumeTransformer,
    SkipRangeFilter,
    make_pipeline_factory,
    percent_to_gain,
)

FRAME_BYTES = 3840


class FakeSource(discord.AudioSource):
    """PCM source yielding ``count`` frames, each filled with its index."""

    def __init__(self, count: int) -> None:
        self._frames = [bytes([i % 256]) * FRAME_BYTES for i in range(count)]
        self.cleaned_up = 0

    def read(self) -> bytes:
        if not self._frames:
            return b""
        return self._frames.pop(0)

    def is_opus(self) -> bool:
        return False

    def cleanup(self) -> None:
        self.cleaned_up += 1


@pytest.fixture
def fake_factory():
    """Source factory recording its arguments instead of spawning FFmpeg."""
    calls = []

    def _factory(target, before_options, options):
        source = FakeSource(5)
        calls.append((target, before_options, options, source))
        return source

    _factory.calls = calls
    return _factory


# ============================================================================
# FFmpegConfig Tests
# ============================================================================


class TestFFmpegConfig:
    def test_network_input_reconnects(self):
        """Should add reconnect flags and the user agent for network inputs."""
        opts = FFmpegConfig().get_before_options(is_network=True)

        assert "-reconnect 1" in opts
        assert "-reconnect_streamed 1" in opts
        assert "-reconnect_delay_max 5" in opts
        assert "User-Agent" in opts
        assert "-ss" not in opts

    def test_local_file_has_no_reconnect(self):
        opts = FFmpegConfig().get_before_options(is_network=False, start_offset=12.5)

        assert "-reconnect" not in opts
        assert opts == "-ss 12.500"

    def test_live_ignores_offset(self):
        """Should never seek into a live stream."""
        opts = FFmpegConfig().get_before_options(is_network=True, start_offset=30, is_live=True)

        assert "-ss" not in opts

    def test_max_retries_optional(self):
        opts = FFmpegConfig(reconnect_max_retries=3).get_before_options(is_network=True)

        assert "-reconnect_max_retries 3" in opts

    def test_options_fade_in(self):
        assert FFmpegConfig(fade_in_seconds=0.5).get_options() == (
            '-vn -af "afade=t=in:ss=0:d=0.5"'
        )
        assert FFmpegConfig(fade_in_seconds=0).get_options() == "-vn"


# ============================================================================
# Gain Tests
# ============================================================================


class TestGain:
    @pytest.mark.parametrize(
        "percent,expected", [(0, 0.0), (50, 0.5), (100, 1.0), (150, 1.0), (-5, 0.0)]
    )
    def test_percent_to_gain(self, percent, expected):
        assert percent_to_gain(percent) == expected

    def test_ramp_moves_by_step(self):
        """Should approach the target one step per frame and then settle."""
        ramp = GainRamp(1.0, step=0.25)
        ramp.set_target(0.5)

        assert ramp.advance() == 0.75
        assert not ramp.settled
        assert ramp.advance() == 0.5
        assert ramp.settled

    def test_ramp_upwards(self):
        ramp = GainRamp(0.0, step=0.3)
        ramp.set_target(0.5)

        assert ramp.advance() == pytest.approx(0.3)
        assert ramp.advance() == 0.5

    def test_transformer_ramps_per_read(self):
        """Should change the applied volume gradually across frames."""
        transformer = RampedVolumeTransformer(FakeSource(10), gain=1.0, step=0.1)
        transformer.set_target_volume(0.5)

        transformer.read()

        assert transformer.volume == pytest.approx(0.9)
        assert transformer.target_volume == 0.5


# ============================================================================
# SkipRangeFilter Tests
# ============================================================================


class TestSkipRangeFilter:
    def test_drops_frames_inside_ranges(self):
        """Should drop frames whose timestamp lies inside a skip range."""
        # frames start at 0.00, 0.02, 0.04, 0.06, 0.08
        skip = SkipRangeFilter(FakeSource(5), [SkipRange(0.01, 0.05)])

        frames = []
        while data := skip.read():
            frames.append(data[0])

        assert frames == [0, 3, 4]
        assert skip.dropped_frames == 2
        assert skip.finished

    def test_position_tracks_media_time(self):
        """Should count dropped frames so position stays in media time."""
        skip = SkipRangeFilter(FakeSource(5), [SkipRange(0.01, 0.05)], start_offset=10.0)

        while skip.read():
            pass

        assert skip.position_seconds == pytest.approx(10.1)

    def test_no_ranges_passes_through(self):
        skip = SkipRangeFilter(FakeSource(2))

        assert skip.read()[0] == 0
        assert skip.read()[0] == 1
        assert skip.read() == b""


# ============================================================================
# AudioPipeline Tests
# ============================================================================


class TestAudioPipeline:
    def test_create_source_builds_chain_once(self, make_stream, fake_factory):
        """Should hand the stream URL and options to the source factory exactly once."""
        stream = make_stream()
        pipeline = AudioPipeline(stream, volume_percent=80, source_factory=fake_factory)

        source = pipeline.create_source()

        assert pipeline.create_source() is source
        assert isinstance(source, RampedVolumeTransformer)
        target, before, options, _ = fake_factory.calls[0]
        assert target == stream.stream_url
        assert "-reconnect 1" in before
        assert options.startswith("-vn")
        assert len(fake_factory.calls) == 1
        assert pipeline.gain == 0.8

    def test_local_stream_uses_file_path(self, make_stream, fake_factory):
        stream = make_stream(stream_url=None, local_file_path=Path("/cache/a.251.webm"))
        pipeline = AudioPipeline(stream, source_factory=fake_factory)

        pipeline.create_source()

        target, before, _, _ = fake_factory.calls[0]
        assert target == "/cache/a.251.webm"
        assert "-reconnect" not in before

    def test_offset_inside_skip_range_moves_past_it(self, make_stream):
        """Should start after a skip range that covers the requested offset."""
        pipeline = AudioPipeline(
            make_stream(),
            start_offset=5.0,
            skip_ranges=[SkipRange(0.0, 10.0), SkipRange(50.0, 60.0)],
        )

        assert pipeline.start_offset == 10.0
        assert pipeline.skip_ranges == [SkipRange(50.0, 60.0)]
        assert "-ss 10.000" in pipeline.before_options

    def test_live_stream_ignores_offset_and_ranges(self, make_stream):
        stream = make_stream(is_live=True, duration_seconds=None)
        pipeline = AudioPipeline(stream, start_offset=30.0, skip_ranges=[SkipRange(0.0, 10.0)])

        assert pipeline.start_offset == 0.0
        assert pipeline.skip_ranges == []

    def test_set_volume_before_and_after_start(self, make_stream, fake_factory):
        """Should carry volume changes into the running transformer."""
        pipeline = AudioPipeline(make_stream(), volume_percent=50, source_factory=fake_factory)
        pipeline.set_volume(20)
        source = pipeline.create_source()

        assert source.volume == pytest.approx(0.2)

        pipeline.set_volume(60)

        assert source.target_volume == pytest.approx(0.6)
        assert pipeline.gain == pytest.approx(0.6)

    def test_transport_error_is_interruption(self, make_stream):
        pipeline = AudioPipeline(make_stream())

        result = pipeline.check_completion(RuntimeError("socket closed"))

        assert isinstance(result, StreamInterrupted)
        assert "socket closed" in result.message

    def test_early_end_is_interruption(self, make_stream, fake_factory):
        """Should flag a non-live stream that ends well before its duration."""
        pipeline = AudioPipeline(make_stream(duration_seconds=120.0), source_factory=fake_factory)
        source = pipeline.create_source()
        while source.read():
            pass

        result = pipeline.check_completion(None)

        assert isinstance(result, StreamInterrupted)
        assert result.position_seconds == pytest.approx(0.1)

    def test_end_within_tolerance_is_clean(self, make_stream):
        settings = AudioSettings(early_eof_tolerance_seconds=5.0)
        pipeline = AudioPipeline(make_stream(duration_seconds=3.0), settings=settings)

        assert pipeline.check_completion(None) is None

    def test_live_or_unknown_duration_ends_cleanly(self, make_stream):
        live = AudioPipeline(make_stream(is_live=True, duration_seconds=None))
        unknown = AudioPipeline(make_stream(duration_seconds=None))

        assert live.check_completion(None) is None
        assert unknown.check_completion(None) is None

    def test_cleanup_is_idempotent(self, make_stream, fake_factory):
        pipeline = AudioPipeline(make_stream(), source_factory=fake_factory)
        pipeline.create_source()

        pipeline.cleanup()
        pipeline.cleanup()

        assert fake_factory.calls[0][3].cleaned_up == 1

    def test_factory_binds_settings(self, make_stream):
        settings = AudioSettings(ffmpeg_path="/opt/ffmpeg", fade_in_seconds=0.0)
        factory = make_pipeline_factory(settings)

        pipeline = factory(make_stream(), 0.0, 40, [])

        assert isinstance(pipeline, AudioPipeline)
        assert pipeline.options == "-vn"
        assert pipeline.gain == 0.4
