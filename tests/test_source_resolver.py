"""Unit tests for the provider fallback chain."""

import asyncio
from unittest.mock import MagicMock

import pytest

from discord_media_player.application.interfaces.metadata_provider import MetadataProvider
from discord_media_player.application.services.source_resolver import (
    SourceResolver,
    is_extractor_breakage,
)
from discord_media_player.config.settings import ProviderSettings
from discord_media_player.domain.media.entities import MediaInfo, TrackReference
from discord_media_player.domain.media.exceptions import AllProvidersFailed, ProviderUnavailable
from discord_media_player.infrastructure.audio.innertube_provider import InnertubeProvider


class StubProvider(MetadataProvider):
    """Provider returning a canned MediaInfo or raising a canned error."""

    def __init__(self, name, info=None, error=None, delay=0.0):
        self._name = name
        self._info = info
        self._error = error
        self._delay = delay
        self.calls = 0

    @property
    def name(self):
        return self._name

    async def fetch_info(self, ref):
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._info


@pytest.fixture
def media_info(make_format):
    return MediaInfo(
        provider_track_id="dQw4w9WgXcQ",
        title="Never Gonna Give You Up",
        duration_seconds=213.0,
        formats=(
            make_format("140", container="m4a", audio_codec="aac", audio_bitrate=128.0),
            make_format("251", audio_bitrate=160.0),
        ),
    )


# ============================================================================
# Resolution Tests
# ============================================================================


class TestSourceResolver:
    @pytest.mark.asyncio
    async def test_first_provider_wins(self, media_info, sample_reference):
        """Should return the first provider's stream and never ask the second."""
        primary = StubProvider("primary", info=media_info)
        secondary = StubProvider("secondary", info=media_info)
        resolver = SourceResolver([primary, secondary])

        stream = await resolver.resolve(sample_reference)

        assert stream.provider_used == "primary"
        assert stream.format_id == "251"
        assert stream.source_track_id == "dQw4w9WgXcQ"
        assert stream.duration_seconds == 213.0
        assert stream.title == "Never Gonna Give You Up"
        assert secondary.calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_after_failure(self, media_info, sample_reference):
        """Should try the next provider exactly once after the first fails."""
        primary = StubProvider("primary", error=ProviderUnavailable("primary", "HTTP 403"))
        secondary = StubProvider("secondary", info=media_info)
        resolver = SourceResolver([primary, secondary])

        stream = await resolver.resolve(sample_reference)

        assert stream.provider_used == "secondary"
        assert primary.calls == 1
        assert secondary.calls == 1

    @pytest.mark.asyncio
    async def test_no_suitable_format_is_failure(self, make_format, media_info, sample_reference):
        """Should treat a video-only format list as a provider failure."""
        video_only = MediaInfo(
            formats=(make_format("137", has_audio=False, has_video=True, video_codec="avc1"),)
        )
        primary = StubProvider("primary", info=video_only)
        secondary = StubProvider("secondary", info=media_info)

        stream = await SourceResolver([primary, secondary]).resolve(sample_reference)

        assert stream.provider_used == "secondary"

    @pytest.mark.asyncio
    async def test_all_failed_lists_failures_in_order(self, sample_reference):
        """Should raise AllProvidersFailed with one failure per provider, in order."""
        primary = StubProvider("primary", error=ProviderUnavailable("primary", "Sign in"))
        secondary = StubProvider("secondary", error=RuntimeError("boom"))
        resolver = SourceResolver([primary, secondary])

        with pytest.raises(AllProvidersFailed) as exc_info:
            await resolver.resolve(sample_reference)

        failures = exc_info.value.failures
        assert [f.provider for f in failures] == ["primary", "secondary"]
        assert failures[0].message == "Sign in"
        assert failures[1].error_type == "RuntimeError"

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, media_info, sample_reference):
        """Should abandon a provider that exceeds the timeout and use the next."""
        slow = StubProvider("slow", info=media_info, delay=5.0)
        fast = StubProvider("fast", info=media_info)
        resolver = SourceResolver([slow, fast], timeout_seconds=0.05)

        stream = await resolver.resolve(sample_reference)

        assert stream.provider_used == "fast"

    @pytest.mark.asyncio
    async def test_extractor_breakage_flagged(self, sample_reference):
        """Should mark signature failures as extractor breakage."""
        broken = StubProvider(
            "primary",
            error=ProviderUnavailable("primary", "Unable to extract nsig function"),
        )

        with pytest.raises(AllProvidersFailed) as exc_info:
            await SourceResolver([broken]).resolve(sample_reference)

        assert exc_info.value.failures[0].extractor_breakage is True

    @pytest.mark.asyncio
    async def test_live_stream_has_no_duration(self, make_format):
        """Should drop the duration hint for live streams."""
        live = MediaInfo(
            is_live=True,
            formats=(make_format("91", container="mp4", audio_codec="aac", is_live=True),),
        )
        ref = TrackReference(query="https://youtu.be/abcdefghijk", duration_hint=60.0)

        stream = await SourceResolver([StubProvider("p", info=live)]).resolve(ref)

        assert stream.is_live is True
        assert stream.duration_seconds is None

    @pytest.mark.asyncio
    async def test_duration_hint_fills_gap(self, make_format):
        """Should fall back to the reference's duration hint."""
        info = MediaInfo(formats=(make_format("251"),))
        ref = TrackReference(query="some search", duration_hint=99.0, title_hint="Hinted")

        stream = await SourceResolver([StubProvider("p", info=info)]).resolve(ref)

        assert stream.duration_seconds == 99.0
        assert stream.title == "Hinted"


class TestExtractorBreakage:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Signature extraction failed", True),
            ("Failed to decipher", True),
            ("HTTP Error 404: Not Found", False),
        ],
    )
    def test_classification(self, message, expected):
        assert is_extractor_breakage(message) is expected


# ============================================================================
# InnerTube Ahead of yt-dlp
# ============================================================================


def innertube_client(player_response=None, error=None):
    client = MagicMock()
    if error is not None:
        client.player.side_effect = error
    else:
        client.player.return_value = player_response
    return client


PLAYABLE = {
    "playabilityStatus": {"status": "OK"},
    "videoDetails": {"videoId": "dQw4w9WgXcQ", "title": "Official", "lengthSeconds": "213"},
    "streamingData": {
        "adaptiveFormats": [
            {
                "itag": 251,
                "url": "https://media.example.com/it-251",
                "mimeType": 'audio/webm; codecs="opus"',
                "averageBitrate": 128000,
                "audioSampleRate": "48000",
            }
        ]
    },
}


class TestInnertubeFirstChain:
    @pytest.mark.asyncio
    async def test_innertube_answers_before_ytdlp(self, media_info, sample_reference):
        """Should resolve through InnerTube without touching the yt-dlp providers."""
        ytdlp = StubProvider("ytdlp-api", info=media_info)
        resolver = SourceResolver(
            [InnertubeProvider(ProviderSettings(), client=innertube_client(PLAYABLE)), ytdlp]
        )

        stream = await resolver.resolve(sample_reference)

        assert stream.provider_used == "innertube"
        assert stream.stream_url == "https://media.example.com/it-251"
        assert (stream.audio_codec, stream.container, stream.bitrate) == ("opus", "webm", 128.0)
        assert ytdlp.calls == 0

    @pytest.mark.asyncio
    async def test_ytdlp_covers_innertube_outage(self, media_info, sample_reference):
        client = innertube_client(error=ConnectionError("HTTP 429"))
        ytdlp = StubProvider("ytdlp-api", info=media_info)
        resolver = SourceResolver([InnertubeProvider(ProviderSettings(), client=client), ytdlp])

        stream = await resolver.resolve(sample_reference)

        assert stream.provider_used == "ytdlp-api"
        client.player.assert_called_once_with(video_id="dQw4w9WgXcQ")
        assert ytdlp.calls == 1

    @pytest.mark.asyncio
    async def test_innertube_covers_extractor_breakage(self, sample_reference):
        """Should still play when every yt-dlp provider hits the same extractor bug."""
        broken = ProviderUnavailable("ytdlp-api", "Signature extraction failed")
        resolver = SourceResolver(
            [
                InnertubeProvider(ProviderSettings(), client=innertube_client(PLAYABLE)),
                StubProvider("ytdlp-api", error=broken),
                StubProvider("ytdlp-cli", error=broken),
            ]
        )

        stream = await resolver.resolve(sample_reference)

        assert stream.provider_used == "innertube"

    @pytest.mark.asyncio
    async def test_failure_order_starts_with_innertube(self, sample_reference):
        refused = {"playabilityStatus": {"status": "LOGIN_REQUIRED", "reason": "Sign in"}}
        resolver = SourceResolver(
            [
                InnertubeProvider(ProviderSettings(), client=innertube_client(refused)),
                StubProvider("ytdlp-api", error=ProviderUnavailable("ytdlp-api", "HTTP 403")),
            ]
        )

        with pytest.raises(AllProvidersFailed) as exc_info:
            await resolver.resolve(sample_reference)

        failures = exc_info.value.failures
        assert [f.provider for f in failures] == ["innertube", "ytdlp-api"]
        assert "LOGIN_REQUIRED" in failures[0].message
