"""Pydantic models for provider data transformation and yt-dlp configuration.

These are infrastructure-specific models for parsing the loosely typed
dictionaries yt-dlp produces (in-process or via ``--dump-json``) and the
InnerTube ``/player`` and ``/search`` responses into the domain's
:class:`MediaInfo`, and for configuring yt-dlp options.
"""

from __future__ import annotations

import re
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from discord_media_player.domain.media.entities import FormatDescriptor, MediaInfo, TrackReference
from discord_media_player.domain.media.exceptions import ProviderUnavailable
from discord_media_player.domain.media.value_objects import (
    BARE_VIDEO_ID_PATTERN,
    YOUTUBE_ID_PATTERNS,
)
from discord_media_player.domain.shared.constants import ProviderConstants
from discord_media_player.domain.shared.messages import ErrorMessages
from discord_media_player.domain.shared.types import NonEmptyStr, NonNegativeInt, PositiveInt

DEFAULT_RETRIES: Final[int] = 3
DEFAULT_SOCKET_TIMEOUT: Final[int] = 10
LOG_URL_TRUNCATE: Final[int] = 60
NO_CODEC: Final[str] = "none"
YOUTUBE_WATCH_URL: Final[str] = "https://www.youtube.com/watch?v={video_id}"
MAX_DURATION_SECONDS: Final[float] = 86_400.0

MIME_CODECS_PATTERN: Final[re.Pattern[str]] = re.compile(r'codecs="([^"]+)"')
INNERTUBE_AUDIO_CODECS: Final[tuple[str, ...]] = ("opus", "mp4a", "vorbis", "aac")
INNERTUBE_VIDEO_CODECS: Final[tuple[str, ...]] = ("avc1", "vp09", "vp9", "vp8", "av01")
INNERTUBE_VIDEO_RENDERERS: Final[tuple[str, ...]] = ("videoRenderer", "compactVideoRenderer")
INNERTUBE_PLAYABLE_STATUS: Final[str] = "OK"


def _coerce_str(v: Any) -> str | None:
    if not isinstance(v, str) or not v.strip():
        return None
    return v.strip()


def _coerce_positive_number(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        val = float(v)
    except (TypeError, ValueError):
        return None
    return val if val > 0 else None


# ── Pydantic models for yt-dlp data ────────────────────────────────────


class RawFormat(BaseModel):
    """A single format entry from yt-dlp extraction.

    Before-validators coerce garbage from external yt-dlp data gracefully.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    format_id: NonEmptyStr | None = None
    url: NonEmptyStr | None = None
    ext: NonEmptyStr | None = None
    acodec: NonEmptyStr | None = None
    vcodec: NonEmptyStr | None = None
    abr: float | None = None
    tbr: float | None = None
    asr: int | None = None

    @field_validator("format_id", "url", "ext", "acodec", "vcodec", mode="before")
    @classmethod
    def _coerce_empty_to_none(cls, v: Any) -> str | None:
        """Convert empty / whitespace-only / non-string values to None."""
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        return _coerce_str(v)

    @field_validator("abr", "tbr", mode="before")
    @classmethod
    def _coerce_bitrate(cls, v: Any) -> float | None:
        return _coerce_positive_number(v)

    @field_validator("asr", mode="before")
    @classmethod
    def _coerce_sample_rate(cls, v: Any) -> int | None:
        val = _coerce_positive_number(v)
        return int(val) if val is not None else None

    @property
    def has_audio(self) -> bool:
        return (self.acodec or "").lower() != NO_CODEC

    @property
    def has_video(self) -> bool:
        return (self.vcodec or "").lower() != NO_CODEC

    def to_descriptor(self, fallback_id: str, is_live: bool) -> FormatDescriptor | None:
        """Convert to the domain descriptor; formats without a URL are dropped."""
        if self.url is None:
            return None
        audio_codec = self.acodec.lower() if self.has_audio and self.acodec else None
        video_codec = self.vcodec.lower() if self.has_video and self.vcodec else None
        return FormatDescriptor(
            format_id=self.format_id or fallback_id,
            url=self.url,
            container=self.ext.lower() if self.ext else None,
            audio_codec=audio_codec,
            video_codec=video_codec,
            has_audio=self.has_audio,
            has_video=self.has_video,
            audio_bitrate=self.abr,
            total_bitrate=self.tbr,
            sample_rate=self.asr,
            is_live=is_live,
        )


class RawMediaInfo(RawFormat):
    """Trimmed yt-dlp extraction result.

    Extra fields from yt-dlp are silently ignored. A result without a
    ``formats`` list but with a top-level ``url`` (direct media links) is
    treated as a single format.
    """

    id: NonEmptyStr | None = None
    title: NonEmptyStr | None = None
    uploader: NonEmptyStr | None = None
    channel: NonEmptyStr | None = None
    artist: NonEmptyStr | None = None
    duration: float | None = None
    is_live: bool = False
    live_status: NonEmptyStr | None = None
    formats: list[RawFormat] = Field(default_factory=list)

    @field_validator("id", "title", "uploader", "channel", "artist", "live_status", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        return _coerce_str(v)

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, v: Any) -> float | None:
        """Coerce to a positive float; return None for garbage or absurd values."""
        val = _coerce_positive_number(v)
        if val is None or val > MAX_DURATION_SECONDS:
            return None
        return val

    @field_validator("is_live", mode="before")
    @classmethod
    def _coerce_is_live(cls, v: Any) -> bool:
        return v is True

    @field_validator("formats", mode="before")
    @classmethod
    def _coerce_formats(cls, v: Any) -> list[Any]:
        """Drop non-dict entries instead of failing the whole response."""
        if not isinstance(v, list):
            return []
        return [f for f in v if isinstance(f, dict)]

    @property
    def live(self) -> bool:
        return self.is_live or self.live_status == "is_live"

    def to_media_info(self) -> MediaInfo:
        raw_formats: list[RawFormat] = list(self.formats)
        if not raw_formats and self.url:
            top_level = self.model_dump(include=set(RawFormat.model_fields))
            raw_formats = [RawFormat.model_validate(top_level)]

        descriptors = [
            d
            for i, f in enumerate(raw_formats)
            if (d := f.to_descriptor(fallback_id=f"{f.ext or 'fmt'}-{i}", is_live=self.live))
            is not None
        ]

        return MediaInfo(
            provider_track_id=self.id,
            title=self.title,
            author=self.artist or self.uploader or self.channel,
            duration_seconds=None if self.live else self.duration,
            is_live=self.live,
            formats=tuple(descriptors),
        )


def first_entry(info: dict[str, Any]) -> dict[str, Any] | None:
    """Return the first real entry of a playlist / search result, or the info itself."""
    if info.get("_type") in ("playlist", "multi_video") or "entries" in info:
        for entry in info.get("entries") or []:
            if isinstance(entry, dict):
                return entry
        return None
    return info


def parse_media_info(provider: str, payload: Any) -> MediaInfo:
    """Strictly parse a raw yt-dlp payload; nothing loosely typed leaves the adapter.

    Raises:
        ProviderUnavailable: The payload is empty or cannot be parsed.
    """
    if not isinstance(payload, dict):
        raise ProviderUnavailable(provider, ErrorMessages.EMPTY_PROVIDER_RESPONSE)

    entry = first_entry(payload)
    if entry is None:
        raise ProviderUnavailable(provider, ErrorMessages.NO_SEARCH_RESULTS)

    try:
        return RawMediaInfo.model_validate(entry).to_media_info()
    except (ValidationError, ValueError) as e:
        raise ProviderUnavailable(
            provider, ErrorMessages.UNPARSEABLE_PROVIDER_RESPONSE.format(error=e)
        ) from e


def build_target(ref: TrackReference) -> str:
    """Turn a reference into something yt-dlp can extract: a URL or a one-result search."""
    query = ref.query.strip()
    if ref.is_url:
        return query
    if BARE_VIDEO_ID_PATTERN.match(query):
        return YOUTUBE_WATCH_URL.format(video_id=query)
    return f"{ProviderConstants.SEARCH_PREFIX}{query}"


# ── Pydantic models for InnerTube data ─────────────────────────────────


def youtube_video_id(query: str) -> str | None:
    """The 11-character video ID in a YouTube URL or bare ID, else None."""
    stripped = query.strip()
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(stripped)
        if match:
            return match.group(1)
    if BARE_VIDEO_ID_PATTERN.match(stripped):
        return stripped
    return None


def _match_codec(codecs: str, known: tuple[str, ...]) -> str | None:
    return next((codec for codec in known if codec in codecs), None)


class InnertubeFormat(BaseModel):
    """One entry of ``streamingData.formats`` / ``adaptiveFormats``.

    Codecs only exist inside ``mimeType`` (``audio/webm; codecs="opus"``)
    and bitrates are in bits per second.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    itag: int | None = None
    url: NonEmptyStr | None = None
    mime_type: str = Field(default="", alias="mimeType")
    bitrate: float | None = None
    average_bitrate: float | None = Field(default=None, alias="averageBitrate")
    audio_sample_rate: int | None = Field(default=None, alias="audioSampleRate")

    @field_validator("url", mode="before")
    @classmethod
    def _coerce_url(cls, v: Any) -> str | None:
        return _coerce_str(v)

    @field_validator("mime_type", mode="before")
    @classmethod
    def _coerce_mime_type(cls, v: Any) -> str:
        return _coerce_str(v) or ""

    @field_validator("bitrate", "average_bitrate", mode="before")
    @classmethod
    def _coerce_bitrate(cls, v: Any) -> float | None:
        return _coerce_positive_number(v)

    @field_validator("itag", "audio_sample_rate", mode="before")
    @classmethod
    def _coerce_int(cls, v: Any) -> int | None:
        val = _coerce_positive_number(v)
        return int(val) if val is not None else None

    @property
    def base_type(self) -> str:
        return self.mime_type.split(";", 1)[0].strip().lower()

    @property
    def codecs(self) -> str:
        match = MIME_CODECS_PATTERN.search(self.mime_type)
        return match.group(1).lower() if match else ""

    def to_descriptor(self, is_live: bool) -> FormatDescriptor | None:
        """Formats with only a ``signatureCipher`` (no plain URL) are dropped."""
        kind, _, container = self.base_type.partition("/")
        if self.url is None or self.itag is None or kind not in ("audio", "video"):
            return None

        audio_codec = _match_codec(self.codecs, INNERTUBE_AUDIO_CODECS)
        has_video = kind == "video"
        has_audio = kind == "audio" or audio_codec is not None
        audio_bps = None if has_video else (self.average_bitrate or self.bitrate)
        return FormatDescriptor(
            format_id=str(self.itag),
            url=self.url,
            container=container or None,
            audio_codec=audio_codec if has_audio else None,
            video_codec=_match_codec(self.codecs, INNERTUBE_VIDEO_CODECS) if has_video else None,
            has_audio=has_audio,
            has_video=has_video,
            audio_bitrate=audio_bps / 1000 if audio_bps else None,
            total_bitrate=self.bitrate / 1000 if self.bitrate else None,
            sample_rate=self.audio_sample_rate if has_audio else None,
            is_live=is_live,
        )


def _dict_entries(v: Any) -> list[Any]:
    if not isinstance(v, list):
        return []
    return [f for f in v if isinstance(f, dict)]


class InnertubePlayability(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    status: str = "UNKNOWN"
    reason: str | None = None


class InnertubeVideoDetails(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    video_id: NonEmptyStr | None = Field(default=None, alias="videoId")
    title: NonEmptyStr | None = None
    author: NonEmptyStr | None = None
    length_seconds: float | None = Field(default=None, alias="lengthSeconds")
    is_live: bool = Field(default=False, alias="isLive")

    @field_validator("video_id", "title", "author", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str | None:
        return _coerce_str(v)

    @field_validator("length_seconds", mode="before")
    @classmethod
    def _coerce_length(cls, v: Any) -> float | None:
        val = _coerce_positive_number(v)
        if val is None or val > MAX_DURATION_SECONDS:
            return None
        return val

    @field_validator("is_live", mode="before")
    @classmethod
    def _coerce_is_live(cls, v: Any) -> bool:
        return v is True


class InnertubeStreamingData(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    formats: list[InnertubeFormat] = Field(default_factory=list)
    adaptive_formats: list[InnertubeFormat] = Field(
        default_factory=list, alias="adaptiveFormats"
    )

    @field_validator("formats", "adaptive_formats", mode="before")
    @classmethod
    def _coerce_formats(cls, v: Any) -> list[Any]:
        return _dict_entries(v)


class InnertubePlayerResponse(BaseModel):
    """Trimmed ``/player`` response: playability, video details and streaming data."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    playability_status: InnertubePlayability = Field(
        default_factory=InnertubePlayability, alias="playabilityStatus"
    )
    video_details: InnertubeVideoDetails = Field(
        default_factory=InnertubeVideoDetails, alias="videoDetails"
    )
    streaming_data: InnertubeStreamingData = Field(
        default_factory=InnertubeStreamingData, alias="streamingData"
    )

    def to_media_info(self) -> MediaInfo:
        details = self.video_details
        streaming = self.streaming_data
        descriptors = [
            d
            for f in (*streaming.adaptive_formats, *streaming.formats)
            if (d := f.to_descriptor(is_live=details.is_live)) is not None
        ]
        return MediaInfo(
            provider_track_id=details.video_id,
            title=details.title,
            author=details.author,
            duration_seconds=None if details.is_live else details.length_seconds,
            is_live=details.is_live,
            formats=tuple(descriptors),
        )


def parse_innertube_player(provider: str, payload: Any) -> MediaInfo:
    """Strictly parse a ``/player`` response.

    Raises:
        ProviderUnavailable: The payload is empty, unparseable or the video is
            not playable (login required, removed, region locked...).
    """
    if not isinstance(payload, dict) or not payload:
        raise ProviderUnavailable(provider, ErrorMessages.EMPTY_PROVIDER_RESPONSE)

    try:
        response = InnertubePlayerResponse.model_validate(payload)
    except (ValidationError, ValueError) as e:
        raise ProviderUnavailable(
            provider, ErrorMessages.UNPARSEABLE_PROVIDER_RESPONSE.format(error=e)
        ) from e

    playability = response.playability_status
    if playability.status != INNERTUBE_PLAYABLE_STATUS:
        raise ProviderUnavailable(
            provider,
            ErrorMessages.VIDEO_NOT_PLAYABLE.format(
                status=playability.status, reason=playability.reason or "no reason given"
            ),
        )
    return response.to_media_info()


def search_video_ids(payload: Any, limit: int) -> list[str]:
    """Video IDs of a ``/search`` response in result order, deduplicated, at most ``limit``.

    The renderer layout differs between client types, so the whole tree is
    walked for video renderers instead of following one fixed path.
    """
    found: list[str] = []

    def walk(node: Any) -> None:
        if len(found) >= limit:
            return
        if isinstance(node, list):
            for item in node:
                walk(item)
        elif isinstance(node, dict):
            for key, value in node.items():
                if key in INNERTUBE_VIDEO_RENDERERS and isinstance(value, dict):
                    video_id = value.get("videoId")
                    if (
                        isinstance(video_id, str)
                        and BARE_VIDEO_ID_PATTERN.match(video_id)
                        and video_id not in found
                        and len(found) < limit
                    ):
                        found.append(video_id)
                else:
                    walk(value)

    walk(payload)
    return found


# ── yt-dlp option models ───────────────────────────────────────────────


class YouTubeExtractorConfig(BaseModel):
    """YouTube-specific yt-dlp extractor arguments."""

    model_config = ConfigDict(frozen=True)

    player_client: list[NonEmptyStr] = Field(
        default_factory=lambda: ["android", "web"], min_length=1,
    )


class ExtractorArgs(BaseModel):
    """Container for yt-dlp extractor arguments."""

    model_config = ConfigDict(frozen=True)

    youtube: YouTubeExtractorConfig


class YtDlpOpts(BaseModel):
    """Typed yt-dlp configuration options passed to YoutubeDL."""

    model_config = ConfigDict(frozen=True)

    quiet: bool = True
    no_warnings: bool = True
    noprogress: bool = True
    noplaylist: bool = True
    default_search: NonEmptyStr = "ytsearch"
    retries: NonNegativeInt = DEFAULT_RETRIES
    socket_timeout: PositiveInt = DEFAULT_SOCKET_TIMEOUT
    format: NonEmptyStr | None = None
    skip_download: bool = True
    extractor_args: ExtractorArgs | None = None
