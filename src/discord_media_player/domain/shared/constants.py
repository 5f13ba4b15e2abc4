"""Centralized constants for audio framing, providers, the cache index and other shared values.

This module provides reusable constants that reduce magic strings and improve maintainability.
"""

from __future__ import annotations


class AudioConstants:
    """Audio playback constants."""

    # Discord voice expects 20 ms frames of 48 kHz 16-bit stereo PCM
    FRAME_DURATION_SECONDS = 0.02

    # FFmpeg option fragments
    FFMPEG_OPTIONS_DEFAULT = "-vn"
    FFMPEG_FADE_IN_FILTER = '-af "afade=t=in:ss=0:d={duration}"'
    FFMPEG_USER_AGENT_HEADER = '-headers "User-Agent: {user_agent}"'

    # Matches yt-dlp's Android client user-agent to avoid YouTube 403 responses
    ANDROID_USER_AGENT = "com.google.android.youtube/19.44.38 (Linux; U; Android 14) gzip"

    # Volume
    DEFAULT_VOLUME_PERCENT = 50
    DEFAULT_DUCK_TARGET_PERCENT = 70
    MAX_SEEK_SECONDS = 86_400

    # Preferred Discord-native format
    PREFERRED_CODEC = "opus"
    PREFERRED_CONTAINER = "webm"
    PREFERRED_SAMPLE_RATE = 48_000


class ProviderConstants:
    """Metadata provider constants."""

    INNERTUBE_PROVIDER_NAME = "innertube"
    API_PROVIDER_NAME = "ytdlp-api"
    CLI_PROVIDER_NAME = "ytdlp-cli"

    SEARCH_PREFIX = "ytsearch1:"
    DEFAULT_SEARCH_LIMIT = 5
    DEFAULT_INNERTUBE_CLIENT = "ANDROID"
    DEFAULT_TIMEOUT_SECONDS = 30.0
    VERSION_PROBE_TIMEOUT_SECONDS = 5.0
    CLI_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
    CLI_INFO_ARGS = ("--dump-json", "--no-playlist", "--no-warnings", "--skip-download")

    # Failure messages containing these indicate the extractor is broken
    # (player script changes, signature / n-parameter deciphering)
    EXTRACTOR_BREAKAGE_KEYWORDS = ("decipher", "signature", "nsig", "player")


class CacheConstants:
    """On-disk cache constants."""

    TEMP_MARKER = ".part"
    INDEX_FILE_NAME = "index.db"
    DEFAULT_BUDGET = "2GB"
    DEFAULT_MAX_DURATION_SECONDS = 1800
    DEFAULT_EXTENSION = "bin"


class DatabaseTables:
    """Database table names."""

    CACHE_ENTRIES = "cache_entries"


class SQLPragmas:
    """SQLite PRAGMA statements."""

    JOURNAL_MODE_WAL = "PRAGMA journal_mode=WAL"
    BUSY_TIMEOUT = "PRAGMA busy_timeout={timeout}"
    INTEGRITY_CHECK = "PRAGMA quick_check"


class DatabaseURLSchemes:
    """Database URL scheme prefixes."""

    SQLITE = "sqlite:///"
    MEMORY = ":memory:"
    MEMORY_SHARED_URI = "file:discord-media-player-{name}?mode=memory&cache=shared"

