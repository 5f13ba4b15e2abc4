"""Centralized message constants for error messages and log templates."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Track Validation Errors
    EMPTY_TRACK_ID = "Track ID cannot be empty"

    # Playback Position Errors
    NEGATIVE_START_OFFSET = "Start offset cannot be negative"
    START_OFFSET_TOO_LARGE = "Start offset cannot exceed {limit} seconds"
    INVALID_SKIP_RANGE = "Skip range end ({end}) must be after its start ({start})"

    # Stream Errors
    STREAM_NEEDS_ONE_SOURCE = "A resolved stream needs exactly one of stream_url or local_file_path"
    LIVE_STREAM_FROM_FILE = "A live stream cannot be served from a local file"
    STREAM_TRANSPORT_ERROR = "Voice transport reported an error: {error}"
    STREAM_ENDED_EARLY = "Stream ended at {position:.1f}s of {duration:.1f}s"

    # Player State Errors
    INVALID_STATE_TRANSITION = "Cannot transition from {current} to {target}"

    # Time/Date Validation Errors
    TIMEZONE_REQUIRED_UTC_DATETIME = "UtcDateTime requires a timezone-aware datetime"

    # Field Validation Errors (templates)
    INVALID_BYTE_SIZE = "Invalid byte size: {value!r}. Use plain bytes or a unit such as 512MB"
    FIELD_MUST_BE_PERCENT = "{field_name} must be between 0 and 100"

    # Configuration Errors
    EMPTY_PLAYER_CLIENTS = "At least one yt-dlp player client is required"
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"

    # Provider Errors
    EMPTY_PROVIDER_RESPONSE = "Empty response from provider"
    NO_SEARCH_RESULTS = "Search returned no results"
    UNPARSEABLE_PROVIDER_RESPONSE = "Provider response could not be parsed: {error}"
    PROVIDER_TIMEOUT = "Provider did not respond within {seconds}s"
    NOT_A_YOUTUBE_REFERENCE = "Not a YouTube video or search term"
    VIDEO_NOT_PLAYABLE = "Video is not playable ({status}): {reason}"
    YTDLP_INIT_FAILED = "Failed to initialize yt-dlp: {error}"
    YTDLP_BINARY_NOT_FOUND = "yt-dlp executable not found"
    YTDLP_CLI_FAILED = "yt-dlp exited with code {code}: {stderr}"
    YTDLP_OUTPUT_TOO_LARGE = "yt-dlp output exceeded {limit} bytes"

    # Cache Errors
    CACHE_NOT_ELIGIBLE = "Stream '{key}' is not eligible for caching"
    CACHE_WRITE_CANCELLED = "Cache write was cancelled"
    CACHE_WRITE_TOO_LARGE = "Download exceeded the {limit} byte cap"
    CACHE_WRITE_EMPTY = "Download produced no data"
    CACHE_WRITE_TIMEOUT = "Download did not finish within {seconds}s"
    HTTP_STATUS_ERROR = "Unexpected HTTP status {status}"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Database Lifecycle
    DATABASE_INITIALIZED = "Cache index database initialized at %s"
    DATABASE_CLOSED = "Cache index database closed"
    DATABASE_ROLLBACK_FAILED = "Rollback failed: %r"
    DATABASE_INTEGRITY_FAILED = "Integrity check failed for %s: %s"
    DATABASE_DESTROYED = "Removed cache index database at %s"

    # Cache Lifecycle
    CACHE_INITIALIZED = "Cache ready: %d entries, %d / %d bytes in %s"
    CACHE_REBUILT = "Cache index rebuilt: %d entries, %d bytes"
    CACHE_CLEARED = "Cleared %d cache entries"
    CACHE_TEMP_REMOVED = "Removed stale temp file %s"
    CACHE_INDEX_CORRUPT = "Cache index %s is unusable, rebuilding from directory: %s"
    CACHE_INDEX_ROW_DROPPED = "Dropping unreadable cache index row %s: %s"
    CACHE_INDEX_ROW_ORPHANED = "Cache index row %s has no file, removing"
    CACHE_INDEX_UPDATE_FAILED = "Cache index update failed for %s: %s"
    CACHE_FILE_UNRECOGNIZED = "Ignoring unrecognized file in cache directory: %s"
    CACHE_FILE_RECOVERED = "Recovered unindexed cache file %s (%d bytes)"
    CACHE_DELETE_FAILED = "Failed to delete cache file %s: %s"

    # Cache Operations
    CACHE_HIT = "Cache hit for '%s' (%d active leases)"
    CACHE_ENTRY_MISSING = "Cache entry '%s' lost its file, unregistering"
    CACHE_ALREADY_RESIDENT = "Cache entry '%s' already resident"
    CACHE_WRITE_JOINED = "Joining in-flight cache write for '%s'"
    CACHE_WRITE_STARTED = "Cache write started for '%s' (cap %d bytes)"
    CACHE_WRITE_COMPLETED = "Cached '%s': %d bytes in %.0fms"
    CACHE_WRITE_ABORTED = "Cache write for '%s' cancelled"
    CACHE_WRITE_FAILED = "Cache write for '%s' failed: %s"
    CACHE_EVICTED = "Evicted '%s' (%d bytes), cache now %d bytes"
    CACHE_BUDGET_EXCEEDED = "Cache still over budget after eviction: %s"
    STREAM_FETCH_STARTED = "Fetching stream %s (content-length %s)"

    # Resolution
    YTDLP_INITIALIZED = "yt-dlp client initialized in %.0fms"
    YTDLP_INIT_FAILED = "Failed to initialize yt-dlp: %s"
    YTDLP_EXTRACTING = "Extracting info for %s"
    INNERTUBE_SEARCH_CANDIDATE_FAILED = "[%s] search result %s unusable: %s"
    YTDLP_CLI_UNAVAILABLE = "yt-dlp CLI unavailable: %s"
    YTDLP_CLI_VERSION = "yt-dlp CLI version %s"
    YTDLP_CLI_STDERR = "yt-dlp stderr: %s"
    YTDLP_CLI_KILL_TIMEOUT = "yt-dlp process %s did not exit after kill"
    PROVIDER_FETCHED = "[%s] fetched %s: %d formats, live=%s in %.0fms"
    RESOLVER_SELECTED_FORMAT = "[%s] selected format %s (%s/%s, %.0f kbps) for %s"
    RESOLVER_PROVIDER_FAILED = "[%s] failed to resolve '%s': %s"
    RESOLVER_EXTRACTOR_BROKEN = "[%s] extractor looks broken, update yt-dlp: %s"
    RESOLVER_FALLBACK_SUCCEEDED = "Resolved via fallback provider %s after %d failure(s)"
    RESOLVER_ALL_FAILED = "All providers failed for '%s' (%d attempts)"

    # Segment Skips
    SEGMENT_SKIPS_FOUND = "Found %d skip range(s) for %s"
    SEGMENT_SKIPS_UNAVAILABLE = "Segment skip lookup for %s failed (%s), backing off %.0fs"

    # FFmpeg/Audio Pipeline
    PIPELINE_CREATED = "Pipeline for %s from %s: offset=%.1fs, %d skip range(s)"
    PIPELINE_SKIPPED_RANGE = "Skipped segment %.1fs-%.1fs"
    FFMPEG_SOURCE_CLEANUP_ERROR = "Error cleaning up FFmpeg source: %s"

    # Voice Transport
    VOICE_NOT_CONNECTED = "Not connected to voice in guild %s"
    VOICE_CLIENT_ERROR = "Voice client error: %s"
    VOICE_PLAYBACK_STARTED = "Voice playback started in guild %s"
    VOICE_PLAYBACK_STOPPED = "Voice playback stopped in guild %s"
    VOICE_ACTIVITY_CALLBACK_ERROR = "Voice activity handler failed for guild %s: %s"

    # Player Commands
    PLAYER_ENQUEUED = "Guild %s: enqueued '%s' at position %d"
    PLAYER_SKIPPED = "Guild %s: skipped %s"
    PLAYER_PAUSED = "Guild %s: paused at %.1fs"
    PLAYER_RESUMED = "Guild %s: resumed at %.1fs"
    PLAYER_SEEK = "Guild %s: seeking %s to %.1fs"
    PLAYER_STOPPED = "Guild %s: stopped, cleared %d queued item(s)"
    PLAYER_SHUTDOWN = "Guild %s: player shut down"
    PLAYER_VOLUME = "Guild %s: volume %d%% (effective %.0f%%)"
    PLAYER_DUCKING = "Guild %s: someone speaking=%s, effective volume %.0f%%"

    # Player Worker
    PLAYER_TRACK_STARTED = "Guild %s: playing '%s' via %s (cached=%s, offset=%.1fs)"
    PLAYER_TRACK_FINISHED = "Guild %s: finished %s"
    PLAYER_TRACK_FAILED = "Guild %s: failed to play '%s': %s"
    PLAYER_QUEUE_EXHAUSTED = "Guild %s: queue exhausted"
    PLAYER_WORKER_CRASHED = "Guild %s: playback crashed, dropping the current item"
    PLAYER_UNEXPECTED_ERROR = "Guild %s: unexpected error while playing %s"
    PLAYER_CANCEL_TIMEOUT = "Guild %s: worker did not stop within %.1fs"
    PLAYER_AFTER_CALLBACK_FAILED = "Guild %s: could not deliver playback end: %s"
    PLAYER_TRANSPORT_STOP_FAILED = "Guild %s: failed to stop voice transport: %s"
    PLAYER_CACHE_HIT = "Guild %s: serving %s from cache entry %s"
    PLAYER_CACHE_SKIPPED = "Guild %s: %s not eligible for caching"
    PLAYER_CACHE_FILL_STARTED = "Guild %s: background cache fill for %s"
    PLAYER_CACHE_FILL_FAILED = "Guild %s: cache fill for %s failed: %s"

    # Registry
    REGISTRY_PLAYER_CREATED = "Created player for guild %s (%d active)"
    REGISTRY_PLAYER_DESTROYED = "Destroyed player for guild %s (%s)"
    REGISTRY_TEARDOWN_FAILED = "Teardown of guild %s failed: %s"

    # Operator CLI
    CLI_STARTING = "Running '%s' command (%s environment)"
    CLI_RESOLVE_FAILED = "Could not resolve '%s': %s"
    CLI_INTERRUPTED = "Interrupted by user"
    CLI_FATAL_ERROR = "Fatal error: %s"
