import pytest
import pytest_asyncio

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def cache_settings(tmp_path):
    """Cache settings pointing at a temporary directory with a small budget."""
    from discord_media_player.config.settings import CacheSettings

    return CacheSettings(
        directory=tmp_path / "cache",
        budget_bytes=1000,
        max_duration_seconds=1800,
        download_timeout_seconds=5.0,
    )


@pytest.fixture
def audio_settings():
    """Audio settings with short timeouts for tests."""
    from discord_media_player.config.settings import AudioSettings

    return AudioSettings(cancel_timeout_seconds=1.0, fade_in_seconds=0.0)


@pytest.fixture(autouse=True)
def clear_settings():
    """Make sure no test sees settings cached by another."""
    from discord_media_player.config.settings import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Reset the global event bus around every test."""
    from discord_media_player.domain.shared.events import reset_event_bus

    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def event_bus():
    """A private event bus for tests that assert on published events."""
    from discord_media_player.domain.shared.events import EventBus

    return EventBus()


# ============================================================================
# Database / Cache Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def in_memory_database():
    """Create an in-memory SQLite database for testing."""
    from discord_media_player.infrastructure.persistence.database import Database

    db = Database(":memory:")
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def cache_store(cache_settings):
    """An initialized cache store in a temporary directory."""
    from discord_media_player.infrastructure.cache.cache_store import CacheStore

    store = CacheStore(cache_settings)
    await store.initialize()
    yield store
    await store.close()


# ============================================================================
# Domain Entity Fixtures
# ============================================================================


@pytest.fixture
def make_stream():
    """Factory for remote ResolvedStreams with sensible defaults."""
    from discord_media_player.domain.media.entities import ResolvedStream

    def _make(**overrides):
        fields = {
            "source_track_id": "dQw4w9WgXcQ",
            "stream_url": "https://media.example.com/dQw4w9WgXcQ.webm",
            "container": "webm",
            "audio_codec": "opus",
            "sample_rate": 48000,
            "bitrate": 128.0,
            "is_live": False,
            "duration_seconds": 120.0,
            "provider_used": "ytdlp-api",
            "format_id": "251",
            "title": "Test Track",
        }
        fields.update(overrides)
        return ResolvedStream(**fields)

    return _make


@pytest.fixture
def make_format():
    """Factory for FormatDescriptors; audio-only opus/webm/48k unless overridden."""
    from discord_media_player.domain.media.entities import FormatDescriptor

    def _make(format_id="251", **overrides):
        fields = {
            "format_id": format_id,
            "url": f"https://media.example.com/{format_id}",
            "container": "webm",
            "audio_codec": "opus",
            "video_codec": None,
            "has_audio": True,
            "has_video": False,
            "audio_bitrate": 128.0,
            "sample_rate": 48000,
        }
        fields.update(overrides)
        return FormatDescriptor(**fields)

    return _make


@pytest.fixture
def sample_reference():
    """A reference to a YouTube video with a duration hint."""
    from discord_media_player.domain.media.entities import TrackReference

    return TrackReference(
        query="https://www.youtube.com/watch?v=dQw4w9WgXcQ", duration_hint=120.0
    )
