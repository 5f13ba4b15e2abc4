"""Tests for the on-disk cache: writes, leases, LRU eviction and index recovery."""

import asyncio
from pathlib import Path

import pytest

from discord_media_player.domain.media.exceptions import CacheWriteFailed
from discord_media_player.domain.shared.exceptions import BusinessRuleViolationError
from discord_media_player.infrastructure.cache.cache_store import (
    CacheStore,
    make_cache_key,
    parse_cache_file_name,
)


async def body(*parts: bytes):
    """Async byte source standing in for an HTTP response body."""
    for part in parts:
        yield part


async def failing_body(*parts: bytes):
    for part in parts:
        yield part
    raise ConnectionResetError("peer went away")


def temp_files(directory):
    return [p for p in directory.iterdir() if ".part-" in p.name]


@pytest.fixture
def stream_for(make_stream):
    """Stream metadata for a given track ID."""

    def _make(track_id, **overrides):
        return make_stream(source_track_id=track_id, **overrides)

    return _make


async def _put(store, track_id, size, stream_for):
    stream = stream_for(track_id)
    return await store.put(store.key_for(stream), body(b"x" * size), stream)


# ============================================================================
# Key Helpers
# ============================================================================


class TestCacheKeys:
    def test_make_cache_key(self):
        assert make_cache_key("dQw4w9WgXcQ", "251") == "dQw4w9WgXcQ.251"

    def test_unsafe_characters_replaced(self):
        """Should keep keys filename-safe."""
        assert make_cache_key("a/b", "hls-1.2") == "a_b.hls-1_2"
        assert make_cache_key("abc", None) == "abc.default"

    def test_parse_file_name(self):
        assert parse_cache_file_name("abc.251.webm") == ("abc.251", "abc", "251", "webm")
        assert parse_cache_file_name("index.db") is None
        assert parse_cache_file_name("abc.251.extra.webm") is None
        assert parse_cache_file_name("a b.251.webm") is None


# ============================================================================
# Write Path
# ============================================================================


class TestCachePut:
    @pytest.mark.asyncio
    async def test_put_registers_entry(self, cache_store, stream_for):
        """Should write the file atomically and register it with its metadata."""
        stream = stream_for("track1")

        entry = await cache_store.put(
            cache_store.key_for(stream), body(b"abc", b"def"), stream
        )

        assert entry.key == "track1.251"
        assert entry.size_bytes == 6
        assert entry.file_path.read_bytes() == b"abcdef"
        assert entry.file_path.name == "track1.251.webm"
        assert "track1.251" in cache_store
        assert cache_store.total_bytes == 6
        assert temp_files(cache_store.directory) == []

    @pytest.mark.asyncio
    async def test_put_existing_returns_resident(self, cache_store, stream_for):
        """Should not rewrite an entry that is already resident."""
        first = await _put(cache_store, "track1", 100, stream_for)
        second = await _put(cache_store, "track1", 200, stream_for)

        assert second.size_bytes == first.size_bytes == 100

    @pytest.mark.asyncio
    async def test_live_stream_rejected(self, cache_store, stream_for):
        """Should refuse to cache live streams."""
        stream = stream_for("live1", is_live=True, duration_seconds=None)

        with pytest.raises(BusinessRuleViolationError):
            await cache_store.put(cache_store.key_for(stream), body(b"x"), stream)

        assert len(cache_store) == 0

    @pytest.mark.asyncio
    async def test_seek_offset_rejected(self, cache_store, stream_for):
        """Should refuse to cache a playback that started mid-track."""
        stream = stream_for("track1")

        with pytest.raises(BusinessRuleViolationError):
            await cache_store.put(
                cache_store.key_for(stream), body(b"x"), stream, start_offset_seconds=30.0
            )

    @pytest.mark.asyncio
    async def test_too_long_rejected(self, cache_store, stream_for):
        stream = stream_for("long1", duration_seconds=4000.0)

        assert not cache_store.is_cacheable(stream, None)

    @pytest.mark.asyncio
    async def test_failed_download_leaves_no_file(self, cache_store, stream_for):
        """Should delete the partial file and register nothing on failure."""
        stream = stream_for("track1")

        with pytest.raises(CacheWriteFailed):
            await cache_store.put(
                cache_store.key_for(stream), failing_body(b"x" * 50), stream
            )

        assert len(cache_store) == 0
        assert list(cache_store.directory.glob("track1*")) == []

    @pytest.mark.asyncio
    async def test_write_over_cap_fails(self, cache_store, stream_for):
        """Should abort a write that grows past the byte cap."""
        stream = stream_for("big1")

        with pytest.raises(CacheWriteFailed):
            await cache_store.put(
                cache_store.key_for(stream), body(b"x" * 600, b"x" * 600), stream
            )

        assert temp_files(cache_store.directory) == []
        assert cache_store.total_bytes == 0

    @pytest.mark.asyncio
    async def test_empty_download_fails(self, cache_store, stream_for):
        stream = stream_for("empty1")

        with pytest.raises(CacheWriteFailed):
            await cache_store.put(cache_store.key_for(stream), body(), stream)

    @pytest.mark.asyncio
    async def test_concurrent_puts_write_once(self, cache_store, stream_for):
        """Should deduplicate concurrent writes for the same key."""
        stream = stream_for("track1")
        key = cache_store.key_for(stream)
        gate = asyncio.Event()
        pulls = 0

        async def slow_body():
            nonlocal pulls
            pulls += 1
            await gate.wait()
            yield b"y" * 10

        first = asyncio.create_task(cache_store.put(key, slow_body(), stream))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(cache_store.put(key, slow_body(), stream))
        await asyncio.sleep(0.01)
        gate.set()

        entries = await asyncio.gather(first, second)

        assert pulls == 1
        assert entries[0] == entries[1]
        assert len(cache_store) == 1

    @pytest.mark.asyncio
    async def test_cancelled_put_fails_joiners(self, cache_store, stream_for):
        """Should fail joined writers and remove the temp file when the writer is cancelled."""
        stream = stream_for("track1")
        key = cache_store.key_for(stream)
        never = asyncio.Event()

        async def stalled_body():
            yield b"z" * 10
            await never.wait()
            yield b"z"

        writer = asyncio.create_task(cache_store.put(key, stalled_body(), stream))
        await asyncio.sleep(0.05)
        joiner = asyncio.create_task(cache_store.put(key, body(b"q"), stream))
        await asyncio.sleep(0.01)

        writer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await writer
        with pytest.raises(CacheWriteFailed):
            await joiner

        assert key not in cache_store
        assert temp_files(cache_store.directory) == []


# ============================================================================
# Leases and Eviction
# ============================================================================


class TestCacheEviction:
    @pytest.mark.asyncio
    async def test_lru_entry_evicted(self, cache_store, stream_for):
        """Should evict the least recently used entry when over budget."""
        await _put(cache_store, "a", 400, stream_for)
        b_entry = await _put(cache_store, "b", 400, stream_for)

        lease = await cache_store.get("a.251")
        await lease.release()

        await _put(cache_store, "c", 400, stream_for)

        assert "a.251" in cache_store
        assert "b.251" not in cache_store
        assert "c.251" in cache_store
        assert not b_entry.file_path.exists()
        assert cache_store.total_bytes == 800

    @pytest.mark.asyncio
    async def test_leased_entry_never_evicted(self, cache_store, stream_for):
        """Should skip leased entries even when they are the LRU."""
        await _put(cache_store, "a", 400, stream_for)
        lease = await cache_store.get("a.251")
        await _put(cache_store, "b", 400, stream_for)

        await _put(cache_store, "c", 400, stream_for)

        assert "a.251" in cache_store
        assert "b.251" not in cache_store
        assert cache_store.lease_count("a.251") == 1
        await lease.release()
        assert cache_store.lease_count("a.251") == 0

    @pytest.mark.asyncio
    async def test_release_triggers_eviction_when_over_budget(self, cache_store, stream_for):
        """Should evict once the last lease on an over-budget cache goes away."""
        await _put(cache_store, "a", 600, stream_for)
        lease = await cache_store.get("a.251")
        await _put(cache_store, "b", 600, stream_for)

        assert cache_store.total_bytes == 1200

        await lease.release()

        assert "a.251" not in cache_store
        assert "b.251" in cache_store
        assert cache_store.total_bytes == 600

    @pytest.mark.asyncio
    async def test_lease_release_is_idempotent(self, cache_store, stream_for):
        await _put(cache_store, "a", 10, stream_for)

        async with await cache_store.get("a.251") as lease:
            assert lease.entry.key == "a.251"
        await lease.release()

        assert cache_store.lease_count("a.251") == 0

    @pytest.mark.asyncio
    async def test_lease_cancelled_during_index_touch(
        self, cache_store, stream_for, monkeypatch
    ):
        """Should give the lease back when the caller is cancelled before receiving it."""
        await _put(cache_store, "a", 10, stream_for)
        touching = asyncio.Event()

        async def slow_touch(key, accessed_at, access_seq):
            touching.set()
            await asyncio.sleep(10)

        monkeypatch.setattr(cache_store._index, "touch", slow_touch)
        task = asyncio.create_task(cache_store.get("a.251"))
        await touching.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert cache_store.lease_count("a.251") == 0

    @pytest.mark.asyncio
    async def test_find_by_track(self, cache_store, stream_for):
        """Should lease the most recently used entry for a track ID."""
        await _put(cache_store, "a", 10, stream_for)

        lease = await cache_store.find("a")

        assert lease is not None
        assert lease.entry.file_path.exists()
        assert lease.entry.to_stream().local_file_path == lease.entry.file_path
        await lease.release()
        assert await cache_store.find("missing") is None

    @pytest.mark.asyncio
    async def test_missing_file_unregisters(self, cache_store, stream_for):
        """Should drop an entry whose file disappeared behind the cache's back."""
        entry = await _put(cache_store, "a", 10, stream_for)
        entry.file_path.unlink()

        assert await cache_store.get("a.251") is None
        assert "a.251" not in cache_store
        assert cache_store.total_bytes == 0

    @pytest.mark.asyncio
    async def test_clear_defers_leased_delete(self, cache_store, stream_for):
        """Should keep a leased file on disk until the lease is released."""
        a_entry = await _put(cache_store, "a", 10, stream_for)
        b_entry = await _put(cache_store, "b", 10, stream_for)
        lease = await cache_store.get("a.251")

        removed = await cache_store.clear()

        assert removed == 2
        assert len(cache_store) == 0
        assert not b_entry.file_path.exists()
        assert a_entry.file_path.exists()

        await lease.release()

        assert not a_entry.file_path.exists()

    @pytest.mark.asyncio
    async def test_stats(self, cache_store, stream_for):
        await _put(cache_store, "a", 10, stream_for)

        stats = cache_store.stats()

        assert stats["entries"] == 1
        assert stats["total_bytes"] == 10
        assert stats["budget_bytes"] == 1000
        assert stats["writes_in_flight"] == 0


# ============================================================================
# Restart and Recovery
# ============================================================================


class TestCacheRecovery:
    @pytest.mark.asyncio
    async def test_entries_survive_restart(self, cache_settings, stream_for):
        """Should reload entries and their LRU order from the index."""
        store = CacheStore(cache_settings)
        await store.initialize()
        await _put(store, "a", 100, stream_for)
        await _put(store, "b", 100, stream_for)
        lease = await store.get("a.251")
        await lease.release()
        await store.close()

        reopened = CacheStore(cache_settings)
        await reopened.initialize()

        assert [e.key for e in reopened.entries()] == ["b.251", "a.251"]
        assert reopened.entries()[1].title == "Test Track"
        assert reopened.total_bytes == 200
        await reopened.close()

    @pytest.mark.asyncio
    async def test_missing_index_rebuilt_from_directory(self, cache_settings, stream_for):
        """Should recover entries from file names when the index is gone."""
        store = CacheStore(cache_settings)
        await store.initialize()
        await _put(store, "a", 100, stream_for)
        await store.close()
        for suffix in ("", "-wal", "-shm"):
            Path(f"{cache_settings.index_path}{suffix}").unlink(missing_ok=True)

        reopened = CacheStore(cache_settings)
        await reopened.initialize()

        entry = reopened.entries()[0]
        assert entry.key == "a.251"
        assert entry.track_id == "a"
        assert entry.format_id == "251"
        assert entry.container == "webm"
        await reopened.close()

    @pytest.mark.asyncio
    async def test_corrupt_index_rebuilt(self, cache_settings):
        """Should replace an unreadable index and keep the files."""
        cache_settings.directory.mkdir(parents=True)
        (cache_settings.directory / "abc.251.webm").write_bytes(b"x" * 50)
        cache_settings.index_path.write_bytes(b"this is not a database" * 50)

        store = CacheStore(cache_settings)
        await store.initialize()

        assert "abc.251" in store
        assert store.total_bytes == 50
        await store.close()

    @pytest.mark.asyncio
    async def test_stale_temp_files_removed(self, cache_settings):
        """Should delete leftover partial downloads on startup."""
        cache_settings.directory.mkdir(parents=True)
        stale = cache_settings.directory / "abc.251.part-0123abcd"
        stale.write_bytes(b"partial")

        store = CacheStore(cache_settings)
        await store.initialize()

        assert not stale.exists()
        assert len(store) == 0
        await store.close()

    @pytest.mark.asyncio
    async def test_orphaned_rows_dropped(self, cache_settings, stream_for):
        """Should forget index rows whose files are gone."""
        store = CacheStore(cache_settings)
        await store.initialize()
        entry = await _put(store, "a", 100, stream_for)
        await store.close()
        entry.file_path.unlink()

        reopened = CacheStore(cache_settings)
        await reopened.initialize()

        assert len(reopened) == 0
        await reopened.close()

    @pytest.mark.asyncio
    async def test_startup_evicts_over_budget(self, cache_settings):
        """Should evict oldest files when the directory exceeds the budget on startup."""
        cache_settings.directory.mkdir(parents=True)
        for name in ("old.1.webm", "mid.1.webm", "new.1.webm"):
            (cache_settings.directory / name).write_bytes(b"x" * 400)
            await asyncio.sleep(0.01)

        store = CacheStore(cache_settings)
        await store.initialize()

        assert store.total_bytes <= 1000
        assert "new.1" in store
        await store.close()

    @pytest.mark.asyncio
    async def test_rebuild_index(self, cache_store, stream_for):
        await _put(cache_store, "a", 100, stream_for)
        await _put(cache_store, "b", 100, stream_for)

        assert await cache_store.rebuild_index() == 2
        assert cache_store.total_bytes == 200
