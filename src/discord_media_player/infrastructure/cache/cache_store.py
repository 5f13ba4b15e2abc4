"""Content-addressed on-disk audio cache with a byte budget and LRU eviction."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
import uuid
from collections.abc import AsyncIterable
from pathlib import Path
from typing import Any, BinaryIO

import aiosqlite

from discord_media_player.application.interfaces.media_cache import CacheLease, MediaCache
from discord_media_player.config.settings import CacheSettings
from discord_media_player.domain.media.entities import CacheEntry, ResolvedStream
from discord_media_player.domain.media.exceptions import CacheWriteFailed, StorageBudgetExceeded
from discord_media_player.domain.media.services import CachePolicy
from discord_media_player.domain.shared.constants import CacheConstants
from discord_media_player.domain.shared.datetime_utils import UtcDateTime
from discord_media_player.domain.shared.exceptions import BusinessRuleViolationError
from discord_media_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_media_player.infrastructure.persistence.database import Database
from discord_media_player.infrastructure.persistence.repositories.cache_index_repository import (
    SQLiteCacheIndexRepository,
)

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_-]")
DEFAULT_FORMAT_ID = "default"


def make_cache_key(track_id: str, format_id: str | None) -> str:
    """``<track>.<format>``; both parts are restricted to filename-safe characters."""
    track = _UNSAFE_KEY_CHARS.sub("_", track_id)
    fmt = _UNSAFE_KEY_CHARS.sub("_", format_id or DEFAULT_FORMAT_ID)
    return f"{track}.{fmt}"


def parse_cache_file_name(name: str) -> tuple[str, str, str, str] | None:
    """Split ``<track>.<format>.<ext>`` into (key, track_id, format_id, ext)."""
    parts = name.split(".")
    if len(parts) != 3 or not all(parts):
        return None
    track_id, format_id, ext = parts
    if _UNSAFE_KEY_CHARS.search(track_id) or _UNSAFE_KEY_CHARS.search(format_id):
        return None
    return f"{track_id}.{format_id}", track_id, format_id, ext


class _StoreLease(CacheLease):
    def __init__(self, store: CacheStore, entry: CacheEntry) -> None:
        self._store = store
        self._entry = entry
        self._released = False

    @property
    def entry(self) -> CacheEntry:
        return self._entry

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._store.release(self._entry.key)


class CacheStore(MediaCache):
    """Process-wide cache of fully downloaded audio files.

    The in-memory entry map is authoritative while the process runs; the
    SQLite index only lets it survive a restart and is rebuilt from a
    directory scan whenever it is missing or corrupt. Size accounting, LRU
    order and eviction are guarded by one store lock. Writes for the same key
    are deduplicated through a shared future, and leased entries are never
    evicted.
    """

    def __init__(self, settings: CacheSettings, database: Database | None = None) -> None:
        self._settings = settings
        self._directory = settings.directory
        self._policy = CachePolicy(
            budget_bytes=settings.budget_bytes,
            max_duration_seconds=settings.max_duration_seconds,
        )
        self._db = database or Database(
            settings.index_path, busy_timeout_ms=settings.busy_timeout_ms
        )
        self._index = SQLiteCacheIndexRepository(self._db, self._directory)

        self._entries: dict[str, CacheEntry] = {}
        self._access_seq: dict[str, int] = {}
        self._seq = 0
        self._total_bytes = 0
        self._leases: dict[str, int] = {}
        self._pending_delete: dict[str, Path] = {}
        self._inflight: dict[str, asyncio.Future[CacheEntry]] = {}
        self._lock = asyncio.Lock()
        self._initialized = False

    # ── Properties ────────────────────────────────────────────────────

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def policy(self) -> CachePolicy:
        return self._policy

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    @property
    def budget_bytes(self) -> int:
        return self._policy.budget_bytes

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Remove stale temp files, reconcile the index with the directory, then evict."""
        if self._initialized:
            return

        await asyncio.to_thread(self._directory.mkdir, parents=True, exist_ok=True)
        self._remove_temp_files()

        async with self._lock:
            rows = await self._open_index()
            self._reset_memory()
            await self._load_rows(rows)
            await self._recover_unindexed_files()
            await self._evict_locked()

        self._initialized = True
        logger.info(
            LogTemplates.CACHE_INITIALIZED,
            len(self._entries),
            self._total_bytes,
            self.budget_bytes,
            self._directory,
        )

    async def close(self) -> None:
        await self._db.close()
        self._initialized = False

    async def _open_index(self) -> list[tuple[CacheEntry, int]]:
        try:
            await self._db.initialize()
            if await self._db.check_integrity():
                return await self._index.list_lru()
        except aiosqlite.DatabaseError as e:
            logger.warning(LogTemplates.CACHE_INDEX_CORRUPT, self._db.db_path, e)

        await self._db.destroy()
        await self._db.initialize()
        return []

    def _remove_temp_files(self) -> None:
        for path in self._directory.glob(f"*{CacheConstants.TEMP_MARKER}-*"):
            try:
                path.unlink()
                logger.info(LogTemplates.CACHE_TEMP_REMOVED, path.name)
            except OSError as e:
                logger.warning(LogTemplates.CACHE_DELETE_FAILED, path.name, e)

    async def _load_rows(self, rows: list[tuple[CacheEntry, int]]) -> None:
        for entry, seq in rows:
            try:
                size = entry.file_path.stat().st_size
            except OSError:
                logger.info(LogTemplates.CACHE_INDEX_ROW_ORPHANED, entry.key)
                await self._index_delete(entry.key)
                continue
            if size != entry.size_bytes:
                entry = entry.model_copy(update={"size_bytes": size})
                await self._index_upsert(entry, seq)
            self._register(entry, seq)

    async def _recover_unindexed_files(self) -> int:
        """Re-register files the index does not know about, oldest first."""
        known = {entry.file_path.name for entry in self._entries.values()}
        index_names = {
            self._settings.index_file_name,
            f"{self._settings.index_file_name}-wal",
            f"{self._settings.index_file_name}-shm",
        }

        candidates: list[tuple[float, CacheEntry]] = []
        for path in self._directory.iterdir():
            if not path.is_file() or path.name in known or path.name in index_names:
                continue
            parsed = parse_cache_file_name(path.name)
            if parsed is None:
                logger.debug(LogTemplates.CACHE_FILE_UNRECOGNIZED, path.name)
                continue
            key, track_id, format_id, ext = parsed
            if key in self._entries:
                continue
            stat = path.stat()
            if stat.st_size <= 0:
                continue
            modified = UtcDateTime.from_unix_seconds(stat.st_mtime).dt
            entry = CacheEntry(
                key=key,
                track_id=track_id,
                format_id=format_id,
                file_path=path,
                size_bytes=stat.st_size,
                created_at=modified,
                last_access_time=modified,
                container=None if ext == CacheConstants.DEFAULT_EXTENSION else ext,
            )
            candidates.append((stat.st_mtime, entry))

        candidates.sort(key=lambda item: item[0])
        for _, entry in candidates:
            seq = self._register(entry)
            await self._index_upsert(entry, seq)
            logger.info(LogTemplates.CACHE_FILE_RECOVERED, entry.file_path.name, entry.size_bytes)
        return len(candidates)

    async def rebuild_index(self) -> int:
        """Drop the index and rebuild it from a directory scan. Returns the entry count."""
        await asyncio.to_thread(self._directory.mkdir, parents=True, exist_ok=True)
        self._remove_temp_files()
        async with self._lock:
            await self._db.destroy()
            await self._db.initialize()
            self._reset_memory()
            await self._recover_unindexed_files()
            await self._evict_locked()
            self._initialized = True
        logger.info(LogTemplates.CACHE_REBUILT, len(self._entries), self._total_bytes)
        return len(self._entries)

    # ── Lookup ────────────────────────────────────────────────────────

    def key_for(self, stream: ResolvedStream) -> str:
        return make_cache_key(stream.source_track_id, stream.format_id)

    def is_cacheable(self, stream: ResolvedStream, start_offset_seconds: float | None) -> bool:
        if stream.is_local:
            return False
        return self._policy.is_cacheable(
            is_live=stream.is_live,
            start_offset_seconds=start_offset_seconds,
            duration_seconds=stream.duration_seconds,
        )

    async def get(self, key: str) -> CacheLease | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return await self._lease(entry)

    async def find(self, track_id: str) -> CacheLease | None:
        matches = [e for e in self._entries.values() if e.track_id == track_id]
        if not matches:
            return None
        entry = max(matches, key=lambda e: self._access_seq.get(e.key, 0))
        return await self._lease(entry)

    async def _lease(self, entry: CacheEntry) -> CacheLease | None:
        # Lease before the first await so eviction can never see the entry unleased.
        if not entry.file_path.exists():
            logger.warning(LogTemplates.CACHE_ENTRY_MISSING, entry.key)
            self._unregister(entry.key)
            await self._index_delete(entry.key)
            return None

        self._leases[entry.key] = self._leases.get(entry.key, 0) + 1
        now = UtcDateTime.now()
        entry = entry.model_copy(update={"last_access_time": now.dt})
        self._entries[entry.key] = entry
        seq = self._next_seq()
        self._access_seq[entry.key] = seq
        logger.debug(LogTemplates.CACHE_HIT, entry.key, self._leases[entry.key])

        try:
            await self._index.touch(entry.key, now, seq)
        except aiosqlite.Error as e:
            logger.warning(LogTemplates.CACHE_INDEX_UPDATE_FAILED, entry.key, e)
        except BaseException:
            # Cancelled before the caller got the lease; nobody else can release it.
            self._drop_lease(entry.key)
            raise
        return _StoreLease(self, entry)

    def _drop_lease(self, key: str) -> bool:
        """Decrement without awaiting. True when that was the last lease on ``key``."""
        count = self._leases.get(key, 0) - 1
        if count > 0:
            self._leases[key] = count
            return False
        self._leases.pop(key, None)
        return True

    async def release(self, key: str) -> None:
        """Drop one read lease; runs deferred deletion or eviction when the last one goes.

        The count is updated before the first await, so a caller cancelled
        mid-release still gives the entry back.
        """
        if not self._drop_lease(key):
            return

        pending = self._pending_delete.pop(key, None)
        if pending is not None:
            await asyncio.to_thread(self._unlink, pending)
        elif self._total_bytes > self.budget_bytes:
            await self.evict_if_needed()

    def lease_count(self, key: str) -> int:
        return self._leases.get(key, 0)

    # ── Write path ────────────────────────────────────────────────────

    async def put(
        self,
        key: str,
        source: AsyncIterable[bytes],
        metadata: ResolvedStream,
        *,
        start_offset_seconds: float | None = None,
    ) -> CacheEntry:
        if not self.is_cacheable(metadata, start_offset_seconds):
            raise BusinessRuleViolationError(
                rule="cache_eligibility",
                message=ErrorMessages.CACHE_NOT_ELIGIBLE.format(key=key),
            )

        existing = self._entries.get(key)
        if existing is not None:
            logger.debug(LogTemplates.CACHE_ALREADY_RESIDENT, key)
            return existing

        inflight = self._inflight.get(key)
        if inflight is not None:
            logger.debug(LogTemplates.CACHE_WRITE_JOINED, key)
            return await asyncio.shield(inflight)

        future: asyncio.Future[CacheEntry] = asyncio.get_running_loop().create_future()
        # Mark the outcome as retrieved even when nobody joined the write.
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = future
        try:
            entry = await self._write(key, source, metadata)
        except asyncio.CancelledError:
            future.set_exception(CacheWriteFailed(key, ErrorMessages.CACHE_WRITE_CANCELLED))
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(entry)
            return entry
        finally:
            self._inflight.pop(key, None)

    async def _write(
        self, key: str, source: AsyncIterable[bytes], metadata: ResolvedStream
    ) -> CacheEntry:
        cap = self._policy.byte_cap(metadata.duration_seconds, metadata.bitrate)
        ext = self._extension_for(metadata)
        final_path = self._directory / f"{key}.{ext}"
        temp_path = self._directory / f"{key}{CacheConstants.TEMP_MARKER}-{uuid.uuid4().hex}"
        started = time.perf_counter()
        logger.debug(LogTemplates.CACHE_WRITE_STARTED, key, cap)

        try:
            written = await self._stream_to_file(key, source, temp_path, cap)
            if written == 0:
                raise CacheWriteFailed(key, ErrorMessages.CACHE_WRITE_EMPTY)
            await asyncio.to_thread(os.replace, temp_path, final_path)
        except asyncio.CancelledError:
            self._unlink(temp_path)
            logger.info(LogTemplates.CACHE_WRITE_ABORTED, key)
            raise
        except CacheWriteFailed as e:
            self._unlink(temp_path)
            logger.warning(LogTemplates.CACHE_WRITE_FAILED, key, e.message)
            raise
        except TimeoutError as e:
            self._unlink(temp_path)
            message = ErrorMessages.CACHE_WRITE_TIMEOUT.format(
                seconds=self._settings.download_timeout_seconds
            )
            logger.warning(LogTemplates.CACHE_WRITE_FAILED, key, message)
            raise CacheWriteFailed(key, message) from e
        except Exception as e:
            self._unlink(temp_path)
            logger.warning(LogTemplates.CACHE_WRITE_FAILED, key, e)
            raise CacheWriteFailed(key, str(e) or type(e).__name__) from e

        entry = CacheEntry(
            key=key,
            track_id=metadata.source_track_id,
            format_id=metadata.format_id or DEFAULT_FORMAT_ID,
            file_path=final_path,
            size_bytes=written,
            container=metadata.container,
            audio_codec=metadata.audio_codec,
            sample_rate=metadata.sample_rate,
            bitrate=metadata.bitrate,
            duration_seconds=metadata.duration_seconds,
            title=metadata.title,
            provider=metadata.provider_used,
        )

        async with self._lock:
            seq = self._register(entry)
            await self._index_upsert(entry, seq)
            await self._evict_locked(protect=frozenset({key}))

        logger.info(
            LogTemplates.CACHE_WRITE_COMPLETED,
            key,
            written,
            (time.perf_counter() - started) * 1000,
        )
        return entry

    async def _stream_to_file(
        self, key: str, source: AsyncIterable[bytes], path: Path, cap: int
    ) -> int:
        written = 0
        handle: BinaryIO = await asyncio.to_thread(path.open, "wb")
        try:
            async with asyncio.timeout(self._settings.download_timeout_seconds):
                async for chunk in source:
                    if not chunk:
                        continue
                    written += len(chunk)
                    if written > cap:
                        raise CacheWriteFailed(
                            key, ErrorMessages.CACHE_WRITE_TOO_LARGE.format(limit=cap)
                        )
                    await asyncio.to_thread(handle.write, chunk)
                await asyncio.to_thread(handle.flush)
        finally:
            handle.close()
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
        return written

    @staticmethod
    def _extension_for(metadata: ResolvedStream) -> str:
        container = _UNSAFE_KEY_CHARS.sub("", metadata.container or "")
        return container or CacheConstants.DEFAULT_EXTENSION

    # ── Eviction ──────────────────────────────────────────────────────

    async def evict_if_needed(self) -> int:
        async with self._lock:
            return await self._evict_locked()

    async def _evict_locked(self, protect: frozenset[str] = frozenset()) -> int:
        if self._total_bytes <= self.budget_bytes:
            return 0

        evicted = 0
        for key in sorted(self._entries, key=lambda k: self._access_seq.get(k, 0)):
            if self._total_bytes <= self.budget_bytes:
                break
            if key in protect or self._leases.get(key) or key not in self._entries:
                continue
            entry = self._unregister(key)
            if entry is None:
                continue
            await asyncio.to_thread(self._unlink, entry.file_path)
            await self._index_delete(key)
            evicted += 1
            logger.info(LogTemplates.CACHE_EVICTED, key, entry.size_bytes, self._total_bytes)

        if self._total_bytes > self.budget_bytes:
            logger.warning(
                LogTemplates.CACHE_BUDGET_EXCEEDED,
                StorageBudgetExceeded(self._total_bytes, self.budget_bytes),
            )
        return evicted

    async def clear(self) -> int:
        """Remove every entry. Leased files are deleted when their last lease is released."""
        async with self._lock:
            removed = 0
            for key in list(self._entries):
                entry = self._unregister(key)
                if entry is None:
                    continue
                if self._leases.get(key):
                    self._pending_delete[key] = entry.file_path
                else:
                    await asyncio.to_thread(self._unlink, entry.file_path)
                removed += 1
            try:
                await self._index.clear()
            except aiosqlite.Error as e:
                logger.warning(LogTemplates.CACHE_INDEX_UPDATE_FAILED, "*", e)
        logger.info(LogTemplates.CACHE_CLEARED, removed)
        return removed

    def stats(self) -> dict[str, Any]:
        return {
            "directory": str(self._directory),
            "entries": len(self._entries),
            "total_bytes": self._total_bytes,
            "budget_bytes": self.budget_bytes,
            "max_duration_seconds": self._policy.max_duration_seconds,
            "leased_entries": sum(1 for count in self._leases.values() if count > 0),
            "writes_in_flight": len(self._inflight),
        }

    def entries(self) -> list[CacheEntry]:
        """Resident entries, least recently used first."""
        return sorted(self._entries.values(), key=lambda e: self._access_seq.get(e.key, 0))

    # ── Bookkeeping (callers hold the lock or run without awaiting) ─────

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _register(self, entry: CacheEntry, seq: int | None = None) -> int:
        previous = self._entries.get(entry.key)
        if previous is not None:
            self._total_bytes -= previous.size_bytes
        self._pending_delete.pop(entry.key, None)
        self._entries[entry.key] = entry
        self._total_bytes += entry.size_bytes
        if seq is None:
            seq = self._next_seq()
        else:
            self._seq = max(self._seq, seq)
        self._access_seq[entry.key] = seq
        return seq

    def _unregister(self, key: str) -> CacheEntry | None:
        entry = self._entries.pop(key, None)
        self._access_seq.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size_bytes
        return entry

    def _reset_memory(self) -> None:
        self._entries.clear()
        self._access_seq.clear()
        self._total_bytes = 0
        self._seq = 0

    async def _index_upsert(self, entry: CacheEntry, seq: int) -> None:
        try:
            await self._index.upsert(entry, seq)
        except aiosqlite.Error as e:
            logger.warning(LogTemplates.CACHE_INDEX_UPDATE_FAILED, entry.key, e)

    async def _index_delete(self, key: str) -> None:
        try:
            await self._index.delete(key)
        except aiosqlite.Error as e:
            logger.warning(LogTemplates.CACHE_INDEX_UPDATE_FAILED, key, e)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(LogTemplates.CACHE_DELETE_FAILED, path.name, e)
