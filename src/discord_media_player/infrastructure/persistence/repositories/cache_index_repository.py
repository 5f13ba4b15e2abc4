"""SQLite implementation of the on-disk cache index."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from discord_media_player.domain.media.entities import CacheEntry
from discord_media_player.domain.shared.constants import DatabaseTables
from discord_media_player.domain.shared.datetime_utils import UtcDateTime
from discord_media_player.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ..database import Database

logger = logging.getLogger(__name__)

_TABLE = DatabaseTables.CACHE_ENTRIES


class SQLiteCacheIndexRepository:
    """Persists cache entry metadata so the cache survives restarts.

    File names are stored relative to ``directory``; the index never holds
    absolute paths, so a cache directory can be moved as a whole.
    """

    def __init__(self, database: Database, directory: Path) -> None:
        self._db = database
        self._directory = directory

    async def upsert(self, entry: CacheEntry, access_seq: int) -> None:
        await self._db.execute(
            f"""
            INSERT INTO {_TABLE} (
                cache_key, track_id, format_id, file_name, size_bytes,
                container, audio_codec, sample_rate, bitrate, duration_seconds,
                title, provider, created_at, last_access_at, access_seq
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(cache_key) DO UPDATE SET
                file_name = excluded.file_name,
                size_bytes = excluded.size_bytes,
                container = excluded.container,
                audio_codec = excluded.audio_codec,
                sample_rate = excluded.sample_rate,
                bitrate = excluded.bitrate,
                duration_seconds = excluded.duration_seconds,
                title = excluded.title,
                provider = excluded.provider,
                last_access_at = excluded.last_access_at,
                access_seq = excluded.access_seq
            """,
            (
                entry.key,
                entry.track_id,
                entry.format_id,
                entry.file_path.name,
                entry.size_bytes,
                entry.container,
                entry.audio_codec,
                entry.sample_rate,
                entry.bitrate,
                entry.duration_seconds,
                entry.title,
                entry.provider,
                UtcDateTime(entry.created_at).iso,
                UtcDateTime(entry.last_access_time).iso,
                access_seq,
            ),
        )

    async def touch(self, key: str, accessed_at: UtcDateTime, access_seq: int) -> None:
        await self._db.execute(
            f"UPDATE {_TABLE} SET last_access_at = ?, access_seq = ? WHERE cache_key = ?",
            (accessed_at.iso, access_seq, key),
        )

    async def delete(self, key: str) -> bool:
        cursor = await self._db.execute(f"DELETE FROM {_TABLE} WHERE cache_key = ?", (key,))
        return (cursor.rowcount or 0) > 0

    async def clear(self) -> int:
        cursor = await self._db.execute(f"DELETE FROM {_TABLE}")
        return cursor.rowcount or 0

    async def get(self, key: str) -> CacheEntry | None:
        row = await self._db.fetch_one(f"SELECT * FROM {_TABLE} WHERE cache_key = ?", (key,))
        return self._row_to_entry(row) if row else None

    async def list_lru(self) -> list[tuple[CacheEntry, int]]:
        """All entries with their access sequence, least recently used first."""
        rows = await self._db.fetch_all(
            f"SELECT * FROM {_TABLE} ORDER BY access_seq ASC, last_access_at ASC"
        )
        result: list[tuple[CacheEntry, int]] = []
        for row in rows:
            entry = self._row_to_entry(row)
            if entry is not None:
                result.append((entry, int(row.get("access_seq") or 0)))
        return result

    def _row_to_entry(self, row: dict[str, Any]) -> CacheEntry | None:
        try:
            return CacheEntry(
                key=row["cache_key"],
                track_id=row["track_id"],
                format_id=row["format_id"],
                file_path=self._directory / row["file_name"],
                size_bytes=row["size_bytes"],
                container=row.get("container"),
                audio_codec=row.get("audio_codec"),
                sample_rate=row.get("sample_rate"),
                bitrate=row.get("bitrate"),
                duration_seconds=row.get("duration_seconds"),
                title=row.get("title"),
                provider=row.get("provider"),
                created_at=UtcDateTime.from_iso(row["created_at"]).dt,
                last_access_time=UtcDateTime.from_iso(row["last_access_at"]).dt,
            )
        except (KeyError, ValueError) as e:
            logger.warning(LogTemplates.CACHE_INDEX_ROW_DROPPED, row.get("cache_key"), e)
            return None
