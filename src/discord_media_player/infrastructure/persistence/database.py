"""SQLite database for the cache index with per-operation connections and WAL mode."""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from discord_media_player.domain.shared.constants import (
    DatabaseTables,
    DatabaseURLSchemes,
    SQLPragmas,
)
from discord_media_player.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)


class Database:
    def __init__(
        self,
        url: str | Path,
        *,
        busy_timeout_ms: int = 5000,
        connection_timeout_s: float = 10.0,
    ) -> None:
        url = str(url)
        if url.startswith(DatabaseURLSchemes.SQLITE):
            self._db_path = url[len(DatabaseURLSchemes.SQLITE) :]
        else:
            self._db_path = url

        self._initialized = False
        self._keepalive_conn: aiosqlite.Connection | None = None
        self._busy_timeout = busy_timeout_ms
        self._connection_timeout = connection_timeout_s
        # Each in-memory database gets its own shared-cache name so instances stay isolated.
        self._memory_name = uuid.uuid4().hex

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_memory(self) -> bool:
        return self._db_path == DatabaseURLSchemes.MEMORY

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return

        if not self.is_memory:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # Keep one connection alive for in-memory DBs; otherwise the shared
        # in-memory DB is destroyed once the last connection closes.
        if self.is_memory and self._keepalive_conn is None:
            self._keepalive_conn = await self._connect()

        conn = self._keepalive_conn
        if conn is None:
            async with self.transaction() as conn2:
                await self._ensure_schema(conn2)
        else:
            await self._ensure_schema(conn)
            await conn.commit()

        self._initialized = True
        logger.info(LogTemplates.DATABASE_INITIALIZED, self._db_path)

    async def _ensure_schema(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {DatabaseTables.CACHE_ENTRIES} (
                cache_key TEXT PRIMARY KEY,
                track_id TEXT NOT NULL,
                format_id TEXT NOT NULL,
                file_name TEXT NOT NULL,
                size_bytes INTEGER NOT NULL,
                container TEXT,
                audio_codec TEXT,
                sample_rate INTEGER,
                bitrate REAL,
                duration_seconds REAL,
                title TEXT,
                provider TEXT,
                created_at TEXT NOT NULL,
                last_access_at TEXT NOT NULL,
                access_seq INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        await conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_cache_entries_track "
            f"ON {DatabaseTables.CACHE_ENTRIES}(track_id)"
        )
        await conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_cache_entries_lru "
            f"ON {DatabaseTables.CACHE_ENTRIES}(access_seq)"
        )

    async def _connect(self) -> aiosqlite.Connection:
        # SQLite ":memory:" is per-connection, so use a shared URI to allow
        # multiple connections to see the same in-memory database.
        if self.is_memory:
            db_path = DatabaseURLSchemes.MEMORY_SHARED_URI.format(name=self._memory_name)
            uri = True
        else:
            db_path = self._db_path
            uri = False

        conn = await aiosqlite.connect(
            db_path,
            # detect_types=0 because our ISO 8601 timestamps use 'T' separator,
            # but SQLite's built-in converter expects space-separated format.
            detect_types=0,
            uri=uri,
            timeout=self._connection_timeout,
        )
        conn.row_factory = aiosqlite.Row

        # WAL improves concurrent read behavior and reduces writer blocking.
        try:
            await conn.execute(SQLPragmas.JOURNAL_MODE_WAL)
            await conn.execute(SQLPragmas.BUSY_TIMEOUT.format(timeout=self._busy_timeout))
        except aiosqlite.Error:
            await conn.close()
            raise

        return conn

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        conn = await self._connect()
        try:
            yield conn
        except Exception:
            try:
                await conn.rollback()
            except aiosqlite.Error as e:
                logger.debug(LogTemplates.DATABASE_ROLLBACK_FAILED, e)
            raise
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Get a transaction context manager with auto-commit/rollback."""
        async with self.connection() as conn:
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    async def execute(
        self, sql: str, parameters: tuple[Any, ...] | None = None
    ) -> aiosqlite.Cursor:
        """Execute a SQL statement.

        Note:
            This always runs in its own transaction. If you need multiple
            statements to commit/rollback together, use `transaction()` and the
            returned connection directly.
        """
        async with self.transaction() as conn:
            if parameters is not None:
                cursor = await conn.execute(sql, parameters)
            else:
                cursor = await conn.execute(sql)
            return cursor

    async def fetch_one(
        self, sql: str, parameters: tuple[Any, ...] | None = None
    ) -> dict[str, Any] | None:
        """Fetch a single row."""
        async with self.connection() as conn:
            if parameters is not None:
                cursor = await conn.execute(sql, parameters)
            else:
                cursor = await conn.execute(sql)
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def fetch_all(
        self, sql: str, parameters: tuple[Any, ...] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch all rows."""
        async with self.connection() as conn:
            if parameters is not None:
                cursor = await conn.execute(sql, parameters)
            else:
                cursor = await conn.execute(sql)
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def check_integrity(self) -> bool:
        """Run a quick integrity check; False means the file should be rebuilt."""
        try:
            row = await self.fetch_one(SQLPragmas.INTEGRITY_CHECK)
        except aiosqlite.DatabaseError as e:
            logger.warning(LogTemplates.DATABASE_INTEGRITY_FAILED, self._db_path, e)
            return False
        if row is None:
            return False
        result = next(iter(row.values()), None)
        if result != "ok":
            logger.warning(LogTemplates.DATABASE_INTEGRITY_FAILED, self._db_path, result)
            return False
        return True

    async def destroy(self) -> None:
        """Close and delete the database files so the next ``initialize`` starts clean."""
        await self.close()
        if self.is_memory:
            return
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self._db_path}{suffix}").unlink(missing_ok=True)
        logger.warning(LogTemplates.DATABASE_DESTROYED, self._db_path)

    async def close(self) -> None:
        """Close the database manager.

        For file-based DBs this is mostly a no-op. For in-memory DBs we also
        close the keepalive connection.
        """
        if self._keepalive_conn is not None:
            try:
                await self._keepalive_conn.close()
            finally:
                self._keepalive_conn = None
        self._initialized = False
        logger.info(LogTemplates.DATABASE_CLOSED)
