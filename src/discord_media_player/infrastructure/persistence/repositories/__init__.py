"""SQLite repository implementations."""

from discord_media_player.infrastructure.persistence.repositories.cache_index_repository import (
    SQLiteCacheIndexRepository,
)

__all__ = ["SQLiteCacheIndexRepository"]
