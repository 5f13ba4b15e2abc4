"""SQLite persistence for the cache index."""

from discord_media_player.infrastructure.persistence.database import Database
from discord_media_player.infrastructure.persistence.repositories import (
    SQLiteCacheIndexRepository,
)

__all__ = ["Database", "SQLiteCacheIndexRepository"]
