"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Persistence (SQLite cache index)
- Cache (on-disk audio store)
- Discord (voice transport)
- Audio (yt-dlp providers, FFmpeg pipeline, HTTP stream reader)
"""

from discord_media_player.infrastructure.cache.cache_store import CacheStore
from discord_media_player.infrastructure.discord.voice_transport import DiscordVoiceTransport
from discord_media_player.infrastructure.persistence.database import Database

__all__ = [
    "CacheStore",
    "DiscordVoiceTransport",
    "Database",
]
