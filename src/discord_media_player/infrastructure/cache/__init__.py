"""On-disk audio cache."""

from discord_media_player.infrastructure.cache.cache_store import CacheStore, make_cache_key

__all__ = ["CacheStore", "make_cache_key"]
