"""Port interface for the content-addressed audio cache."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterable
from typing import TYPE_CHECKING

from discord_media_player.domain.shared.types import NonEmptyStr

if TYPE_CHECKING:
    from ...domain.media.entities import CacheEntry, ResolvedStream


class CacheLease(ABC):
    """A read lease on a cache entry; the entry cannot be evicted while held."""

    @property
    @abstractmethod
    def entry(self) -> "CacheEntry":
        ...

    @abstractmethod
    async def release(self) -> None:
        """Give the lease back. Idempotent."""
        ...

    async def __aenter__(self) -> CacheLease:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.release()


class MediaCache(ABC):
    """Interface for the on-disk cache consulted before and filled after resolution."""

    @abstractmethod
    def is_cacheable(self, stream: "ResolvedStream", start_offset_seconds: float | None) -> bool:
        ...

    @abstractmethod
    async def get(self, key: NonEmptyStr) -> CacheLease | None:
        """Lease the entry stored under ``key``, touching its last access time."""
        ...

    @abstractmethod
    async def find(self, track_id: NonEmptyStr) -> CacheLease | None:
        """Lease the most recently used entry for a track, whatever its format."""
        ...

    @abstractmethod
    async def put(
        self,
        key: NonEmptyStr,
        source: AsyncIterable[bytes],
        metadata: "ResolvedStream",
        *,
        start_offset_seconds: float | None = None,
    ) -> "CacheEntry":
        """Write ``source`` under ``key`` and register it with the stream metadata.

        Raises:
            BusinessRuleViolationError: The stream is not eligible for caching.
            CacheWriteFailed: The write was aborted; nothing was registered.
        """
        ...

    @abstractmethod
    def key_for(self, stream: "ResolvedStream") -> str:
        ...

    @abstractmethod
    async def evict_if_needed(self) -> int:
        """Evict least recently used entries until the budget holds; returns the count."""
        ...
