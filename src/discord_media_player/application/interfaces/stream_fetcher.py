"""Port interface for reading the raw bytes of a resolved stream."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from discord_media_player.domain.shared.types import NonEmptyStr


class StreamFetcher(ABC):
    """Interface for downloading a stream URL chunk by chunk (used to fill the cache)."""

    @abstractmethod
    def iter_chunks(self, url: NonEmptyStr) -> AsyncIterator[bytes]:
        """Yield the body of ``url`` in chunks.

        Raises:
            CacheWriteFailed: The request failed or returned a non-success status.
        """
        ...

    async def close(self) -> None:
        return None
