"""Port interface for fetching track metadata and format lists from a provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...domain.media.entities import MediaInfo, TrackReference


class MetadataProvider(ABC):
    """Interface shared by every provider in the resolver's fallback chain."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in logs and failure records."""
        ...

    @abstractmethod
    async def fetch_info(self, ref: "TrackReference") -> "MediaInfo":
        """Fetch metadata and all available formats for a reference.

        Raises:
            ProviderUnavailable: The provider could not produce a usable response.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the provider."""
        return None
