"""Error taxonomy for media acquisition and playback."""

from __future__ import annotations

from typing import TYPE_CHECKING

from discord_media_player.domain.shared.exceptions import DomainError

if TYPE_CHECKING:
    from discord_media_player.domain.media.entities import ProviderFailure


class MediaError(DomainError):
    """Base exception for source resolution, caching and streaming failures."""


class ProviderUnavailable(MediaError):
    """A metadata provider could not produce a usable response (timeout, network, parse)."""

    default_code = "PROVIDER_UNAVAILABLE"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.reason = message


class NoSuitableFormat(MediaError):
    """A provider answered but no format passed the selection policy."""

    default_code = "NO_SUITABLE_FORMAT"

    def __init__(self, provider: str, format_count: int) -> None:
        super().__init__(f"{provider}: no suitable audio format among {format_count} formats")
        self.provider = provider
        self.format_count = format_count


class AllProvidersFailed(MediaError):
    """Every provider in the chain failed; ``failures`` is in priority order."""

    default_code = "ALL_PROVIDERS_FAILED"

    def __init__(self, query: str, failures: list[ProviderFailure]) -> None:
        summary = "; ".join(str(f) for f in failures) or "no providers configured"
        super().__init__(f"Could not resolve '{query}': {summary}")
        self.query = query
        self.failures = list(failures)


class StreamInterrupted(MediaError):
    """Playback ended unexpectedly (transport error or early end of a non-live stream)."""

    default_code = "STREAM_INTERRUPTED"

    def __init__(self, message: str, position_seconds: float | None = None) -> None:
        super().__init__(message)
        self.position_seconds = position_seconds


class CacheWriteFailed(MediaError):
    """A cache fill could not be completed; the partial file has been removed."""

    default_code = "CACHE_WRITE_FAILED"

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"Cache write for '{key}' failed: {message}")
        self.key = key


class StorageBudgetExceeded(MediaError):
    """Eviction could not bring the cache under budget. Logged, never raised to callers."""

    default_code = "STORAGE_BUDGET_EXCEEDED"

    def __init__(self, total_bytes: int, budget_bytes: int) -> None:
        super().__init__(f"Cache holds {total_bytes} bytes, budget is {budget_bytes} bytes")
        self.total_bytes = total_bytes
        self.budget_bytes = budget_bytes
