"""Media bounded context: references, formats, streams, cache entries and player sessions."""

from discord_media_player.domain.media.entities import (
    CacheEntry,
    FormatDescriptor,
    MediaInfo,
    PlayerSession,
    ProviderFailure,
    QueueItem,
    ResolvedStream,
    TrackReference,
)
from discord_media_player.domain.media.exceptions import (
    AllProvidersFailed,
    CacheWriteFailed,
    MediaError,
    NoSuitableFormat,
    ProviderUnavailable,
    StorageBudgetExceeded,
    StreamInterrupted,
)
from discord_media_player.domain.media.services import (
    CachePolicy,
    FormatSelector,
    SkipRangePolicy,
)
from discord_media_player.domain.media.value_objects import (
    FinishReason,
    PlayerState,
    SkipRange,
    StartOffset,
    TrackId,
)

__all__ = [
    "TrackReference",
    "FormatDescriptor",
    "MediaInfo",
    "ResolvedStream",
    "ProviderFailure",
    "CacheEntry",
    "QueueItem",
    "PlayerSession",
    "MediaError",
    "ProviderUnavailable",
    "NoSuitableFormat",
    "AllProvidersFailed",
    "StreamInterrupted",
    "CacheWriteFailed",
    "StorageBudgetExceeded",
    "FormatSelector",
    "SkipRangePolicy",
    "CachePolicy",
    "TrackId",
    "StartOffset",
    "SkipRange",
    "PlayerState",
    "FinishReason",
]
