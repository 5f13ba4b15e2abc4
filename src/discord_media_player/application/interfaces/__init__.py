"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters. These are the "ports" in
hexagonal architecture.
"""

from discord_media_player.application.interfaces.media_cache import CacheLease, MediaCache
from discord_media_player.application.interfaces.metadata_provider import MetadataProvider
from discord_media_player.application.interfaces.playback_pipeline import (
    PipelineFactory,
    PlaybackPipeline,
)
from discord_media_player.application.interfaces.segment_skip_provider import (
    NullSegmentSkipProvider,
    SegmentSkipProvider,
)
from discord_media_player.application.interfaces.stream_fetcher import StreamFetcher
from discord_media_player.application.interfaces.voice_transport import VoiceTransport

__all__ = [
    "MetadataProvider",
    "VoiceTransport",
    "SegmentSkipProvider",
    "NullSegmentSkipProvider",
    "StreamFetcher",
    "MediaCache",
    "CacheLease",
    "PlaybackPipeline",
    "PipelineFactory",
]
