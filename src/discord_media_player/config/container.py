"""Dependency Injection Container

Manages the media player's dependency graph, providing lazy initialization
and lifecycle management for the cache, providers, resolver and per-guild
players. Components are created on-demand and cached for reuse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    import discord

    from ..application.interfaces.metadata_provider import MetadataProvider
    from ..application.interfaces.playback_pipeline import PipelineFactory
    from ..application.interfaces.segment_skip_provider import SegmentSkipProvider
    from ..application.services.guild_player import GuildPlayer
    from ..application.services.player_registry import PlayerRegistry
    from ..application.services.segment_skips import GuardedSegmentSkipProvider
    from ..application.services.source_resolver import SourceResolver
    from ..domain.shared.events import EventBus
    from ..infrastructure.audio.stream_fetcher import HttpStreamFetcher
    from ..infrastructure.audio.ytdlp_client import YtDlpClient
    from ..infrastructure.cache.cache_store import CacheStore
    from ..infrastructure.discord.voice_transport import DiscordVoiceTransport
    from ..infrastructure.persistence.database import Database
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    This container manages all media player dependencies and their lifecycle.
    Components are lazily initialized when first accessed.
    """

    settings: Settings
    _bot: discord.Client | None = None

    # Persistence / cache
    _database: Database | None = None
    _cache_store: CacheStore | None = None

    # Provider chain
    _ytdlp_client: YtDlpClient | None = None
    _providers: list[MetadataProvider] | None = None
    _source_resolver: SourceResolver | None = None

    # Playback infrastructure
    _stream_fetcher: HttpStreamFetcher | None = None
    _segment_skip_provider: GuardedSegmentSkipProvider | None = None
    _skip_backend: SegmentSkipProvider | None = None
    _voice_transport: DiscordVoiceTransport | None = None
    _pipeline_factory: PipelineFactory | None = None
    _event_bus: EventBus | None = None

    # Application services
    _player_registry: PlayerRegistry | None = None

    def set_bot(self, bot: discord.Client) -> None:
        """Set the Discord client whose voice connections players drive."""
        self._bot = bot

    @property
    def bot(self) -> discord.Client:
        """Get the Discord client instance."""
        if self._bot is None:
            raise RuntimeError("Bot not initialized. Call set_bot() first.")
        return self._bot

    def set_segment_skip_backend(self, backend: SegmentSkipProvider) -> None:
        """Plug in the external segment-skip lookup; it is always wrapped in the guard."""
        self._skip_backend = backend
        self._segment_skip_provider = None

    # === Persistence ===

    @property
    def database(self) -> Database:
        """Get the cache index database."""
        if self._database is None:
            from ..infrastructure.persistence.database import Database

            cache = self.settings.cache
            self._database = Database(cache.index_path, busy_timeout_ms=cache.busy_timeout_ms)
        return self._database

    @property
    def cache_store(self) -> CacheStore:
        """Get the on-disk media cache."""
        if self._cache_store is None:
            from ..infrastructure.cache.cache_store import CacheStore

            self._cache_store = CacheStore(self.settings.cache, self.database)
        return self._cache_store

    # === Provider Chain ===

    @property
    def ytdlp_client(self) -> YtDlpClient:
        """Get the shared in-process yt-dlp client."""
        if self._ytdlp_client is None:
            from ..infrastructure.audio.ytdlp_client import YtDlpClient

            self._ytdlp_client = YtDlpClient(self.settings.providers)
        return self._ytdlp_client

    @property
    def providers(self) -> list[MetadataProvider]:
        """Get metadata providers in priority order, InnerTube first when enabled."""
        if self._providers is None:
            from ..infrastructure.audio.innertube_provider import InnertubeProvider
            from ..infrastructure.audio.ytdlp_cli_provider import YtDlpCliProvider
            from ..infrastructure.audio.ytdlp_provider import YtDlpApiProvider

            providers: list[MetadataProvider] = []
            if self.settings.providers.innertube_enabled:
                providers.append(InnertubeProvider(self.settings.providers))
            providers.append(YtDlpApiProvider(self.ytdlp_client))
            providers.append(YtDlpCliProvider(self.settings.providers))
            self._providers = providers
        return self._providers

    @property
    def source_resolver(self) -> SourceResolver:
        """Get the multi-provider source resolver."""
        if self._source_resolver is None:
            from ..application.services.source_resolver import SourceResolver

            self._source_resolver = SourceResolver(
                self.providers, timeout_seconds=self.settings.providers.timeout_seconds
            )
        return self._source_resolver

    # === Playback Infrastructure ===

    @property
    def stream_fetcher(self) -> HttpStreamFetcher:
        """Get the HTTP reader used for cache fills."""
        if self._stream_fetcher is None:
            from ..infrastructure.audio.stream_fetcher import HttpStreamFetcher

            self._stream_fetcher = HttpStreamFetcher(self.settings.cache)
        return self._stream_fetcher

    @property
    def segment_skip_provider(self) -> GuardedSegmentSkipProvider:
        """Get the guarded segment-skip lookup."""
        if self._segment_skip_provider is None:
            from ..application.services.segment_skips import GuardedSegmentSkipProvider

            self._segment_skip_provider = GuardedSegmentSkipProvider(
                self._skip_backend, self.settings.segment_skips
            )
        return self._segment_skip_provider

    @property
    def voice_transport(self) -> DiscordVoiceTransport:
        """Get the discord.py voice transport."""
        if self._voice_transport is None:
            from ..infrastructure.discord.voice_transport import DiscordVoiceTransport

            self._voice_transport = DiscordVoiceTransport(self.bot)
            self._voice_transport.set_voice_activity_callback(
                self.player_registry.dispatch_voice_activity
            )
        return self._voice_transport

    @property
    def pipeline_factory(self) -> PipelineFactory:
        """Get the factory that builds one FFmpeg pipeline per playback."""
        if self._pipeline_factory is None:
            from ..infrastructure.audio.pipeline import make_pipeline_factory

            self._pipeline_factory = make_pipeline_factory(self.settings.audio)
        return self._pipeline_factory

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            from ..domain.shared.events import get_event_bus

            self._event_bus = get_event_bus()
        return self._event_bus

    # === Application Services ===

    @property
    def player_registry(self) -> PlayerRegistry:
        """Get the per-guild player registry."""
        if self._player_registry is None:
            from ..application.services.player_registry import PlayerRegistry

            self._player_registry = PlayerRegistry(self.create_player, self.event_bus)
        return self._player_registry

    def create_player(self, guild_id: int) -> GuildPlayer:
        """Build a GuildPlayer wired to the shared collaborators."""
        from ..application.services.guild_player import GuildPlayer

        return GuildPlayer(
            guild_id,
            resolver=self.source_resolver,
            transport=self.voice_transport,
            pipeline_factory=self.pipeline_factory,
            cache=self.cache_store,
            fetcher=self.stream_fetcher,
            skip_provider=self.segment_skip_provider,
            event_bus=self.event_bus,
            audio_settings=self.settings.audio,
            ducking_settings=self.settings.ducking,
        )

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Initialize all async resources."""
        await self.cache_store.initialize()

    async def shutdown(self) -> None:
        """Tear down every player, then close shared resources."""
        if self._player_registry is not None:
            await self._player_registry.teardown_all()

        if self._stream_fetcher is not None:
            try:
                await self._stream_fetcher.close()
            except Exception as exc:
                logger.warning("Failed closing stream fetcher: %r", exc)

        if self._ytdlp_client is not None:
            await self._ytdlp_client.close()

        if self._cache_store is not None:
            await self._cache_store.close()
        elif self._database is not None:
            await self._database.close()


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
