"""Primary metadata provider backed by YouTube's own InnerTube API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from innertube import InnerTube

from discord_media_player.application.interfaces.metadata_provider import MetadataProvider
from discord_media_player.config.settings import ProviderSettings
from discord_media_player.domain.media.entities import MediaInfo, TrackReference
from discord_media_player.domain.media.exceptions import ProviderUnavailable
from discord_media_player.domain.shared.constants import ProviderConstants
from discord_media_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_media_player.infrastructure.audio.models import (
    LOG_URL_TRUNCATE,
    parse_innertube_player,
    search_video_ids,
    youtube_video_id,
)

logger = logging.getLogger(__name__)


class InnertubeProvider(MetadataProvider):
    """Asks the InnerTube ``/player`` endpoint for formats, searching first for free text.

    It shares no code with yt-dlp, so an extractor breakage there leaves this
    provider working and the other way round. Non-YouTube URLs are refused
    so the chain falls through to yt-dlp. The ``innertube`` client is
    synchronous; every request runs in a worker thread.
    """

    def __init__(self, settings: ProviderSettings | None = None, client: Any = None) -> None:
        self._settings = settings or ProviderSettings()
        self._client = client

    @property
    def name(self) -> str:
        return ProviderConstants.INNERTUBE_PROVIDER_NAME

    async def fetch_info(self, ref: TrackReference) -> MediaInfo:
        started = time.perf_counter()

        video_id = youtube_video_id(ref.query)
        if video_id is not None:
            info = await self._player(video_id)
        elif ref.is_url:
            raise ProviderUnavailable(self.name, ErrorMessages.NOT_A_YOUTUBE_REFERENCE)
        else:
            info = await self._search(ref.query)

        logger.debug(
            LogTemplates.PROVIDER_FETCHED,
            self.name,
            ref.query[:LOG_URL_TRUNCATE],
            len(info.formats),
            info.is_live,
            (time.perf_counter() - started) * 1000,
        )
        return info

    async def _player(self, video_id: str) -> MediaInfo:
        payload = await self._request("player", video_id=video_id)
        return parse_innertube_player(self.name, payload)

    async def _search(self, query: str) -> MediaInfo:
        """First of up to ``search_limit`` results that has formats to offer."""
        payload = await self._request("search", query=query)
        candidates = search_video_ids(payload, self._settings.search_limit)
        if not candidates:
            raise ProviderUnavailable(self.name, ErrorMessages.NO_SEARCH_RESULTS)

        without_formats: MediaInfo | None = None
        last_error: ProviderUnavailable | None = None
        for video_id in candidates:
            try:
                info = await self._player(video_id)
            except ProviderUnavailable as e:
                logger.debug(
                    LogTemplates.INNERTUBE_SEARCH_CANDIDATE_FAILED, self.name, video_id, e.reason
                )
                last_error = e
                continue
            if info.formats:
                return info
            without_formats = without_formats or info

        # Let the resolver report the format problem rather than a search failure.
        if without_formats is not None:
            return without_formats
        raise last_error or ProviderUnavailable(self.name, ErrorMessages.NO_SEARCH_RESULTS)

    async def _request(self, endpoint: str, **params: Any) -> Any:
        try:
            if self._client is None:
                self._client = InnerTube(self._settings.innertube_client)
            return await asyncio.to_thread(getattr(self._client, endpoint), **params)
        except Exception as e:
            raise ProviderUnavailable(self.name, str(e) or type(e).__name__) from e
