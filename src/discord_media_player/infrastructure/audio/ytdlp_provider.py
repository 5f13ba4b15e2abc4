"""Primary metadata provider backed by the in-process yt-dlp library."""

from __future__ import annotations

import logging
import time

from discord_media_player.application.interfaces.metadata_provider import MetadataProvider
from discord_media_player.domain.media.entities import MediaInfo, TrackReference
from discord_media_player.domain.media.exceptions import ProviderUnavailable
from discord_media_player.domain.shared.constants import ProviderConstants
from discord_media_player.domain.shared.messages import LogTemplates
from discord_media_player.infrastructure.audio.models import (
    LOG_URL_TRUNCATE,
    build_target,
    parse_media_info,
)
from discord_media_player.infrastructure.audio.ytdlp_client import YtDlpClient

logger = logging.getLogger(__name__)


class YtDlpApiProvider(MetadataProvider):
    """Fetches format lists through the shared :class:`YtDlpClient`.

    The client is injected; its lifetime belongs to whoever created it.
    """

    def __init__(self, client: YtDlpClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return ProviderConstants.API_PROVIDER_NAME

    async def fetch_info(self, ref: TrackReference) -> MediaInfo:
        target = build_target(ref)
        started = time.perf_counter()

        try:
            payload = await self._client.extract_info(target)
        except Exception as e:
            raise ProviderUnavailable(self.name, str(e) or type(e).__name__) from e

        info = parse_media_info(self.name, payload)
        logger.debug(
            LogTemplates.PROVIDER_FETCHED,
            self.name,
            target[:LOG_URL_TRUNCATE],
            len(info.formats),
            info.is_live,
            (time.perf_counter() - started) * 1000,
        )
        return info
