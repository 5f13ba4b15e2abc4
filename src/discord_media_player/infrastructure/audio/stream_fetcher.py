"""aiohttp reader that feeds resolved stream URLs into the cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import aiohttp

from discord_media_player.application.interfaces.stream_fetcher import StreamFetcher
from discord_media_player.config.settings import CacheSettings
from discord_media_player.domain.media.exceptions import CacheWriteFailed
from discord_media_player.domain.shared.constants import AudioConstants
from discord_media_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_media_player.infrastructure.audio.models import LOG_URL_TRUNCATE

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 15


class HttpStreamFetcher(StreamFetcher):
    """Streams a media URL chunk by chunk.

    One ``ClientSession`` is created lazily and shared by every cache fill.
    The total download time is bounded by the cache store; here only the
    connect and per-read timeouts apply.
    """

    def __init__(self, settings: CacheSettings | None = None) -> None:
        self._settings = settings or CacheSettings()
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None and not self._session.closed:
            return self._session
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(
                        total=None,
                        connect=CONNECT_TIMEOUT_SECONDS,
                        sock_read=CONNECT_TIMEOUT_SECONDS,
                    ),
                    headers={"User-Agent": AudioConstants.ANDROID_USER_AGENT},
                )
        return self._session

    async def iter_chunks(self, url: str) -> AsyncIterator[bytes]:
        session = await self._get_session()
        key = url[:LOG_URL_TRUNCATE]
        try:
            async with session.get(url) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise CacheWriteFailed(
                        key, ErrorMessages.HTTP_STATUS_ERROR.format(status=resp.status)
                    )
                logger.debug(LogTemplates.STREAM_FETCH_STARTED, key, resp.content_length)
                async for chunk in resp.content.iter_chunked(self._settings.chunk_size):
                    yield chunk
        except aiohttp.ClientError as e:
            raise CacheWriteFailed(key, str(e) or type(e).__name__) from e

    async def close(self) -> None:
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()
