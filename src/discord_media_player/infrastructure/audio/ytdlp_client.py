"""Process-wide yt-dlp client with a concurrency-safe initialise-once guard."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, cast

from yt_dlp import YoutubeDL

from discord_media_player.config.settings import ProviderSettings
from discord_media_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_media_player.infrastructure.audio.models import (
    LOG_URL_TRUNCATE,
    ExtractorArgs,
    YouTubeExtractorConfig,
    YtDlpOpts,
)

logger = logging.getLogger(__name__)


class YtDlpClient:
    """Owns the single configured ``YoutubeDL`` instance shared by every guild.

    The instance is created lazily on first use. Concurrent first callers all
    await the same creation task; if creation fails, the next call tries again.
    Extraction runs in a worker thread so the event loop never blocks.
    """

    def __init__(self, settings: ProviderSettings | None = None) -> None:
        self._settings = settings or ProviderSettings()
        self._ydl: YoutubeDL | None = None
        self._init_task: asyncio.Task[YoutubeDL] | None = None
        self._opts = YtDlpOpts(
            format=self._settings.ytdlp_format,
            retries=self._settings.retries,
            socket_timeout=self._settings.socket_timeout_seconds,
            extractor_args=ExtractorArgs(
                youtube=YouTubeExtractorConfig(player_client=list(self._settings.player_clients))
            ),
        )

    @property
    def is_initialized(self) -> bool:
        return self._ydl is not None

    @property
    def opts(self) -> YtDlpOpts:
        return self._opts

    async def ensure_initialized(self) -> YoutubeDL:
        """Return the shared instance, creating it exactly once."""
        if self._ydl is not None:
            return self._ydl

        task = self._init_task
        if task is None:
            task = asyncio.get_running_loop().create_task(self._create())
            self._init_task = task

        try:
            # Shielded so one cancelled caller does not abort creation for the others.
            return await asyncio.shield(task)
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _create(self) -> YoutubeDL:
        started = time.perf_counter()
        params = cast(Any, self._opts.model_dump(exclude_none=True))
        try:
            ydl = await asyncio.to_thread(YoutubeDL, params)
        except Exception as e:
            logger.error(LogTemplates.YTDLP_INIT_FAILED, e)
            raise RuntimeError(ErrorMessages.YTDLP_INIT_FAILED.format(error=e)) from e

        self._ydl = ydl
        logger.info(LogTemplates.YTDLP_INITIALIZED, (time.perf_counter() - started) * 1000)
        return ydl

    async def extract_info(self, target: str) -> dict[str, Any]:
        """Extract metadata (no download) for a URL or ``ytsearch1:`` term."""
        ydl = await self.ensure_initialized()
        logger.debug(LogTemplates.YTDLP_EXTRACTING, target[:LOG_URL_TRUNCATE])
        return await asyncio.to_thread(self._extract_info_sync, ydl, target)

    @staticmethod
    def _extract_info_sync(ydl: YoutubeDL, target: str) -> dict[str, Any]:
        data = ydl.extract_info(target, download=False)
        if not isinstance(data, dict):
            raise RuntimeError(ErrorMessages.EMPTY_PROVIDER_RESPONSE)
        return cast(dict[str, Any], ydl.sanitize_info(data))

    async def close(self) -> None:
        task, self._init_task = self._init_task, None
        if task is not None and not task.done():
            task.cancel()
        ydl, self._ydl = self._ydl, None
        if ydl is not None:
            await asyncio.to_thread(ydl.close)
