"""Guarded access to the external segment-skip service."""

from __future__ import annotations

import asyncio
import logging
import time

from ...config.settings import SegmentSkipSettings
from ...domain.media.services import SkipRangePolicy
from ...domain.media.value_objects import SkipRange
from ...domain.shared.messages import LogTemplates
from ..interfaces.segment_skip_provider import NullSegmentSkipProvider, SegmentSkipProvider

logger = logging.getLogger(__name__)


class GuardedSegmentSkipProvider(SegmentSkipProvider):
    """Wraps a segment-skip collaborator so it can never hold up playback.

    Lookups are bounded by the request timeout. After any failure the
    collaborator is left alone for ``backoff_seconds``, and every lookup
    during that window returns no ranges.
    """

    def __init__(
        self,
        inner: SegmentSkipProvider | None = None,
        settings: SegmentSkipSettings | None = None,
    ) -> None:
        self._inner = inner or NullSegmentSkipProvider()
        self._settings = settings or SegmentSkipSettings()
        self._backoff_until = 0.0

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def backing_off(self) -> bool:
        return time.monotonic() < self._backoff_until

    async def get_skip_ranges(self, track_id: str) -> list[SkipRange]:
        if not self._settings.enabled or self.backing_off:
            return []

        try:
            async with asyncio.timeout(self._settings.request_timeout_seconds):
                ranges = await self._inner.get_skip_ranges(track_id)
        except TimeoutError:
            self._start_backoff(track_id, "timed out")
            return []
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._start_backoff(track_id, str(e) or type(e).__name__)
            return []

        normalized = SkipRangePolicy.normalize(ranges)
        if normalized:
            logger.debug(LogTemplates.SEGMENT_SKIPS_FOUND, len(normalized), track_id)
        return normalized

    def _start_backoff(self, track_id: str, reason: str) -> None:
        self._backoff_until = time.monotonic() + self._settings.backoff_seconds
        logger.warning(
            LogTemplates.SEGMENT_SKIPS_UNAVAILABLE, track_id, reason, self._settings.backoff_seconds
        )
