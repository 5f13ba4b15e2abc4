"""Source Resolver - turns a track reference into a playable stream via a provider chain."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from ...domain.media.entities import FormatDescriptor, ProviderFailure, ResolvedStream
from ...domain.media.exceptions import AllProvidersFailed, NoSuitableFormat, ProviderUnavailable
from ...domain.media.services import FormatSelector
from ...domain.shared.constants import ProviderConstants
from ...domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from ...domain.media.entities import MediaInfo, TrackReference
    from ..interfaces.metadata_provider import MetadataProvider

logger = logging.getLogger(__name__)


def is_extractor_breakage(message: str) -> bool:
    """True when a failure message looks like the extractor itself is broken."""
    lowered = message.lower()
    return any(keyword in lowered for keyword in ProviderConstants.EXTRACTOR_BREAKAGE_KEYWORDS)


class SourceResolver:
    """Tries providers strictly in priority order until one yields a usable format.

    Every failure (timeout, exception, no suitable format) falls through to
    the next provider. Classifying a failure as extractor breakage only
    affects logging. Holds no per-call state, so concurrent calls are safe.
    """

    def __init__(
        self,
        providers: Sequence[MetadataProvider],
        *,
        timeout_seconds: float = ProviderConstants.DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._providers = tuple(providers)
        self._timeout = timeout_seconds

    @property
    def providers(self) -> tuple[MetadataProvider, ...]:
        return self._providers

    async def resolve(self, ref: TrackReference) -> ResolvedStream:
        """Resolve ``ref`` using the first provider that succeeds.

        Raises:
            AllProvidersFailed: Every provider failed; one failure per provider,
                in priority order.
        """
        failures: list[ProviderFailure] = []

        for provider in self._providers:
            try:
                stream = await self._attempt(provider, ref)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failure = self._record_failure(provider, ref, e)
                failures.append(failure)
                continue

            if failures:
                logger.info(LogTemplates.RESOLVER_FALLBACK_SUCCEEDED, provider.name, len(failures))
            return stream

        logger.error(LogTemplates.RESOLVER_ALL_FAILED, ref.query, len(failures))
        raise AllProvidersFailed(ref.query, failures)

    async def _attempt(self, provider: MetadataProvider, ref: TrackReference) -> ResolvedStream:
        try:
            async with asyncio.timeout(self._timeout):
                info = await provider.fetch_info(ref)
        except TimeoutError as e:
            raise ProviderUnavailable(
                provider.name, ErrorMessages.PROVIDER_TIMEOUT.format(seconds=self._timeout)
            ) from e

        fmt = FormatSelector.select_best_audio(info.formats, info.is_live)
        if fmt is None:
            raise NoSuitableFormat(provider.name, len(info.formats))

        return self._to_stream(provider.name, ref, info, fmt)

    @staticmethod
    def _to_stream(
        provider_name: str,
        ref: TrackReference,
        info: MediaInfo,
        fmt: FormatDescriptor,
    ) -> ResolvedStream:
        duration = None if info.is_live else (info.duration_seconds or ref.duration_hint)
        stream = ResolvedStream(
            source_track_id=str(ref.track_id),
            stream_url=fmt.url,
            container=fmt.container,
            audio_codec=fmt.audio_codec,
            sample_rate=fmt.sample_rate,
            bitrate=fmt.audio_bitrate or fmt.total_bitrate,
            is_live=info.is_live,
            duration_seconds=duration,
            provider_used=provider_name,
            format_id=fmt.format_id,
            title=info.title or ref.title_hint,
        )
        logger.info(
            LogTemplates.RESOLVER_SELECTED_FORMAT,
            provider_name,
            fmt.format_id,
            fmt.audio_codec,
            fmt.container,
            fmt.audio_bitrate or 0,
            stream.source_track_id,
        )
        return stream

    @staticmethod
    def _record_failure(
        provider: MetadataProvider, ref: TrackReference, error: Exception
    ) -> ProviderFailure:
        message = getattr(error, "reason", None) or str(error) or type(error).__name__
        breakage = is_extractor_breakage(message)
        if breakage:
            logger.warning(LogTemplates.RESOLVER_EXTRACTOR_BROKEN, provider.name, message)
        else:
            logger.warning(LogTemplates.RESOLVER_PROVIDER_FAILED, provider.name, ref.query, message)
        return ProviderFailure(
            provider=provider.name,
            error_type=type(error).__name__,
            message=message,
            extractor_breakage=breakage,
        )
