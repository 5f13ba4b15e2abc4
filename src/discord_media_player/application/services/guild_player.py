"""
Guild Player

Per-guild playback state machine. Owns one PlayerSession (queue, state,
volume) and at most one playback at a time: a single worker task resolves
the head of the queue (cache first, then the provider chain), hands the
audio pipeline to the voice transport and waits for it to end.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from ...config.settings import AudioSettings, DuckingSettings
from ...domain.media.entities import PlayerSession, QueueItem, ResolvedStream, TrackReference
from ...domain.media.exceptions import CacheWriteFailed, MediaError
from ...domain.media.value_objects import FinishReason, PlayerState, StartOffset
from ...domain.shared.events import (
    DomainEvent,
    EventBus,
    PlaybackPaused,
    PlaybackResumed,
    PlaybackStopped,
    QueueExhausted,
    TrackEnqueued,
    TrackFailed,
    TrackFinished,
    TrackStarted,
    get_event_bus,
)
from ...domain.shared.exceptions import BusinessRuleViolationError, InvalidOperationError
from ...domain.shared.messages import LogTemplates
from ..interfaces.segment_skip_provider import NullSegmentSkipProvider

if TYPE_CHECKING:
    from ..interfaces.media_cache import CacheLease, MediaCache
    from ..interfaces.playback_pipeline import PipelineFactory, PlaybackPipeline
    from ..interfaces.segment_skip_provider import SegmentSkipProvider
    from ..interfaces.stream_fetcher import StreamFetcher
    from ..interfaces.voice_transport import VoiceTransport
    from .source_resolver import SourceResolver

logger = logging.getLogger(__name__)


def _resolve_after(done: asyncio.Future[Exception | None], error: Exception | None) -> None:
    if not done.done():
        done.set_result(error)


class GuildPlayer:
    """Drives playback for one guild.

    Commands are serialised by a per-guild lock; the worker task is the only
    code that resolves and streams. Cancelling the worker (skip, seek, stop,
    shutdown) always stops the transport, cleans up FFmpeg and releases the
    cache lease before the command continues, within ``cancel_timeout_seconds``.
    """

    def __init__(
        self,
        guild_id: int,
        *,
        resolver: SourceResolver,
        transport: VoiceTransport,
        pipeline_factory: PipelineFactory,
        cache: MediaCache | None = None,
        fetcher: StreamFetcher | None = None,
        skip_provider: SegmentSkipProvider | None = None,
        event_bus: EventBus | None = None,
        audio_settings: AudioSettings | None = None,
        ducking_settings: DuckingSettings | None = None,
    ) -> None:
        self._settings = audio_settings or AudioSettings()
        ducking = ducking_settings or DuckingSettings()

        self._session = PlayerSession(
            guild_id=guild_id,
            volume=self._settings.default_volume,
            duck_enabled=ducking.enabled,
            duck_target=ducking.target,
        )
        self._resolver = resolver
        self._transport = transport
        self._pipeline_factory = pipeline_factory
        self._cache = cache
        self._fetcher = fetcher
        self._skip_provider = skip_provider or NullSegmentSkipProvider()
        self._events = event_bus or get_event_bus()

        self._lock = asyncio.Lock()
        self._worker: asyncio.Task[None] | None = None
        self._pipeline: PlaybackPipeline | None = None
        self._replay: tuple[QueueItem, float] | None = None
        self._fill_tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def guild_id(self) -> int:
        return self._session.guild_id

    @property
    def state(self) -> PlayerState:
        return self._session.state

    @property
    def session(self) -> PlayerSession:
        return self._session

    @property
    def current(self) -> QueueItem | None:
        return self._session.current

    @property
    def queue(self) -> list[QueueItem]:
        return list(self._session.queue)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def position_seconds(self) -> float:
        if self._pipeline is not None:
            return self._pipeline.position_seconds
        return self._session.playback_position_seconds

    def snapshot(self) -> PlayerSession:
        """Detached copy of the session with the live playback position filled in."""
        snapshot = self._session.model_copy(deep=True)
        snapshot.playback_position_seconds = max(0.0, self.position_seconds)
        return snapshot

    # ── Queue commands ────────────────────────────────────────────────

    async def enqueue(self, ref: TrackReference, requested_by: int | None = None) -> int:
        """Append to the queue; an idle player starts resolving the head right away.

        Returns the queue position of the new item.
        """
        async with self._lock:
            self._ensure_open("enqueue")
            item = QueueItem(reference=ref, requested_by=requested_by)
            position = self._session.enqueue(item)
            logger.info(LogTemplates.PLAYER_ENQUEUED, self.guild_id, ref.query, position)

            if self._session.state is PlayerState.IDLE and self._session.current is None:
                self._start_worker()

        await self._publish(
            TrackEnqueued(
                guild_id=self.guild_id,
                track_id=str(item.track_id),
                query=ref.query,
                requested_by=requested_by,
                queue_position=position,
            )
        )
        return position

    async def move(self, from_pos: int, to_pos: int) -> bool:
        async with self._lock:
            return self._session.move(from_pos, to_pos)

    async def remove(self, position: int) -> QueueItem | None:
        async with self._lock:
            return self._session.remove_at(position)

    async def clear_queue(self) -> int:
        async with self._lock:
            return self._session.clear_queue()

    # ── Playback commands ─────────────────────────────────────────────

    async def skip(self) -> QueueItem | None:
        """Abandon the current track and move on to the next queued one."""
        async with self._lock:
            self._require_state("skip", PlayerState.PLAYING, PlayerState.PAUSED)
            skipped = self._session.current
            await self._cancel_worker()
            self._session.current = None
            logger.info(LogTemplates.PLAYER_SKIPPED, self.guild_id, self._describe(skipped))
            started = self._start_worker()

        if skipped is not None:
            await self._publish(
                TrackFinished(
                    guild_id=self.guild_id,
                    track_id=str(skipped.track_id),
                    reason=FinishReason.SKIPPED.value,
                )
            )
        if not started:
            await self._publish(
                QueueExhausted(
                    guild_id=self.guild_id,
                    last_track_id=str(skipped.track_id) if skipped else None,
                )
            )
        return skipped

    async def pause(self) -> None:
        async with self._lock:
            self._require_state("pause", PlayerState.PLAYING)
            await self._transport.pause(self.guild_id)
            position = self.position_seconds
            self._session.playback_position_seconds = position
            self._session.transition_to(PlayerState.PAUSED)
            logger.info(LogTemplates.PLAYER_PAUSED, self.guild_id, position)
        await self._publish(PlaybackPaused(guild_id=self.guild_id, position_seconds=position))

    async def resume(self) -> None:
        async with self._lock:
            self._require_state("resume", PlayerState.PAUSED)
            await self._transport.resume(self.guild_id)
            position = self.position_seconds
            self._session.transition_to(PlayerState.PLAYING)
            logger.info(LogTemplates.PLAYER_RESUMED, self.guild_id, position)
        await self._publish(PlaybackResumed(guild_id=self.guild_id, position_seconds=position))

    async def seek(self, seconds: float) -> None:
        """Restart the current track at ``seconds``, bypassing the cache for this playback."""
        async with self._lock:
            self._require_state("seek", PlayerState.PLAYING, PlayerState.PAUSED)
            offset = StartOffset(float(seconds))
            item = self._session.current
            if item is None:
                raise InvalidOperationError("seek", self._session.state.value)
            await self._cancel_worker()
            logger.info(
                LogTemplates.PLAYER_SEEK, self.guild_id, self._describe(item), offset.seconds
            )
            self._replay = (item, offset.seconds)
            self._start_worker()

    async def stop(self) -> int:
        """Cancel in-flight work, clear the queue and go idle. Returns the cleared count."""
        async with self._lock:
            cleared = await self._stop_locked()
        await self._publish(PlaybackStopped(guild_id=self.guild_id, cleared_count=cleared))
        return cleared

    async def shutdown(self) -> None:
        """Stop and release everything; the player cannot be used afterwards."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            await self._stop_locked()
            fills = list(self._fill_tasks)
            for task in fills:
                task.cancel()
            if fills:
                await asyncio.wait(fills, timeout=self._settings.cancel_timeout_seconds)
        logger.info(LogTemplates.PLAYER_SHUTDOWN, self.guild_id)

    async def _stop_locked(self) -> int:
        cleared = len(self._session.queue)
        self._replay = None
        await self._cancel_worker()
        self._session.reset()
        logger.info(LogTemplates.PLAYER_STOPPED, self.guild_id, cleared)
        return cleared

    # ── Volume and ducking ────────────────────────────────────────────

    async def set_volume(self, percent: int) -> None:
        self._session.set_volume(percent)
        self._apply_volume()
        logger.debug(
            LogTemplates.PLAYER_VOLUME, self.guild_id, percent, self._session.effective_volume
        )

    async def configure_ducking(self, enabled: bool, target: int | None = None) -> None:
        if target is not None:
            self._session.set_duck_target(target)
        self._session.duck_enabled = enabled
        if not enabled:
            self._session.ducked = False
        self._apply_volume()

    async def on_voice_activity(self, someone_speaking: bool) -> None:
        """Advisory gain change while someone talks; never a state transition."""
        if not self._session.duck_enabled or self._session.ducked == someone_speaking:
            return
        self._session.ducked = someone_speaking
        self._apply_volume()
        logger.debug(
            LogTemplates.PLAYER_DUCKING,
            self.guild_id,
            someone_speaking,
            self._session.effective_volume,
        )

    def _apply_volume(self) -> None:
        if self._pipeline is not None:
            self._pipeline.set_volume(self._session.effective_volume)

    # ── Worker ────────────────────────────────────────────────────────

    def _take_next(self) -> tuple[QueueItem, float] | None:
        if self._replay is not None:
            item, offset = self._replay
            self._replay = None
        else:
            next_item = self._session.dequeue()
            if next_item is None:
                return None
            item, offset = next_item, 0.0
        self._session.current = item
        self._session.playback_position_seconds = offset
        self._session.last_error = None
        self._session.transition_to(PlayerState.RESOLVING)
        return item, offset

    def _start_worker(self) -> bool:
        """Take the next item and spawn the worker; go idle when there is nothing left."""
        next_up = self._take_next()
        if next_up is None:
            self._go_idle()
            return False
        item, offset = next_up
        self._worker = asyncio.create_task(
            self._run(item, offset), name=f"guild-player-{self.guild_id}"
        )
        return True

    def _go_idle(self) -> None:
        self._session.current = None
        self._session.playback_position_seconds = 0.0
        self._session.transition_to(PlayerState.IDLE)

    async def _run(self, item: QueueItem, offset: float) -> None:
        while True:
            try:
                await self._play_item(item, offset)
            except asyncio.CancelledError:
                raise
            except Exception:
                # Only the current item is lost; the rest of the queue still plays.
                logger.exception(LogTemplates.PLAYER_WORKER_CRASHED, self.guild_id)
                self._go_idle()
            next_up = self._take_next()
            if next_up is None:
                break
            item, offset = next_up

        last_track = str(item.track_id)
        self._go_idle()
        if self._worker is asyncio.current_task():
            self._worker = None
        logger.info(LogTemplates.PLAYER_QUEUE_EXHAUSTED, self.guild_id)
        await self._publish(QueueExhausted(guild_id=self.guild_id, last_track_id=last_track))

    async def _cancel_worker(self) -> None:
        task, self._worker = self._worker, None
        if task is None or task.done():
            return
        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self._settings.cancel_timeout_seconds)
        if not done:
            logger.warning(
                LogTemplates.PLAYER_CANCEL_TIMEOUT,
                self.guild_id,
                self._settings.cancel_timeout_seconds,
            )

    async def _play_item(self, item: QueueItem, offset: float) -> None:
        """Play one item to its end. Failures are reported and swallowed so the queue advances."""
        lease: CacheLease | None = None
        pipeline: PlaybackPipeline | None = None
        done: asyncio.Future[Exception | None] | None = None
        fill_task: asyncio.Task[None] | None = None
        track_id = str(item.track_id)

        try:
            stream, lease = await self._acquire(item, offset)

            skip_ranges = (
                [] if stream.is_live else await self._skip_provider.get_skip_ranges(track_id)
            )
            pipeline = self._pipeline_factory(
                stream, offset, self._session.effective_volume, skip_ranges
            )
            self._pipeline = pipeline

            if lease is None:
                fill_task = self._start_cache_fill(stream, offset)

            loop = asyncio.get_running_loop()
            done = loop.create_future()

            def after(error: Exception | None) -> None:
                try:
                    loop.call_soon_threadsafe(_resolve_after, done, error)
                except RuntimeError as e:
                    logger.debug(LogTemplates.PLAYER_AFTER_CALLBACK_FAILED, self.guild_id, e)

            await self._transport.play(self.guild_id, pipeline.create_source(), after)
            self._session.transition_to(PlayerState.PLAYING)
            logger.info(
                LogTemplates.PLAYER_TRACK_STARTED,
                self.guild_id,
                stream.title or item.reference.query,
                stream.provider_used,
                lease is not None,
                pipeline.start_offset,
            )
            await self._publish(
                TrackStarted(
                    guild_id=self.guild_id,
                    track_id=track_id,
                    title=stream.title,
                    provider=stream.provider_used,
                    from_cache=lease is not None,
                    start_offset_seconds=pipeline.start_offset,
                )
            )

            interruption = pipeline.check_completion(await done)
            if interruption is not None:
                raise interruption

            logger.info(LogTemplates.PLAYER_TRACK_FINISHED, self.guild_id, track_id)
            await self._publish(
                TrackFinished(
                    guild_id=self.guild_id,
                    track_id=track_id,
                    reason=FinishReason.COMPLETED.value,
                )
            )
        except asyncio.CancelledError:
            if fill_task is not None and not fill_task.done():
                fill_task.cancel()
            raise
        except (MediaError, InvalidOperationError, OSError) as e:
            await self._report_failure(item, e)
        except Exception as e:
            logger.exception(LogTemplates.PLAYER_UNEXPECTED_ERROR, self.guild_id, track_id)
            await self._report_failure(item, e)
        finally:
            if self._pipeline is pipeline:
                self._pipeline = None
            try:
                # Drops the lease count before its first await, so even a
                # cancelled cleanup leaves the entry evictable.
                if lease is not None:
                    await lease.release()
            finally:
                if pipeline is not None:
                    self._session.playback_position_seconds = max(
                        0.0, pipeline.position_seconds
                    )
                    stop_transport = done is None or not done.done()
                    await self._release_pipeline(pipeline, stop_transport=stop_transport)

    async def _acquire(
        self, item: QueueItem, offset: float
    ) -> tuple[ResolvedStream, CacheLease | None]:
        """Cache hit first (never for seeks), otherwise the provider chain."""
        if self._cache is not None and not offset:
            lease = await self._cache.find(str(item.track_id))
            if lease is not None:
                logger.info(
                    LogTemplates.PLAYER_CACHE_HIT, self.guild_id, item.track_id, lease.entry.key
                )
                return lease.entry.to_stream(), lease
        return await self._resolver.resolve(item.reference), None

    def _start_cache_fill(self, stream: ResolvedStream, offset: float) -> asyncio.Task[None] | None:
        cache, fetcher, url = self._cache, self._fetcher, stream.stream_url
        if cache is None or fetcher is None or url is None:
            return None
        if not cache.is_cacheable(stream, offset):
            logger.debug(LogTemplates.PLAYER_CACHE_SKIPPED, self.guild_id, stream.source_track_id)
            return None
        task = asyncio.create_task(
            self._fill_cache(cache, fetcher.iter_chunks(url), stream, offset),
            name=f"cache-fill-{stream.source_track_id}",
        )
        self._fill_tasks.add(task)
        task.add_done_callback(self._fill_tasks.discard)
        return task

    async def _fill_cache(
        self,
        cache: MediaCache,
        source: AsyncIterator[bytes],
        stream: ResolvedStream,
        offset: float,
    ) -> None:
        key = cache.key_for(stream)
        logger.debug(LogTemplates.PLAYER_CACHE_FILL_STARTED, self.guild_id, key)
        try:
            await cache.put(key, source, stream, start_offset_seconds=offset)
        except (CacheWriteFailed, BusinessRuleViolationError) as e:
            logger.warning(LogTemplates.PLAYER_CACHE_FILL_FAILED, self.guild_id, key, e.message)
        except Exception:
            logger.exception(
                LogTemplates.PLAYER_CACHE_FILL_FAILED, self.guild_id, key, "unexpected error"
            )

    async def _release_pipeline(self, pipeline: PlaybackPipeline, *, stop_transport: bool) -> None:
        if stop_transport:
            try:
                await self._transport.stop(self.guild_id)
            except Exception as e:
                logger.warning(LogTemplates.PLAYER_TRANSPORT_STOP_FAILED, self.guild_id, e)
        try:
            async with asyncio.timeout(self._settings.cancel_timeout_seconds):
                await asyncio.to_thread(pipeline.cleanup)
        except TimeoutError:
            logger.warning(
                LogTemplates.PLAYER_CANCEL_TIMEOUT,
                self.guild_id,
                self._settings.cancel_timeout_seconds,
            )

    async def _report_failure(self, item: QueueItem, error: Exception) -> None:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        code = getattr(error, "code", None) or type(error).__name__
        self._session.last_error = message
        if self._session.state is not PlayerState.IDLE:
            self._session.transition_to(PlayerState.IDLE)
        logger.error(LogTemplates.PLAYER_TRACK_FAILED, self.guild_id, item.reference.query, message)
        await self._publish(
            TrackFailed(
                guild_id=self.guild_id,
                track_id=str(item.track_id),
                error_code=code,
                error_message=message,
            )
        )

    # ── Helpers ───────────────────────────────────────────────────────

    def _require_state(self, operation: str, *allowed: PlayerState) -> None:
        self._ensure_open(operation)
        if self._session.state not in allowed:
            raise InvalidOperationError(operation, self._session.state.value)

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise InvalidOperationError(operation, "closed")

    @staticmethod
    def _describe(item: QueueItem | None) -> str:
        if item is None:
            return "-"
        return item.reference.title_hint or item.reference.query

    async def _publish(self, event: DomainEvent) -> None:
        await self._events.publish(event)
