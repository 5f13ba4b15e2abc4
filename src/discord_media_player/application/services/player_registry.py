"""Process-wide registry of guild players."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ...domain.shared.events import EventBus, SessionCreated, SessionDestroyed, get_event_bus
from ...domain.shared.messages import LogTemplates
from .guild_player import GuildPlayer

logger = logging.getLogger(__name__)

PlayerFactory = Callable[[int], GuildPlayer]


class PlayerRegistry:
    """Maps guild IDs to their :class:`GuildPlayer`.

    Players are created on first use and destroyed by :meth:`teardown`.
    Lookups read the dict without locking; only insertion and removal take
    the registry lock.
    """

    def __init__(self, factory: PlayerFactory, event_bus: EventBus | None = None) -> None:
        self._factory = factory
        self._events = event_bus or get_event_bus()
        self._players: dict[int, GuildPlayer] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._players

    @property
    def guild_ids(self) -> list[int]:
        return list(self._players)

    def get(self, guild_id: int) -> GuildPlayer | None:
        return self._players.get(guild_id)

    async def get_or_create(self, guild_id: int) -> GuildPlayer:
        player = self._players.get(guild_id)
        if player is not None:
            return player

        async with self._lock:
            player = self._players.get(guild_id)
            if player is not None:
                return player
            player = self._factory(guild_id)
            self._players[guild_id] = player

        logger.info(LogTemplates.REGISTRY_PLAYER_CREATED, guild_id, len(self._players))
        await self._events.publish(SessionCreated(guild_id=guild_id))
        return player

    async def teardown(self, guild_id: int, reason: str = "teardown") -> bool:
        """Shut the guild's player down and forget it. False if there was none."""
        async with self._lock:
            player = self._players.pop(guild_id, None)
        if player is None:
            return False

        await player.shutdown()
        logger.info(LogTemplates.REGISTRY_PLAYER_DESTROYED, guild_id, reason)
        await self._events.publish(SessionDestroyed(guild_id=guild_id, reason=reason))
        return True

    async def teardown_all(self, reason: str = "shutdown") -> int:
        async with self._lock:
            guild_ids = list(self._players)

        results = await asyncio.gather(
            *(self.teardown(guild_id, reason) for guild_id in guild_ids),
            return_exceptions=True,
        )
        for guild_id, result in zip(guild_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(LogTemplates.REGISTRY_TEARDOWN_FAILED, guild_id, result)
        return sum(1 for result in results if result is True)

    async def dispatch_voice_activity(self, guild_id: int, someone_speaking: bool) -> None:
        """Forward a voice-activity signal; guilds without a player are ignored."""
        player = self._players.get(guild_id)
        if player is not None:
            await player.on_voice_activity(someone_speaking)
