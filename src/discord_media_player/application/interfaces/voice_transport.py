"""Port interface for delivering PCM audio to a guild's voice connection."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from discord_media_player.domain.shared.types import DiscordSnowflake

if TYPE_CHECKING:
    import discord

AfterCallback = Callable[[Exception | None], None]
VoiceActivityCallback = Callable[[int, bool], Awaitable[None]]


class VoiceTransport(ABC):
    """Interface for the voice socket that consumes 20 ms audio frames.

    The ``after`` callback passed to :meth:`play` may be invoked from a
    non-event-loop thread once the source is exhausted or playback fails.
    """

    @abstractmethod
    async def play(
        self,
        guild_id: DiscordSnowflake,
        source: "discord.AudioSource",
        after: AfterCallback,
    ) -> None:
        """Start reading frames from ``source``; replaces anything currently playing."""
        ...

    @abstractmethod
    async def stop(self, guild_id: DiscordSnowflake) -> None:
        """Stop reading frames. The ``after`` callback of the stopped source still fires."""
        ...

    @abstractmethod
    async def pause(self, guild_id: DiscordSnowflake) -> bool:
        """Stop pulling frames without releasing the source."""
        ...

    @abstractmethod
    async def resume(self, guild_id: DiscordSnowflake) -> bool:
        """Continue pulling frames from a paused source."""
        ...

    @abstractmethod
    def is_connected(self, guild_id: DiscordSnowflake) -> bool:
        ...

    @abstractmethod
    def set_voice_activity_callback(self, callback: VoiceActivityCallback | None) -> None:
        """Register the handler invoked with ``(guild_id, someone_speaking)``."""
        ...
