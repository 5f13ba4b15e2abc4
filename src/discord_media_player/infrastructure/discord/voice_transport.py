"""Discord voice transport delivering pipeline frames to a guild's VoiceClient."""

from __future__ import annotations

import logging

import discord

from discord_media_player.application.interfaces.voice_transport import (
    AfterCallback,
    VoiceActivityCallback,
    VoiceTransport,
)
from discord_media_player.domain.shared.exceptions import InvalidOperationError
from discord_media_player.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)


class DiscordVoiceTransport(VoiceTransport):
    """Plays audio sources on the voice client discord.py keeps per guild.

    Connecting and moving between channels belong to the command layer; this
    adapter only drives an existing connection. The voice client's player
    thread reads one 20 ms frame at a time, which is the only backpressure.
    """

    def __init__(self, bot: discord.Client) -> None:
        self._bot = bot
        self._on_voice_activity: VoiceActivityCallback | None = None

    def _get_voice_client(self, guild_id: int) -> discord.VoiceClient | None:
        guild = self._bot.get_guild(guild_id)
        if not guild:
            return None

        vc = guild.voice_client
        return vc if isinstance(vc, discord.VoiceClient) else None

    def _require_voice_client(self, guild_id: int, operation: str) -> discord.VoiceClient:
        vc = self._get_voice_client(guild_id)
        if vc is None or not vc.is_connected():
            logger.warning(LogTemplates.VOICE_NOT_CONNECTED, guild_id)
            raise InvalidOperationError(operation, "not connected to voice")
        return vc

    async def play(
        self, guild_id: int, source: discord.AudioSource, after: AfterCallback
    ) -> None:
        vc = self._require_voice_client(guild_id, "play")

        if vc.is_playing() or vc.is_paused():
            vc.stop()

        try:
            vc.play(source, after=after)
        except discord.ClientException as e:
            logger.error(LogTemplates.VOICE_CLIENT_ERROR, e)
            raise InvalidOperationError("play", str(e)) from e
        logger.debug(LogTemplates.VOICE_PLAYBACK_STARTED, guild_id)

    async def stop(self, guild_id: int) -> None:
        vc = self._get_voice_client(guild_id)
        if vc is None:
            return

        if vc.is_playing() or vc.is_paused():
            vc.stop()
            logger.debug(LogTemplates.VOICE_PLAYBACK_STOPPED, guild_id)

    async def pause(self, guild_id: int) -> bool:
        vc = self._get_voice_client(guild_id)
        if not vc:
            return False

        if vc.is_playing():
            vc.pause()
            return True

        return False

    async def resume(self, guild_id: int) -> bool:
        vc = self._get_voice_client(guild_id)
        if not vc:
            return False

        if vc.is_paused():
            vc.resume()
            return True

        return False

    def is_connected(self, guild_id: int) -> bool:
        vc = self._get_voice_client(guild_id)
        return vc is not None and vc.is_connected()

    def set_voice_activity_callback(self, callback: VoiceActivityCallback | None) -> None:
        self._on_voice_activity = callback

    async def notify_voice_activity(self, guild_id: int, someone_speaking: bool) -> None:
        """Entry point for a voice-receive integration reporting speech in a channel."""
        if self._on_voice_activity is None:
            return

        try:
            await self._on_voice_activity(guild_id, someone_speaking)
        except Exception as e:
            logger.error(LogTemplates.VOICE_ACTIVITY_CALLBACK_ERROR, guild_id, e)
