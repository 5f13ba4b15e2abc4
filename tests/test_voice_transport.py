"""Tests for the discord.py voice transport adapter."""

import logging
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from discord_media_player.domain.shared.exceptions import InvalidOperationError
from discord_media_player.infrastructure.discord.voice_transport import DiscordVoiceTransport

GUILD_ID = 123456789


@pytest.fixture
def voice_client():
    vc = MagicMock(spec=discord.VoiceClient)
    vc.is_connected.return_value = True
    vc.is_playing.return_value = False
    vc.is_paused.return_value = False
    return vc


@pytest.fixture
def bot(voice_client):
    bot = MagicMock()
    guild = MagicMock()
    guild.voice_client = voice_client
    bot.get_guild.return_value = guild
    return bot


@pytest.fixture
def transport(bot):
    return DiscordVoiceTransport(bot)


class TestPlay:
    @pytest.mark.asyncio
    async def test_play_hands_source_to_voice_client(self, transport, voice_client):
        source = MagicMock(spec=discord.AudioSource)
        after = MagicMock()

        await transport.play(GUILD_ID, source, after)

        voice_client.play.assert_called_once_with(source, after=after)
        voice_client.stop.assert_not_called()

    @pytest.mark.asyncio
    async def test_play_replaces_current_audio(self, transport, voice_client):
        """Should stop whatever is playing before starting the new source."""
        voice_client.is_playing.return_value = True

        await transport.play(GUILD_ID, MagicMock(), MagicMock())

        voice_client.stop.assert_called_once()
        voice_client.play.assert_called_once()

    @pytest.mark.asyncio
    async def test_client_exception_becomes_invalid_operation(self, transport, voice_client):
        voice_client.play.side_effect = discord.ClientException("Already playing audio.")

        with pytest.raises(InvalidOperationError) as exc_info:
            await transport.play(GUILD_ID, MagicMock(), MagicMock())

        assert "Already playing audio." in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_not_connected(self, transport, voice_client):
        voice_client.is_connected.return_value = False

        with pytest.raises(InvalidOperationError):
            await transport.play(GUILD_ID, MagicMock(), MagicMock())

        voice_client.play.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_guild(self, transport, bot):
        bot.get_guild.return_value = None

        with pytest.raises(InvalidOperationError):
            await transport.play(GUILD_ID, MagicMock(), MagicMock())

        assert transport.is_connected(GUILD_ID) is False


class TestControls:
    @pytest.mark.asyncio
    async def test_stop_when_playing(self, transport, voice_client):
        voice_client.is_playing.return_value = True

        await transport.stop(GUILD_ID)

        voice_client.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, transport, voice_client, bot):
        await transport.stop(GUILD_ID)
        voice_client.stop.assert_not_called()

        bot.get_guild.return_value = None
        await transport.stop(GUILD_ID)

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, transport, voice_client):
        voice_client.is_playing.return_value = True
        assert await transport.pause(GUILD_ID) is True
        voice_client.pause.assert_called_once()

        voice_client.is_playing.return_value = False
        voice_client.is_paused.return_value = True
        assert await transport.resume(GUILD_ID) is True
        voice_client.resume.assert_called_once()

    @pytest.mark.asyncio
    async def test_pause_when_idle(self, transport, voice_client):
        assert await transport.pause(GUILD_ID) is False
        assert await transport.resume(GUILD_ID) is False

    def test_non_voice_client_ignored(self, transport, bot):
        """Should treat a foreign VoiceProtocol as no connection."""
        bot.get_guild.return_value.voice_client = MagicMock(spec=discord.VoiceProtocol)

        assert transport.is_connected(GUILD_ID) is False


class TestVoiceActivity:
    @pytest.mark.asyncio
    async def test_without_callback(self, transport):
        await transport.notify_voice_activity(GUILD_ID, True)

    @pytest.mark.asyncio
    async def test_forwards_to_callback(self, transport):
        callback = AsyncMock()
        transport.set_voice_activity_callback(callback)

        await transport.notify_voice_activity(GUILD_ID, True)

        callback.assert_awaited_once_with(GUILD_ID, True)

    @pytest.mark.asyncio
    async def test_callback_error_is_logged(self, transport, caplog):
        transport.set_voice_activity_callback(AsyncMock(side_effect=RuntimeError("boom")))

        with caplog.at_level(logging.ERROR):
            await transport.notify_voice_activity(GUILD_ID, False)

        assert "boom" in caplog.text
