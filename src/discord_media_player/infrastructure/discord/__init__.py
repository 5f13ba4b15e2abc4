"""Discord.py adapters."""

from discord_media_player.infrastructure.discord.voice_transport import DiscordVoiceTransport

__all__ = ["DiscordVoiceTransport"]
