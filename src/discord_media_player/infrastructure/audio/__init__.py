"""Audio infrastructure - InnerTube and yt-dlp providers, FFmpeg pipeline and stream reader."""

from discord_media_player.infrastructure.audio.innertube_provider import InnertubeProvider
from discord_media_player.infrastructure.audio.pipeline import AudioPipeline, make_pipeline_factory
from discord_media_player.infrastructure.audio.stream_fetcher import HttpStreamFetcher
from discord_media_player.infrastructure.audio.ytdlp_cli_provider import YtDlpCliProvider
from discord_media_player.infrastructure.audio.ytdlp_client import YtDlpClient
from discord_media_player.infrastructure.audio.ytdlp_provider import YtDlpApiProvider

__all__ = [
    "AudioPipeline",
    "HttpStreamFetcher",
    "InnertubeProvider",
    "YtDlpApiProvider",
    "YtDlpCliProvider",
    "YtDlpClient",
    "make_pipeline_factory",
]
