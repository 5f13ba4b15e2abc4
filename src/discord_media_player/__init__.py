"""Voice-channel media player core: source resolution, audio cache and per-guild playback."""

__version__ = "0.1.0"
