"""
Domain Layer

Contains pure business logic organized by bounded contexts:
- shared/: Cross-cutting types, exceptions, messages and the event bus
- media/: Tracks, formats, cache entries and the per-guild player session
"""

from discord_media_player.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
