"""
Shared Domain Kernel

Contains types and exceptions shared across the player.
"""

from discord_media_player.domain.shared.exceptions import (
    BusinessRuleViolationError,
    DomainError,
    InvalidOperationError,
)

__all__ = [
    "DomainError",
    "BusinessRuleViolationError",
    "InvalidOperationError",
]
