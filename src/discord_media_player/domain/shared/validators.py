"""Shared validators for settings and domain models.

This module provides reusable parsing/validation helpers for values that
arrive as loosely formatted strings, such as human-readable byte sizes.
"""

from __future__ import annotations

import re
from typing import Any, Final

from discord_media_player.domain.shared.messages import ErrorMessages
from discord_media_player.domain.shared.types import BYTES_PER_GB, BYTES_PER_KB, BYTES_PER_MB

_SIZE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?P<number>\d+(?:\.\d+)?)\s*(?P<unit>[KMGT]?I?B?)?\s*$", re.IGNORECASE
)

_UNIT_MULTIPLIERS: Final[dict[str, int]] = {
    "": 1,
    "B": 1,
    "K": BYTES_PER_KB,
    "M": BYTES_PER_MB,
    "G": BYTES_PER_GB,
    "T": BYTES_PER_GB * 1024,
}


def parse_byte_size(value: Any) -> int:
    """Parse a storage size such as ``"512MB"``, ``"10GB"``, ``"1.5g"`` or ``1048576``.

    Units are binary (1 KB = 1024 bytes); ``KiB``/``MiB`` spellings are accepted too.

    Args:
        value: An int, float or size string.

    Returns:
        The size in bytes.

    Raises:
        ValueError: If the value cannot be parsed or is not positive.
    """
    if isinstance(value, bool):
        raise ValueError(ErrorMessages.INVALID_BYTE_SIZE.format(value=value))

    if isinstance(value, int | float):
        size = int(value)
    elif isinstance(value, str):
        match = _SIZE_PATTERN.match(value)
        if not match:
            raise ValueError(ErrorMessages.INVALID_BYTE_SIZE.format(value=value))
        unit = (match.group("unit") or "").upper().replace("I", "")
        unit_key = unit[:1] if unit not in ("", "B") else unit
        size = int(float(match.group("number")) * _UNIT_MULTIPLIERS[unit_key])
    else:
        raise ValueError(ErrorMessages.INVALID_BYTE_SIZE.format(value=value))

    if size <= 0:
        raise ValueError(ErrorMessages.INVALID_BYTE_SIZE.format(value=value))
    return size


def validate_percent(value: int, field_name: str = "value") -> int:
    """Validate an integer percentage in 0 … 100.

    Raises:
        ValueError: If the value is outside the range.
    """
    if not 0 <= value <= 100:
        raise ValueError(ErrorMessages.FIELD_MUST_BE_PERCENT.format(field_name=field_name))
    return value
