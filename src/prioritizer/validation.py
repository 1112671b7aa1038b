"""Shared validation functions for records and weights.

Pure functions, no click or httpx dependencies.
"""

from __future__ import annotations

import math
import unicodedata
from typing import Any

_MAX_NAME_LENGTH = 256


def sanitize_name(value: Any) -> tuple[str, str | None]:
    """Validate and clean a use case name.

    Returns (cleaned_name, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "name must be a string")
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            return ("", f"name must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "name must not be empty")
    if len(cleaned) > _MAX_NAME_LENGTH:
        return ("", f"name must be at most {_MAX_NAME_LENGTH} characters")
    return (cleaned, None)


def coerce_factor(key: str, value: Any, *, minimum: int, maximum: int, scale: tuple[int, ...] | None = None) -> int:
    """Coerce *value* to an int factor value within bounds.

    Raises ValueError for non-numeric input, out-of-range values, or values
    outside a non-linear scale.
    """
    if isinstance(value, bool):
        msg = f"{key} must be a number, got {value!r}"
        raise ValueError(msg)
    try:
        number = float(value)
    except (TypeError, ValueError):
        msg = f"{key} must be a number, got {value!r}"
        raise ValueError(msg) from None
    if not math.isfinite(number) or number != int(number):
        msg = f"{key} must be a whole number, got {value!r}"
        raise ValueError(msg)
    result = int(number)
    if scale is not None:
        if result not in scale:
            allowed = ", ".join(str(s) for s in scale)
            msg = f"{key} must be one of {allowed}, got {result}"
            raise ValueError(msg)
        return result
    if not (minimum <= result <= maximum):
        msg = f"{key} must be between {minimum} and {maximum}, got {result}"
        raise ValueError(msg)
    return result


def clamp_weight(value: Any, *, maximum: float) -> float:
    """Clamp a weight into ``[0, maximum]``. Non-numeric input reads as 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return min(number, maximum)
