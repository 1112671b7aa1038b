"""Structured fields carried inside a card's free-text description.

The board only offers one text field per card, and people edit it. Scoring
fields therefore travel as a single marker line appended after the user's
prose::

    Auto-classify and route inbound cases.

    prio-meta: ref=#42; impact=4; ttv=3; feasibility=4; data=3; risk=2; align=5; buyin=4; cost=2

Only the *last* marker line counts, so stale lines left behind by manual
edits are ignored. Decoding never raises: a missing or mangled marker yields
``None`` and callers fall back to scheme defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from prioritizer.scoring import SCHEMES

logger = logging.getLogger(__name__)

MARKER = "prio-meta:"
PAIR_DELIMITER = ";"

_STR_KEYS = ("ref", "scheme")
_INT_KEYS: tuple[str, ...] = tuple(
    dict.fromkeys([f.key for s in SCHEMES.values() for f in s.factors] + ["score"]),
)
_KEY_ORDER = (*_STR_KEYS, *_INT_KEYS)
_FORBIDDEN = (PAIR_DELIMITER, "=", "\n", "\r")


def _is_marker_line(line: str) -> bool:
    return line.strip().startswith(MARKER)


def _clean_str(value: str) -> str:
    for ch in _FORBIDDEN:
        value = value.replace(ch, " ")
    return " ".join(value.split())


def encode(fields: Mapping[str, Any]) -> str:
    """Render *fields* as a marker line. ``None`` values are omitted."""
    unknown = [k for k in fields if k not in _KEY_ORDER]
    if unknown:
        msg = f"Unknown metadata keys: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    pairs: list[str] = []
    for key in _KEY_ORDER:
        value = fields.get(key)
        if value is None:
            continue
        if key in _STR_KEYS:
            pairs.append(f"{key}={_clean_str(str(value))}")
        else:
            pairs.append(f"{key}={int(value)}")
    return f"{MARKER} " + f"{PAIR_DELIMITER} ".join(pairs)


def strip(text: str) -> str:
    """Return *text* without its trailing marker line (and trailing blank lines)."""
    lines = (text or "").splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    if lines and _is_marker_line(lines[-1]):
        lines.pop()
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


def embed(text: str, fields: Mapping[str, Any]) -> str:
    """Append a fresh marker line to *text*, replacing a trailing one if present."""
    prose = strip(text)
    line = encode(fields)
    return f"{prose}\n\n{line}" if prose else line


def decode(text: str | None) -> dict[str, Any] | None:
    """Parse the last marker line in *text*.

    Returns ``None`` when there is no marker or when nothing after it looks
    like a ``key=value`` pair. Unknown keys and unparsable numbers are skipped.
    """
    if not text:
        return None
    marker_lines = [line for line in text.splitlines() if _is_marker_line(line)]
    if not marker_lines:
        return None
    tail = marker_lines[-1].strip()[len(MARKER) :]

    result: dict[str, Any] = {}
    saw_pair = False
    for chunk in tail.split(PAIR_DELIMITER):
        if "=" not in chunk:
            continue
        key, _, raw = chunk.partition("=")
        key = key.strip()
        raw = raw.strip()
        if not key:
            continue
        saw_pair = True
        if key in _STR_KEYS:
            if raw:
                result[key] = raw
        elif key in _INT_KEYS:
            number = _parse_int(raw)
            if number is None:
                logger.debug("Skipping unparsable metadata value %s=%r", key, raw)
                continue
            result[key] = number
    return result if saw_pair else None


def _parse_int(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        number = float(raw)
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")) or number != int(number):
        return None
    return int(number)


def factor_fields(decoded: Mapping[str, Any] | None, keys: list[str]) -> dict[str, int]:
    """Subset of *decoded* holding only the given factor keys."""
    if not decoded:
        return {}
    return {k: decoded[k] for k in keys if k in decoded}
