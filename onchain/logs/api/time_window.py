"""Parsing of human time windows such as ``24h`` or ``7d``."""

from __future__ import annotations

import re

DEFAULT_WINDOW = "24h"
DEFAULT_MAX_WINDOW_SECONDS = 7 * 24 * 3600

_WINDOW_RE = re.compile(r"^([0-9]+)(h|d)$")
_UNIT_SECONDS = {"h": 3600, "d": 24 * 3600}


def parse_window_seconds(
    raw: str | None,
    *,
    max_seconds: int = DEFAULT_MAX_WINDOW_SECONDS,
) -> int:
    """Convert ``"<n>h"`` or ``"<n>d"`` to seconds, capped at ``max_seconds``.

    ``None`` or an empty string means the default 24h window.

    Raises:
        ValueError: If the window is malformed or zero
    """
    value = (raw or DEFAULT_WINDOW).strip()
    match = _WINDOW_RE.match(value)
    if not match:
        raise ValueError(f"window must be like 24h or 7d, got {raw!r}")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError("window must be positive")
    return min(amount * _UNIT_SECONDS[match.group(2)], max_seconds)
