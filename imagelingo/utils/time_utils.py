"""Human-readable formatting of processing durations."""

from __future__ import annotations

import math


def format_processing_time(ms: float | None) -> str:
    """Format milliseconds as a short duration string.

    Examples: 1234 -> "1.2s", 45678 -> "45.7s", 123456 -> "2.1m".
    Missing or non-positive values render as an empty string.
    """
    if ms is None or ms <= 0:
        return ""

    seconds = ms / 1000
    if seconds < 60:
        return f"{_round_tenths(seconds):.1f}s"

    return f"{_round_tenths(seconds / 60):.1f}m"


def _round_tenths(value: float) -> float:
    # Half up, unlike format() which rounds half to even on the binary value
    return math.floor(value * 10 + 0.5) / 10
