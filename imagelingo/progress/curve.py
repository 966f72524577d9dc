"""Seeded curve generation for the fake progress bar.

A seed string (usually the generation id) is hashed into a small linear
congruential generator. The generator picks a handful of control points for a
Catmull-Rom spline running from (0, 0) to (1, target). Every client that
knows the seed draws the same curve, and every curve ends on the target.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

_LCG_MULTIPLIER = 1103515245
_LCG_INCREMENT = 12345
_LCG_MASK = 0x7FFFFFFF
_FALLBACK_STATE = 12345


@dataclass(frozen=True)
class ControlPoint:
    """Point on the ramp curve; x is the phase in [0, 1], y a percentage."""

    x: float
    y: float


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_units(text: str) -> list[int]:
    data = text.encode("utf-16-le", "surrogatepass")
    return [int.from_bytes(data[i:i + 2], "little") for i in range(0, len(data), 2)]


def seed_hash(seed: str) -> int:
    """Fold a seed into a signed 32-bit polynomial hash (h * 31 + c)."""
    h = 0
    for unit in _utf16_units(seed):
        h = _to_int32(h * 31 + unit)
    return h


def create_seeded_random(seed: str) -> Callable[[], float]:
    """Return a deterministic random() in [0, 1] driven by `seed`.

    An empty seed hashes to 0 and falls back to a fixed start state.
    """
    state = abs(seed_hash(seed)) or _FALLBACK_STATE

    def random() -> float:
        nonlocal state
        # Double-precision multiply-add, matches the browser client bit for bit
        state = int(float(state) * _LCG_MULTIPLIER + _LCG_INCREMENT) & _LCG_MASK
        return state / _LCG_MASK

    return random


def generate_control_points(
    random: Callable[[], float], target_percentage: float
) -> tuple[ControlPoint, ...]:
    """Build the ramp control points: (0, 0), 1-2 intermediates, (1, target).

    Intermediate y values blend a slow-start and a proportional curve and are
    capped five points below the target so the ramp never overshoots early.
    """
    points = [ControlPoint(0.0, 0.0)]

    num_points = math.floor(random() * 2) + 2
    for i in range(1, num_points):
        x = i / num_points
        random_factor = 0.3 + random() * 0.4
        y = (x * target_percentage * random_factor) + (
            x * target_percentage * (1 - random_factor) * 0.5
        )
        points.append(ControlPoint(x, min(target_percentage - 5, y)))

    points.append(ControlPoint(1.0, float(target_percentage)))
    return tuple(points)


def interpolate_progress(
    t: float, points: Sequence[ControlPoint], target_percentage: float
) -> float:
    """Evaluate the Catmull-Rom spline through `points` at phase `t`.

    Uses the two points bracketing `t` plus their neighbours (clamped at the
    ends). The result is clamped to [0, target_percentage].
    """
    ct = max(0.0, min(1.0, t))

    idx = 0
    while idx < len(points) - 1 and points[idx + 1].x < ct:
        idx += 1

    last = len(points) - 1
    p0 = points[max(0, idx - 1)]
    p1 = points[idx]
    p2 = points[min(last, idx + 1)]
    p3 = points[min(last, idx + 2)]

    span = p2.x - p1.x
    local_t = (ct - p1.x) / span if span else 0.0

    t2 = local_t * local_t
    t3 = t2 * local_t

    q = 0.5 * (
        2 * p1.y
        + (-p0.y + p2.y) * local_t
        + (2 * p0.y - 5 * p1.y + 4 * p2.y - p3.y) * t2
        + (-p0.y + 3 * p1.y - 3 * p2.y + p3.y) * t3
    )

    return max(0.0, min(target_percentage, q))
