"""Wall-clock synchronized progress for dashboards with many generations.

Unlike the seeded controller, every tracker with the same average duration
shows the same percentage at the same wall-clock time.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from imagelingo.errors import ConfigurationError

RAMP_TARGET = 95.0


def linear_progress(elapsed: float, average_time: float) -> float:
    """Linear 0 -> 95 over one average, then 95 -> 100 over the next."""
    phase = elapsed / average_time
    if phase <= 1:
        return max(0.0, min(RAMP_TARGET, phase * RAMP_TARGET))
    over_phase = min(phase - 1, 1.0)
    return RAMP_TARGET + over_phase * (100 - RAMP_TARGET)


class SynchronizedProgressTracker:
    """Pull-style progress query pinned to the wall clock."""

    def __init__(self, average_time: float, clock: Callable[[], float] | None = None):
        if not average_time or average_time <= 0:
            raise ConfigurationError(f"average_time must be positive, got {average_time!r}")
        self.average_time = average_time
        self._clock = clock or (lambda: time.time() * 1000)
        self.start_time = self._clock()

    def get_progress(self) -> float:
        return linear_progress(self._clock() - self.start_time, self.average_time)

    def reset(self) -> None:
        """Restart the cycle from now."""
        self.start_time = self._clock()


def create_synchronized_progress_tracker(
    average_time: float, *, clock: Callable[[], float] | None = None
) -> SynchronizedProgressTracker:
    return SynchronizedProgressTracker(average_time, clock=clock)
