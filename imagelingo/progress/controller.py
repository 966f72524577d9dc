"""Time-based fake progress for generations.

Multiple clients watching generations with the same average duration reach
the same percentage at the same elapsed time, each along its own seeded curve:

- Ramp phase (elapsed <= average): spline from 0 to the target percentage.
- Crawl phase (elapsed > average): square-root creep from target toward 100.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from config import settings
from imagelingo.errors import ConfigurationError
from imagelingo.progress.curve import (
    ControlPoint,
    create_seeded_random,
    generate_control_points,
    interpolate_progress,
)

CRAWL_RATE = 0.3
COMPLETE_AFTER_AVERAGES = 3


@dataclass(frozen=True)
class ProgressBarConfig:
    """Progress bar settings; durations in milliseconds."""

    average_time: float
    target_percentage: float = field(default_factory=lambda: settings.progress_target_percentage)
    seed: str = ""

    def __post_init__(self) -> None:
        if not self.average_time or self.average_time <= 0:
            raise ConfigurationError(
                f"average_time must be positive, got {self.average_time!r}",
                context={"average_time": self.average_time},
            )
        if not 0 < self.target_percentage <= 100:
            raise ConfigurationError(
                f"target_percentage must be in (0, 100], got {self.target_percentage!r}",
                context={"target_percentage": self.target_percentage},
            )


@dataclass(frozen=True)
class ProgressState:
    """Snapshot of the bar at one elapsed time. Never stored."""

    percentage: float
    elapsed: float
    is_complete: bool


class ProgressBarController:
    """Maps elapsed milliseconds to a deterministic progress percentage."""

    def __init__(self, config: ProgressBarConfig):
        self.config = config
        self.control_points: tuple[ControlPoint, ...] = generate_control_points(
            create_seeded_random(config.seed), config.target_percentage
        )

    @property
    def average_time(self) -> float:
        return self.config.average_time

    @property
    def target_percentage(self) -> float:
        return self.config.target_percentage

    def get_progress(self, elapsed: float) -> ProgressState:
        """Progress at `elapsed` ms. Negative input clamps to the zero state.

        `is_complete` flips after three average durations regardless of the
        percentage; it is a timeout hint, not a 100% signal.
        """
        if elapsed < 0:
            return ProgressState(percentage=0.0, elapsed=0.0, is_complete=False)

        target = self.target_percentage
        phase = elapsed / self.average_time

        if phase <= 1:
            percentage = interpolate_progress(phase, self.control_points, target)
        else:
            remaining = 100 - target
            crawl = min(remaining, remaining * math.sqrt(phase - 1) * CRAWL_RATE)
            percentage = 100.0 if crawl >= remaining else target + crawl

        return ProgressState(
            percentage=min(100.0, percentage),
            elapsed=elapsed,
            is_complete=elapsed > self.average_time * COMPLETE_AFTER_AVERAGES,
        )


def create_progress_bar_controller(
    config: ProgressBarConfig | None = None, **kwargs
) -> ProgressBarController:
    """Build a controller from a config or from its keyword fields.

    Example:
        controller = create_progress_bar_controller(average_time=15000, seed=gen_id)
        controller.get_progress(7500).percentage
    """
    if config is None:
        config = ProgressBarConfig(**kwargs)
    return ProgressBarController(config)
