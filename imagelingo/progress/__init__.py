"""Fake progress bar engine: seeded curves, animation and synchronized trackers."""

from imagelingo.progress.animation import AsyncioFrameScheduler, FrameScheduler, animate_progress
from imagelingo.progress.controller import (
    ProgressBarConfig,
    ProgressBarController,
    ProgressState,
    create_progress_bar_controller,
)
from imagelingo.progress.curve import ControlPoint, create_seeded_random, generate_control_points
from imagelingo.progress.tracker import (
    SynchronizedProgressTracker,
    create_synchronized_progress_tracker,
    linear_progress,
)

__all__ = [
    "AsyncioFrameScheduler",
    "ControlPoint",
    "FrameScheduler",
    "ProgressBarConfig",
    "ProgressBarController",
    "ProgressState",
    "SynchronizedProgressTracker",
    "animate_progress",
    "create_progress_bar_controller",
    "create_seeded_random",
    "create_synchronized_progress_tracker",
    "generate_control_points",
    "linear_progress",
]
