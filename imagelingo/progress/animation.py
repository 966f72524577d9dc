"""Frame-driven animation of a progress bar controller."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any, Protocol

from config import settings
from imagelingo.progress.controller import ProgressBarConfig, ProgressBarController
from imagelingo.utils.callbacks import dispatch


def wall_clock_ms() -> float:
    return time.time() * 1000


class FrameScheduler(Protocol):
    """Host rendering clock: runs a callback on the next frame."""

    def request_frame(self, callback: Callable[[], None]) -> Any: ...

    def cancel_frame(self, handle: Any) -> None: ...


class AsyncioFrameScheduler:
    """Frame clock on the running event loop at a fixed frame interval."""

    def __init__(self, frame_interval_ms: float | None = None, loop: asyncio.AbstractEventLoop | None = None):
        self.frame_interval_ms = frame_interval_ms or settings.frame_interval_ms
        self._loop = loop

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.frame_interval_ms / 1000, callback)

    def cancel_frame(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


def animate_progress(
    on_progress: Callable[[float], None],
    config: ProgressBarConfig,
    *,
    on_complete: Callable[[], None] | None = None,
    scheduler: FrameScheduler | None = None,
    clock: Callable[[], float] | None = None,
) -> Callable[[], None]:
    """Drive `on_progress(percentage)` once per frame until 100% or cancel.

    Returns a cancel function. After cancellation no callback fires;
    `on_complete` fires at most once per call.

    Example:
        cancel = animate_progress(bar.update, ProgressBarConfig(15000, seed=gen_id))
        ...
        cancel()
    """
    controller = ProgressBarController(config)
    scheduler = scheduler or AsyncioFrameScheduler()
    clock = clock or wall_clock_ms
    start_time = clock()
    handle: Any = None
    completed = False
    cancelled = False

    def update() -> None:
        nonlocal handle, completed
        handle = None
        if cancelled:
            return

        state = controller.get_progress(clock() - start_time)
        on_progress(state.percentage)
        if cancelled:
            return

        if state.percentage >= 100:
            if not completed:
                completed = True
                dispatch(on_complete, tag="Animation")
        else:
            handle = scheduler.request_frame(update)

    def cancel() -> None:
        nonlocal handle, cancelled
        cancelled = True
        if handle is not None:
            scheduler.cancel_frame(handle)
            handle = None

    handle = scheduler.request_frame(update)
    return cancel
