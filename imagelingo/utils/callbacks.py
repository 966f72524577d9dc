"""Safe invocation of consumer callbacks from polling and realtime loops."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from imagelingo.utils.logger import logger

# Strong references so scheduled coroutine callbacks are not garbage collected
_BACKGROUND: set[asyncio.Task] = set()


def dispatch(callback: Callable[..., Any] | None, *args: Any, tag: str = "callback") -> None:
    """Invoke a consumer callback without letting it break the caller.

    Plain functions run inline. Coroutine functions are scheduled on the
    running loop. Exceptions are logged and dropped.
    """
    if callback is None:
        return
    try:
        result = callback(*args)
    except Exception as exc:
        logger.exception(f"[{tag}] consumer callback raised: {exc}")
        return

    if asyncio.iscoroutine(result):
        task = asyncio.ensure_future(result)
        _BACKGROUND.add(task)
        task.add_done_callback(_finish)


def _finish(task: asyncio.Task) -> None:
    _BACKGROUND.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.opt(exception=exc).error(f"[callback] async consumer callback raised: {exc}")


async def drain() -> None:
    """Wait for every scheduled coroutine callback to finish."""
    while _BACKGROUND:
        await asyncio.gather(*list(_BACKGROUND), return_exceptions=True)
