"""Aggregate progress for a batch of generations with realtime completion.

Combines the wall-clock synchronized fake progress of every tracked
generation with realtime updates: a pushed `completed` pins that generation
at 100% and fetches its result URLs, a pushed `failed` pins it and reports
the error.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from config import settings
from imagelingo.generations.feed import GenerationFeed
from imagelingo.generations.latch import TerminalLatch
from imagelingo.generations.realtime import GenerationRealtime
from imagelingo.generations.source import GenerationSource, fetch_generation_result
from imagelingo.progress.registry import GenerationProgressRegistry
from imagelingo.progress.tracker import linear_progress
from imagelingo.schemas import Generation, GenerationResult
from imagelingo.utils.callbacks import dispatch
from imagelingo.utils.logger import logger

ESTIMATE_CEILING = 98.0


@dataclass(frozen=True)
class ProcessingProgressState:
    progress: int = 0
    estimated_time_left: int | None = None  # seconds
    is_processing: bool = False
    completed_count: int = 0
    total_count: int = 0


class ProcessingProgress:
    """Progress display state for the generations a user is waiting on."""

    def __init__(
        self,
        feed: GenerationFeed,
        source: GenerationSource,
        *,
        average_processing_time: float | None,
        user_id: str | None,
        on_generation_complete: Callable[[str, GenerationResult], Any] | None = None,
        on_generation_failed: Callable[[str, str], Any] | None = None,
        on_realtime_update: Callable[[Generation], Any] | None = None,
        latch: TerminalLatch | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._source = source
        self.average_processing_time = average_processing_time
        self.user_id = user_id
        self.on_generation_complete = on_generation_complete
        self.on_generation_failed = on_generation_failed
        self.on_realtime_update = on_realtime_update
        self._clock = clock or (lambda: time.time() * 1000)
        self._registry = GenerationProgressRegistry()
        self._realtime = GenerationRealtime(feed, latch=latch)
        self._generation_ids: list[str] = []
        self._ticker: asyncio.Task | None = None
        self.state = ProcessingProgressState()

    @property
    def generation_ids(self) -> list[str]:
        return list(self._generation_ids)

    @property
    def realtime(self) -> GenerationRealtime:
        return self._realtime

    def update(self, generation_ids: list[str]) -> None:
        """Track a new list of generations (new ids start at 0%)."""
        self._generation_ids = list(generation_ids)

        if not self._generation_ids:
            self._registry.clear()
            self.state = ProcessingProgressState()
        else:
            now = self._clock()
            for generation_id in self._generation_ids:
                self._registry.start(generation_id, now)
            self.state = replace(
                self.state,
                total_count=len(self._generation_ids),
                is_processing=self.state.completed_count < len(self._generation_ids),
            )

        self._realtime.update(
            user_id=self.user_id,
            generation_ids=self._generation_ids,
            on_complete=self._handle_complete,
            on_failed=self._handle_failed,
        )

    def tick(self) -> ProcessingProgressState:
        """Recompute aggregate progress and the remaining-time estimate."""
        average = self.average_processing_time
        ids = self._generation_ids
        if not average or not ids:
            return self.state

        now = self._clock()
        total_progress = 0.0
        completed = 0
        for generation_id in ids:
            if self._registry.is_settled(generation_id):
                total_progress += 100.0
                completed += 1
                continue
            started = self._registry.started_at(generation_id, now)
            progress = linear_progress(now - started, average)
            self._registry.update(generation_id, progress)
            total_progress += progress

        avg_progress = total_progress / len(ids)
        progress_fraction = min(avg_progress, ESTIMATE_CEILING) / ESTIMATE_CEILING
        remaining_ms = average - progress_fraction * average
        remaining_seconds = math.ceil(remaining_ms / 1000)

        self.state = replace(
            self.state,
            progress=math.floor(avg_progress + 0.5),
            estimated_time_left=(
                remaining_seconds
                if avg_progress < ESTIMATE_CEILING and remaining_seconds > 0
                else None
            ),
            completed_count=completed,
            is_processing=completed < len(ids),
        )
        return self.state

    def start(self, interval_ms: float | None = None) -> None:
        """Tick on the running loop every `interval_ms` (default from settings)."""
        if self._ticker and not self._ticker.done():
            return
        interval = (interval_ms or settings.processing_tick_ms) / 1000
        self._ticker = asyncio.get_running_loop().create_task(self._tick_forever(interval))

    def stop(self) -> None:
        if self._ticker and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None
        self._realtime.close()

    async def _tick_forever(self, interval: float) -> None:
        while True:
            self.tick()
            await asyncio.sleep(interval)

    def _handle_complete(self, generation: Generation) -> None:
        self._registry.settle(generation.id)
        dispatch(self.on_realtime_update, generation, tag="Processing")
        dispatch(self._deliver_result, generation, tag="Processing")
        self.state = replace(self.state, completed_count=self._registry.settled_count)

    async def _deliver_result(self, generation: Generation) -> None:
        result = await fetch_generation_result(self._source, generation.id)
        if result is not None:
            dispatch(self.on_generation_complete, generation.id, result, tag="Processing")
        else:
            logger.warning(f"[Processing] Failed to fetch result for generation {generation.id}")

    def _handle_failed(self, generation: Generation) -> None:
        self._registry.settle(generation.id)
        dispatch(self.on_realtime_update, generation, tag="Processing")
        dispatch(
            self.on_generation_failed,
            generation.id,
            generation.error_message or "Unknown error",
            tag="Processing",
        )
        self.state = replace(self.state, completed_count=self._registry.settled_count)
