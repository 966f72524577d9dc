"""Realtime reconciliation of pushed generation updates.

`GenerationRealtime.update()` is called whenever the consumer's inputs change.
The push subscription is keyed on the user id and the sorted tracked-id set
only. Callbacks live in a swappable handler cell, so replacing them never
re-subscribes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from imagelingo.generations.feed import GenerationFeed, Unsubscribe
from imagelingo.generations.latch import TerminalLatch
from imagelingo.schemas import Generation, GenerationStatus, GenerationUpdateEvent
from imagelingo.utils.callbacks import dispatch
from imagelingo.utils.logger import logger

GenerationCallback = Callable[[Generation], Any]


@dataclass
class RealtimeHandlers:
    on_complete: GenerationCallback | None = None
    on_failed: GenerationCallback | None = None
    on_processing: GenerationCallback | None = None


class GenerationRealtime:
    """Routes pushed updates for tracked generation ids to callbacks.

    Events for ids outside the tracked set are dropped. `pending` updates
    never fire a callback. Without a latch, out-of-order delivery can call
    `on_processing` after `on_complete`; with a shared `TerminalLatch` each
    terminal state is reported once across channels and late `processing`
    events for settled ids are dropped.
    """

    def __init__(self, feed: GenerationFeed, *, latch: TerminalLatch | None = None) -> None:
        self._feed = feed
        self._latch = latch
        self._handlers = RealtimeHandlers()
        self._tracked: frozenset[str] = frozenset()
        self._unsubscribe: Unsubscribe | None = None
        self._key: tuple[str, str] | None = None

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    @property
    def subscription_key(self) -> tuple[str, str] | None:
        return self._key

    @property
    def tracked_ids(self) -> frozenset[str]:
        return self._tracked

    def update(
        self,
        *,
        user_id: str | None,
        generation_ids: Iterable[str],
        on_complete: GenerationCallback | None = None,
        on_failed: GenerationCallback | None = None,
        on_processing: GenerationCallback | None = None,
    ) -> None:
        """Apply the latest inputs; re-subscribes only when the key changes."""
        ids = list(generation_ids)
        self._handlers = RealtimeHandlers(on_complete, on_failed, on_processing)
        self._tracked = frozenset(ids)

        if not user_id or not ids:
            if self._unsubscribe is not None:
                logger.debug(
                    f"[Realtime] Skipping subscription: user={bool(user_id)} ids={len(ids)}"
                )
            self._teardown()
            return

        key = (user_id, ",".join(sorted(self._tracked)))
        if key == self._key:
            return

        self._teardown()
        logger.info(f"[Realtime] Creating subscription for {len(self._tracked)} generations")
        self._unsubscribe = self._feed.subscribe(user_id, self.handle_event)
        self._key = key

    def handle_event(self, event: GenerationUpdateEvent) -> None:
        generation = event.new
        if generation.id not in self._tracked:
            return

        handlers = self._handlers
        status = generation.status
        if status.is_terminal:
            if self._latch is not None and not self._latch.claim(generation.id):
                logger.debug(f"[Realtime] Terminal state of {generation.id} already reported")
                return
            callback = (
                handlers.on_complete
                if status == GenerationStatus.COMPLETED
                else handlers.on_failed
            )
            dispatch(callback, generation, tag="Realtime")
        elif status == GenerationStatus.PROCESSING:
            if self._latch is not None and self._latch.is_settled(generation.id):
                return
            dispatch(handlers.on_processing, generation, tag="Realtime")

    def close(self) -> None:
        self._teardown()
        self._tracked = frozenset()
        self._handlers = RealtimeHandlers()

    def _teardown(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        self._key = None
        if unsubscribe is not None:
            logger.debug("[Realtime] Cleaning up subscription")
            unsubscribe()
