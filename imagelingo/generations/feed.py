"""Push channels delivering generation status changes per user.

`InMemoryGenerationFeed` is the in-process broker the API publishes to and
streams from. `SSEGenerationFeed` is the client side of the API's
`/api/events/generations` Server-Sent Events endpoint.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from typing import Protocol

import httpx
from pydantic import ValidationError

from config import settings
from imagelingo.errors import FetchError
from imagelingo.schemas import Generation, GenerationUpdateEvent
from imagelingo.utils.logger import logger
from imagelingo.utils.retry import retry

EventHandler = Callable[[GenerationUpdateEvent], None]
Unsubscribe = Callable[[], None]

EVENT_NAME = "generation_update"


class GenerationFeed(Protocol):
    """Push-channel contract: updates scoped to one user identity."""

    def subscribe(self, user_id: str, on_event: EventHandler) -> Unsubscribe: ...


class InMemoryGenerationFeed:
    """In-process pub/sub of generation updates, keyed by user id."""

    def __init__(self) -> None:
        self._subscribers: dict[str, dict[int, EventHandler]] = defaultdict(dict)
        self._ids = itertools.count(1)
        self._event_ids = itertools.count(1)

    def subscribe(self, user_id: str, on_event: EventHandler) -> Unsubscribe:
        token = next(self._ids)
        self._subscribers[user_id][token] = on_event
        logger.debug(f"[Feed] Subscribed #{token} for user {user_id}")

        def unsubscribe() -> None:
            handlers = self._subscribers.get(user_id)
            if handlers is None or handlers.pop(token, None) is None:
                return
            if not handlers:
                del self._subscribers[user_id]
            logger.debug(f"[Feed] Unsubscribed #{token} for user {user_id}")

        return unsubscribe

    def subscriber_count(self, user_id: str | None = None) -> int:
        if user_id is not None:
            return len(self._subscribers.get(user_id, {}))
        return sum(len(handlers) for handlers in self._subscribers.values())

    def publish(self, generation: Generation) -> int:
        """Deliver an update to the owner's subscribers; returns deliveries."""
        if not generation.user_id:
            logger.warning(f"[Feed] Generation {generation.id} has no owner, not published")
            return 0

        event = GenerationUpdateEvent(new=generation, event_id=next(self._event_ids))
        delivered = 0
        for token, handler in list(self._subscribers.get(generation.user_id, {}).items()):
            try:
                handler(event)
                delivered += 1
            except Exception as exc:
                logger.exception(f"[Feed] Subscriber #{token} failed on {generation.id}: {exc}")
        return delivered

    async def stream(self, user_id: str) -> AsyncIterator[GenerationUpdateEvent]:
        """Yield updates for `user_id` until the consumer stops iterating."""
        queue: asyncio.Queue[GenerationUpdateEvent] = asyncio.Queue()
        unsubscribe = self.subscribe(user_id, queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()


class SSEGenerationFeed:
    """Subscribe to the API's SSE stream of generation updates.

    Each subscription runs a background task that reconnects whenever the
    stream ends. `retry` bounds only consecutive failed connects, so every
    stream that opens restores the full budget. The returned unsubscribe
    function cancels the task.
    """

    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        reconnect_retries: int | None = None,
        reconnect_delay: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = client
        self.reconnect_retries = (
            settings.realtime_reconnect_retries if reconnect_retries is None else reconnect_retries
        )
        self.reconnect_delay = (
            settings.realtime_reconnect_delay if reconnect_delay is None else reconnect_delay
        )
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, user_id: str, on_event: EventHandler) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(
            self._listen(user_id, on_event), name=f"sse-{user_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _listen(self, user_id: str, on_event: EventHandler) -> None:
        async def connect_once() -> None:
            await self._consume(user_id, on_event)

        # Each stream that opens gets a fresh retry budget; only failed
        # connection attempts count against it
        while True:
            try:
                await retry(connect_once, retries=self.reconnect_retries, delay=self.reconnect_delay)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"[Feed] Realtime channel for user {user_id} gave up: {exc}")
                return
            logger.info(
                f"[Feed] Event stream for user {user_id} ended, reconnecting in {self.reconnect_delay}s"
            )
            await asyncio.sleep(self.reconnect_delay)

    async def _consume(self, user_id: str, on_event: EventHandler) -> None:
        """Read one event stream until it ends.

        Returns normally once an opened stream closes or drops.

        Raises:
            FetchError: the stream could not be opened.
        """
        client = self._client or httpx.AsyncClient(timeout=None)
        url = f"{self.base_url}/api/events/generations"
        opened = False
        try:
            async with client.stream("GET", url, headers={"X-User-Id": user_id}) as response:
                if not response.is_success:
                    raise FetchError(
                        f"Event stream rejected with HTTP {response.status_code}",
                        context={"user_id": user_id},
                    )
                opened = True
                logger.info(f"[Feed] Realtime subscription active for user {user_id}")
                async for payload in iter_sse_data(response.aiter_lines()):
                    try:
                        event = GenerationUpdateEvent.model_validate_json(payload)
                    except ValidationError as exc:
                        logger.warning(f"[Feed] Dropping malformed event: {exc}")
                        continue
                    logger.debug(f"[Feed] Received update {event.new.id} {event.new.status.value}")
                    on_event(event)
        except httpx.HTTPError as exc:
            if not opened:
                raise FetchError(str(exc) or "Event stream failed", original_error=exc) from exc
            logger.warning(f"[Feed] Event stream for user {user_id} dropped: {exc}")
        finally:
            if self._client is None:
                await client.aclose()


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the joined `data:` payload of each SSE message in `lines`."""
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data:
                yield "\n".join(data)
                data = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if name == "data":
            data.append(value[1:] if value.startswith(" ") else value)
    if data:
        yield "\n".join(data)
