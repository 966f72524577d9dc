"""Server-Sent Events (SSE) for realtime generation updates.

Exposes the in-process generation feed to clients such as
`SSEGenerationFeed`; every message is a `generation_update` event whose data
is a JSON `{"new": <generation>, "event_id": n}` payload.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Annotated

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from api.deps import get_current_user, get_feed
from imagelingo.generations.feed import EVENT_NAME, InMemoryGenerationFeed
from imagelingo.utils.logger import logger

router = APIRouter(prefix="/api/events", tags=["events"])

PING_SECONDS = 15


@router.get("/generations")
async def stream_generation_events(
    user_id: Annotated[str, Depends(get_current_user)],
    feed: Annotated[InMemoryGenerationFeed, Depends(get_feed)],
):
    """Stream status changes of the caller's generations via SSE."""
    logger.info(f"[SSE] Client connected for generation events (user {user_id})")
    return EventSourceResponse(generation_event_messages(feed, user_id), ping=PING_SECONDS)


async def generation_event_messages(
    feed: InMemoryGenerationFeed, user_id: str
) -> AsyncIterator[dict]:
    """SSE message dicts for every update of `user_id`'s generations."""
    async with aclosing(feed.stream(user_id)) as stream:
        async for event in stream:
            yield {
                "event": EVENT_NAME,
                "id": str(event.event_id),
                "data": event.model_dump_json(),
            }
