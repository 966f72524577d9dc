"""API dependency injection components."""

from fastapi import Header, HTTPException, Request

from imagelingo.generations.feed import InMemoryGenerationFeed
from imagelingo.storage.generations import GenerationStore


def get_store(request: Request) -> GenerationStore:
    """Retrieve the generation store from app state."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Store not initialized")
    return store


def get_feed(request: Request) -> InMemoryGenerationFeed:
    """Retrieve the realtime feed from app state."""
    feed = getattr(request.app.state, "feed", None)
    if feed is None:
        raise HTTPException(status_code=503, detail="Feed not initialized")
    return feed


def get_current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Identity decision made upstream by the auth layer."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id
