"""FastAPI server exposing generation status and realtime updates."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.routes import events, generations
from config import settings
from imagelingo.generations.feed import InMemoryGenerationFeed
from imagelingo.storage.generations import GenerationStore
from imagelingo.utils.logger import bind_context, clear_context, logger


def create_app(database_path: str | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        app.state.store = GenerationStore(database_path or settings.database_path)
        app.state.feed = InMemoryGenerationFeed()
        logger.info(f"startup (db={app.state.store.db_path})")
        yield
        logger.info("shutdown")

    app = FastAPI(
        title="ImageLingo",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def trace_requests(request: Request, call_next):
        bind_context(trace_id=request.headers.get("X-Request-Id") or uuid4().hex[:12], component="api")
        try:
            return await call_next(request)
        finally:
            clear_context()

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    app.include_router(generations.router)
    app.include_router(events.router)
    return app


app = create_app()
