"""Loguru configuration for the CLI, the API and the pollers.

Every record carries the request trace id, the generation being worked on and
the emitting component. They come from context vars so asyncio tasks spawned
inside a request or a CLI run inherit them without explicit binding.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

from loguru import logger

from config import settings

trace_id_ctx: ContextVar[str | None] = ContextVar("trace_id", default=None)
generation_ctx: ContextVar[str | None] = ContextVar("generation", default=None)
component_ctx: ContextVar[str | None] = ContextVar("component", default=None)

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level:<8}</level> | "
    "trace=<cyan>{extra[trace_id]}</cyan> "
    "gen=<cyan>{extra[generation]}</cyan> "
    "comp=<cyan>{extra[component]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Routed into loguru so uvicorn and httpx share our sinks
STDLIB_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpx", "httpcore", "asyncio")


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _attach_context(record) -> None:
    # Explicit logger.bind(...) values win over the context vars
    extra = record["extra"]
    extra.setdefault("trace_id", trace_id_ctx.get())
    extra.setdefault("generation", generation_ctx.get())
    extra.setdefault("component", component_ctx.get())


def setup_logger() -> None:
    """Install the console sink, the JSON file sink and the stdlib bridge.

    Safe to call repeatedly; every call replaces the previous sinks.
    """
    logger.remove()
    logger.configure(patcher=_attach_context)

    logger.add(
        sys.stderr,
        level=settings.log_level,
        colorize=True,
        backtrace=True,
        diagnose=False,
        format=CONSOLE_FORMAT,
    )

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(settings.log_dir / "imagelingo.log"),
        level="DEBUG",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        serialize=True,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in STDLIB_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False


def bind_context(
    *,
    trace_id: str | None = None,
    generation: str | None = None,
    component: str | None = None,
) -> None:
    """Set the context for the current task; None leaves a value untouched."""
    if trace_id is not None:
        trace_id_ctx.set(trace_id)
    if generation is not None:
        generation_ctx.set(generation)
    if component is not None:
        component_ctx.set(component)


def clear_context() -> None:
    trace_id_ctx.set(None)
    generation_ctx.set(None)
    component_ctx.set(None)


def _log_uncaught(exc_type, exc, tb) -> None:
    logger.opt(exception=(exc_type, exc, tb)).critical("Unhandled exception")


sys.excepthook = _log_uncaught

setup_logger()
