"""Generation status tracking over polling and push channels."""

from imagelingo.generations.feed import GenerationFeed, InMemoryGenerationFeed, SSEGenerationFeed
from imagelingo.generations.latch import TerminalLatch
from imagelingo.generations.polling import GenerationPoller, PollingOptions, status_progress
from imagelingo.generations.realtime import GenerationRealtime, RealtimeHandlers
from imagelingo.generations.source import (
    GenerationSource,
    HttpGenerationSource,
    fetch_generation_result,
)

__all__ = [
    "GenerationFeed",
    "GenerationPoller",
    "GenerationRealtime",
    "GenerationSource",
    "HttpGenerationSource",
    "InMemoryGenerationFeed",
    "PollingOptions",
    "RealtimeHandlers",
    "SSEGenerationFeed",
    "TerminalLatch",
    "fetch_generation_result",
    "status_progress",
]
