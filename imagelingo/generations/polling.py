"""Poll a generation's status until it settles or the time budget runs out.

One `GenerationPoller` follows at most one generation id at a time:

    idle --watch(id)--> polling --completed/failed/timeout--> settled
      ^                    |
      +----watch(None)-----+

Fetches within a session are strictly sequential. Tearing a session down
(`watch(None)`, a new id, or `close()`) cancels the pending cycle at once and
no callback fires for it afterwards.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from config import settings
from imagelingo.errors import (
    ConfigurationError,
    FetchError,
    GenerationFailedError,
    ImageLingoError,
    PollingTimeoutError,
)
from imagelingo.generations.latch import TerminalLatch
from imagelingo.generations.source import GenerationSource
from imagelingo.schemas import Generation, GenerationStatus
from imagelingo.utils.callbacks import dispatch
from imagelingo.utils.logger import logger

TIMEOUT_MESSAGE = "Translation timed out"
FAILED_MESSAGE = "Translation failed"
UNKNOWN_ERROR_MESSAGE = "Unknown error"

STATUS_PROGRESS: dict[GenerationStatus, int] = {
    GenerationStatus.PENDING: 10,
    GenerationStatus.PROCESSING: 50,
    GenerationStatus.COMPLETED: 100,
    GenerationStatus.FAILED: 100,
}


def status_progress(generation: Generation | None) -> int:
    """Coarse four-bucket percentage for simple status displays."""
    if generation is None:
        return 0
    return STATUS_PROGRESS.get(generation.status, 0)


def monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class PollingOptions:
    """Polling cadence and limits, in milliseconds.

    `retry_fetch_errors` selects the transient-error policy: False stops the
    session and reports the error through `on_error`; True records and logs
    the error and keeps polling until a terminal status or the timeout.
    """

    poll_interval_ms: float = field(default_factory=lambda: settings.poll_interval_ms)
    max_duration_ms: float = field(default_factory=lambda: settings.max_poll_duration_ms)
    retry_fetch_errors: bool = False

    def __post_init__(self) -> None:
        if self.poll_interval_ms < 0 or self.max_duration_ms < 0:
            raise ConfigurationError(
                "polling durations must be non-negative",
                context={
                    "poll_interval_ms": self.poll_interval_ms,
                    "max_duration_ms": self.max_duration_ms,
                },
            )


@dataclass
class PollingSession:
    generation_id: str
    start_time: float
    task: asyncio.Task | None = None
    last_observed_status: GenerationStatus | None = None
    settled: bool = False


class GenerationPoller:
    """Follows one generation through the status-fetch interface.

    Usage:
        async with GenerationPoller(source, on_complete=show, on_error=warn) as poller:
            poller.watch(generation_id)
            await poller.wait()
    """

    def __init__(
        self,
        source: GenerationSource,
        *,
        options: PollingOptions | None = None,
        on_complete: Callable[[Generation, str | None], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        latch: TerminalLatch | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._source = source
        self.options = options or PollingOptions()
        self.on_complete = on_complete
        self.on_error = on_error
        self._latch = latch
        self._clock = clock or monotonic_ms
        self._session: PollingSession | None = None
        self._reset_state()

    def _reset_state(self) -> None:
        self.generation: Generation | None = None
        self.input_url: str | None = None
        self.output_url: str | None = None
        self.is_polling = False
        self.error: str | None = None
        # Typed counterpart of `error`
        self.exception: ImageLingoError | None = None

    @property
    def generation_id(self) -> str | None:
        return self._session.generation_id if self._session else None

    @property
    def progress(self) -> int:
        return status_progress(self.generation)

    def watch(self, generation_id: str | None) -> None:
        """Point the poller at a generation id, or at nothing.

        A new id resets all state and fetches immediately. The same id is a
        no-op. None stops polling and clears state. Requires a running loop
        when an id is given.
        """
        if self._session and self._session.generation_id == generation_id:
            return

        self._teardown()
        self._reset_state()
        if generation_id is None:
            return

        session = PollingSession(generation_id=generation_id, start_time=self._clock())
        self._session = session
        self.is_polling = True
        session.task = asyncio.get_running_loop().create_task(
            self._run(session), name=f"poll-{generation_id}"
        )
        logger.debug(f"[Poller] Started polling generation {generation_id}")

    def close(self) -> None:
        """Stop polling and drop all state; safe to call repeatedly."""
        self._teardown()
        self._reset_state()

    async def wait(self) -> None:
        """Wait until the current session stops polling."""
        session = self._session
        if session and session.task:
            await asyncio.wait({session.task})

    async def refetch(self) -> Generation | None:
        """Run one fetch-and-update cycle without touching the schedule."""
        session = self._session
        if session is None:
            return None
        return await self._fetch(session)

    async def __aenter__(self) -> GenerationPoller:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def _teardown(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        if session.task and not session.task.done():
            session.task.cancel()
        logger.debug(f"[Poller] Stopped polling generation {session.generation_id}")

    def _is_current(self, session: PollingSession) -> bool:
        return self._session is session

    async def _run(self, session: PollingSession) -> None:
        interval = self.options.poll_interval_ms / 1000
        while True:
            if session.settled or not self._is_current(session):
                return
            if self._clock() - session.start_time > self.options.max_duration_ms:
                logger.warning(
                    f"[Poller] Generation {session.generation_id} exceeded "
                    f"{self.options.max_duration_ms:.0f}ms, giving up"
                )
                self._settle(
                    session,
                    error=PollingTimeoutError(
                        TIMEOUT_MESSAGE,
                        context={
                            "generation_id": session.generation_id,
                            "max_duration_ms": self.options.max_duration_ms,
                        },
                    ),
                )
                return

            generation = await self._fetch(session)
            if not self._is_current(session) or session.settled:
                return

            if generation is None and not self.options.retry_fetch_errors:
                self.is_polling = False
                return

            await asyncio.sleep(interval)

    async def _fetch(self, session: PollingSession) -> Generation | None:
        try:
            result = await self._source.fetch_generation(session.generation_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not self._is_current(session):
                return None
            message = str(exc) or UNKNOWN_ERROR_MESSAGE
            self.error = message
            self.exception = (
                exc
                if isinstance(exc, ImageLingoError)
                else FetchError(
                    message,
                    original_error=exc,
                    context={"generation_id": session.generation_id},
                )
            )
            if self.options.retry_fetch_errors:
                logger.warning(
                    f"[Poller] Fetch failed for {session.generation_id}, will retry: {message}"
                )
            else:
                logger.error(f"[Poller] Fetch failed for {session.generation_id}: {message}")
                dispatch(self.on_error, message, tag="Poller")
            return None

        if not self._is_current(session):
            return None

        generation = result.generation
        self.generation = generation
        if result.input_url:
            self.input_url = result.input_url
        if result.output_url:
            self.output_url = result.output_url

        if generation.status != session.last_observed_status:
            logger.info(
                f"[Poller] Generation {generation.id} is {generation.status.value}"
            )
        session.last_observed_status = generation.status

        if generation.status == GenerationStatus.COMPLETED:
            self._settle(session, generation=generation, output_url=result.output_url)
        elif generation.status == GenerationStatus.FAILED:
            self._settle(
                session,
                error=GenerationFailedError(
                    generation.error_message or FAILED_MESSAGE,
                    context={"generation_id": generation.id, "model_used": generation.model_used},
                ),
            )

        return generation

    def _settle(
        self,
        session: PollingSession,
        *,
        generation: Generation | None = None,
        output_url: str | None = None,
        error: ImageLingoError | None = None,
    ) -> None:
        self.is_polling = False
        if session.settled:
            return
        session.settled = True
        if error is not None:
            self.error = str(error)
            self.exception = error

        if self._latch is not None and not self._latch.claim(session.generation_id):
            logger.debug(
                f"[Poller] Terminal state of {session.generation_id} already reported"
            )
            return

        if generation is not None:
            dispatch(self.on_complete, generation, output_url, tag="Poller")
        else:
            dispatch(self.on_error, self.error, tag="Poller")
