import asyncio
from unittest.mock import MagicMock

import pytest

from helpers import FakeSource, make_generation, make_result
from imagelingo.errors import (
    ConfigurationError,
    FetchError,
    GenerationFailedError,
    PollingTimeoutError,
)
from imagelingo.generations.latch import TerminalLatch
from imagelingo.generations.polling import (
    FAILED_MESSAGE,
    TIMEOUT_MESSAGE,
    GenerationPoller,
    PollingOptions,
    status_progress,
)
from imagelingo.schemas import GenerationStatus
from imagelingo.utils.callbacks import drain

FAST = PollingOptions(poll_interval_ms=10, max_duration_ms=5000)


async def _settle(poller: GenerationPoller) -> None:
    await asyncio.wait_for(poller.wait(), timeout=5)


# --- Status progress mapping ---

@pytest.mark.parametrize(
    "status, expected",
    [
        (GenerationStatus.PENDING, 10),
        (GenerationStatus.PROCESSING, 50),
        (GenerationStatus.COMPLETED, 100),
        (GenerationStatus.FAILED, 100),
    ],
)
def test_status_progress(status, expected):
    assert status_progress(make_generation(status)) == expected


def test_status_progress_without_generation():
    assert status_progress(None) == 0


def test_negative_options_rejected():
    with pytest.raises(ConfigurationError):
        PollingOptions(poll_interval_ms=-1)


# --- Lifecycle ---

@pytest.mark.asyncio
async def test_completed_fires_once_and_stops():
    source = FakeSource(make_result("completed", output_url="https://cdn/out.png", input_url="https://cdn/in.png"))
    on_complete = MagicMock()
    on_error = MagicMock()
    poller = GenerationPoller(source, options=FAST, on_complete=on_complete, on_error=on_error)

    poller.watch("gen-1")
    assert poller.is_polling is True
    await _settle(poller)
    await asyncio.sleep(0.05)

    assert source.calls == 1
    on_complete.assert_called_once()
    generation, output_url = on_complete.call_args.args
    assert generation.status == GenerationStatus.COMPLETED
    assert output_url == "https://cdn/out.png"
    on_error.assert_not_called()
    assert poller.is_polling is False
    assert poller.progress == 100
    assert poller.input_url == "https://cdn/in.png"
    assert poller.output_url == "https://cdn/out.png"
    assert poller.error is None


@pytest.mark.asyncio
async def test_failed_reports_record_message_once():
    source = FakeSource(make_result("failed", error_message="Model refused the image"))
    on_complete = MagicMock()
    on_error = MagicMock()
    poller = GenerationPoller(source, options=FAST, on_complete=on_complete, on_error=on_error)

    poller.watch("gen-1")
    await _settle(poller)
    await asyncio.sleep(0.05)

    on_error.assert_called_once_with("Model refused the image")
    on_complete.assert_not_called()
    assert source.calls == 1
    assert poller.error == "Model refused the image"


@pytest.mark.asyncio
async def test_failed_without_message_uses_default():
    on_error = MagicMock()
    poller = GenerationPoller(FakeSource(make_result("failed")), options=FAST, on_error=on_error)

    poller.watch("gen-1")
    await _settle(poller)

    on_error.assert_called_once_with(FAILED_MESSAGE)


@pytest.mark.asyncio
async def test_polls_until_terminal():
    source = FakeSource(
        make_result("pending"),
        make_result("processing"),
        make_result("processing"),
        make_result("completed"),
    )
    on_complete = MagicMock()
    poller = GenerationPoller(source, options=FAST, on_complete=on_complete)

    poller.watch("gen-1")
    await _settle(poller)

    assert source.calls == 4
    assert source.requested == ["gen-1"] * 4
    on_complete.assert_called_once()


@pytest.mark.asyncio
async def test_first_fetch_is_immediate():
    source = FakeSource(make_result("pending"))
    poller = GenerationPoller(source, options=PollingOptions(poll_interval_ms=10_000))

    poller.watch("gen-1")
    await asyncio.sleep(0.02)

    assert source.calls == 1
    assert poller.progress == 10
    poller.close()


# --- Teardown ---

@pytest.mark.asyncio
async def test_watch_none_stops_fetching():
    source = FakeSource(make_result("pending"))
    on_error = MagicMock()
    poller = GenerationPoller(
        source, options=PollingOptions(poll_interval_ms=20, max_duration_ms=5000), on_error=on_error
    )

    poller.watch("gen-1")
    await asyncio.sleep(0.05)
    assert source.calls >= 1

    poller.watch(None)
    calls = source.calls
    await asyncio.sleep(0.1)

    assert source.calls == calls
    assert poller.generation is None
    assert poller.is_polling is False
    assert poller.generation_id is None
    on_error.assert_not_called()


@pytest.mark.asyncio
async def test_context_manager_closes():
    source = FakeSource(make_result("processing"))
    async with GenerationPoller(source, options=FAST) as poller:
        poller.watch("gen-1")
        await asyncio.sleep(0.03)
    calls = source.calls
    await asyncio.sleep(0.05)
    assert source.calls == calls


@pytest.mark.asyncio
async def test_switching_ids_resets_state():
    source = FakeSource(make_result("processing", generation_id="gen-1"))
    poller = GenerationPoller(source, options=FAST)

    poller.watch("gen-1")
    await asyncio.sleep(0.02)
    assert poller.generation is not None

    source.responses = [make_result("completed", generation_id="gen-2")]
    poller.watch("gen-2")
    assert poller.generation is None
    await _settle(poller)

    assert poller.generation.id == "gen-2"
    assert source.requested[-1] == "gen-2"


@pytest.mark.asyncio
async def test_same_id_is_noop():
    source = FakeSource(make_result("processing"))
    poller = GenerationPoller(source, options=PollingOptions(poll_interval_ms=10_000))

    poller.watch("gen-1")
    await asyncio.sleep(0.02)
    poller.watch("gen-1")
    await asyncio.sleep(0.02)

    assert source.calls == 1
    poller.close()


# --- Timeout ---

@pytest.mark.asyncio
async def test_timeout_halts_polling():
    source = FakeSource(make_result("pending"))
    on_error = MagicMock()
    poller = GenerationPoller(
        source,
        options=PollingOptions(poll_interval_ms=10, max_duration_ms=100),
        on_error=on_error,
    )

    poller.watch("gen-1")
    await _settle(poller)
    calls = source.calls
    await asyncio.sleep(0.05)

    on_error.assert_called_once_with(TIMEOUT_MESSAGE)
    assert poller.error == TIMEOUT_MESSAGE
    assert poller.is_polling is False
    assert 1 <= calls < 100
    assert source.calls == calls


@pytest.mark.asyncio
async def test_timeout_uses_injected_clock(clock):
    source = FakeSource(make_result("pending"))
    on_error = MagicMock()
    poller = GenerationPoller(
        source,
        options=PollingOptions(poll_interval_ms=0, max_duration_ms=1000),
        on_error=on_error,
        clock=clock,
    )

    poller.watch("gen-1")
    await asyncio.sleep(0.01)
    assert on_error.call_count == 0

    clock.advance(1001)
    await _settle(poller)
    on_error.assert_called_once_with(TIMEOUT_MESSAGE)


# --- Fetch errors ---

@pytest.mark.asyncio
async def test_fetch_error_stops_by_default():
    source = FakeSource(FetchError("Generation not found"))
    on_error = MagicMock()
    poller = GenerationPoller(source, options=FAST, on_error=on_error)

    poller.watch("gen-1")
    await _settle(poller)
    await asyncio.sleep(0.05)

    on_error.assert_called_once_with("Generation not found")
    assert poller.error == "Generation not found"
    assert poller.is_polling is False
    assert source.calls == 1


@pytest.mark.asyncio
async def test_fetch_error_without_message():
    on_error = MagicMock()
    poller = GenerationPoller(FakeSource(RuntimeError()), options=FAST, on_error=on_error)

    poller.watch("gen-1")
    await _settle(poller)

    on_error.assert_called_once_with("Unknown error")


@pytest.mark.asyncio
async def test_retry_policy_keeps_polling_through_errors():
    source = FakeSource(
        FetchError("connection reset"),
        make_result("processing"),
        FetchError("gateway timeout"),
        make_result("completed"),
    )
    on_complete = MagicMock()
    on_error = MagicMock()
    poller = GenerationPoller(
        source,
        options=PollingOptions(poll_interval_ms=10, max_duration_ms=5000, retry_fetch_errors=True),
        on_complete=on_complete,
        on_error=on_error,
    )

    poller.watch("gen-1")
    await _settle(poller)

    assert source.calls == 4
    on_complete.assert_called_once()
    on_error.assert_not_called()


# --- Refetch ---

@pytest.mark.asyncio
async def test_refetch_without_id_returns_none():
    poller = GenerationPoller(FakeSource(make_result("completed")), options=FAST)
    assert await poller.refetch() is None


@pytest.mark.asyncio
async def test_refetch_after_completion_does_not_renotify():
    source = FakeSource(make_result("completed"))
    on_complete = MagicMock()
    poller = GenerationPoller(source, options=FAST, on_complete=on_complete)

    poller.watch("gen-1")
    await _settle(poller)
    generation = await poller.refetch()

    assert generation is not None and generation.status == GenerationStatus.COMPLETED
    assert source.calls == 2
    on_complete.assert_called_once()


@pytest.mark.asyncio
async def test_refetch_returns_none_on_failure():
    source = FakeSource(make_result("processing"), FetchError("boom"))
    poller = GenerationPoller(source, options=PollingOptions(poll_interval_ms=10_000))

    poller.watch("gen-1")
    await asyncio.sleep(0.02)
    assert await poller.refetch() is None
    assert poller.error == "boom"
    poller.close()


# --- Callbacks ---

@pytest.mark.asyncio
async def test_shared_latch_reports_once():
    latch = TerminalLatch()
    on_complete = MagicMock()
    first = GenerationPoller(FakeSource(make_result("completed")), options=FAST, on_complete=on_complete, latch=latch)
    second = GenerationPoller(FakeSource(make_result("completed")), options=FAST, on_complete=on_complete, latch=latch)

    first.watch("gen-1")
    second.watch("gen-1")
    await _settle(first)
    await _settle(second)

    on_complete.assert_called_once()
    assert latch.is_settled("gen-1")


@pytest.mark.asyncio
async def test_async_callback_is_awaited():
    received = []

    async def on_complete(generation, output_url):
        await asyncio.sleep(0)
        received.append(generation.id)

    poller = GenerationPoller(FakeSource(make_result("completed")), options=FAST, on_complete=on_complete)
    poller.watch("gen-1")
    await _settle(poller)
    await drain()

    assert received == ["gen-1"]


@pytest.mark.asyncio
async def test_raising_callback_does_not_break_poller():
    def on_complete(generation, output_url):
        raise ValueError("consumer bug")

    poller = GenerationPoller(FakeSource(make_result("completed")), options=FAST, on_complete=on_complete)
    poller.watch("gen-1")
    await _settle(poller)

    assert poller.is_polling is False
    assert poller.generation.status == GenerationStatus.COMPLETED


@pytest.mark.asyncio
async def test_callback_may_stop_poller():
    poller_ref = {}

    def on_complete(generation, output_url):
        poller_ref["poller"].watch(None)

    poller = GenerationPoller(FakeSource(make_result("completed")), options=FAST, on_complete=on_complete)
    poller_ref["poller"] = poller
    poller.watch("gen-1")
    await asyncio.sleep(0.05)

    assert poller.generation is None
    assert poller.generation_id is None


@pytest.mark.asyncio
async def test_refetch_settling_during_sleep_stops_loop():
    source = FakeSource(make_result("processing"), make_result("completed"))
    on_complete = MagicMock()
    poller = GenerationPoller(
        source,
        options=PollingOptions(poll_interval_ms=50, max_duration_ms=5000),
        on_complete=on_complete,
    )

    poller.watch("gen-1")
    await asyncio.sleep(0.01)
    assert source.calls == 1

    await poller.refetch()
    await _settle(poller)
    await asyncio.sleep(0.1)

    assert source.calls == 2
    assert poller.is_polling is False
    on_complete.assert_called_once()


@pytest.mark.asyncio
async def test_completed_session_never_reports_timeout(clock):
    source = FakeSource(make_result("processing"), make_result("completed"))
    on_error = MagicMock()
    poller = GenerationPoller(
        source,
        options=PollingOptions(poll_interval_ms=50, max_duration_ms=1000),
        on_error=on_error,
        clock=clock,
    )

    poller.watch("gen-1")
    await asyncio.sleep(0.01)
    await poller.refetch()
    clock.advance(5000)
    await _settle(poller)

    assert poller.generation.status == GenerationStatus.COMPLETED
    assert poller.error is None
    assert poller.exception is None
    on_error.assert_not_called()


# --- Typed errors ---

@pytest.mark.asyncio
async def test_exception_types_match_outcome(clock):
    timed_out = GenerationPoller(
        FakeSource(make_result("pending")),
        options=PollingOptions(poll_interval_ms=10, max_duration_ms=0),
        clock=clock,
    )
    failed = GenerationPoller(FakeSource(make_result("failed", error_message="quota")), options=FAST)
    broken = GenerationPoller(FakeSource(RuntimeError("offline")), options=FAST)

    timed_out.watch("gen-1")
    clock.advance(1)
    failed.watch("gen-1")
    broken.watch("gen-1")
    for poller in (timed_out, failed, broken):
        await _settle(poller)

    assert isinstance(timed_out.exception, PollingTimeoutError)
    assert timed_out.exception.context["generation_id"] == "gen-1"
    assert isinstance(failed.exception, GenerationFailedError)
    assert str(failed.exception) == "quota"
    assert isinstance(broken.exception, FetchError)
    assert isinstance(broken.exception.original_error, RuntimeError)
