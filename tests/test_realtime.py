from unittest.mock import MagicMock

import pytest

from helpers import make_generation
from imagelingo.generations.latch import TerminalLatch
from imagelingo.generations.realtime import GenerationRealtime


@pytest.fixture
def handlers():
    return {
        "on_complete": MagicMock(),
        "on_failed": MagicMock(),
        "on_processing": MagicMock(),
    }


def test_routes_terminal_events_for_tracked_ids(feed, handlers):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1", "gen-2"], **handlers)

    feed.publish(make_generation("completed", "gen-1", output_image_id="img-9"))
    feed.publish(make_generation("failed", "gen-2", error_message="quota"))

    handlers["on_complete"].assert_called_once()
    assert handlers["on_complete"].call_args.args[0].output_image_id == "img-9"
    handlers["on_failed"].assert_called_once()
    assert handlers["on_failed"].call_args.args[0].error_message == "quota"
    handlers["on_processing"].assert_not_called()


def test_ignores_untracked_ids(feed, handlers):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1"], **handlers)

    feed.publish(make_generation("completed", "gen-other"))

    for handler in handlers.values():
        handler.assert_not_called()


def test_processing_and_pending(feed, handlers):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1"], **handlers)

    feed.publish(make_generation("pending", "gen-1"))
    handlers["on_processing"].assert_not_called()

    feed.publish(make_generation("processing", "gen-1"))
    handlers["on_processing"].assert_called_once()


def test_other_users_updates_not_delivered(feed, handlers):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1"], **handlers)

    feed.publish(make_generation("completed", "gen-1", user_id="user-2"))

    handlers["on_complete"].assert_not_called()


def test_no_subscription_without_user_or_ids(feed, handlers):
    realtime = GenerationRealtime(feed)

    realtime.update(user_id=None, generation_ids=["gen-1"], **handlers)
    assert not realtime.is_subscribed
    realtime.update(user_id="user-1", generation_ids=[], **handlers)
    assert not realtime.is_subscribed
    assert feed.subscriber_count() == 0


def test_replacing_callbacks_keeps_subscription(feed):
    subscribe = MagicMock(wraps=feed.subscribe)
    feed.subscribe = subscribe
    realtime = GenerationRealtime(feed)
    first, second = MagicMock(), MagicMock()

    realtime.update(user_id="user-1", generation_ids=["gen-1", "gen-2"], on_complete=first)
    realtime.update(user_id="user-1", generation_ids=["gen-2", "gen-1"], on_complete=second)

    assert subscribe.call_count == 1
    feed.publish(make_generation("completed", "gen-1"))
    first.assert_not_called()
    second.assert_called_once()


def test_changing_ids_resubscribes(feed):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1"])
    first_key = realtime.subscription_key

    realtime.update(user_id="user-1", generation_ids=["gen-1", "gen-2"])

    assert realtime.subscription_key != first_key
    assert realtime.subscription_key == ("user-1", "gen-1,gen-2")
    assert feed.subscriber_count("user-1") == 1


def test_changing_user_resubscribes(feed):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1"])
    realtime.update(user_id="user-2", generation_ids=["gen-1"])

    assert feed.subscriber_count("user-1") == 0
    assert feed.subscriber_count("user-2") == 1


def test_close_unsubscribes(feed, handlers):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1"], **handlers)
    realtime.close()
    realtime.close()

    assert feed.subscriber_count() == 0
    assert realtime.tracked_ids == frozenset()
    feed.publish(make_generation("completed", "gen-1"))
    handlers["on_complete"].assert_not_called()


def test_out_of_order_processing_after_complete_without_latch(feed, handlers):
    realtime = GenerationRealtime(feed)
    realtime.update(user_id="user-1", generation_ids=["gen-1"], **handlers)

    feed.publish(make_generation("completed", "gen-1"))
    feed.publish(make_generation("processing", "gen-1"))

    handlers["on_complete"].assert_called_once()
    handlers["on_processing"].assert_called_once()


def test_latch_suppresses_duplicates_and_stale_processing(feed, handlers):
    latch = TerminalLatch()
    realtime = GenerationRealtime(feed, latch=latch)
    realtime.update(user_id="user-1", generation_ids=["gen-1"], **handlers)

    feed.publish(make_generation("completed", "gen-1"))
    feed.publish(make_generation("completed", "gen-1"))
    feed.publish(make_generation("processing", "gen-1"))

    handlers["on_complete"].assert_called_once()
    handlers["on_processing"].assert_not_called()
    assert "gen-1" in latch


def test_latch_claimed_elsewhere_silences_realtime(feed, handlers):
    latch = TerminalLatch()
    latch.claim("gen-1")
    realtime = GenerationRealtime(feed, latch=latch)
    realtime.update(user_id="user-1", generation_ids=["gen-1"], **handlers)

    feed.publish(make_generation("failed", "gen-1"))

    handlers["on_failed"].assert_not_called()


def test_raising_handler_is_isolated(feed):
    realtime = GenerationRealtime(feed)
    on_complete = MagicMock(side_effect=RuntimeError("consumer bug"))
    realtime.update(user_id="user-1", generation_ids=["gen-1", "gen-2"], on_complete=on_complete)

    feed.publish(make_generation("completed", "gen-1"))
    feed.publish(make_generation("completed", "gen-2"))

    assert on_complete.call_count == 2
