"""Tests for the per-run progress channel and registry."""

from __future__ import annotations

import asyncio
import json
import threading

from models import ProgressEvent
from progress import ProgressChannel, ProgressRegistry, format_sse


def _event(n: int, total: int = 4) -> ProgressEvent:
    return ProgressEvent(processed_records=n, total_records=total)


def test_progress_event_wire_shape() -> None:
    assert _event(1, 3).to_dict() == {"progress": 33, "processedRecords": 1, "totalRecords": 3}


def test_progress_event_with_zero_total_does_not_divide() -> None:
    assert _event(0, 0).progress == 0


def test_format_sse_line() -> None:
    message = format_sse(_event(2))

    assert message.startswith("data: ")
    assert message.endswith("\n\n")
    assert json.loads(message[len("data: "):]) == {"progress": 50, "processedRecords": 2, "totalRecords": 4}


def test_subscriber_receives_events_in_order() -> None:
    async def scenario() -> list[int]:
        channel = ProgressChannel()
        subscription = channel.subscribe()
        for n in range(1, 5):
            channel.publish(_event(n))
        return [(await subscription.get()).processed_records for _ in range(4)]

    assert asyncio.run(scenario()) == [1, 2, 3, 4]


def test_no_replay_of_events_before_subscription() -> None:
    async def scenario() -> int:
        channel = ProgressChannel()
        channel.publish(_event(1))
        subscription = channel.subscribe()
        channel.publish(_event(2))
        return (await subscription.get()).processed_records

    assert asyncio.run(scenario()) == 2


def test_every_subscriber_gets_every_event() -> None:
    async def scenario() -> tuple[list[int], list[int]]:
        channel = ProgressChannel()
        first = channel.subscribe()
        second = channel.subscribe()
        channel.publish(_event(1))
        channel.publish(_event(2))
        a = [(await first.get()).processed_records for _ in range(2)]
        b = [(await second.get()).processed_records for _ in range(2)]
        return a, b

    assert asyncio.run(scenario()) == ([1, 2], [1, 2])


def test_unsubscribe_stops_delivery_without_affecting_others() -> None:
    async def scenario() -> tuple[int, int]:
        channel = ProgressChannel()
        leaving = channel.subscribe()
        staying = channel.subscribe()
        channel.unsubscribe(leaving)
        channel.unsubscribe(leaving)
        channel.publish(_event(1))
        received = (await staying.get()).processed_records
        return channel.subscriber_count, received

    assert asyncio.run(scenario()) == (1, 1)


def test_publish_from_worker_thread() -> None:
    async def scenario() -> list[int]:
        channel = ProgressChannel()
        subscription = channel.subscribe()

        def publisher() -> None:
            for n in range(1, 4):
                channel.publish(_event(n, total=3))

        await asyncio.to_thread(publisher)
        return [(await subscription.get()).processed_records for _ in range(3)]

    assert asyncio.run(scenario()) == [1, 2, 3]


def test_subscriber_with_closed_loop_is_dropped() -> None:
    channel = ProgressChannel()

    async def subscribe() -> None:
        channel.subscribe()

    asyncio.run(subscribe())
    assert channel.subscriber_count == 1

    channel.publish(_event(1))

    assert channel.subscriber_count == 0


def test_registry_keeps_runs_separate() -> None:
    async def scenario() -> tuple[int, int, int]:
        registry = ProgressRegistry()
        watcher_a = registry.channel("run-a").subscribe()
        watcher_b = registry.channel("run-b").subscribe()
        registry.channel("run-a").publish(_event(1))
        registry.channel("run-b").publish(_event(3))
        received_a = (await watcher_a.get()).processed_records
        received_b = (await watcher_b.get()).processed_records
        return received_a, received_b, watcher_b._queue.qsize()

    assert asyncio.run(scenario()) == (1, 3, 0)


def test_registry_release_keeps_channel_while_subscribed() -> None:
    async def scenario() -> tuple[bool, bool]:
        registry = ProgressRegistry()
        channel = registry.channel("run-a")
        subscription = channel.subscribe()
        registry.release("run-a")
        kept = "run-a" in registry._channels
        channel.unsubscribe(subscription)
        registry.release("run-a")
        return kept, "run-a" in registry._channels

    assert asyncio.run(scenario()) == (True, False)


def test_registry_keeps_channel_while_publishing() -> None:
    registry = ProgressRegistry()

    with registry.publishing("run-a") as channel:
        registry.release("run-a")
        assert "run-a" in registry._channels
        assert registry.channel("run-a") is channel
        assert channel.active is True

    assert channel.active is False
    assert "run-a" not in registry._channels


def test_publishing_context_releases_on_error() -> None:
    registry = ProgressRegistry()

    try:
        with registry.publishing("run-a"):
            raise ValueError("boom")
    except ValueError:
        pass

    assert "run-a" not in registry._channels


def test_concurrent_publishers_on_distinct_runs() -> None:
    async def scenario() -> tuple[list[int], list[int]]:
        registry = ProgressRegistry()
        watcher_a = registry.channel("a").subscribe()
        watcher_b = registry.channel("b").subscribe()

        def publish(run_id: str, total: int) -> None:
            with registry.publishing(run_id) as channel:
                for n in range(1, total + 1):
                    channel.publish(_event(n, total=total))

        threads = [threading.Thread(target=publish, args=("a", 3)), threading.Thread(target=publish, args=("b", 2))]
        for thread in threads:
            thread.start()
        await asyncio.to_thread(lambda: [thread.join() for thread in threads])

        a = [(await watcher_a.get()).processed_records for _ in range(3)]
        b = [(await watcher_b.get()).processed_records for _ in range(2)]
        return a, b

    assert asyncio.run(scenario()) == ([1, 2, 3], [1, 2])
