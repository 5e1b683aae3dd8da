"""Per-run progress broadcast for Server-Sent Events observers."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from models import ProgressEvent

DEFAULT_RUN_ID = "default"

LOGGER = logging.getLogger(__name__)


class Subscription:
    """One observer's queue, bound to the event loop that created it."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()

    def deliver(self, event: ProgressEvent) -> None:
        # Raises RuntimeError once the owning loop is closed.
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def get(self) -> ProgressEvent:
        return await self._queue.get()


class ProgressChannel:
    """Single publisher, any number of subscribers, no replay.

    ``publish`` may be called from a worker thread; ``subscribe`` must be
    called on the event loop that will consume the events.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()
        self.active = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(asyncio.get_running_loop())
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for subscription in subscribers:
            try:
                subscription.deliver(event)
            except RuntimeError:
                LOGGER.debug("Dropping progress subscriber with closed event loop")
                self.unsubscribe(subscription)


class ProgressRegistry:
    """Channels keyed by pipeline run id so concurrent runs stay separate."""

    def __init__(self) -> None:
        self._channels: dict[str, ProgressChannel] = {}
        self._lock = threading.Lock()

    def channel(self, run_id: str = DEFAULT_RUN_ID) -> ProgressChannel:
        with self._lock:
            channel = self._channels.get(run_id)
            if channel is None:
                channel = self._channels[run_id] = ProgressChannel()
            return channel

    @contextmanager
    def publishing(self, run_id: str = DEFAULT_RUN_ID) -> Iterator[ProgressChannel]:
        """Hold the run's channel open for the duration of a pipeline run."""
        channel = self.channel(run_id)
        channel.active = True
        try:
            yield channel
        finally:
            channel.active = False
            self.release(run_id)

    def release(self, run_id: str) -> None:
        """Forget ``run_id`` once no run publishes and nobody listens on it."""
        with self._lock:
            channel = self._channels.get(run_id)
            if channel is not None and not channel.active and channel.subscriber_count == 0:
                del self._channels[run_id]


def format_sse(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.to_dict())}\n\n"
