"""Per-run event bus.

Topics are keyed by flow instance id. Subscribers are registered the moment
``subscribe`` returns, so nothing published afterwards is missed, and a
topic's subscribers are released when the topic is closed.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from .types import FlowEvent


class Subscription:
    """Async-iterable view of one subscriber's queue."""

    def __init__(self, bus: FlowEventBus, topic: str):
        self._bus = bus
        self.topic = topic
        self._queue: asyncio.Queue[FlowEvent | None] = asyncio.Queue()
        self._closed = False

    def _put(self, event: FlowEvent | None) -> None:
        """Queue ``event``; None is the end-of-topic marker. Dropped once closed."""
        if not self._closed:
            self._queue.put_nowait(event)

    async def get(self, timeout: float | None = None) -> FlowEvent | None:
        """Next event, or None once the topic is closed.

        Raises:
            TimeoutError: If no event arrives within ``timeout`` seconds
        """
        if self._closed and self._queue.empty():
            return None
        event = await asyncio.wait_for(self._queue.get(), timeout)
        if event is None:
            self._closed = True
        return event

    def close(self) -> None:
        """Detach from the bus and end iteration."""
        if self._closed:
            return
        self._bus._detach(self)
        self._queue.put_nowait(None)
        self._closed = True

    def __aiter__(self) -> AsyncIterator[FlowEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[FlowEvent]:
        """Yield events until the end-of-topic marker."""
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class FlowEventBus:
    """Topic-per-run publish/subscribe."""

    def __init__(self) -> None:
        self._topics: dict[str, list[Subscription]] = {}

    def subscribe(self, topic: str) -> Subscription:
        """Register a subscriber on ``topic``.

        Args:
            topic: Flow instance id

        Returns:
            Subscription that receives every event published from now on
        """
        subscription = Subscription(self, topic)
        self._topics.setdefault(topic, []).append(subscription)
        return subscription

    def publish(self, event: FlowEvent) -> int:
        """Deliver an event to the current subscribers of its topic.

        Returns:
            Number of subscribers the event was delivered to
        """
        subscribers = self._topics.get(event.flow_instance_id, [])
        for subscription in list(subscribers):
            subscription._put(event)
        return len(subscribers)

    def close(self, topic: str) -> None:
        """End every subscription of a topic and drop it."""
        for subscription in self._topics.pop(topic, []):
            subscription._put(None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, []))

    def topics(self) -> list[str]:
        return list(self._topics)

    def _detach(self, subscription: Subscription) -> None:
        """Remove one subscriber; the topic is dropped with its last subscriber."""
        subscribers = self._topics.get(subscription.topic)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._topics[subscription.topic]
