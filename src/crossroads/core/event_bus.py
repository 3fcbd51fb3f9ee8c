"""In-memory async event bus for training notifications.

The core publishes plain-data events; the notification layer (signup board,
Discord channel posts) subscribes and renders them. Events published with
no one listening are dropped.

Event types:
    training.state_changed       {training_id, from_state, to_state, changed_at}
    training.assignment_resolved {training_id, frozen, assignment}
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)

Envelope = dict[str, Any]


class EventBus:
    """Async pub/sub event bus.

    Usage:
        bus = EventBus()

        async with bus.subscribe("training.state_changed") as sub:
            event = await sub.get(timeout=1.0)

        await bus.publish("training.state_changed", {"training_id": 1, ...})
    """

    def __init__(self) -> None:
        self._subscribers: dict[str | None, list[asyncio.Queue[Envelope]]] = defaultdict(list)

    async def publish(self, event_type: str, data: dict[str, Any]) -> int:
        """Deliver an event to typed and wildcard subscribers.

        Returns how many subscribers received it. A full subscriber queue
        drops the event for that subscriber only.
        """
        envelope: Envelope = {"type": event_type, "data": data}
        delivered = 0
        for queue in [*self._subscribers.get(event_type, []), *self._subscribers.get(None, [])]:
            try:
                queue.put_nowait(envelope)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("event_dropped type=%s reason=slow_subscriber", event_type)
        return delivered

    def subscribe(self, event_type: str | None = None, max_size: int = 100) -> Subscription:
        """Subscribe to one event type, or to everything when ``event_type`` is None.

        Use the returned Subscription as an async context manager.
        """
        return Subscription(self, asyncio.Queue(maxsize=max_size), event_type)

    def _register(self, queue: asyncio.Queue[Envelope], event_type: str | None) -> None:
        self._subscribers[event_type].append(queue)

    def _unregister(self, queue: asyncio.Queue[Envelope], event_type: str | None) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers[event_type].remove(queue)

    @property
    def subscriber_count(self) -> int:
        return sum(len(queues) for queues in self._subscribers.values())


class Subscription:
    """An active subscription. Async context manager and async iterator."""

    def __init__(
        self,
        bus: EventBus,
        queue: asyncio.Queue[Envelope],
        event_type: str | None,
    ) -> None:
        self._bus = bus
        self._queue = queue
        self._event_type = event_type

    async def __aenter__(self) -> Subscription:
        self._bus._register(self._queue, self._event_type)
        return self

    async def __aexit__(self, *args: object) -> None:
        self._bus._unregister(self._queue, self._event_type)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Envelope:
        return await self._queue.get()

    async def get(self, timeout: float | None = None) -> Envelope | None:
        """Next event, or None when ``timeout`` elapses first."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None


class DeferredPublisher(EventBus):
    """Buffers events until the surrounding transaction has committed.

    Subscribers must never see an event for a change they cannot yet read,
    so the service publishes through one of these and flushes after commit.
    """

    def __init__(self, target: EventBus) -> None:
        super().__init__()
        self._target = target
        self._pending: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event_type: str, data: dict[str, Any]) -> int:
        self._pending.append((event_type, data))
        return 0

    async def flush(self) -> int:
        delivered = 0
        pending, self._pending = self._pending, []
        for event_type, data in pending:
            delivered += await self._target.publish(event_type, data)
        return delivered

    def discard(self) -> None:
        self._pending.clear()
