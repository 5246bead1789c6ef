from __future__ import annotations

import asyncio
from dataclasses import dataclass


@dataclass(frozen=True)
class Event:
    type: str
    data: dict


class EventBus:
    """Fan-out of map events to SSE subscribers.

    Each subscriber has a bounded queue; when a slow browser falls behind, its
    oldest event is discarded and counted in ``dropped``.
    """

    def __init__(self, *, max_queue: int = 200) -> None:
        self._lock = asyncio.Lock()
        self._max_queue = max_queue
        self._subscribers: set[asyncio.Queue[Event]] = set()
        self.dropped = 0

    async def subscribe(self) -> asyncio.Queue[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue)
        async with self._lock:
            self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def publish(self, event: Event) -> None:
        async with self._lock:
            queues = list(self._subscribers)
        self._deliver(queues, event)

    def publish_nowait(self, event: Event) -> None:
        """Publish from synchronous code running on the event loop thread."""
        self._deliver(list(self._subscribers), event)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _deliver(self, queues: list[asyncio.Queue[Event]], event: Event) -> None:
        for queue in queues:
            if queue.full():
                queue.get_nowait()
                self.dropped += 1
            queue.put_nowait(event)
