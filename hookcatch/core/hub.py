"""
In-process broadcast hub for the live event feed.

Each subscriber gets a Listener with a bounded queue. Publishing never awaits:
events are handed off with put_nowait, and a listener that is closed or whose
queue is full is dropped on the spot. Nothing is buffered for listeners that
subscribe later.

The registry is owned by the event loop; publish iterates over a snapshot so
subscribe/unsubscribe during a publish cannot disturb it.
"""

from __future__ import annotations

import asyncio
import itertools

import structlog

from hookcatch.core.metrics import MetricsCollector
from hookcatch.models.event import Event

log = structlog.get_logger()

DEFAULT_QUEUE_SIZE = 100


class Listener:
    """Handle for one live-feed subscriber."""

    __slots__ = ("id", "_queue", "_closed")

    def __init__(self, listener_id: int, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.id = listener_id
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, event: Event) -> bool:
        """Queue an event without waiting. False if closed or full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Undelivered events are discarded so the end marker always fits.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def get(self) -> Event | None:
        """Next event, or None once the listener is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def __aiter__(self) -> Listener:
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class BroadcastHub:
    """Fans newly stored events out to every subscribed listener."""

    def __init__(
        self,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        metrics: MetricsCollector | None = None,
    ):
        self._queue_size = queue_size
        self._metrics = metrics or MetricsCollector()
        self._listeners: dict[int, Listener] = {}
        self._ids = itertools.count(1)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self) -> Listener:
        listener = Listener(next(self._ids), self._queue_size)
        self._listeners[listener.id] = listener
        self._metrics.set_gauge("listeners_active", len(self._listeners))
        log.info("hub.subscribed", listener_id=listener.id, listeners=len(self._listeners))
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        """Remove and close a listener. Unknown or already removed handles are ignored."""
        removed = self._listeners.pop(listener.id, None)
        listener.close()
        if removed is None:
            return
        self._metrics.set_gauge("listeners_active", len(self._listeners))
        log.info("hub.unsubscribed", listener_id=listener.id, listeners=len(self._listeners))

    def publish(self, event: Event) -> int:
        """Hand `event` to every listener. Returns how many accepted it."""
        delivered = 0
        for listener in list(self._listeners.values()):
            if listener.offer(event):
                delivered += 1
                continue
            log.warning(
                "hub.listener_dropped",
                listener_id=listener.id,
                event_id=event.id,
                reason="closed" if listener.closed else "queue_full",
            )
            self._metrics.inc("broadcast_dropped_total")
            self.unsubscribe(listener)

        if delivered:
            self._metrics.inc("broadcast_delivered_total", delivered)
        return delivered

    def close(self) -> None:
        """Close every listener (shutdown)."""
        for listener in list(self._listeners.values()):
            self.unsubscribe(listener)
