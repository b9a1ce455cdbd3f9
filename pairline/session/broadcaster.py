"""
Event Broadcaster for Pairline.

Fans LifecycleEvents out to whoever is currently listening: dashboards
polling for a QR code, the /wa-events stream, tests. Delivery is
synchronous and non-blocking; there is no queue for observers that are
not connected and no history.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from .events import LifecycleEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class Observer(Protocol):
    """Anything that accepts lifecycle events without blocking."""

    def deliver(self, event: LifecycleEvent) -> None: ...


class QueueObserver:
    """
    Observer backed by a bounded asyncio.Queue.

    Consumers await next_event(). When the consumer falls behind and the
    queue fills up, further events are dropped for this observer only.
    """

    def __init__(self, maxsize: int = 100):
        self._queue: asyncio.Queue[LifecycleEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, event: LifecycleEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Observer queue full, dropped {event.name} event")

    async def next_event(self) -> LifecycleEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


class EventBroadcaster:
    """
    Fire-and-forget fan-out of lifecycle events.

    Example:
        broadcaster = EventBroadcaster()
        observer = QueueObserver()
        broadcaster.subscribe(observer)
        broadcaster.publish(event)
        received = await observer.next_event()
    """

    def __init__(self) -> None:
        self._observers: list[Observer] = []

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def subscribe(
        self,
        observer: Observer,
        initial_events: Iterable[LifecycleEvent] = (),
    ) -> None:
        """
        Connect an observer.

        Args:
            observer: The observer to connect
            initial_events: Delivered to this observer only, before it
                joins the broadcast set
        """
        for event in initial_events:
            self._deliver(observer, event)
        if observer not in self._observers:
            self._observers.append(observer)
        logger.debug(f"Observer connected ({len(self._observers)} total)")

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)
            logger.debug(f"Observer disconnected ({len(self._observers)} total)")

    def publish(self, event: LifecycleEvent) -> int:
        """
        Deliver an event to every connected observer.

        Returns:
            Number of observers the event was handed to without error
        """
        delivered = 0
        for observer in list(self._observers):
            if self._deliver(observer, event):
                delivered += 1
        return delivered

    def clear(self) -> None:
        """Disconnect all observers (for testing)."""
        self._observers.clear()

    @staticmethod
    def _deliver(observer: Observer, event: LifecycleEvent) -> bool:
        try:
            observer.deliver(event)
        except Exception as e:
            logger.warning(f"Observer {observer!r} failed on {event.name}: {e}", exc_info=True)
            return False
        return True
