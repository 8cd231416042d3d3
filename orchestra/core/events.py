"""Lightweight in-memory hub delivering lifecycle notifications."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, List

from orchestra.core.models import utcnow

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Event:
    """Named notification emitted at a lifecycle hook site."""

    name: str
    source: str
    payload: Any = None
    timestamp: datetime = field(default_factory=utcnow)


Subscriber = Callable[[Event], None]


class EventHub:
    """Fan out events to subscriber callbacks and to pollable queues."""

    def __init__(self, source: str) -> None:
        self.source = source
        self._subscribers: List[Subscriber] = []
        self._queues: List[asyncio.Queue[Event]] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; the returned function unsubscribes it."""
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, name: str, payload: Any = None) -> Event:
        event = Event(name=name, source=self.source, payload=payload)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Subscriber failed while handling %s from %s", name, self.source)
        for queue in list(self._queues):
            queue.put_nowait(event)
        return event

    @asynccontextmanager
    async def deliver(self) -> AsyncIterator[asyncio.Queue[Event]]:
        """Context manager yielding a queue that receives every emitted event."""
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._queues.append(queue)
        try:
            yield queue
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def clear(self) -> None:
        self._subscribers.clear()
        self._queues.clear()
