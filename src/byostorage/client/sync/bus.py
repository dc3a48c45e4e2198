"""In-process fan-out of speculative events.

This module provides:
- SpeculativeBus: registry of listeners keyed by shared link
- Listener: one subscriber's queue of speculative events

Publishing is synchronous: every listener has the event queued before
publish() returns, so subscribers see local writes without waiting for
the backend.
"""

from __future__ import annotations

import asyncio
import logging

from byostorage.client.sync.types import SpeculativeEvent

logger = logging.getLogger(__name__)


class Listener:
    """Queue of speculative events for one shared link.

    Use as a context manager, or call close() to unregister.
    """

    def __init__(self, bus: SpeculativeBus, shared_link: str) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[SpeculativeEvent] = asyncio.Queue()
        self.shared_link = shared_link
        self.closed = False

    def put(self, event: SpeculativeEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> SpeculativeEvent:
        """Wait for the next speculative event."""
        return await self._queue.get()

    def pending(self) -> int:
        """Number of events queued but not yet read."""
        return self._queue.qsize()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus._remove(self)

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class SpeculativeBus:
    """Registry of speculative-event listeners keyed by shared link."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def listen(self, shared_link: str) -> Listener:
        """Register a new listener for a shared link."""
        listener = Listener(self, shared_link)
        self._listeners.setdefault(shared_link, []).append(listener)
        return listener

    def publish(self, shared_link: str, event: SpeculativeEvent) -> int:
        """Deliver an event to every listener of a shared link.

        Returns:
            Number of listeners the event was queued for.
        """
        listeners = list(self._listeners.get(shared_link, ()))
        for listener in listeners:
            listener.put(event)
        logger.debug(
            "Speculative %s %s -> %d listener(s)",
            event.type.value,
            event.name,
            len(listeners),
        )
        return len(listeners)

    def listener_count(self, shared_link: str) -> int:
        return len(self._listeners.get(shared_link, ()))

    def _remove(self, listener: Listener) -> None:
        listeners = self._listeners.get(listener.shared_link)
        if not listeners:
            return
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            del self._listeners[listener.shared_link]
