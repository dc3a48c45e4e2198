"""Cooperative cancellation for backend operations.

This module provides:
- CancelSignal: fire-once signal that aborts guarded awaitables

Usage:
    signal = CancelSignal()
    task = asyncio.create_task(consume(store.subscribe(channel, link, signal=signal)))
    ...
    signal.abort("user closed the view")  # pending call raises Cancelled
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from byostorage.core.errors import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMEOUT_REASON = "The operation was aborted due to timeout"


def _consume_result(task: asyncio.Future[object]) -> None:
    """Retrieve the outcome of an abandoned task so it is never reported."""
    if not task.cancelled():
        task.exception()


class CancelSignal:
    """Signal that makes guarded operations fail with Cancelled."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: object = None
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def timeout(cls, seconds: float) -> CancelSignal:
        """Create a signal that aborts itself after a delay.

        Must be called from a running event loop.
        """
        signal = cls()
        loop = asyncio.get_running_loop()
        signal._timer = loop.call_later(
            seconds, signal.abort, TimeoutError(TIMEOUT_REASON)
        )
        return signal

    @property
    def aborted(self) -> bool:
        """Check if the signal has fired."""
        return self._event.is_set()

    @property
    def reason(self) -> object:
        """Reason passed to abort(), None until fired."""
        return self._reason

    def abort(self, reason: object = "aborted") -> None:
        """Fire the signal. Later calls are ignored."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug("Signal aborted: %s", reason)

    def raise_if_aborted(self) -> None:
        """Raise Cancelled if the signal has fired."""
        if self._event.is_set():
            raise Cancelled(self._reason)

    async def wait(self) -> None:
        """Wait until the signal fires."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await an operation unless the signal fires first.

        Raises:
            Cancelled: If the signal fired before or during the operation.
                The operation itself is cancelled.
        """
        self.raise_if_aborted()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        task.add_done_callback(_consume_result)
        raise Cancelled(self._reason)
