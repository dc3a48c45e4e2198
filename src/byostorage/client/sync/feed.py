"""Change feed over a directory's listing and long-poll API.

This module provides:
- ChangeFeed: resumable, cancelable async iterator of FeedEvents

State machine:
    Start ──(no cursor)──► initial listing ──► Drain
      │                                          │ buffer empty: CURSOR
      └──(resume cursor)──► Continue ◄───────────┤
                               │ has_more        │ no more
                               └──► Drain        ▼
                                    Long-poll (BACKLOG_COMPLETE once)
                                          │ changes / backoff
                                          └──► Continue

The feed never retries: every backend error ends it. Once it has raised,
further reads raise StopAsyncIteration.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING

from byostorage.client.backend import EntryKind, FolderEntry, ListFolderResult
from byostorage.client.sync.cancel import CancelSignal
from byostorage.client.sync.types import FeedEvent

if TYPE_CHECKING:
    from byostorage.client.backend import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_LONGPOLL_TIMEOUT = 90  # seconds


class ChangeFeed:
    """Async iterator turning paged listings and long polls into events.

    Usage:
        feed = ChangeFeed(backend, shared_link, cursor=stored_cursor)
        async for event in feed:
            ...
    """

    def __init__(
        self,
        backend: StorageBackend,
        shared_link: str,
        cursor: str | None = None,
        signal: CancelSignal | None = None,
        longpoll_timeout: int = DEFAULT_LONGPOLL_TIMEOUT,
    ) -> None:
        """Initialize the change feed.

        Args:
            backend: Storage backend to list and download from.
            shared_link: Shared link of the directory to follow.
            cursor: Cursor to resume from, skipping the initial listing.
            signal: Cancellation signal for every pending call.
            longpoll_timeout: Server-side wait requested per long poll.
        """
        self._backend = backend
        self._shared_link = shared_link
        self._signal = signal or CancelSignal()
        self._longpoll_timeout = longpoll_timeout

        self._cursor = cursor
        self._started = False
        self._has_more = True
        self._entries: deque[FolderEntry] = deque()
        self._checkpoint_pending = False
        self._backlog_complete = False
        self._finished = False

    @property
    def cursor(self) -> str | None:
        """Cursor of the latest page fetched."""
        return self._cursor

    @property
    def backlog_complete(self) -> bool:
        """Check if the feed has caught up with the directory once."""
        return self._backlog_complete

    def __aiter__(self) -> ChangeFeed:
        return self

    async def __anext__(self) -> FeedEvent:
        if self._finished:
            raise StopAsyncIteration
        try:
            return await self._next_event()
        except BaseException:
            self._finished = True
            raise

    async def _next_event(self) -> FeedEvent:
        while True:
            self._signal.raise_if_aborted()

            if not self._started:
                await self._start()
            elif self._entries:
                event = await self._event_for(self._entries.popleft())
                if event is not None:
                    return event
            elif self._checkpoint_pending:
                self._checkpoint_pending = False
                return FeedEvent.checkpoint(self._require_cursor())
            elif self._has_more:
                await self._continue()
            elif not self._backlog_complete:
                self._backlog_complete = True
                logger.debug("Backlog complete for %s", self._shared_link)
                return FeedEvent.backlog_complete()
            else:
                await self._long_poll()

    async def _start(self) -> None:
        self._started = True
        if self._cursor is not None:
            logger.debug("Resuming %s from stored cursor", self._shared_link)
            self._has_more = True
            return
        result = await self._signal.guard(self._backend.list_initial(self._shared_link))
        self._load_page(result)

    async def _continue(self) -> None:
        cursor = self._require_cursor()
        result = await self._signal.guard(self._backend.list_continue(cursor))
        self._load_page(result)

    def _require_cursor(self) -> str:
        if self._cursor is None:
            raise RuntimeError(f"No cursor yet for {self._shared_link}")
        return self._cursor

    def _load_page(self, result: ListFolderResult) -> None:
        self._cursor = result.cursor
        self._has_more = result.has_more
        self._entries.extend(result.entries)
        self._checkpoint_pending = True
        logger.debug(
            "Listed %d entries for %s (has_more=%s)",
            len(result.entries),
            self._shared_link,
            result.has_more,
        )

    async def _long_poll(self) -> None:
        cursor = self._require_cursor()
        result = await self._signal.guard(
            self._backend.long_poll(cursor, self._longpoll_timeout)
        )
        self._has_more = result.changes
        if result.backoff:
            logger.debug("Backing off %.1fs before polling again", result.backoff)
            await self._signal.guard(asyncio.sleep(result.backoff))

    async def _event_for(self, entry: FolderEntry) -> FeedEvent | None:
        if entry.kind == EntryKind.FILE and entry.is_downloadable:
            data = await self._signal.guard(
                self._backend.download(self._shared_link, entry.name)
            )
            return FeedEvent.update(entry.name, data)
        if entry.kind == EntryKind.DELETED:
            return FeedEvent.delete(entry.name)
        return None
