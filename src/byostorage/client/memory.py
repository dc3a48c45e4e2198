"""In-memory storage backend.

This module provides:
- MemoryBackend: an ephemeral StorageBackend with real cursor semantics

Each directory keeps an append-only change log. The initial listing is a
snapshot of the files present at that moment; continuing from a cursor
replays the log past the cursor, reporting the current state of every
name that changed. Long polls wake on the next write to the directory.

Dev and test only: nothing survives the process.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass, field

from byostorage.client.backend import (
    EntryKind,
    FolderEntry,
    ListFolderResult,
    LongPollResult,
    StorageBackend,
)
from byostorage.core.errors import BackendError, FileNotFound, PathNotFound

logger = logging.getLogger(__name__)

SHARED_LINK_SCHEME = "memory://"

# Cursors kept before the oldest ones expire
MAX_CURSORS = 10_000


@dataclass
class _Directory:
    name: str
    shared_link: str
    files: dict[str, bytes] = field(default_factory=dict)
    log: list[str] = field(default_factory=list)
    changed: asyncio.Event = field(default_factory=asyncio.Event)

    def record(self, name: str) -> None:
        self.log.append(name)
        # Wake current long polls, arm a fresh event for the next ones
        self.changed.set()
        self.changed = asyncio.Event()


@dataclass(frozen=True)
class _CursorState:
    shared_link: str
    position: int
    snapshot: tuple[str, ...] = ()


class MemoryBackend(StorageBackend):
    """Ephemeral StorageBackend kept in process memory.

    Args:
        page_size: Maximum entries per listing page.
        backoff: Backoff in seconds returned with every long-poll result.
        max_cursors: Issued cursors kept; older ones fail like expired
            Dropbox cursors (summary "reset/").
    """

    def __init__(
        self,
        page_size: int = 100,
        backoff: float | None = None,
        max_cursors: int = MAX_CURSORS,
    ) -> None:
        self.page_size = page_size
        self.backoff = backoff
        self.max_cursors = max_cursors
        self._directories: dict[str, _Directory] = {}
        self._links: dict[str, str] = {}  # shared link -> directory
        self._cursors: dict[str, _CursorState] = {}

    # === Directory operations ===

    async def get_or_create_shared_link(self, directory: str) -> str:
        entry = self._directories.get(directory)
        if entry is None:
            shared_link = SHARED_LINK_SCHEME + secrets.token_urlsafe(12)
            entry = _Directory(name=directory, shared_link=shared_link)
            self._directories[directory] = entry
            self._links[shared_link] = directory
            logger.debug("Created directory %s", directory)
        return entry.shared_link

    async def delete_directory(self, directory: str) -> None:
        entry = self._directories.pop(directory, None)
        if entry is None:
            raise FileNotFound(f"Directory not found: {directory}", 409, "path_lookup/not_found/")
        self._links.pop(entry.shared_link, None)
        entry.changed.set()

    # === File operations ===

    async def upload(self, directory: str, name: str, data: bytes) -> None:
        entry = self._directories.get(directory)
        if entry is None:
            # Uploading creates missing parent folders, without a shared link
            await self.get_or_create_shared_link(directory)
            entry = self._directories[directory]
        entry.files[name] = bytes(data)
        entry.record(name)

    async def delete(self, directory: str, name: str) -> None:
        entry = self._directories.get(directory)
        if entry is None or name not in entry.files:
            raise FileNotFound(f"File not found: {directory}/{name}", 409, "path_lookup/not_found/")
        del entry.files[name]
        entry.record(name)

    async def download(self, shared_link: str, name: str) -> bytes:
        entry = self._by_link(shared_link, FileNotFound)
        try:
            return entry.files[name]
        except KeyError:
            raise FileNotFound("File not found", 409, "shared_link_not_found/") from None

    # === Listing ===

    async def list_initial(self, shared_link: str) -> ListFolderResult:
        entry = self._by_link(shared_link, PathNotFound)
        snapshot = tuple(sorted(entry.files))
        state = _CursorState(shared_link, len(entry.log), snapshot)
        return self._page_from_snapshot(entry, state)

    async def list_continue(self, cursor: str) -> ListFolderResult:
        state = self._cursor_state(cursor)
        entry = self._by_link(state.shared_link, PathNotFound)
        if state.snapshot:
            return self._page_from_snapshot(entry, state)

        changed = entry.log[state.position:state.position + self.page_size]
        position = state.position + len(changed)
        # Collapse repeated names, reporting each at its latest state
        names = list(dict.fromkeys(reversed(changed)))[::-1]
        entries = [self._entry_for(entry, name) for name in names]
        return ListFolderResult(
            cursor=self._new_cursor(_CursorState(state.shared_link, position)),
            has_more=position < len(entry.log),
            entries=entries,
        )

    async def long_poll(self, cursor: str, timeout: int) -> LongPollResult:
        state = self._cursor_state(cursor)
        entry = self._by_link(state.shared_link, PathNotFound)
        if state.snapshot or state.position < len(entry.log):
            return LongPollResult(changes=True, backoff=self.backoff)

        try:
            await asyncio.wait_for(entry.changed.wait(), timeout=timeout)
        except TimeoutError:
            return LongPollResult(changes=False, backoff=self.backoff)
        return LongPollResult(changes=True, backoff=self.backoff)

    # === Helpers ===

    def _by_link(
        self, shared_link: str, error: type[BackendError]
    ) -> _Directory:
        directory = self._links.get(shared_link)
        if directory is None:
            raise error(f"Shared link not found: {shared_link}", 409, "path/not_found/")
        return self._directories[directory]

    def _cursor_state(self, cursor: str) -> _CursorState:
        try:
            return self._cursors[cursor]
        except KeyError:
            raise BackendError("Invalid cursor", 409, "reset/") from None

    def _new_cursor(self, state: _CursorState) -> str:
        token = secrets.token_urlsafe(16)
        self._cursors[token] = state
        while len(self._cursors) > self.max_cursors:
            # Dicts keep insertion order: drop the oldest cursor
            del self._cursors[next(iter(self._cursors))]
        return token

    def _page_from_snapshot(
        self, entry: _Directory, state: _CursorState
    ) -> ListFolderResult:
        page = state.snapshot[:self.page_size]
        rest = state.snapshot[self.page_size:]
        entries = [self._entry_for(entry, name) for name in page]
        return ListFolderResult(
            cursor=self._new_cursor(_CursorState(state.shared_link, state.position, rest)),
            has_more=bool(rest) or state.position < len(entry.log),
            entries=entries,
        )

    @staticmethod
    def _entry_for(entry: _Directory, name: str) -> FolderEntry:
        if name in entry.files:
            return FolderEntry(name=name, kind=EntryKind.FILE)
        return FolderEntry(name=name, kind=EntryKind.DELETED, is_downloadable=False)
