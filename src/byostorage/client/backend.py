"""Storage backend abstraction.

This module provides:
- StorageBackend: the interface the sync engine needs from a file store
- FolderEntry, ListFolderResult, LongPollResult: listing results

A backend stores files under directories, hands out a public shared link
per directory, and exposes the directory's change history through a
cursor-based listing plus a long-poll call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class EntryKind(str, Enum):
    """Kind of a listing entry."""

    FILE = "file"
    FOLDER = "folder"
    DELETED = "deleted"


@dataclass(frozen=True)
class FolderEntry:
    """One entry of a directory listing page."""

    name: str
    kind: EntryKind
    is_downloadable: bool = True


@dataclass
class ListFolderResult:
    """A page of a directory's change history.

    Attributes:
        cursor: Opaque token bookmarking the end of this page.
        has_more: True if more pages can be fetched right away.
        entries: Files and deletion markers on this page.
    """

    cursor: str
    has_more: bool
    entries: list[FolderEntry] = field(default_factory=list)


@dataclass
class LongPollResult:
    """Result of waiting for changes.

    Attributes:
        changes: True if the cursor is now behind the directory.
        backoff: Seconds the client must wait before polling again.
    """

    changes: bool
    backoff: float | None = None


class StorageBackend(ABC):
    """Abstract interface for a cloud file store."""

    @abstractmethod
    async def get_or_create_shared_link(self, directory: str) -> str:
        """Return the shared link of a directory, creating both if needed.

        Concurrent callers converge on the same directory and link.
        """

    @abstractmethod
    async def delete_directory(self, directory: str) -> None:
        """Delete a directory and everything in it."""

    @abstractmethod
    async def upload(self, directory: str, name: str, data: bytes) -> None:
        """Write a file, overwriting any existing content."""

    @abstractmethod
    async def delete(self, directory: str, name: str) -> None:
        """Delete a file from a directory."""

    @abstractmethod
    async def download(self, shared_link: str, name: str) -> bytes:
        """Read a file through a directory's shared link.

        Raises:
            FileNotFound: If the file or the shared link does not exist.
        """

    @abstractmethod
    async def list_initial(self, shared_link: str) -> ListFolderResult:
        """Start listing a directory from the beginning of its history.

        Raises:
            PathNotFound: If the directory does not exist.
        """

    @abstractmethod
    async def list_continue(self, cursor: str) -> ListFolderResult:
        """Fetch the changes recorded after a cursor."""

    @abstractmethod
    async def long_poll(self, cursor: str, timeout: int) -> LongPollResult:
        """Wait up to timeout seconds for changes after a cursor."""

    async def close(self) -> None:
        """Release any network resources."""

    async def __aenter__(self) -> StorageBackend:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
