"""Event types exchanged inside the sync engine.

This module provides:
- FeedEvent: raw event produced by the change feed
- SpeculativeEvent: local, unconfirmed notification of a pending write
"""

from __future__ import annotations

from dataclasses import dataclass

from byostorage.core.types import EventType


@dataclass(frozen=True)
class FeedEvent:
    """Raw event from a directory's change history.

    Attributes:
        type: UPDATE, DELETE, CURSOR or BACKLOG_COMPLETE.
        name: Backend file name (UPDATE and DELETE).
        data: Encrypted file content as downloaded (UPDATE).
        cursor: Checkpoint token (CURSOR).
    """

    type: EventType
    name: str | None = None
    data: bytes | None = None
    cursor: str | None = None

    @classmethod
    def update(cls, name: str, data: bytes) -> FeedEvent:
        return cls(EventType.UPDATE, name=name, data=data)

    @classmethod
    def delete(cls, name: str) -> FeedEvent:
        return cls(EventType.DELETE, name=name)

    @classmethod
    def checkpoint(cls, cursor: str) -> FeedEvent:
        return cls(EventType.CURSOR, cursor=cursor)

    @classmethod
    def backlog_complete(cls) -> FeedEvent:
        return cls(EventType.BACKLOG_COMPLETE)


@dataclass(frozen=True)
class SpeculativeEvent:
    """Notification of a local write the backend has not confirmed yet.

    Never persisted. Data is plaintext.
    """

    type: EventType
    name: str
    data: bytes | None = None

    @classmethod
    def update(cls, name: str, data: bytes) -> SpeculativeEvent:
        return cls(EventType.UPDATE, name, data)

    @classmethod
    def delete(cls, name: str) -> SpeculativeEvent:
        return cls(EventType.DELETE, name)
