"""Shared types for byostorage."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventType(str, Enum):
    """Kind of a change event.

    CURSOR only travels between the change feed and the sync engine;
    subscribers never see it.
    """

    UPDATE = "update"
    DELETE = "delete"
    CURSOR = "cursor"
    BACKLOG_COMPLETE = "backlog-complete"


@dataclass(frozen=True)
class SubscribeEvent:
    """Event delivered to a channel subscriber.

    Attributes:
        type: UPDATE, DELETE or BACKLOG_COMPLETE.
        uuid: 16-byte record identifier (None for BACKLOG_COMPLETE).
        data: Decrypted payload (UPDATE only).
    """

    type: EventType
    uuid: bytes | None = None
    data: bytes | None = None

    @classmethod
    def update(cls, uuid: bytes, data: bytes) -> SubscribeEvent:
        return cls(EventType.UPDATE, uuid, data)

    @classmethod
    def delete(cls, uuid: bytes) -> SubscribeEvent:
        return cls(EventType.DELETE, uuid)

    @classmethod
    def backlog_complete(cls) -> SubscribeEvent:
        return cls(EventType.BACKLOG_COMPLETE)


@dataclass(frozen=True)
class DirectoryHandle:
    """A channel's backend directory and the public link that reads it."""

    directory: str
    shared_link: str
