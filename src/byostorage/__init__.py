"""BYO Storage - Confidential publish/subscribe channels on cloud file storage."""

from byostorage.client.api import DropboxBackend
from byostorage.client.memory import MemoryBackend
from byostorage.client.state import SqliteCacheStore
from byostorage.client.sync import CancelSignal, ChannelStore
from byostorage.core import DropboxConfig, EventType, SubscribeEvent

__version__ = "0.1.0"

__all__ = [
    "CancelSignal",
    "ChannelStore",
    "DropboxBackend",
    "DropboxConfig",
    "EventType",
    "MemoryBackend",
    "SqliteCacheStore",
    "SubscribeEvent",
]
