"""Channel sync engine.

Architecture:
    ChannelStore ─► SpeculativeBus ─┐
         │                          ├─► subscribe()
         └─► ChangeFeed ────────────┘

Components:
- **ChannelStore**: post/update/delete with optimistic notification,
  signatures, and the merged subscription stream
- **ChangeFeed**: listing + long-poll state machine for one directory
- **SpeculativeBus**: in-process fan-out of unconfirmed local writes
- **CancelSignal**: cooperative cancellation of pending backend calls
"""

from byostorage.client.sync.bus import Listener, SpeculativeBus
from byostorage.client.sync.cancel import CancelSignal
from byostorage.client.sync.engine import (
    SIGNATURE_NAME,
    ChannelStore,
    SignFunction,
    VerifyFunction,
)
from byostorage.client.sync.feed import DEFAULT_LONGPOLL_TIMEOUT, ChangeFeed
from byostorage.client.sync.types import FeedEvent, SpeculativeEvent

__all__ = [
    "DEFAULT_LONGPOLL_TIMEOUT",
    "SIGNATURE_NAME",
    "CancelSignal",
    "ChangeFeed",
    "ChannelStore",
    "FeedEvent",
    "Listener",
    "SignFunction",
    "SpeculativeBus",
    "SpeculativeEvent",
    "VerifyFunction",
]
