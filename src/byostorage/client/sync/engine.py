"""Optimistic channel sync engine.

This module provides:
- ChannelStore: post, delete, sign and subscribe to private channels

Architecture:
    post/delete ──► SpeculativeBus ─────────────┐
        │                                        ▼
        └──► StorageBackend ──► ChangeFeed ──► subscribe() ──► caller
                                                 │
                                            CacheStore

Writes are announced to local subscribers before the backend call
returns and rolled back locally if it fails. The cache only ever mirrors
events confirmed by the backend.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid as uuid_lib
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

from byostorage.client.backend import StorageBackend
from byostorage.client.state import CachedRecord, CacheStore, SqliteCacheStore
from byostorage.client.sync.bus import SpeculativeBus
from byostorage.client.sync.cancel import CancelSignal
from byostorage.client.sync.feed import DEFAULT_LONGPOLL_TIMEOUT, ChangeFeed
from byostorage.client.sync.types import FeedEvent, SpeculativeEvent
from byostorage.core.crypto import (
    OWNER_KEY_SIZE,
    UUID_SIZE,
    base64_decode,
    base64_encode,
    decrypt,
    derive_directory,
    encrypt,
)
from byostorage.core.errors import (
    FileNotFound,
    InvalidSignature,
    InvalidUUIDLength,
    SignatureNotFound,
)
from byostorage.core.types import DirectoryHandle, EventType, SubscribeEvent

logger = logging.getLogger(__name__)

# Reserved file name of the signature envelope. A 16-byte uuid always
# encodes to 22 base64 characters, so no record can take this name.
SIGNATURE_NAME = "signature"

T = TypeVar("T")

SignFunction = Callable[[bytes], bytes | Awaitable[bytes]]
VerifyFunction = Callable[[bytes, bytes, bytes], bool | Awaitable[bool]]


async def _resolve(value: T | Awaitable[T]) -> T:
    """Await a capability result if the capability was a coroutine."""
    if inspect.isawaitable(value):
        return await value
    return value


def _check_uuid(uuid: bytes) -> None:
    if len(uuid) != UUID_SIZE:
        raise InvalidUUIDLength(f"UUID must be {UUID_SIZE} bytes, got {len(uuid)}")


def _uuid_from_name(name: str) -> bytes | None:
    """Decode a record file name, None if it is not a record."""
    if len(name) != 22:
        return None
    try:
        uuid = base64_decode(name)
    except ValueError:
        return None
    return uuid if len(uuid) == UUID_SIZE else None


class ChannelStore:
    """Confidential publish/subscribe channels on top of a storage backend.

    Channel names, payloads and owner keys never reach the backend in
    plaintext: directories are hashed from (channel, owner key) and every
    file is encrypted under a key derived from the channel.
    """

    def __init__(
        self,
        backend: StorageBackend,
        cache: CacheStore | None = None,
        bus: SpeculativeBus | None = None,
        longpoll_timeout: int = DEFAULT_LONGPOLL_TIMEOUT,
    ) -> None:
        """Initialize the channel store.

        Args:
            backend: Storage backend holding the directories.
            cache: Durable cache (defaults to an in-memory SQLite cache).
            bus: Speculative event bus, shared by stores in one process.
            longpoll_timeout: Server-side wait requested per long poll.
        """
        self._backend = backend
        self._cache = cache if cache is not None else SqliteCacheStore()
        self._bus = bus if bus is not None else SpeculativeBus()
        self._longpoll_timeout = longpoll_timeout

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def bus(self) -> SpeculativeBus:
        return self._bus

    # === Directories ===

    async def create_directory(self, channel: str, owner_key: bytes) -> DirectoryHandle:
        """Resolve the directory of a channel, creating it on first use.

        Raises:
            InvalidKeyLength: If owner_key is not 32 bytes.
        """
        directory = derive_directory(channel, owner_key)
        shared_link = self._cache.get_shared_link(directory)
        if shared_link is None:
            shared_link = await self._backend.get_or_create_shared_link(directory)
            self._cache.put_shared_link(directory, shared_link)
            logger.info("Resolved directory %s -> %s", directory, shared_link)
        return DirectoryHandle(directory=directory, shared_link=shared_link)

    async def delete_directory(self, channel: str, owner_key: bytes) -> None:
        """Delete a channel's directory and forget everything cached for it."""
        directory = derive_directory(channel, owner_key)
        shared_link = self._cache.get_shared_link(directory)
        self._cache.delete_shared_link(directory)
        if shared_link is not None:
            self._forget_shared_link(shared_link)
        await self._backend.delete_directory(directory)
        logger.info("Deleted directory %s", directory)

    def _forget_shared_link(self, shared_link: str) -> None:
        self._cache.delete_public_key(shared_link)
        self._cache.delete_cursor(shared_link)
        for record in list(self._cache.iter_records(shared_link)):
            self._cache.delete_record(record.name, shared_link)

    # === Signatures ===

    async def sign_directory(
        self, channel: str, owner_key: bytes, sign: SignFunction
    ) -> DirectoryHandle:
        """Bind a channel's directory to its owner key.

        Stores owner_key || sign(shared_link), encrypted under the
        channel, as the reserved signature file. Does nothing if this
        store already signed or verified the directory.
        """
        handle = await self.create_directory(channel, owner_key)
        if self._cache.get_public_key(handle.shared_link) is not None:
            return handle

        signature = await _resolve(sign(handle.shared_link.encode("utf-8")))
        envelope = encrypt(channel, bytes(owner_key) + bytes(signature))
        await self._backend.upload(handle.directory, SIGNATURE_NAME, envelope)

        self._cache.put_public_key(handle.shared_link, owner_key)
        logger.info("Signed directory %s", handle.directory)
        return handle

    async def get_public_key(
        self, channel: str, shared_link: str, verify: VerifyFunction
    ) -> bytes:
        """Return the verified owner key of a shared link.

        Raises:
            SignatureNotFound: If the directory was never signed.
            InvalidSignature: If verify() rejects the envelope.
            WrongChannelKey: If the envelope was not written for this channel.
        """
        cached = self._cache.get_public_key(shared_link)
        if cached is not None:
            return cached

        try:
            encrypted = await self._backend.download(shared_link, SIGNATURE_NAME)
        except FileNotFound as e:
            raise SignatureNotFound("Signature not found") from e

        decrypted = decrypt(channel, encrypted)
        owner_key = decrypted[:OWNER_KEY_SIZE]
        signature = decrypted[OWNER_KEY_SIZE:]

        valid = await _resolve(verify(signature, shared_link.encode("utf-8"), owner_key))
        if not valid:
            raise InvalidSignature("Signature is invalid")

        self._cache.put_public_key(shared_link, owner_key)
        return owner_key

    # === Records ===

    async def post(
        self,
        channel: str,
        owner_key: bytes,
        data: bytes,
        *,
        uuid: bytes | None = None,
    ) -> str:
        """Write a record, generating a random uuid if none is given.

        uuid is keyword-only: update() takes (uuid, data) positionally.

        Returns:
            The shared link of the channel's directory.
        """
        if uuid is None:
            uuid = uuid_lib.uuid4().bytes
        return await self.update(channel, owner_key, uuid, data)

    async def update(
        self, channel: str, owner_key: bytes, uuid: bytes, data: bytes
    ) -> str:
        """Write (or overwrite) the record identified by uuid.

        Active subscribers see the new value immediately. If the upload
        fails they are sent the previous value (or a deletion) and the
        upload error is re-raised.

        Returns:
            The shared link of the channel's directory.

        Raises:
            InvalidUUIDLength: If uuid is not 16 bytes.
            InvalidKeyLength: If owner_key is not 32 bytes.
        """
        _check_uuid(uuid)
        handle = await self.create_directory(channel, owner_key)

        name = base64_encode(uuid)
        existing = self._cache.get_record(name, handle.shared_link)
        self._bus.publish(handle.shared_link, SpeculativeEvent.update(name, data))

        encrypted = encrypt(channel, data)
        try:
            await self._backend.upload(handle.directory, name, encrypted)
        except BaseException:
            logger.warning("Upload of %s failed, rolling back", name)
            if existing is not None:
                rollback = SpeculativeEvent.update(name, existing.data)
            else:
                rollback = SpeculativeEvent.delete(name)
            self._bus.publish(handle.shared_link, rollback)
            raise

        return handle.shared_link

    async def delete(self, channel: str, owner_key: bytes, uuid: bytes) -> str:
        """Delete the record identified by uuid.

        Active subscribers see the deletion immediately. If the backend
        call fails they are sent the previous value, if one was cached,
        and the error is re-raised.

        Returns:
            The shared link of the channel's directory.
        """
        _check_uuid(uuid)
        handle = await self.create_directory(channel, owner_key)

        name = base64_encode(uuid)
        existing = self._cache.get_record(name, handle.shared_link)
        self._bus.publish(handle.shared_link, SpeculativeEvent.delete(name))

        try:
            await self._backend.delete(handle.directory, name)
        except BaseException:
            logger.warning("Delete of %s failed, rolling back", name)
            if existing is not None:
                self._bus.publish(
                    handle.shared_link, SpeculativeEvent.update(name, existing.data)
                )
            raise

        return handle.shared_link

    # === Subscription ===

    async def subscribe(
        self,
        channel: str,
        shared_link: str,
        cursor: str | None = None,
        signal: CancelSignal | None = None,
    ) -> AsyncIterator[SubscribeEvent]:
        """Stream a channel's records: cached snapshot, history, then live.

        Events from local writes (speculative) and from the backend
        (confirmed) are raced against each other, so the same uuid may
        arrive twice or out of order; the last value wins.

        Args:
            channel: Channel identifier, used to decrypt records.
            shared_link: Shared link of the channel's directory.
            cursor: Resume point; defaults to the cursor stored for the link.
            signal: Aborting it ends the stream with Cancelled.

        Yields:
            UPDATE, DELETE and (once) BACKLOG_COMPLETE events.

        Raises:
            WrongChannelKey: If the directory belongs to another channel.
            Cancelled: If the signal fires.
        """
        signal = signal or CancelSignal()
        signal.raise_if_aborted()

        for record in list(self._cache.iter_records(shared_link)):
            signal.raise_if_aborted()
            yield SubscribeEvent.update(record.uuid, record.data)

        if cursor is None:
            cursor = self._cache.get_cursor(shared_link)
        feed = ChangeFeed(
            self._backend,
            shared_link,
            cursor=cursor,
            signal=signal,
            longpoll_timeout=self._longpoll_timeout,
        )
        listener = self._bus.listen(shared_link)
        logger.info("Subscribed to %s", shared_link)

        speculative: asyncio.Future[SpeculativeEvent] | None = None
        confirmed: asyncio.Future[FeedEvent] | None = None
        try:
            while True:
                signal.raise_if_aborted()
                if speculative is None:
                    speculative = asyncio.ensure_future(listener.get())
                if confirmed is None:
                    confirmed = asyncio.ensure_future(feed.__anext__())

                await asyncio.wait(
                    {speculative, confirmed}, return_when=asyncio.FIRST_COMPLETED
                )

                if speculative.done():
                    local_event = speculative.result()
                    speculative = None
                    signal.raise_if_aborted()
                    yield self._route_speculative(local_event)

                if confirmed.done():
                    signal.raise_if_aborted()
                    feed_event = confirmed.result()
                    confirmed = None
                    event = self._route_confirmed(channel, shared_link, feed_event)
                    if event is not None:
                        yield event
        finally:
            listener.close()
            for pending in (speculative, confirmed):
                if pending is None:
                    continue
                if not pending.done():
                    pending.cancel()
                elif not pending.cancelled():
                    # Consume an outcome nobody will read
                    pending.exception()
            logger.info("Unsubscribed from %s", shared_link)

    def _route_speculative(self, event: SpeculativeEvent) -> SubscribeEvent:
        uuid = base64_decode(event.name)
        if event.type == EventType.DELETE:
            return SubscribeEvent.delete(uuid)
        if event.data is None:
            raise ValueError(f"Speculative update of {event.name} has no data")
        return SubscribeEvent.update(uuid, event.data)

    def _route_confirmed(
        self, channel: str, shared_link: str, event: FeedEvent
    ) -> SubscribeEvent | None:
        if event.type == EventType.CURSOR:
            if event.cursor is None:
                raise ValueError("Checkpoint event has no cursor")
            self._cache.put_cursor(shared_link, event.cursor)
            return None
        if event.type == EventType.BACKLOG_COMPLETE:
            return SubscribeEvent.backlog_complete()

        if event.name is None:
            raise ValueError(f"{event.type.value} event has no file name")
        if event.name == SIGNATURE_NAME:
            return None
        uuid = _uuid_from_name(event.name)
        if uuid is None:
            logger.warning("Ignoring foreign file %s in %s", event.name, shared_link)
            return None

        if event.type == EventType.DELETE:
            self._cache.delete_record(event.name, shared_link)
            return SubscribeEvent.delete(uuid)

        if event.data is None:
            raise ValueError(f"Update of {event.name} has no content")
        data = decrypt(channel, event.data)
        self._cache.put_record(
            CachedRecord(name=event.name, uuid=uuid, shared_link=shared_link, data=data)
        )
        return SubscribeEvent.update(uuid, data)
