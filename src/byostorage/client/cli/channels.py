"""Channel commands for the byostorage CLI.

Commands:
- mkdir: Create a channel's directory and print its shared link
- rmdir: Delete a channel's directory
- post: Write a record to a channel
- delete: Delete a record from a channel
- sign: Sign a channel's directory with your key
- pubkey: Print the verified owner key of a shared link
- subscribe: Stream a channel's records
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
import uuid as uuid_lib
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar

import click

from byostorage.client.api import DropboxBackend
from byostorage.client.backend import StorageBackend
from byostorage.client.cli.config import build_dropbox_config, get_cache_path
from byostorage.client.cli.credentials import CredentialsError, load_seed, load_token
from byostorage.client.state import SqliteCacheStore
from byostorage.client.sync import DEFAULT_LONGPOLL_TIMEOUT, CancelSignal, ChannelStore
from byostorage.core.crypto import base64_encode
from byostorage.core.errors import ByoStorageError, Cancelled
from byostorage.core.signing import make_signer, public_key_from_seed, verify
from byostorage.core.types import EventType, SubscribeEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


def make_backend() -> StorageBackend:
    """Create the storage backend from the stored credentials."""
    return DropboxBackend(build_dropbox_config(load_token()))


@asynccontextmanager
async def open_store() -> AsyncIterator[ChannelStore]:
    """Open a ChannelStore over the configured backend and local cache."""
    backend = make_backend()
    longpoll_timeout = (
        backend.config.longpoll_timeout
        if isinstance(backend, DropboxBackend)
        else DEFAULT_LONGPOLL_TIMEOUT
    )
    cache = SqliteCacheStore(get_cache_path())
    try:
        yield ChannelStore(backend, cache, longpoll_timeout=longpoll_timeout)
    finally:
        await backend.close()
        cache.close()


def run_command(func: Callable[..., Awaitable[T]]) -> Callable[..., T]:
    """Run an async command body, reporting errors the CLI way."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return asyncio.run(func(*args, **kwargs))
        except (ByoStorageError, CredentialsError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    return wrapper


def owner_key() -> bytes:
    """Get the owner key (Ed25519 public key) of this user."""
    return public_key_from_seed(load_seed())


def parse_uuid(value: str) -> bytes:
    """Parse a record uuid given as hex or in canonical form."""
    try:
        return uuid_lib.UUID(value).bytes
    except ValueError as e:
        raise click.BadParameter(f"Invalid UUID: {value}") from e


def format_event(event: SubscribeEvent) -> str:
    """Render a subscription event as one line."""
    if event.type == EventType.BACKLOG_COMPLETE:
        return "backlog-complete"
    record_id = str(uuid_lib.UUID(bytes=event.uuid or b""))
    if event.type == EventType.DELETE:
        return f"delete {record_id}"
    text = (event.data or b"").decode("utf-8", errors="replace")
    return f"update {record_id} {text}"


@click.command()
@click.argument("channel")
@run_command
async def mkdir(channel: str) -> None:
    """Create CHANNEL's directory and print its shared link."""
    async with open_store() as store:
        handle = await store.create_directory(channel, owner_key())
    click.echo(handle.shared_link)


@click.command()
@click.argument("channel")
@click.confirmation_option(prompt="Delete this channel and all its records?")
@run_command
async def rmdir(channel: str) -> None:
    """Delete CHANNEL's directory and every record in it."""
    async with open_store() as store:
        await store.delete_directory(channel, owner_key())
    click.echo("Channel deleted.")


@click.command()
@click.argument("channel")
@click.option("--uuid", "record_id", default=None, help="Record UUID to overwrite (default: new).")
@click.option("--data", default=None, help="Payload text.")
@click.option(
    "--file",
    "path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the payload from a file.",
)
@run_command
async def post(
    channel: str, record_id: str | None, data: str | None, path: Path | None
) -> None:
    """Write a record to CHANNEL and print the channel's shared link."""
    if (data is None) == (path is None):
        raise click.UsageError("Give exactly one of --data or --file.")
    payload = path.read_bytes() if path is not None else (data or "").encode("utf-8")
    uuid = parse_uuid(record_id) if record_id else uuid_lib.uuid4().bytes

    async with open_store() as store:
        shared_link = await store.update(channel, owner_key(), uuid, payload)
    click.echo(f"{uuid_lib.UUID(bytes=uuid)} {shared_link}")


@click.command()
@click.argument("channel")
@click.argument("record_id")
@run_command
async def delete(channel: str, record_id: str) -> None:
    """Delete record RECORD_ID from CHANNEL."""
    uuid = parse_uuid(record_id)
    async with open_store() as store:
        await store.delete(channel, owner_key(), uuid)
    click.echo("Record deleted.")


@click.command()
@click.argument("channel")
@run_command
async def sign(channel: str) -> None:
    """Sign CHANNEL's directory so readers can verify you own it."""
    seed = load_seed()
    async with open_store() as store:
        handle = await store.sign_directory(
            channel, public_key_from_seed(seed), make_signer(seed)
        )
    click.echo(handle.shared_link)


@click.command()
@click.argument("channel")
@click.argument("shared_link")
@run_command
async def pubkey(channel: str, shared_link: str) -> None:
    """Print the verified owner key of SHARED_LINK."""
    async with open_store() as store:
        public_key = await store.get_public_key(channel, shared_link, verify)
    click.echo(base64_encode(public_key))


@click.command()
@click.argument("channel")
@click.argument("shared_link")
@click.option("--timeout", type=float, default=None, help="Stop after this many seconds.")
@click.option("--backlog-only", is_flag=True, help="Stop once caught up.")
@run_command
async def subscribe(
    channel: str, shared_link: str, timeout: float | None, backlog_only: bool
) -> None:
    """Stream CHANNEL's records from SHARED_LINK, one event per line."""
    signal = CancelSignal.timeout(timeout) if timeout is not None else CancelSignal()
    async with open_store() as store:
        events = store.subscribe(channel, shared_link, signal=signal)
        try:
            async for event in events:
                click.echo(format_event(event))
                if backlog_only and event.type == EventType.BACKLOG_COMPLETE:
                    break
        except Cancelled as e:
            if not isinstance(e.reason, TimeoutError):
                raise
            logger.debug("Subscription timed out")
        finally:
            await events.aclose()  # type: ignore[attr-defined]
