"""Dropbox storage backend.

This module provides:
- DropboxBackend: StorageBackend over the Dropbox HTTP API v2
- AuthenticationError: the access token was rejected

All channel directories live under a single root folder. Reads go
through shared links so that a subscriber only needs the link, not the
owner's account.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from byostorage.client.backend import (
    EntryKind,
    FolderEntry,
    ListFolderResult,
    LongPollResult,
    StorageBackend,
)
from byostorage.client.retry import RetryableError, retry_with_backoff
from byostorage.core.config import DropboxConfig
from byostorage.core.errors import BackendError, FileNotFound, PathNotFound

logger = logging.getLogger(__name__)

# Extra client-side wait on top of the server-side long-poll timeout,
# Dropbox adds up to timeout/16 of jitter
LONGPOLL_GRACE = 30.0


class AuthenticationError(BackendError):
    """Invalid or expired access token."""


def _entry_from_dict(data: dict[str, Any]) -> FolderEntry:
    """Create a FolderEntry from a list_folder entry."""
    return FolderEntry(
        name=data["name"],
        kind=EntryKind(data[".tag"]),
        is_downloadable=bool(data.get("is_downloadable", data[".tag"] == "file")),
    )


def _list_result_from_dict(data: dict[str, Any]) -> ListFolderResult:
    """Create a ListFolderResult from an API response dictionary."""
    return ListFolderResult(
        cursor=data["cursor"],
        has_more=data["has_more"],
        entries=[_entry_from_dict(e) for e in data.get("entries", [])],
    )


class DropboxBackend(StorageBackend):
    """Async HTTP client for the Dropbox API."""

    def __init__(
        self,
        config: DropboxConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Dropbox backend.

        Args:
            config: Dropbox configuration with the access token.
            transport: Optional httpx transport (for testing).
        """
        self._config = config
        self._client = httpx.AsyncClient(timeout=config.timeout, transport=transport)

    @property
    def config(self) -> DropboxConfig:
        return self._config

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    # === Request plumbing ===

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._config.access_token}"}

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response

        summary: str | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            summary = body.get("error_summary")
        message = summary or response.text or f"HTTP {response.status_code}"

        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired access token", 401, summary)
        if response.status_code == 429 or response.status_code >= 500:
            retry_after = response.headers.get("Retry-After")
            raise RetryableError(
                message,
                response.status_code,
                summary,
                retry_after=float(retry_after) if retry_after else None,
            )
        raise BackendError(
            message,
            response.status_code,
            summary,
            details=body if isinstance(body, dict) else None,
        )

    async def _send(
        self, build: Callable[[], Awaitable[httpx.Response]]
    ) -> httpx.Response:
        async def attempt() -> httpx.Response:
            return self._handle_response(await build())

        return await retry_with_backoff(attempt, max_retries=self._config.max_retries)

    async def _rpc(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Call an RPC endpoint on the API host."""
        url = f"{self._config.api_url}/{endpoint}"
        response = await self._send(
            lambda: self._client.post(url, json=payload, headers=self._auth_headers())
        )
        result: dict[str, Any] = response.json() if response.content else {}
        return result

    async def _content(
        self, endpoint: str, arg: dict[str, Any], data: bytes | None = None
    ) -> httpx.Response:
        """Call a content endpoint, passing arguments in the Dropbox-API-Arg header."""
        url = f"{self._config.content_url}/{endpoint}"
        headers = self._auth_headers()
        headers["Dropbox-API-Arg"] = json.dumps(arg)
        if data is not None:
            headers["Content-Type"] = "application/octet-stream"
        return await self._send(
            lambda: self._client.post(url, content=data, headers=headers)
        )

    # === Directory operations ===

    async def get_or_create_shared_link(self, directory: str) -> str:
        path = self._config.directory_path(directory)
        while True:
            try:
                result = await self._rpc(
                    "sharing/create_shared_link_with_settings", {"path": path}
                )
                return str(result["url"])
            except BackendError as e:
                summary = e.summary or ""
                if summary.startswith("shared_link_already_exists"):
                    error = (e.details or {})["error"]
                    metadata = error["shared_link_already_exists"]["metadata"]
                    return str(metadata["url"])
                if not summary.startswith("path/not_found"):
                    raise

            logger.info("Creating directory %s", directory)
            try:
                await self._rpc("files/create_folder_v2", {"path": path, "autorename": False})
            except BackendError as e:
                if not (e.summary or "").startswith("path/conflict"):
                    raise
                logger.debug("Directory %s created concurrently", directory)

    async def delete_directory(self, directory: str) -> None:
        await self._rpc("files/delete_v2", {"path": self._config.directory_path(directory)})

    # === File operations ===

    async def upload(self, directory: str, name: str, data: bytes) -> None:
        await self._content(
            "files/upload",
            {
                "path": self._config.directory_path(directory, name),
                "mode": "overwrite",
                "mute": True,
            },
            data,
        )

    async def delete(self, directory: str, name: str) -> None:
        await self._rpc(
            "files/delete_v2", {"path": self._config.directory_path(directory, name)}
        )

    async def download(self, shared_link: str, name: str) -> bytes:
        try:
            response = await self._content(
                "sharing/get_shared_link_file", {"url": shared_link, "path": f"/{name}"}
            )
        except BackendError as e:
            summary = e.summary or ""
            if summary.startswith(
                ("shared_link_not_found", "shared_link_access_denied", "path/not_found")
            ):
                raise FileNotFound("File not found", e.status_code, summary) from e
            raise
        return response.content

    # === Listing ===

    async def list_initial(self, shared_link: str) -> ListFolderResult:
        try:
            result = await self._rpc(
                "files/list_folder", {"path": "", "shared_link": {"url": shared_link}}
            )
        except BackendError as e:
            summary = e.summary or ""
            if summary.startswith("path/not_found"):
                raise PathNotFound("Path not found", e.status_code, summary) from e
            raise
        return _list_result_from_dict(result)

    async def list_continue(self, cursor: str) -> ListFolderResult:
        result = await self._rpc("files/list_folder/continue", {"cursor": cursor})
        return _list_result_from_dict(result)

    async def long_poll(self, cursor: str, timeout: int) -> LongPollResult:
        # The notify endpoint takes no Authorization header
        url = f"{self._config.notify_url}/files/list_folder/longpoll"
        response = await self._send(
            lambda: self._client.post(
                url,
                json={"cursor": cursor, "timeout": timeout},
                timeout=timeout + LONGPOLL_GRACE,
            )
        )
        data = response.json()
        backoff = data.get("backoff")
        return LongPollResult(
            changes=bool(data["changes"]),
            backoff=float(backoff) if backoff is not None else None,
        )
