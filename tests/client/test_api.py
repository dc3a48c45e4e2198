"""Tests for the Dropbox storage backend."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from byostorage.client.api import AuthenticationError, DropboxBackend
from byostorage.client.backend import EntryKind
from byostorage.client.retry import RetryableError
from byostorage.core.config import DropboxConfig
from byostorage.core.errors import BackendError, FileNotFound, PathNotFound

API = "https://api.test/2"
CONTENT = "https://content.test/2"
NOTIFY = "https://notify.test/2"
LINK = "https://www.dropbox.com/scl/fo/abc"


def make_config(max_retries: int = 0) -> DropboxConfig:
    """Create a DropboxConfig for testing."""
    return DropboxConfig(
        access_token="token123",
        root_folder="/apps/test",
        max_retries=max_retries,
        api_url=API,
        content_url=CONTENT,
        notify_url=NOTIFY,
    )


def error_body(summary: str, error: dict | None = None) -> dict:  # type: ignore[type-arg]
    return {"error_summary": summary, "error": error or {".tag": summary.split("/")[0]}}


@pytest_asyncio.fixture
async def backend() -> AsyncIterator[DropboxBackend]:
    client = DropboxBackend(make_config())
    yield client
    await client.close()


class TestSharedLinks:
    """Tests for get_or_create_shared_link."""

    @pytest.mark.asyncio
    async def test_creates_link(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return the URL of a newly created link."""
        httpx_mock.add_response(
            method="POST",
            url=f"{API}/sharing/create_shared_link_with_settings",
            json={"url": LINK},
        )

        assert await backend.get_or_create_shared_link("dir") == LINK

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer token123"
        assert json.loads(request.content) == {"path": "/apps/test/dir"}

    @pytest.mark.asyncio
    async def test_existing_link(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should reuse the link reported by shared_link_already_exists."""
        httpx_mock.add_response(
            url=f"{API}/sharing/create_shared_link_with_settings",
            status_code=409,
            json=error_body(
                "shared_link_already_exists/metadata/..",
                {
                    ".tag": "shared_link_already_exists",
                    "shared_link_already_exists": {"metadata": {"url": LINK}},
                },
            ),
        )

        assert await backend.get_or_create_shared_link("dir") == LINK

    @pytest.mark.asyncio
    async def test_creates_missing_folder(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A missing folder should be created, then the link retried."""
        httpx_mock.add_response(
            url=f"{API}/sharing/create_shared_link_with_settings",
            status_code=409,
            json=error_body("path/not_found/.."),
        )
        httpx_mock.add_response(
            url=f"{API}/files/create_folder_v2",
            json={"metadata": {"name": "dir"}},
        )
        httpx_mock.add_response(
            url=f"{API}/sharing/create_shared_link_with_settings",
            json={"url": LINK},
        )

        assert await backend.get_or_create_shared_link("dir") == LINK

        create = httpx_mock.get_requests(url=f"{API}/files/create_folder_v2")[0]
        assert json.loads(create.content) == {"path": "/apps/test/dir", "autorename": False}

    @pytest.mark.asyncio
    async def test_concurrent_folder_creation(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A folder created by someone else in between should be tolerated."""
        httpx_mock.add_response(
            url=f"{API}/sharing/create_shared_link_with_settings",
            status_code=409,
            json=error_body("path/not_found/.."),
        )
        httpx_mock.add_response(
            url=f"{API}/files/create_folder_v2",
            status_code=409,
            json=error_body("path/conflict/folder/.."),
        )
        httpx_mock.add_response(
            url=f"{API}/sharing/create_shared_link_with_settings",
            json={"url": LINK},
        )

        assert await backend.get_or_create_shared_link("dir") == LINK

    @pytest.mark.asyncio
    async def test_other_error(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=f"{API}/sharing/create_shared_link_with_settings",
            status_code=409,
            json=error_body("email_not_verified/.."),
        )

        with pytest.raises(BackendError) as exc_info:
            await backend.get_or_create_shared_link("dir")
        assert exc_info.value.summary == "email_not_verified/.."
        assert exc_info.value.status_code == 409


class TestFiles:
    """Tests for upload, download and delete."""

    @pytest.mark.asyncio
    async def test_upload(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should send raw bytes with the arguments in the API header."""
        httpx_mock.add_response(url=f"{CONTENT}/files/upload", json={"name": "a"})

        await backend.upload("dir", "a", b"\x00\x01payload")

        request = httpx_mock.get_request()
        assert request.content == b"\x00\x01payload"
        assert request.headers["Content-Type"] == "application/octet-stream"
        assert json.loads(request.headers["Dropbox-API-Arg"]) == {
            "path": "/apps/test/dir/a",
            "mode": "overwrite",
            "mute": True,
        }

    @pytest.mark.asyncio
    async def test_delete(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url=f"{API}/files/delete_v2", json={"metadata": {}})

        await backend.delete("dir", "a")

        assert json.loads(httpx_mock.get_request().content) == {"path": "/apps/test/dir/a"}

    @pytest.mark.asyncio
    async def test_delete_directory(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url=f"{API}/files/delete_v2", json={"metadata": {}})

        await backend.delete_directory("dir")

        assert json.loads(httpx_mock.get_request().content) == {"path": "/apps/test/dir"}

    @pytest.mark.asyncio
    async def test_download(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should read through the shared link."""
        httpx_mock.add_response(
            url=f"{CONTENT}/sharing/get_shared_link_file", content=b"encrypted"
        )

        assert await backend.download(LINK, "a") == b"encrypted"

        request = httpx_mock.get_request()
        assert json.loads(request.headers["Dropbox-API-Arg"]) == {"url": LINK, "path": "/a"}

    @pytest.mark.asyncio
    async def test_download_not_found(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=f"{CONTENT}/sharing/get_shared_link_file",
            status_code=409,
            json=error_body("shared_link_not_found/"),
        )

        with pytest.raises(FileNotFound):
            await backend.download(LINK, "signature")


class TestListing:
    """Tests for list_folder, continue and long poll."""

    @pytest.mark.asyncio
    async def test_list_initial(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=f"{API}/files/list_folder",
            json={
                "cursor": "c1",
                "has_more": True,
                "entries": [
                    {".tag": "file", "name": "a", "is_downloadable": True},
                    {".tag": "file", "name": "b", "is_downloadable": False},
                    {".tag": "folder", "name": "sub"},
                    {".tag": "deleted", "name": "c"},
                ],
            },
        )

        result = await backend.list_initial(LINK)

        assert result.cursor == "c1"
        assert result.has_more is True
        assert [(e.name, e.kind, e.is_downloadable) for e in result.entries] == [
            ("a", EntryKind.FILE, True),
            ("b", EntryKind.FILE, False),
            ("sub", EntryKind.FOLDER, False),
            ("c", EntryKind.DELETED, False),
        ]
        assert json.loads(httpx_mock.get_request().content) == {
            "path": "",
            "shared_link": {"url": LINK},
        }

    @pytest.mark.asyncio
    async def test_list_initial_missing(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=f"{API}/files/list_folder",
            status_code=409,
            json=error_body("path/not_found/"),
        )

        with pytest.raises(PathNotFound):
            await backend.list_initial(LINK)

    @pytest.mark.asyncio
    async def test_list_continue(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=f"{API}/files/list_folder/continue",
            json={"cursor": "c2", "has_more": False, "entries": []},
        )

        result = await backend.list_continue("c1")

        assert result.cursor == "c2"
        assert result.entries == []
        assert json.loads(httpx_mock.get_request().content) == {"cursor": "c1"}

    @pytest.mark.asyncio
    async def test_long_poll(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """The notify endpoint should be called without credentials."""
        httpx_mock.add_response(
            url=f"{NOTIFY}/files/list_folder/longpoll",
            json={"changes": True, "backoff": 5},
        )

        result = await backend.long_poll("c1", 30)

        assert result.changes is True
        assert result.backoff == 5.0
        request = httpx_mock.get_request()
        assert "Authorization" not in request.headers
        assert json.loads(request.content) == {"cursor": "c1", "timeout": 30}

    @pytest.mark.asyncio
    async def test_long_poll_no_changes(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=f"{NOTIFY}/files/list_folder/longpoll", json={"changes": False}
        )

        result = await backend.long_poll("c1", 30)

        assert result.changes is False
        assert result.backoff is None


class TestErrors:
    """Tests for error mapping and retries."""

    @pytest.mark.asyncio
    async def test_authentication_error(self, backend: DropboxBackend, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=f"{API}/files/list_folder/continue",
            status_code=401,
            json=error_body("invalid_access_token/"),
        )

        with pytest.raises(AuthenticationError):
            await backend.list_continue("c1")

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A 429 should be retried after the server's Retry-After."""
        httpx_mock.add_response(
            url=f"{API}/files/list_folder/continue",
            status_code=429,
            headers={"Retry-After": "0"},
            json=error_body("too_many_requests/"),
        )
        httpx_mock.add_response(
            url=f"{API}/files/list_folder/continue",
            json={"cursor": "c2", "has_more": False, "entries": []},
        )

        async with DropboxBackend(make_config(max_retries=2)) as backend:
            result = await backend.list_continue("c1")

        assert result.cursor == "c2"
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        for _ in range(2):
            httpx_mock.add_response(
                url=f"{API}/files/delete_v2",
                status_code=503,
                headers={"Retry-After": "0"},
                text="unavailable",
            )

        async with DropboxBackend(make_config(max_retries=1)) as backend:
            with pytest.raises(RetryableError) as exc_info:
                await backend.delete("dir", "a")

        assert exc_info.value.status_code == 503
