"""Shared configuration classes for byostorage."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_ROOT_FOLDER = "/byo-storage"


@dataclass
class DropboxConfig:
    """Configuration for connecting to the Dropbox API.

    Attributes:
        access_token: OAuth2 bearer token for the Dropbox account.
        root_folder: Folder under which all channel directories are created.
        timeout: Request timeout in seconds (long polls add their own wait).
        longpoll_timeout: Server-side wait requested for long polls, 30-480.
        max_retries: Retries for rate-limited or 5xx responses.
        api_url: Base URL of the RPC endpoints.
        content_url: Base URL of the upload/download endpoints.
        notify_url: Base URL of the long-poll endpoint.
    """

    access_token: str
    root_folder: str = DEFAULT_ROOT_FOLDER
    timeout: float = 30.0
    longpoll_timeout: int = 90
    max_retries: int = 5
    api_url: str = "https://api.dropboxapi.com/2"
    content_url: str = "https://content.dropboxapi.com/2"
    notify_url: str = "https://notify.dropboxapi.com/2"

    def __post_init__(self) -> None:
        """Normalize URLs and the root folder."""
        self.api_url = self.api_url.rstrip("/")
        self.content_url = self.content_url.rstrip("/")
        self.notify_url = self.notify_url.rstrip("/")
        self.root_folder = "/" + self.root_folder.strip("/")
        self.longpoll_timeout = max(30, min(480, self.longpoll_timeout))

    def directory_path(self, directory: str, name: str | None = None) -> str:
        """Get the absolute Dropbox path of a directory or a file within it."""
        path = f"{self.root_folder}/{directory}"
        if name is not None:
            path = f"{path}/{name}"
        return path
