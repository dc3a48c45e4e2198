"""Exception hierarchy for BYO Storage.

Validation errors are raised before any network effect and also derive
from ValueError. Backend errors carry the provider's error summary.
"""

from __future__ import annotations

from typing import Any


class ByoStorageError(Exception):
    """Base exception for all BYO Storage errors."""


class InvalidKeyLength(ByoStorageError, ValueError):
    """Owner public key is not exactly 32 bytes."""


class InvalidUUIDLength(ByoStorageError, ValueError):
    """Record UUID is not exactly 16 bytes."""


class WrongChannelKey(ByoStorageError):
    """Ciphertext failed authentication under the channel's key."""


class SignatureNotFound(ByoStorageError):
    """The directory carries no signature envelope."""


class InvalidSignature(ByoStorageError):
    """The signature envelope does not verify against its owner key."""


class BackendError(ByoStorageError):
    """Error reported by the storage backend."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        summary: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.summary = summary
        self.details = details


class FileNotFound(BackendError):
    """A file (or the shared link it lives under) does not exist."""


class PathNotFound(BackendError):
    """The directory behind a shared link does not exist."""


class Cancelled(ByoStorageError):
    """An operation was aborted through a CancelSignal.

    Attributes:
        reason: The reason passed to CancelSignal.abort().
    """

    def __init__(self, reason: object = None) -> None:
        super().__init__(f"Operation cancelled: {reason}" if reason else "Operation cancelled")
        self.reason = reason
