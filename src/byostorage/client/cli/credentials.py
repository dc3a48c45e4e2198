"""Secret storage for the byostorage CLI.

This module provides:
- Dropbox access token storage in the OS keyring
- Ed25519 signing seed storage in the OS keyring

The access token can also be supplied through $BYOSTORAGE_TOKEN.
"""

from __future__ import annotations

import base64
import contextlib
import os

import keyring
from keyring.errors import PasswordDeleteError

KEYRING_SERVICE = "byostorage"
TOKEN_ENTRY = "dropbox-access-token"
SEED_ENTRY = "signing-seed"
TOKEN_ENV = "BYOSTORAGE_TOKEN"


class CredentialsError(Exception):
    """Exception raised when a required secret is missing."""


def save_token(token: str) -> None:
    """Store the Dropbox access token."""
    keyring.set_password(KEYRING_SERVICE, TOKEN_ENTRY, token)


def load_token() -> str:
    """Get the Dropbox access token.

    Raises:
        CredentialsError: If no token is configured.
    """
    token = os.environ.get(TOKEN_ENV) or keyring.get_password(KEYRING_SERVICE, TOKEN_ENTRY)
    if not token:
        raise CredentialsError("Not logged in. Run 'byostorage login' first.")
    return token


def delete_token() -> None:
    """Forget the stored access token (no-op if none)."""
    with contextlib.suppress(PasswordDeleteError):
        keyring.delete_password(KEYRING_SERVICE, TOKEN_ENTRY)


def save_seed(seed: bytes) -> None:
    """Store the Ed25519 signing seed."""
    keyring.set_password(KEYRING_SERVICE, SEED_ENTRY, base64.b64encode(seed).decode())


def load_seed() -> bytes:
    """Get the Ed25519 signing seed.

    Raises:
        CredentialsError: If no key pair was generated.
    """
    stored = keyring.get_password(KEYRING_SERVICE, SEED_ENTRY)
    if not stored:
        raise CredentialsError("No signing key. Run 'byostorage keygen' first.")
    return base64.b64decode(stored)
