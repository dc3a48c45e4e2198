"""Cryptographic and addressing functions for BYO Storage.

This module provides:
- Channel key derivation with SHA-256
- Authenticated encryption using AES-256-GCM
- Privacy-preserving directory derivation from (channel, owner key)
- URL-safe unpadded base64 helpers used for backend file names
"""

from __future__ import annotations

import base64
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from byostorage.core.errors import InvalidKeyLength, WrongChannelKey

# AES-GCM constants
NONCE_SIZE = 12  # 96 bits (recommended for AES-GCM)
TAG_SIZE = 16

OWNER_KEY_SIZE = 32
UUID_SIZE = 16

# Prefix of the plaintext path hashed into a directory name
DIRECTORY_PREFIX = "byo"


def base64_encode(data: bytes) -> str:
    """Encode bytes as URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64_decode(text: str) -> bytes:
    """Decode URL-safe base64, restoring any stripped padding."""
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def derive_channel_key(channel: str) -> bytes:
    """Derive the 256-bit symmetric key for a channel.

    Args:
        channel: Channel identifier (never sent to the backend).

    Returns:
        32 bytes suitable for AES-256.
    """
    return hashlib.sha256(channel.encode("utf-8")).digest()


def derive_directory(channel: str, owner_key: bytes) -> str:
    """Compute the obscured backend directory for a channel.

    The directory is a one-way hash of a path combining the owner key and
    the channel, so the backend learns nothing about either.

    Args:
        channel: Channel identifier.
        owner_key: 32-byte public key of the channel owner.

    Returns:
        URL-safe base64 of SHA-256("byo/<b64 owner key>/<channel>").

    Raises:
        InvalidKeyLength: If owner_key is not exactly 32 bytes.
    """
    if len(owner_key) != OWNER_KEY_SIZE:
        raise InvalidKeyLength(
            f"Owner key must be {OWNER_KEY_SIZE} bytes, got {len(owner_key)}"
        )
    plaintext_path = f"{DIRECTORY_PREFIX}/{base64_encode(owner_key)}/{channel}"
    return base64_encode(hashlib.sha256(plaintext_path.encode("utf-8")).digest())


def encrypt(channel: str, data: bytes) -> bytes:
    """Encrypt data under the channel's key with a random nonce.

    Args:
        channel: Channel identifier the key is derived from.
        data: Plaintext payload.

    Returns:
        Encrypted data in format: nonce (12 bytes) || ciphertext || auth_tag (16 bytes)
    """
    nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(derive_channel_key(channel))
    return nonce + aesgcm.encrypt(nonce, data, None)


def decrypt(channel: str, encrypted: bytes) -> bytes:
    """Decrypt data produced by encrypt().

    Args:
        channel: Channel identifier the key is derived from.
        encrypted: Data in format: nonce (12 bytes) || ciphertext || auth_tag (16 bytes)

    Returns:
        Decrypted plaintext.

    Raises:
        WrongChannelKey: If authentication fails. Truncated or tampered
            ciphertext is reported the same way.
    """
    if len(encrypted) < NONCE_SIZE + TAG_SIZE:
        raise WrongChannelKey("Encrypted data is too short")
    nonce = encrypted[:NONCE_SIZE]
    ciphertext = encrypted[NONCE_SIZE:]
    aesgcm = AESGCM(derive_channel_key(channel))
    try:
        return aesgcm.decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise WrongChannelKey("Wrong channel for this encrypted data") from e
