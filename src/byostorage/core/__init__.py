"""Core module - Shared crypto, signing, errors and types."""

from byostorage.core.config import DEFAULT_ROOT_FOLDER, DropboxConfig
from byostorage.core.crypto import (
    NONCE_SIZE,
    OWNER_KEY_SIZE,
    UUID_SIZE,
    base64_decode,
    base64_encode,
    decrypt,
    derive_channel_key,
    derive_directory,
    encrypt,
)
from byostorage.core.errors import (
    BackendError,
    ByoStorageError,
    Cancelled,
    FileNotFound,
    InvalidKeyLength,
    InvalidSignature,
    InvalidUUIDLength,
    PathNotFound,
    SignatureNotFound,
    WrongChannelKey,
)
from byostorage.core.types import DirectoryHandle, EventType, SubscribeEvent

__all__ = [
    # Config
    "DEFAULT_ROOT_FOLDER",
    "DropboxConfig",
    # Crypto
    "NONCE_SIZE",
    "OWNER_KEY_SIZE",
    "UUID_SIZE",
    "base64_decode",
    "base64_encode",
    "decrypt",
    "derive_channel_key",
    "derive_directory",
    "encrypt",
    # Errors
    "BackendError",
    "ByoStorageError",
    "Cancelled",
    "FileNotFound",
    "InvalidKeyLength",
    "InvalidSignature",
    "InvalidUUIDLength",
    "PathNotFound",
    "SignatureNotFound",
    "WrongChannelKey",
    # Types
    "DirectoryHandle",
    "EventType",
    "SubscribeEvent",
]
