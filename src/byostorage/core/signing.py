"""Ed25519 signing capabilities.

The sync engine is signature-scheme agnostic: it takes a sign function and
a verify function. These helpers build both from Ed25519 keys so that the
32-byte public key doubles as the channel owner key.
"""

from __future__ import annotations

import os
from collections.abc import Callable

from cryptography.exceptions import InvalidSignature as _BadSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

SEED_SIZE = 32


def generate_seed() -> bytes:
    """Generate a random 32-byte Ed25519 private key seed."""
    return os.urandom(SEED_SIZE)


def public_key_from_seed(seed: bytes) -> bytes:
    """Return the raw 32-byte public key for a private key seed."""
    private_key = Ed25519PrivateKey.from_private_bytes(seed)
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def make_signer(seed: bytes) -> Callable[[bytes], bytes]:
    """Build a sign(message) -> signature function from a private key seed."""
    private_key = Ed25519PrivateKey.from_private_bytes(seed)

    def sign(message: bytes) -> bytes:
        return private_key.sign(message)

    return sign


def verify(signature: bytes, message: bytes, public_key: bytes) -> bool:
    """Check an Ed25519 signature.

    Returns:
        True if the signature is valid for message under public_key.
    """
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (_BadSignature, ValueError):
        return False
    return True
