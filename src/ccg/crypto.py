"""
Bundle encryption -- AES-256-GCM with an embedded key trailer.

Blob layout::

    nonce (12 bytes) || AESGCM.seal(plaintext || key)

The sealed payload carries a copy of the key itself. After the tag
verifies, decrypt checks that trailer and refuses the blob if it does
not match. The check is part of the blob contract and stays even though
a passing tag already implies the right key.

Security review note: the trailer means the literal key value travels
to the remote store inside every ciphertext. It is protected by the
same key, but it is still worth revisiting before any format change.

Nonces are 96 random bits per call. Random nonces collide with
non-negligible probability after roughly 2**32 blobs under one key,
so rotate keys long before that volume.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailed, ConfigurationError, KeyMismatch, MalformedInput

KEY_SIZE = 32
NONCE_SIZE = 12


def _check_key(key: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ConfigurationError(
            f"Invalid AES key size: {len(key)} bytes (expected {KEY_SIZE})"
        )


def encrypt(key: bytes, plaintext: bytes) -> bytes:
    """Seal plaintext and the key trailer under a fresh random nonce.

    Args:
        key: 32-byte AES-256 key.
        plaintext: Bytes to protect.

    Returns:
        ``nonce || ciphertext || tag``.

    Raises:
        ConfigurationError: If the key is not 32 bytes.
    """
    _check_key(key)
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, plaintext + key, None)
    return nonce + sealed


def decrypt(key: bytes, blob: bytes) -> bytes:
    """Open a blob produced by :func:`encrypt`.

    Args:
        key: The same 32-byte key used to encrypt.
        blob: ``nonce || ciphertext || tag``.

    Returns:
        The original plaintext, trailer stripped.

    Raises:
        ConfigurationError: If the key is not 32 bytes.
        MalformedInput: If the blob is shorter than a nonce.
        AuthenticationFailed: If the GCM tag does not verify.
        KeyMismatch: If the embedded trailer is missing or differs.
    """
    _check_key(key)
    if len(blob) < NONCE_SIZE:
        raise MalformedInput(
            f"Ciphertext too short: {len(blob)} bytes"
        )

    nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        data = AESGCM(key).decrypt(nonce, sealed, None)
    except InvalidTag as exc:
        raise AuthenticationFailed(
            "Authentication failed: wrong key or tampered ciphertext"
        ) from exc

    if len(data) < KEY_SIZE:
        raise KeyMismatch("Decrypted data too short to carry a key trailer")

    plaintext, trailer = data[:-KEY_SIZE], data[-KEY_SIZE:]
    if not hmac.compare_digest(trailer, key):
        raise KeyMismatch("Key mismatch: wrong key used for decryption")

    return plaintext


def load_key(encoded: str) -> bytes:
    """Decode a base64 key string and validate its size.

    Args:
        encoded: Standard base64 text, as stored in ``CCG_SECRET_KEY``.

    Returns:
        The 32 raw key bytes.

    Raises:
        ConfigurationError: If the text is not base64 or the wrong size.
    """
    try:
        key = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(f"Invalid base64 key: {exc}") from exc
    _check_key(key)
    return key


def generate_key() -> str:
    """Generate a fresh base64-encoded 32-byte key."""
    return base64.b64encode(os.urandom(KEY_SIZE)).decode("ascii")
