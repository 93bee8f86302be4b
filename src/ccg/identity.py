"""
Repository identifiers -- the anchor's key.

The identifier is SHA-256 over the UTF-8 bytes of the repository name.
No salt and no namespace, so any implementation hashing the same name
the same way lands on the same on-chain slot.
"""

from __future__ import annotations

import hashlib

IDENTIFIER_SIZE = 32


def repository_identifier(name: str) -> bytes:
    """Derive the 32-byte repository identifier for a name.

    Args:
        name: Repository name, e.g. ``"acme/widgets"``.

    Returns:
        Raw SHA-256 digest of ``name.encode("utf-8")``.
    """
    return hashlib.sha256(name.encode("utf-8")).digest()


def repository_identifier_hex(name: str) -> str:
    """Hex form (``0x``-prefixed) of :func:`repository_identifier`."""
    return "0x" + repository_identifier(name).hex()
