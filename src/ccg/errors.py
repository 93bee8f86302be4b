"""
Error taxonomy for the push/pull pipeline.

Every failure the pipeline can surface derives from CCGError so the CLI
can report it in one place. "Nothing pushed yet" is not an error and
has no exception here: readers return None for it.
"""

from __future__ import annotations

from typing import Optional


class CCGError(Exception):
    """Base class for all ccg failures."""


class ConfigurationError(CCGError):
    """Raised for bad key sizes, missing credentials, or invalid config."""


class CryptoError(CCGError):
    """Base class for decryption failures. Never retryable."""


class MalformedInput(CryptoError):
    """Raised when a blob is too short to contain a nonce."""


class AuthenticationFailed(CryptoError):
    """Raised when the AEAD tag does not verify (wrong key or tampering)."""


class KeyMismatch(CryptoError):
    """Raised when the embedded key trailer does not match the key."""


class RemoteStorageError(CCGError):
    """Raised when the content store rejects or fails a request.

    Attributes:
        status_code: HTTP status, or None for transport failures.
        body: Response body text as returned by the store.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class CorruptHistory(CCGError):
    """Raised when a stored version history cannot be decoded."""


class AnchorError(CCGError):
    """Base class for chain interaction failures."""


class RPCError(AnchorError):
    """Raised when the node is unreachable or a call reverts."""


class SigningError(AnchorError):
    """Raised when no usable signing identity is available."""


class AnchorTimeout(AnchorError, TimeoutError):
    """Raised when a read call exceeds its deadline."""
