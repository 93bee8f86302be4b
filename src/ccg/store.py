"""
Content stores -- where the sealed bundles live.

Each store uploads bytes and hands back a content identifier, and
downloads bytes given one. The remote service assigns the identifier;
the label passed on upload is a filename hint only.

Lighthouse: IPFS/Filecoin pinning over HTTPS, bearer-token auth.
Local: content-addressed files on disk. For offline use, NAS, tests.

No store retries. Callers that need resilience wrap the calls.
"""

from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import requests

from .errors import ConfigurationError, RemoteStorageError
from .models import ContentInfo, StoreConfig, StoreType

logger = logging.getLogger("ccg.store")


class ContentStore(ABC):
    """Abstract content-addressed store."""

    @abstractmethod
    def upload(self, data: bytes, label: str) -> str:
        """Upload bytes to the store.

        Args:
            data: Bytes to store (already encrypted by the caller).
            label: Advisory filename. Not part of addressing.

        Returns:
            The content identifier assigned by the store.

        Raises:
            RemoteStorageError: If the store rejects the upload.
        """

    @abstractmethod
    def download(self, content_id: str) -> bytes:
        """Fetch bytes by content identifier.

        Raises:
            RemoteStorageError: If the store cannot return the content.
        """

    def info(self, content_id: str) -> ContentInfo:
        """Describe a stored object.

        The default fetches the object and measures it.

        Raises:
            RemoteStorageError: If the store cannot return the content.
        """
        return ContentInfo(content_id=content_id, size=len(self.download(content_id)))

    @abstractmethod
    def available(self) -> bool:
        """Check if this store is currently usable."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable store name."""


def _extract_cid(body: str) -> str:
    """Pull the content id out of an upload response body.

    Lighthouse deployments answer either with the bare CID or with a
    JSON envelope such as ``{"Name": ..., "Hash": ..., "Size": ...}``.
    """
    text = body.strip()
    if not text:
        raise RemoteStorageError("Upload response was empty", body=body)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text

    if isinstance(payload, str):
        return payload.strip()
    if not isinstance(payload, dict):
        return text

    data = payload.get("data")
    nested = data.get("Hash") if isinstance(data, dict) else None
    for candidate in (payload.get("Hash"), payload.get("cid"), nested):
        if isinstance(candidate, str) and candidate:
            return candidate

    raise RemoteStorageError(
        "Upload response carried no content identifier", body=body
    )


class LighthouseStore(ContentStore):
    """Lighthouse (IPFS / Filecoin) pinning service client.

    Uploads are multipart ``POST`` requests with the payload in the
    ``file`` field. Downloads go through the IPFS gateway. Both carry
    ``Authorization: Bearer <api-key>``.
    """

    def __init__(
        self,
        api_key: str,
        upload_url: str,
        gateway_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError(
                "Lighthouse not configured. Set CCG_LIGHTHOUSE_API_KEY."
            )
        self._api_key = api_key
        self.upload_url = upload_url
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def name(self) -> str:
        return "lighthouse"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Make an authenticated request and reject non-success answers.

        Raises:
            RemoteStorageError: On transport failure or a non-2xx status.
        """
        try:
            resp = self._session.request(
                method, url, headers=self._headers(),
                timeout=self.timeout, **kwargs,
            )
        except requests.RequestException as exc:
            raise RemoteStorageError(
                f"Lighthouse {method} failed: {exc}"
            ) from exc

        if not 200 <= resp.status_code < 300:
            raise RemoteStorageError(
                f"Lighthouse API error: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )
        return resp

    def upload(self, data: bytes, label: str) -> str:
        logger.debug("Uploading %d bytes as %s", len(data), label)
        resp = self._request(
            "POST", self.upload_url,
            files={"file": (label, data, "application/octet-stream")},
        )
        cid = _extract_cid(resp.text)
        logger.info("Uploaded %s to Lighthouse: %s", label, cid)
        return cid

    def download(self, content_id: str) -> bytes:
        url = f"{self.gateway_url}/{content_id}"
        resp = self._request("GET", url)
        logger.info(
            "Downloaded %s from Lighthouse (%d bytes)",
            content_id, len(resp.content),
        )
        return resp.content

    def info(self, content_id: str) -> ContentInfo:
        """Describe an object with a gateway HEAD request.

        Falls back to a full download when the gateway omits
        Content-Length.
        """
        resp = self._request("HEAD", f"{self.gateway_url}/{content_id}")
        length = resp.headers.get("Content-Length")
        if length is None or not length.isdigit():
            return super().info(content_id)
        return ContentInfo(
            content_id=content_id,
            size=int(length),
            content_type=resp.headers.get(
                "Content-Type", "application/octet-stream"
            ),
        )

    def available(self) -> bool:
        return bool(self._api_key)


class LocalStore(ContentStore):
    """Content-addressed store on the local filesystem.

    The content id is the SHA-256 hex digest of the stored bytes.
    Objects are written once and never rewritten or deleted.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "local"

    def upload(self, data: bytes, label: str) -> str:
        cid = hashlib.sha256(data).hexdigest()
        target = self.root / cid
        if not target.exists():
            try:
                target.write_bytes(data)
            except OSError as exc:
                raise RemoteStorageError(
                    f"Local store write failed: {exc}"
                ) from exc
        logger.info("Stored %s locally: %s", label, cid)
        return cid

    def download(self, content_id: str) -> bytes:
        target = self.root / content_id
        if not target.is_file():
            raise RemoteStorageError(
                f"Content not found: {content_id}",
                status_code=404,
                body="not found",
            )
        return target.read_bytes()

    def info(self, content_id: str) -> ContentInfo:
        target = self.root / content_id
        if not target.is_file():
            raise RemoteStorageError(
                f"Content not found: {content_id}",
                status_code=404,
                body="not found",
            )
        return ContentInfo(content_id=content_id, size=target.stat().st_size)

    def available(self) -> bool:
        return self.root.exists()


def create_store(
    config: StoreConfig,
    api_key: Optional[str] = None,
    home: Optional[Path] = None,
) -> ContentStore:
    """Factory function to create the configured content store.

    Args:
        config: Store configuration.
        api_key: Lighthouse API key (Lighthouse only).
        home: ccg home directory, used for the default local path.

    Returns:
        Instantiated ContentStore.

    Raises:
        ConfigurationError: If the store type is unsupported or
            required credentials are missing.
    """
    if config.store_type == StoreType.LIGHTHOUSE:
        return LighthouseStore(
            api_key or "",
            upload_url=config.upload_url,
            gateway_url=config.gateway_url,
            timeout=config.timeout_seconds,
        )
    if config.store_type == StoreType.LOCAL:
        root = config.local_path or (
            (home or Path("~/.ccg")).expanduser() / "objects"
        )
        return LocalStore(Path(root))
    raise ConfigurationError(f"Unsupported store: {config.store_type}")
