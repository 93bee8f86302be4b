"""
Cold storage engine -- sequences hashing, encryption, storage, anchoring.

    ccg push  ->  hash name -> read history -> extend -> seal -> upload x2 -> anchor
    ccg pull  ->  hash name -> read pointer -> download x2 -> open

The anchor write is the only commit point. Nothing before it is rolled
back: if the write fails after the uploads, the new blobs are orphaned
on the store, the previous pointer stays authoritative, and the push is
reported as failed. Retrying from scratch is safe.

Two pushes for the same repository racing each other both read the
same history, and whichever anchor write lands last wins. The loser's
version entry is gone. That is the anchor's contract, not something the
engine tries to paper over.
"""

from __future__ import annotations

import logging
from typing import Optional

from . import crypto
from .anchor import ChainAnchor
from .errors import ConfigurationError
from .identity import repository_identifier, repository_identifier_hex
from .ledger import build_next_version, parse_history
from .models import PullResult, VersionRecord
from .store import ContentStore

logger = logging.getLogger("ccg.engine")

METADATA_SUFFIX = "_meta"


class ColdStorageEngine:
    """Push and pull encrypted repository bundles.

    Every collaborator is passed in; the engine keeps no state between
    calls and each call runs its steps strictly in order.

    Args:
        store: Content store holding the sealed bundles and histories.
        anchor: Pointer anchor keyed by repository identifier.
        key: 32-byte symmetric key for bundles and histories.
    """

    def __init__(
        self, store: ContentStore, anchor: ChainAnchor, key: bytes
    ) -> None:
        if len(key) != crypto.KEY_SIZE:
            raise ConfigurationError(
                f"Invalid AES key size: {len(key)} bytes (expected {crypto.KEY_SIZE})"
            )
        self.store = store
        self.anchor = anchor
        self._key = key

    def push(self, repo_name: str, bundle: bytes, commit_hash: str) -> str:
        """Seal and upload a bundle, then move the anchor to it.

        Args:
            repo_name: Repository name the anchor is keyed on.
            bundle: Raw git bundle bytes.
            commit_hash: Commit the bundle was cut at.

        Returns:
            Transaction hash of the anchor write (submitted, unconfirmed).
        """
        identifier = repository_identifier(repo_name)
        logger.info(
            "Pushing %s (%s) at %s",
            repo_name, repository_identifier_hex(repo_name), commit_hash,
        )

        metadata_id = self.anchor.get_metadata(identifier)
        history: Optional[bytes] = None
        if metadata_id is not None:
            history = crypto.decrypt(self._key, self.store.download(metadata_id))

        new_history = build_next_version(history, commit_hash)

        label = f"{commit_hash}.git"
        blob_id = self.store.upload(crypto.encrypt(self._key, bundle), label)
        new_metadata_id = self.store.upload(
            crypto.encrypt(self._key, new_history), label + METADATA_SUFFIX
        )

        try:
            tx_hash = self.anchor.set_pointer(identifier, blob_id, new_metadata_id)
        except Exception:
            logger.warning(
                "Anchor write failed for %s; orphaned uploads %s, %s",
                repo_name, blob_id, new_metadata_id,
            )
            raise

        logger.info("Push of %s anchored: %s", repo_name, tx_hash)
        return tx_hash

    def pull(self, repo_name: str) -> Optional[PullResult]:
        """Fetch and open the latest bundle and its history.

        Returns:
            PullResult, or None if the repository was never pushed.
        """
        identifier = repository_identifier(repo_name)
        pointer = self.anchor.get_pointer(identifier)
        if pointer is None:
            logger.info("Nothing anchored for %s", repo_name)
            return None

        bundle = crypto.decrypt(self._key, self.store.download(pointer.blob_id))
        history = crypto.decrypt(self._key, self.store.download(pointer.metadata_id))
        logger.info("Pulled %s (%d bytes)", repo_name, len(bundle))
        return PullResult(bundle=bundle, history=history)

    def get_latest_metadata(self, repo_name: str) -> Optional[bytes]:
        """Fetch and open only the version history, or None if absent."""
        metadata_id = self.anchor.get_metadata(repository_identifier(repo_name))
        if metadata_id is None:
            return None
        return crypto.decrypt(self._key, self.store.download(metadata_id))

    def history(self, repo_name: str) -> list[VersionRecord]:
        """Parsed version history; empty if the repository was never pushed."""
        data = self.get_latest_metadata(repo_name)
        return parse_history(data) if data is not None else []
