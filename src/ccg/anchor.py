"""
Chain anchors -- the tamper-evident pointer for each repository.

An anchor maps a 32-byte repository identifier to the content ids of
the current bundle and its version history. Reads are free of side
effects and return None when nothing was ever written. A write replaces
the pointer wholesale.

EVM: a tiny registry contract reached over JSON-RPC with web3.py.
File: a JSON file on disk with the same semantics, for offline use.

Writes return as soon as the transaction is submitted. There is no
receipt polling and no retry of any RPC call, so a returned hash may still be
pending. Concurrent writers for the same identifier race and the last
write to land wins.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from .errors import (
    AnchorTimeout,
    ConfigurationError,
    RPCError,
    SigningError,
)
from .models import AnchorType, ChainConfig, ContentPointer

logger = logging.getLogger("ccg.anchor")

DELEGATED_PREFIXES = ("t410f", "f410f")

ANCHOR_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "GetProject",
        "stateMutability": "view",
        "inputs": [{"name": "id", "type": "bytes32"}],
        "outputs": [
            {"name": "blobId", "type": "bytes"},
            {"name": "metadataId", "type": "bytes"},
            {"name": "exists", "type": "bool"},
        ],
    },
    {
        "type": "function",
        "name": "GetMetaData",
        "stateMutability": "view",
        "inputs": [{"name": "id", "type": "bytes32"}],
        "outputs": [
            {"name": "metadataId", "type": "bytes"},
            {"name": "exists", "type": "bool"},
        ],
    },
    {
        "type": "function",
        "name": "SetProject",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "id", "type": "bytes32"},
            {"name": "blobId", "type": "bytes"},
            {"name": "metadataId", "type": "bytes"},
        ],
        "outputs": [],
    },
]


class ChainAnchor(ABC):
    """Abstract pointer store keyed by repository identifier."""

    @abstractmethod
    def get_pointer(self, identifier: bytes) -> Optional[ContentPointer]:
        """Read the current pointer.

        Returns:
            The pointer, or None if nothing was written for identifier.

        Raises:
            RPCError: If the anchor cannot be reached.
            AnchorTimeout: If the read exceeds its deadline.
        """

    @abstractmethod
    def get_metadata(self, identifier: bytes) -> Optional[str]:
        """Read only the metadata content id, or None if absent."""

    @abstractmethod
    def set_pointer(
        self, identifier: bytes, blob_id: str, metadata_id: str
    ) -> str:
        """Replace the pointer for identifier.

        Returns:
            Transaction hash (``0x`` hex) of the submitted write.

        Raises:
            SigningError: If no signing identity is usable.
            RPCError: If submission fails or reverts.
        """

    def exists(self, identifier: bytes) -> bool:
        """Check whether any pointer was written for identifier."""
        return self.get_pointer(identifier) is not None

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable anchor name."""


class SigningIdentity:
    """The account allowed to submit pointer writes, bound to one chain."""

    def __init__(self, account: Any, chain_id: int) -> None:
        self._account = account
        self.chain_id = chain_id

    @classmethod
    def from_private_key(cls, private_key: str, chain_id: int) -> "SigningIdentity":
        """Load an identity from a hex private key.

        Raises:
            SigningError: If the key cannot be parsed.
        """
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as exc:
            raise SigningError(f"Invalid private key: {exc}") from exc
        return cls(account, chain_id)

    @classmethod
    def from_keystore(
        cls, path: Path, password: str, chain_id: int
    ) -> "SigningIdentity":
        """Unlock an encrypted JSON keystore file.

        Raises:
            SigningError: If the file is unreadable or stays locked.
        """
        try:
            keyfile = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SigningError(f"Cannot read keystore {path}: {exc}") from exc

        try:
            private_key = Account.decrypt(keyfile, password)
        except (ValueError, TypeError, KeyError) as exc:
            raise SigningError(f"Keystore is locked: {exc}") from exc
        return cls(Account.from_key(private_key), chain_id)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: dict[str, Any]) -> bytes:
        """Sign a transaction dict and return the raw signed bytes.

        Raises:
            SigningError: If the transaction cannot be signed.
        """
        try:
            signed = self._account.sign_transaction(tx)
        except (ValueError, TypeError) as exc:
            raise SigningError(f"Signing failed: {exc}") from exc
        return signed.raw_transaction


def delegated_to_hex(address: str) -> str:
    """Convert a Filecoin delegated address (t410f/f410f) to 0x hex.

    The part after the prefix is unpadded lowercase base32 of the
    20-byte EVM address followed by a 4-byte checksum.

    Raises:
        ConfigurationError: If the address does not decode to 20 bytes.
    """
    if not address.startswith(DELEGATED_PREFIXES):
        raise ConfigurationError(
            f"Not a delegated address (expected t410f/f410f): {address}"
        )
    encoded = address[5:].upper()
    try:
        decoded = base64.b32decode(encoded + "=" * (-len(encoded) % 8))
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(f"Invalid delegated address {address}: {exc}") from exc

    payload = decoded[:-4]
    if len(payload) != 20:
        raise ConfigurationError(
            f"Invalid delegated address {address}: "
            f"payload is {len(payload)} bytes, want 20"
        )
    return "0x" + payload.hex()


def normalize_contract_address(address: str) -> str:
    """Return the checksummed 0x form of a contract address.

    Accepts 0x hex or a Filecoin t410f/f410f address.

    Raises:
        ConfigurationError: If the address is malformed.
    """
    address = address.strip()
    if address.startswith(DELEGATED_PREFIXES):
        address = delegated_to_hex(address)
    try:
        return Web3.to_checksum_address(address)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(
            f"Invalid contract address {address!r}: {exc}"
        ) from exc


def _decode_content_id(raw: Any) -> str:
    try:
        return bytes(raw).decode("utf-8")
    except (UnicodeDecodeError, TypeError, ValueError) as exc:
        raise RPCError(f"Malformed content id in anchor: {exc}") from exc


class Web3Anchor(ChainAnchor):
    """Pointer registry contract on an EVM chain.

    Content ids are stored on-chain as their UTF-8 bytes. Providers are
    built without web3's request retries, so each call is tried once.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: Optional[str],
        chain_id: int,
        identity: Optional[SigningIdentity] = None,
        read_timeout: float = 10.0,
        write_timeout: float = 60.0,
        web3: Optional[Web3] = None,
    ) -> None:
        if not contract_address:
            raise ConfigurationError(
                "No contract_address configured for the chain anchor"
            )
        if identity is not None and identity.chain_id != chain_id:
            raise ConfigurationError(
                f"Signing identity is bound to chain {identity.chain_id}, "
                f"anchor is configured for chain {chain_id}"
            )

        self.chain_id = chain_id
        self.identity = identity
        address = normalize_contract_address(contract_address)
        self._reader = web3 or Web3(
            Web3.HTTPProvider(
                rpc_url,
                request_kwargs={"timeout": read_timeout},
                exception_retry_configuration=None,
            )
        )
        self._writer = web3 or Web3(
            Web3.HTTPProvider(
                rpc_url,
                request_kwargs={"timeout": write_timeout},
                exception_retry_configuration=None,
            )
        )
        self._read_contract = self._reader.eth.contract(address=address, abi=ANCHOR_ABI)
        self._write_contract = self._writer.eth.contract(address=address, abi=ANCHOR_ABI)

    @property
    def name(self) -> str:
        return "evm"

    def _call(self, fn: Any) -> Any:
        """Run a view call, translating transport and contract errors."""
        try:
            return fn.call()
        except requests.Timeout as exc:
            raise AnchorTimeout(f"Chain read timed out: {exc}") from exc
        except (Web3Exception, requests.RequestException, ValueError) as exc:
            raise RPCError(f"Chain read failed: {exc}") from exc

    def get_pointer(self, identifier: bytes) -> Optional[ContentPointer]:
        blob_id, metadata_id, exists = self._call(
            self._read_contract.functions.GetProject(identifier)
        )
        if not exists:
            return None
        return ContentPointer(
            blob_id=_decode_content_id(blob_id),
            metadata_id=_decode_content_id(metadata_id),
        )

    def get_metadata(self, identifier: bytes) -> Optional[str]:
        metadata_id, exists = self._call(
            self._read_contract.functions.GetMetaData(identifier)
        )
        if not exists:
            return None
        return _decode_content_id(metadata_id)

    def set_pointer(
        self, identifier: bytes, blob_id: str, metadata_id: str
    ) -> str:
        if self.identity is None:
            raise SigningError(
                "No signing identity. Set CCG_PRIVATE_KEY or a keystore."
            )

        sender = self.identity.address
        try:
            nonce = self._writer.eth.get_transaction_count(sender, "pending")
            tx = self._write_contract.functions.SetProject(
                identifier, blob_id.encode("utf-8"), metadata_id.encode("utf-8")
            ).build_transaction({
                "from": sender,
                "chainId": self.chain_id,
                "nonce": nonce,
            })
        except ContractLogicError as exc:
            raise RPCError(f"SetProject would revert: {exc}") from exc
        except (Web3Exception, requests.RequestException, ValueError) as exc:
            raise RPCError(f"Could not build SetProject: {exc}") from exc

        raw = self.identity.sign_transaction(tx)

        try:
            tx_hash = self._writer.eth.send_raw_transaction(raw)
        except (Web3Exception, requests.RequestException, ValueError) as exc:
            raise RPCError(f"Transaction submission failed: {exc}") from exc

        tx_hex = Web3.to_hex(tx_hash)
        logger.info(
            "Submitted SetProject for %s from %s: %s",
            "0x" + identifier.hex(), sender, tx_hex,
        )
        return tx_hex


class FileAnchor(ChainAnchor):
    """Pointer registry kept in a local JSON file.

    Same contract as the on-chain registry: whole-pointer replacement,
    last write wins, no history. The file is re-read on every call so
    separate processes sharing it observe each other's writes.
    """

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "file"

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"writes": 0, "pointers": {}}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise RPCError(f"Anchor file unreadable: {exc}") from exc

    def _save(self, state: dict[str, Any]) -> None:
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise RPCError(f"Anchor file write failed: {exc}") from exc

    def get_pointer(self, identifier: bytes) -> Optional[ContentPointer]:
        entry = self._load()["pointers"].get("0x" + identifier.hex())
        if entry is None:
            return None
        return ContentPointer(**entry)

    def get_metadata(self, identifier: bytes) -> Optional[str]:
        pointer = self.get_pointer(identifier)
        return pointer.metadata_id if pointer else None

    def set_pointer(
        self, identifier: bytes, blob_id: str, metadata_id: str
    ) -> str:
        state = self._load()
        state["writes"] = state.get("writes", 0) + 1
        key = "0x" + identifier.hex()
        state["pointers"][key] = {"blob_id": blob_id, "metadata_id": metadata_id}
        self._save(state)

        digest = hashlib.sha256(
            f"{key}:{blob_id}:{metadata_id}:{state['writes']}".encode()
        ).hexdigest()
        logger.info("Anchored %s in %s", key, self.path)
        return "0x" + digest


def create_anchor(
    config: ChainConfig,
    identity: Optional[SigningIdentity] = None,
    home: Optional[Path] = None,
) -> ChainAnchor:
    """Factory function to create the configured anchor.

    Args:
        config: Chain configuration.
        identity: Signing identity for writes (EVM only).
        home: ccg home directory, used for the default anchor file.

    Returns:
        Instantiated ChainAnchor.

    Raises:
        ConfigurationError: If the anchor type is not supported.
    """
    if config.anchor_type == AnchorType.EVM:
        return Web3Anchor(
            config.rpc_url,
            config.contract_address,
            config.chain_id,
            identity=identity,
            read_timeout=config.read_timeout_seconds,
            write_timeout=config.write_timeout_seconds,
        )
    if config.anchor_type == AnchorType.FILE:
        path = config.anchor_path or (
            (home or Path("~/.ccg")).expanduser() / "anchor.json"
        )
        return FileAnchor(Path(path))
    raise ConfigurationError(f"Unsupported anchor: {config.anchor_type}")
