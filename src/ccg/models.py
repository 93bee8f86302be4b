"""
Pydantic models for pointers, version history, and configuration.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_UPLOAD_URL = "https://upload.lighthouse.storage/api/v0/add"
DEFAULT_GATEWAY_URL = "https://gateway.lighthouse.storage/ipfs"
CALIBRATION_CHAIN_ID = 314159


class ContentPointer(BaseModel):
    """What the anchor holds for one repository identifier.

    A pointer is either present in full or absent. Writes replace it
    wholesale; the anchor keeps no history of earlier pointers.
    """

    model_config = ConfigDict(frozen=True)

    blob_id: str
    metadata_id: str


class VersionRecord(BaseModel):
    """One checkpoint in a repository's version history."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = Field(ge=1)
    commit_hash: str = Field(alias="commitHash")


class PullResult(BaseModel):
    """Decrypted bundle and history returned by a pull."""

    bundle: bytes
    history: bytes


class ContentInfo(BaseModel):
    """Size and type of a stored object, without its body where possible."""

    content_id: str
    size: int = Field(ge=0)
    content_type: str = "application/octet-stream"


class StoreType(str, Enum):
    """Supported content store backends."""

    LIGHTHOUSE = "lighthouse"
    LOCAL = "local"


class AnchorType(str, Enum):
    """Supported pointer anchors."""

    EVM = "evm"
    FILE = "file"


class StoreConfig(BaseModel):
    """Content store settings. The API key comes from the environment."""

    store_type: StoreType = StoreType.LIGHTHOUSE
    upload_url: str = DEFAULT_UPLOAD_URL
    gateway_url: str = DEFAULT_GATEWAY_URL
    timeout_seconds: float = 30.0

    # Local filesystem store
    local_path: Optional[Path] = None


class ChainConfig(BaseModel):
    """Chain anchor settings. Key material comes from the environment."""

    anchor_type: AnchorType = AnchorType.EVM
    rpc_url: str = "https://api.calibration.node.glif.io/rpc/v1"
    chain_id: int = CALIBRATION_CHAIN_ID
    contract_address: Optional[str] = None
    keystore_path: Optional[Path] = None
    read_timeout_seconds: float = 10.0
    write_timeout_seconds: float = 60.0

    # File anchor
    anchor_path: Optional[Path] = None


class CCGConfig(BaseModel):
    """Complete ccg configuration, loaded once at process start."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
