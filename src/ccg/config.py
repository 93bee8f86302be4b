"""
Configuration loading -- once, at process start.

Layout::

    ~/.ccg/                 # or $CCG_HOME
    ├── config.yaml         # StoreConfig + ChainConfig (no secrets)
    ├── objects/            # LocalStore default root
    └── anchor.json         # FileAnchor default path

Secrets never live in config.yaml. They come from the environment:

    CCG_SECRET_KEY          base64 32-byte bundle key
    CCG_LIGHTHOUSE_API_KEY  Lighthouse bearer token
    CCG_PRIVATE_KEY         hex signing key (or use chain.keystore_path)
    CCG_KEYSTORE_PASSWORD   password for the keystore file

Non-secret overrides: CCG_RPC_URL, CCG_CHAIN_ID, CCG_CONTRACT_ADDRESS.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import CCG_HOME
from .anchor import SigningIdentity, create_anchor
from .crypto import load_key
from .engine import ColdStorageEngine
from .errors import ConfigurationError
from .models import AnchorType, CCGConfig
from .store import create_store

logger = logging.getLogger("ccg.config")

CONFIG_FILE = "config.yaml"


def resolve_home(home: Optional[Path] = None) -> Path:
    """Return the ccg home directory, expanded."""
    return Path(home or CCG_HOME).expanduser()


def load_config(home: Optional[Path] = None) -> CCGConfig:
    """Load config.yaml and apply environment overrides.

    Args:
        home: ccg home directory. Defaults to $CCG_HOME or ~/.ccg.

    Returns:
        The validated configuration (defaults if no file exists).

    Raises:
        ConfigurationError: If the file is not valid YAML or fails
            validation.
    """
    config_file = resolve_home(home) / CONFIG_FILE
    data: dict = {}
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid {config_file}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid {config_file}: expected a mapping")

    chain = dict(data.get("chain") or {})
    data["chain"] = chain
    if os.environ.get("CCG_RPC_URL"):
        chain["rpc_url"] = os.environ["CCG_RPC_URL"]
    if os.environ.get("CCG_CHAIN_ID"):
        chain["chain_id"] = os.environ["CCG_CHAIN_ID"]
    if os.environ.get("CCG_CONTRACT_ADDRESS"):
        chain["contract_address"] = os.environ["CCG_CONTRACT_ADDRESS"]

    try:
        return CCGConfig(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def save_config(config: CCGConfig, home: Optional[Path] = None) -> Path:
    """Write config.yaml, creating the home directory if needed."""
    home_path = resolve_home(home)
    home_path.mkdir(parents=True, exist_ok=True)
    config_file = home_path / CONFIG_FILE
    config_file.write_text(
        yaml.dump(config.model_dump(mode="json"), default_flow_style=False),
        encoding="utf-8",
    )
    logger.info("Wrote %s", config_file)
    return config_file


def load_secret_key() -> bytes:
    """Read the bundle key from CCG_SECRET_KEY.

    Raises:
        ConfigurationError: If the variable is unset or invalid.
    """
    encoded = os.environ.get("CCG_SECRET_KEY", "")
    if not encoded:
        raise ConfigurationError("CCG_SECRET_KEY not set")
    return load_key(encoded)


def load_signing_identity(config: CCGConfig) -> Optional[SigningIdentity]:
    """Load the signing identity from the environment or keystore.

    A raw CCG_PRIVATE_KEY wins over a configured keystore. Returns None
    when neither is available; the anchor then refuses writes.
    """
    chain_id = config.chain.chain_id
    private_key = os.environ.get("CCG_PRIVATE_KEY")
    if private_key:
        return SigningIdentity.from_private_key(private_key, chain_id)

    if config.chain.keystore_path:
        password = os.environ.get("CCG_KEYSTORE_PASSWORD", "")
        return SigningIdentity.from_keystore(
            config.chain.keystore_path, password, chain_id
        )
    return None


def build_engine(home: Optional[Path] = None) -> ColdStorageEngine:
    """Assemble a ColdStorageEngine from config and environment.

    Raises:
        ConfigurationError: If anything required is missing.
        SigningError: If a configured keystore cannot be unlocked.
    """
    home_path = resolve_home(home)
    config = load_config(home_path)
    key = load_secret_key()

    store = create_store(
        config.store,
        api_key=os.environ.get("CCG_LIGHTHOUSE_API_KEY"),
        home=home_path,
    )
    identity = None
    if config.chain.anchor_type == AnchorType.EVM:
        identity = load_signing_identity(config)
    anchor = create_anchor(config.chain, identity=identity, home=home_path)

    logger.debug("Engine ready: store=%s anchor=%s", store.name, anchor.name)
    return ColdStorageEngine(store, anchor, key)
