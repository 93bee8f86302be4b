"""Shared test fixtures for ccg."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional

import pytest

from ccg.anchor import ChainAnchor, FileAnchor
from ccg.engine import ColdStorageEngine
from ccg.errors import RPCError
from ccg.models import ContentPointer
from ccg.store import LocalStore


class FlakyAnchor(ChainAnchor):
    """Wraps a real anchor; can fail writes or run a hook before them."""

    def __init__(self, inner: ChainAnchor) -> None:
        self.inner = inner
        self.fail_writes = False
        self.before_write: Optional[Callable[[], None]] = None

    @property
    def name(self) -> str:
        return "flaky"

    def get_pointer(self, identifier: bytes) -> Optional[ContentPointer]:
        return self.inner.get_pointer(identifier)

    def get_metadata(self, identifier: bytes) -> Optional[str]:
        return self.inner.get_metadata(identifier)

    def set_pointer(self, identifier: bytes, blob_id: str, metadata_id: str) -> str:
        hook, self.before_write = self.before_write, None
        if hook is not None:
            hook()
        if self.fail_writes:
            raise RPCError("node unreachable")
        return self.inner.set_pointer(identifier, blob_id, metadata_id)


@pytest.fixture
def key() -> bytes:
    """A fresh 32-byte bundle key."""
    return os.urandom(32)


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary ccg home directory."""
    home = tmp_path / ".ccg"
    home.mkdir()
    return home


@pytest.fixture
def store(tmp_home: Path) -> LocalStore:
    return LocalStore(tmp_home / "objects")


@pytest.fixture
def anchor(tmp_home: Path) -> FileAnchor:
    return FileAnchor(tmp_home / "anchor.json")


@pytest.fixture
def flaky_anchor(anchor: FileAnchor) -> FlakyAnchor:
    return FlakyAnchor(anchor)


@pytest.fixture
def engine(store: LocalStore, anchor: FileAnchor, key: bytes) -> ColdStorageEngine:
    """Engine wired to a local store and a file anchor."""
    return ColdStorageEngine(store, anchor, key)
