"""
Tests for the cold storage engine -- push, pull, partial failure, races.
"""

from __future__ import annotations

import json
import os

import pytest

from ccg import crypto
from ccg.anchor import FileAnchor
from ccg.engine import ColdStorageEngine
from ccg.errors import (
    AuthenticationFailed,
    ConfigurationError,
    CorruptHistory,
    KeyMismatch,
    RPCError,
)
from ccg.identity import repository_identifier
from ccg.store import LocalStore


REPO = "acme/widgets"


def _object_count(store: LocalStore) -> int:
    return len(list(store.root.iterdir()))


class TestPushPull:
    """End-to-end push/pull through a local store and file anchor."""

    def test_push_then_pull(self, engine: ColdStorageEngine) -> None:
        tx = engine.push(REPO, b"GITBUNDLE-DATA", "abc123")
        assert tx.startswith("0x")

        result = engine.pull(REPO)
        assert result is not None
        assert result.bundle == b"GITBUNDLE-DATA"
        assert json.loads(result.history) == [{"version": 1, "commitHash": "abc123"}]

    def test_second_push_extends_history(self, engine: ColdStorageEngine) -> None:
        engine.push(REPO, b"GITBUNDLE-DATA", "abc123")
        engine.push(REPO, b"GITBUNDLE-DATA-2", "def456")

        result = engine.pull(REPO)
        assert result.bundle == b"GITBUNDLE-DATA-2"
        assert json.loads(result.history) == [
            {"version": 1, "commitHash": "abc123"},
            {"version": 2, "commitHash": "def456"},
        ]

    def test_latest_metadata(self, engine: ColdStorageEngine) -> None:
        engine.push(REPO, b"bundle", "abc123")
        assert json.loads(engine.get_latest_metadata(REPO)) == [
            {"version": 1, "commitHash": "abc123"}
        ]

    def test_history_records(self, engine: ColdStorageEngine) -> None:
        for commit in ("a1", "b2", "c3"):
            engine.push(REPO, b"bundle", commit)
        records = engine.history(REPO)
        assert [(r.version, r.commit_hash) for r in records] == [
            (1, "a1"), (2, "b2"), (3, "c3"),
        ]

    def test_repositories_are_independent(self, engine: ColdStorageEngine) -> None:
        engine.push("acme/widgets", b"widgets", "w1")
        engine.push("acme/gadgets", b"gadgets", "g1")
        assert engine.pull("acme/widgets").bundle == b"widgets"
        assert engine.pull("acme/gadgets").bundle == b"gadgets"
        assert len(engine.history("acme/gadgets")) == 1

    def test_stored_objects_are_encrypted(
        self, engine: ColdStorageEngine, store: LocalStore, anchor: FileAnchor
    ) -> None:
        engine.push(REPO, b"GITBUNDLE-DATA", "abc123")
        pointer = anchor.get_pointer(repository_identifier(REPO))
        raw = store.download(pointer.blob_id)
        assert b"GITBUNDLE-DATA" not in raw
        assert b"abc123" not in store.download(pointer.metadata_id)

    def test_each_push_uploads_two_objects(
        self, engine: ColdStorageEngine, store: LocalStore
    ) -> None:
        engine.push(REPO, b"bundle", "abc123")
        assert _object_count(store) == 2
        engine.push(REPO, b"bundle", "abc123")
        assert _object_count(store) == 4


class TestNotFound:
    """A repository that was never pushed is a normal result."""

    def test_pull_never_pushed(self, engine: ColdStorageEngine) -> None:
        assert engine.pull("nobody/nothing") is None

    def test_metadata_never_pushed(self, engine: ColdStorageEngine) -> None:
        assert engine.get_latest_metadata("nobody/nothing") is None

    def test_history_never_pushed(self, engine: ColdStorageEngine) -> None:
        assert engine.history("nobody/nothing") == []


class TestWrongKey:
    """Decryption failures surface; they are never ignored."""

    def test_pull_with_other_key(self, engine: ColdStorageEngine, store, anchor) -> None:
        engine.push(REPO, b"bundle", "abc123")
        other = ColdStorageEngine(store, anchor, os.urandom(32))
        with pytest.raises((AuthenticationFailed, KeyMismatch)):
            other.pull(REPO)

    def test_push_with_other_key_fails_before_upload(
        self, engine: ColdStorageEngine, store: LocalStore, anchor
    ) -> None:
        engine.push(REPO, b"bundle", "abc123")
        before = _object_count(store)
        other = ColdStorageEngine(store, anchor, os.urandom(32))
        with pytest.raises((AuthenticationFailed, KeyMismatch)):
            other.push(REPO, b"bundle", "def456")
        assert _object_count(store) == before

    def test_bad_key_size(self, store, anchor) -> None:
        with pytest.raises(ConfigurationError):
            ColdStorageEngine(store, anchor, b"short")


class TestCorruptHistory:
    """A stored history that does not decode stops the push."""

    def test_push_over_corrupt_history(
        self, engine: ColdStorageEngine, store: LocalStore, anchor: FileAnchor, key: bytes
    ) -> None:
        bad_meta = store.upload(crypto.encrypt(key, b"{not a list"), "bad_meta")
        anchor.set_pointer(repository_identifier(REPO), "whatever", bad_meta)
        with pytest.raises(CorruptHistory):
            engine.push(REPO, b"bundle", "abc123")


class TestPartialFailure:
    """Anchor write failures after successful uploads."""

    def test_first_push_fails_leaves_nothing_anchored(
        self, store: LocalStore, flaky_anchor, key: bytes
    ) -> None:
        engine = ColdStorageEngine(store, flaky_anchor, key)
        flaky_anchor.fail_writes = True

        with pytest.raises(RPCError):
            engine.push(REPO, b"bundle", "abc123")

        assert flaky_anchor.get_pointer(repository_identifier(REPO)) is None
        assert engine.pull(REPO) is None
        assert _object_count(store) == 2  # orphaned, not deleted

    def test_failed_push_keeps_previous_pointer(
        self, store: LocalStore, flaky_anchor, key: bytes
    ) -> None:
        engine = ColdStorageEngine(store, flaky_anchor, key)
        engine.push(REPO, b"v1-bundle", "abc123")
        identifier = repository_identifier(REPO)
        before = flaky_anchor.get_pointer(identifier)

        flaky_anchor.fail_writes = True
        with pytest.raises(RPCError):
            engine.push(REPO, b"v2-bundle", "def456")

        assert flaky_anchor.get_pointer(identifier) == before
        result = engine.pull(REPO)
        assert result.bundle == b"v1-bundle"
        assert json.loads(result.history) == [{"version": 1, "commitHash": "abc123"}]

    def test_retry_after_failure(
        self, store: LocalStore, flaky_anchor, key: bytes
    ) -> None:
        engine = ColdStorageEngine(store, flaky_anchor, key)
        engine.push(REPO, b"v1-bundle", "abc123")

        flaky_anchor.fail_writes = True
        with pytest.raises(RPCError):
            engine.push(REPO, b"v2-bundle", "def456")

        flaky_anchor.fail_writes = False
        engine.push(REPO, b"v2-bundle", "def456")

        assert [r.commit_hash for r in engine.history(REPO)] == ["abc123", "def456"]
        assert _object_count(store) == 6  # two orphans from the failed attempt

    def test_failure_is_logged_with_orphans(
        self, store: LocalStore, flaky_anchor, key: bytes, caplog
    ) -> None:
        engine = ColdStorageEngine(store, flaky_anchor, key)
        flaky_anchor.fail_writes = True
        with caplog.at_level("WARNING", logger="ccg.engine"):
            with pytest.raises(RPCError):
                engine.push(REPO, b"bundle", "abc123")
        assert "orphaned" in caplog.text


class TestLastWriteWins:
    """Concurrent pushes for one repository race at the anchor write."""

    def test_interleaved_pushes_lose_a_version(
        self, store: LocalStore, anchor: FileAnchor, flaky_anchor, key: bytes
    ) -> None:
        first = ColdStorageEngine(store, flaky_anchor, key)
        second = ColdStorageEngine(store, anchor, key)
        first.push(REPO, b"base", "base0")

        # The second push runs to completion between the first push's
        # history read and its anchor write.
        flaky_anchor.before_write = lambda: second.push(REPO, b"from-second", "bbb")
        first.push(REPO, b"from-first", "aaa")

        records = first.history(REPO)
        assert [(r.version, r.commit_hash) for r in records] == [(1, "base0"), (2, "aaa")]
        assert first.pull(REPO).bundle == b"from-first"
        # The losing push's objects stay on the store, unreferenced.
        assert _object_count(store) == 6

    def test_sequential_pushes_do_not_lose_versions(
        self, store: LocalStore, anchor: FileAnchor, key: bytes
    ) -> None:
        first = ColdStorageEngine(store, anchor, key)
        second = ColdStorageEngine(store, anchor, key)
        first.push(REPO, b"a", "aaa")
        second.push(REPO, b"b", "bbb")
        assert [r.commit_hash for r in first.history(REPO)] == ["aaa", "bbb"]
