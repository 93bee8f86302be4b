"""
Version ledger -- the append-only history stored beside each bundle.

The history is a compact JSON array::

    [{"version":1,"commitHash":"abc123"},{"version":2,"commitHash":"def456"}]

Versions start at 1, are contiguous, and the last version equals the
array length. Pure functions only; fetching and storing the history is
the engine's job.
"""

from __future__ import annotations

import json
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from .errors import CorruptHistory
from .models import VersionRecord

_HISTORY = TypeAdapter(list[VersionRecord])


def parse_history(data: bytes) -> list[VersionRecord]:
    """Decode and validate a serialized version history.

    Args:
        data: JSON array bytes.

    Returns:
        The records in stored order.

    Raises:
        CorruptHistory: If the JSON is malformed, a record is invalid,
            or the versions are not 1..n in order.
    """
    try:
        records = _HISTORY.validate_json(data)
    except ValidationError as exc:
        raise CorruptHistory(f"Malformed version history: {exc}") from exc

    for expected, record in enumerate(records, start=1):
        if record.version != expected:
            raise CorruptHistory(
                f"Version history out of sequence: expected {expected}, "
                f"found {record.version}"
            )
    return records


def serialize_history(records: list[VersionRecord]) -> bytes:
    """Encode records as the compact JSON array stored remotely."""
    payload = [r.model_dump(by_alias=True) for r in records]
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def build_next_version(existing: Optional[bytes], commit_hash: str) -> bytes:
    """Extend a version history with a new commit.

    Args:
        existing: Serialized history, or None if nothing was pushed yet.
        commit_hash: Commit the new version points at.

    Returns:
        Serialized history with one more record, ``version = len + 1``.

    Raises:
        CorruptHistory: If ``existing`` cannot be decoded.
    """
    records = parse_history(existing) if existing is not None else []
    records.append(
        VersionRecord(version=len(records) + 1, commit_hash=commit_hash)
    )
    return serialize_history(records)
