"""
Version history for published snapshots.

History is append-only: versions are never updated or removed, and
readers only ever receive deep copies.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class SnapshotVersion:
    """A published snapshot and the instant it was recorded."""

    timestamp: datetime
    value: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "value": copy.deepcopy(self.value),
        }


class VersionHistory:
    """
    Ordered, append-only list of SnapshotVersion.

    Invariants:
    - Insertion order is chronological; timestamps never decrease
    - Past entries are never rewritten
    """

    def __init__(self) -> None:
        self._versions: list[SnapshotVersion] = []

    def append(self, value: dict[str, Any], timestamp: datetime) -> SnapshotVersion:
        """
        Record a new version.

        The stored value is a private deep copy. A timestamp earlier than the
        latest one (clock stepped backwards) is clamped to the latest.

        Returns:
            Copy of the stored version
        """
        if self._versions and timestamp < self._versions[-1].timestamp:
            timestamp = self._versions[-1].timestamp

        version = SnapshotVersion(timestamp=timestamp, value=copy.deepcopy(value))
        self._versions.append(version)
        return copy.deepcopy(version)

    def history(self) -> list[SnapshotVersion]:
        """Deep copy of all versions, oldest first."""
        return copy.deepcopy(self._versions)

    def latest_version(self) -> SnapshotVersion | None:
        """Deep copy of the newest version, or None if history is empty."""
        if not self._versions:
            return None
        return copy.deepcopy(self._versions[-1])

    def peek_latest_value(self) -> dict[str, Any] | None:
        # Internal read without copying; callers must not mutate the result
        if not self._versions:
            return None
        return self._versions[-1].value

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self) -> Iterator[SnapshotVersion]:
        return iter(self.history())

    def __bool__(self) -> bool:
        return bool(self._versions)

    def __repr__(self) -> str:
        return f"VersionHistory(versions={len(self._versions)})"
