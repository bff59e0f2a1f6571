from __future__ import annotations

from typing import Optional, Protocol

from pipeline.types import Snapshot


class SnapshotStore(Protocol):
    def initialize(self) -> None:
        """Create the live slot and archive structures. Safe to call repeatedly."""

    def upsert_live(self, *, timestamp: int, payload: str) -> None:
        """Insert or replace the single live snapshot."""

    def append_archive(self, *, timestamp: int, payload: str) -> int:
        """Insert an immutable archive snapshot and return its id."""

    def latest_archive_timestamp(self) -> Optional[int]:
        """Timestamp of the newest archive snapshot, or None if the archive is empty."""

    def query_at_or_before(self, offset_minutes: int, *, live: bool = True) -> Optional[Snapshot]:
        """Live snapshot for offset 0, else newest archive row at or before (newest archive - offset)."""

    def count_archive(self) -> int:
        """Number of archive snapshots."""

    def dispose(self) -> None:
        """Close pooled connections. The store reconnects lazily if used again."""
