"""Tests for the SQL snapshot store (SQLite temp files)."""

from __future__ import annotations

from sqlalchemy import text

from pipeline.storage import SqlSnapshotStore, StoreConfig
from pipeline.types import LIVE_SNAPSHOT_ID

HOUR = 3600


def _live_rows(store: SqlSnapshotStore) -> int:
    with store._get_engine().begin() as conn:
        return conn.execute(
            text("SELECT COUNT(*) FROM snapshots WHERE id = :id"), {"id": LIVE_SNAPSHOT_ID}
        ).scalar()


def test_initialize_is_idempotent(store):
    store.initialize()
    store.initialize()
    assert store.count_archive() == 0
    assert store.latest_archive_timestamp() is None


def test_initialize_creates_parent_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "pipeline.db"
    store = SqlSnapshotStore(config=StoreConfig(database_url=f"sqlite:///{db_path}"))
    try:
        store.initialize()
        assert db_path.exists()
    finally:
        store.dispose()


def test_upsert_live_keeps_single_row(store):
    store.upsert_live(timestamp=100, payload='[{"v":1}]')
    store.upsert_live(timestamp=160, payload='[{"v":2}]')

    assert _live_rows(store) == 1
    live = store.query_at_or_before(0)
    assert live.is_live
    assert live.timestamp == 160
    assert live.payload == '[{"v":2}]'


def test_live_row_is_not_archive(store):
    store.upsert_live(timestamp=100, payload="[]")
    assert store.count_archive() == 0
    assert store.latest_archive_timestamp() is None
    assert store.query_at_or_before(0, live=False) is None


def test_append_archive_ids_increase(store):
    first = store.append_archive(timestamp=1000, payload="[1]")
    second = store.append_archive(timestamp=1000 + HOUR, payload="[2]")

    assert first > 0
    assert second > first
    assert store.count_archive() == 2
    assert store.latest_archive_timestamp() == 1000 + HOUR


def test_archive_unaffected_by_live_updates(store):
    store.append_archive(timestamp=1000, payload="[1]")
    store.upsert_live(timestamp=2000, payload="[2]")
    store.upsert_live(timestamp=3000, payload="[3]")

    snapshot = store.query_at_or_before(0, live=False)
    assert snapshot.payload == "[1]"
    assert snapshot.timestamp == 1000


def test_query_offsets_relative_to_newest_archive(store):
    for i in range(3):
        store.append_archive(timestamp=1000 + i * HOUR, payload=f"[{i}]")

    assert store.query_at_or_before(60).payload == "[1]"
    assert store.query_at_or_before(120).payload == "[0]"
    assert store.query_at_or_before(180) is None


def test_query_picks_latest_row_at_or_before_target(store):
    store.append_archive(timestamp=1000, payload='"a"')
    store.append_archive(timestamp=1000 + 30 * 60, payload='"b"')
    store.append_archive(timestamp=1000 + 2 * HOUR, payload='"c"')

    # Target = newest - 60 min = 1000 + 3600; "b" is the latest at or before it
    assert store.query_at_or_before(60).payload == '"b"'


def test_query_empty_store(store):
    assert store.query_at_or_before(0) is None
    assert store.query_at_or_before(60) is None


def test_persists_across_instances(tmp_path):
    url = f"sqlite:///{tmp_path / 'persist.db'}"
    first = SqlSnapshotStore(config=StoreConfig(database_url=url))
    first.initialize()
    first.append_archive(timestamp=1000, payload="[1]")
    first.upsert_live(timestamp=1060, payload="[2]")
    first.dispose()

    second = SqlSnapshotStore(config=StoreConfig(database_url=url))
    try:
        second.initialize()
        assert second.count_archive() == 1
        assert second.query_at_or_before(0).payload == "[2]"
    finally:
        second.dispose()
