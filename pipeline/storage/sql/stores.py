from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url

from pipeline.storage.interfaces import SnapshotStore
from pipeline.storage.sql.config import StoreConfig
from pipeline.types import LIVE_SNAPSHOT_ID, Snapshot

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp INTEGER NOT NULL,
        payload TEXT NOT NULL
    )
    """,
    f"CREATE UNIQUE INDEX IF NOT EXISTS idx_snapshots_live ON snapshots (id) WHERE id = {LIVE_SNAPSHOT_ID}",
    "CREATE INDEX IF NOT EXISTS idx_snapshots_ts ON snapshots (timestamp)",
)


class SqlSnapshotStore(SnapshotStore):
    """Snapshot persistence: one mutable live row plus an append-only archive.

    Both live in the `snapshots` table; the live row uses the reserved id
    LIVE_SNAPSHOT_ID. Archive rows are written once and never updated.
    Single writer (the ingester), many readers; each read is one statement.
    """

    def __init__(self, *, config: StoreConfig) -> None:
        self._config = config
        self._engine: Engine | None = None

    def _get_engine(self) -> Engine:
        if self._engine is None:
            connect_args: dict[str, Any] = {}
            if self._config.is_sqlite:
                # Readers run in the API threadpool, the writer in asyncio.to_thread
                connect_args["check_same_thread"] = False
                database = make_url(self._config.database_url).database
                if database and database != ":memory:":
                    Path(database).parent.mkdir(parents=True, exist_ok=True)

            # Do not log the URL (it may contain secrets).
            self._engine = create_engine(self._config.database_url, echo=False, connect_args=connect_args)

            if self._config.is_sqlite:
                self._install_sqlite_pragmas(self._engine)
        return self._engine

    def _install_sqlite_pragmas(self, engine: Engine) -> None:
        timeout = self._config.busy_timeout_ms

        @event.listens_for(engine, "connect")
        def _set_pragmas(dbapi_conn: Any, _record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute(f"PRAGMA busy_timeout={int(timeout)}")
            cursor.close()

        logger.info(f"Snapshot store opened (WAL, NORMAL, timeout={timeout}ms)")

    def initialize(self) -> None:
        engine = self._get_engine()
        with engine.begin() as conn:
            for stmt in _SCHEMA:
                conn.execute(text(stmt))

    def upsert_live(self, *, timestamp: int, payload: str) -> None:
        stmt = text(
            """
            INSERT INTO snapshots (id, timestamp, payload)
            VALUES (:id, :timestamp, :payload)
            ON CONFLICT (id)
            DO UPDATE SET
                timestamp = excluded.timestamp,
                payload = excluded.payload
            """
        )
        with self._get_engine().begin() as conn:
            conn.execute(stmt, {"id": LIVE_SNAPSHOT_ID, "timestamp": timestamp, "payload": payload})

    def append_archive(self, *, timestamp: int, payload: str) -> int:
        stmt = text("INSERT INTO snapshots (timestamp, payload) VALUES (:timestamp, :payload)")
        with self._get_engine().begin() as conn:
            result = conn.execute(stmt, {"timestamp": timestamp, "payload": payload})
        return int(result.lastrowid)

    def latest_archive_timestamp(self) -> Optional[int]:
        stmt = text(
            """
            SELECT timestamp
            FROM snapshots
            WHERE id != :live_id
            ORDER BY timestamp DESC
            LIMIT 1
            """
        )
        with self._get_engine().begin() as conn:
            row = conn.execute(stmt, {"live_id": LIVE_SNAPSHOT_ID}).fetchone()
        return None if row is None else int(row[0])

    def query_at_or_before(self, offset_minutes: int, *, live: bool = True) -> Optional[Snapshot]:
        if live and offset_minutes == 0:
            stmt = text("SELECT id, timestamp, payload FROM snapshots WHERE id = :live_id")
            params: dict[str, Any] = {"live_id": LIVE_SNAPSHOT_ID}
        else:
            # Offsets are relative to the newest archive row, not wall-clock time
            stmt = text(
                """
                SELECT id, timestamp, payload
                FROM snapshots
                WHERE id != :live_id
                  AND timestamp <= (
                      SELECT MAX(timestamp) FROM snapshots WHERE id != :live_id
                  ) - :offset
                ORDER BY timestamp DESC, id DESC
                LIMIT 1
                """
            )
            params = {"live_id": LIVE_SNAPSHOT_ID, "offset": int(offset_minutes) * 60}

        with self._get_engine().begin() as conn:
            row = conn.execute(stmt, params).fetchone()

        if row is None:
            return None
        return Snapshot(id=int(row[0]), timestamp=int(row[1]), payload=row[2])

    def count_archive(self) -> int:
        stmt = text("SELECT COUNT(*) FROM snapshots WHERE id != :live_id")
        with self._get_engine().begin() as conn:
            return int(conn.execute(stmt, {"live_id": LIVE_SNAPSHOT_ID}).scalar() or 0)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
