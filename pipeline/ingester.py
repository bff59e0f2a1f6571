"""Ingester - periodic multi-source snapshot collection.

Each tick:
1. Decides whether the tick is also an archive tick (archive interval elapsed)
2. Fetches every adapter concurrently; a failing source contributes nothing
3. Overwrites the live slot and, on archive ticks, appends an archive row
4. Latches `ready` after the first successful live write

`get()` rebuilds a window of normalized entries per lookback period for the
distiller. Reads never raise for bad data: unparseable snapshots leave their
period out and records that fail normalization are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from pipeline.adapters.base import Adapter
from pipeline.adapters.registry import AdapterRegistry
from pipeline.config import PipelineConfig
from pipeline.serialization import dumps_payload, loads_payload
from pipeline.storage.interfaces import SnapshotStore
from pipeline.types import Entry, NotReadyError, TickResult, Window

logger = logging.getLogger(__name__)


class Ingester:
    """Owns the polling loop, the snapshot store writes and the readiness latch."""

    def __init__(
        self,
        *,
        config: PipelineConfig,
        registry: AdapterRegistry,
        store: SnapshotStore,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.registry = registry
        self.store = store
        self._clock = clock
        self._ready = False
        self._running = False

    def initialize(self) -> "Ingester":
        self.store.initialize()
        return self

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def running(self) -> bool:
        return self._running

    @property
    def periods(self) -> list[int]:
        return [i * self.config.interval_minutes for i in range(self.config.periods)]

    def require_ready(self) -> None:
        if not self._ready:
            raise NotReadyError()

    def _now(self) -> int:
        return int(self._clock())

    async def _fetch_source(self, adapter: Adapter, archive: bool) -> Optional[list[dict[str, Any]]]:
        logger.info(f"Fetching '{adapter.source}' data")
        records = await adapter.fetch(self.config, archive)
        if records is None:
            return None
        if not isinstance(records, list):
            raise TypeError(f"fetch() returned {type(records).__name__}, expected list")
        return records

    async def _fetch_all(self, archive: bool) -> tuple[list[dict[str, Any]], list[str]]:
        adapters = list(self.registry)
        results = await asyncio.gather(
            *(self._fetch_source(adapter, archive) for adapter in adapters),
            return_exceptions=True,
        )

        payload: list[dict[str, Any]] = []
        failed: list[str] = []
        for adapter, result in zip(adapters, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to fetch '{adapter.source}': {result.__class__.__name__}: {result}")
                failed.append(adapter.source)
                continue
            if result is None:
                logger.warning(f"No data from '{adapter.source}' this tick")
                failed.append(adapter.source)
                continue
            payload.extend(result)
        return payload, failed

    def _is_archive_tick(self, now: int) -> tuple[bool, int]:
        last = self.store.latest_archive_timestamp() or 0
        next_archive = last + self.config.interval_seconds
        return now >= next_archive, next_archive

    async def tick(self) -> TickResult:
        """Run one fetch + persist cycle."""
        now = self._now()
        try:
            archive, next_archive = await asyncio.to_thread(self._is_archive_tick, now)
        except SQLAlchemyError as exc:
            logger.error(f"Failed to read archive state: {exc}")
            archive, next_archive = False, now

        records, failed = await self._fetch_all(archive)
        payload = dumps_payload(records)

        live_written = False
        try:
            await asyncio.to_thread(self.store.upsert_live, timestamp=now, payload=payload)
            live_written = True
            logger.info(f"Live snapshot refreshed ({len(records)} records)")
        except SQLAlchemyError as exc:
            logger.error(f"Failed to update live snapshot: {exc}")

        archived = False
        if archive:
            try:
                await asyncio.to_thread(self.store.append_archive, timestamp=now, payload=payload)
                archived = True
                logger.info("Archived snapshot")
            except SQLAlchemyError as exc:
                logger.error(f"Failed to archive snapshot: {exc}")
        else:
            minutes = max((next_archive - now) // 60, self.config.live_refresh_minutes)
            logger.info(f"Next archive in {minutes} min")

        if live_written and not self._ready:
            self._ready = True
            logger.info("Ingester ready")

        return TickResult(
            timestamp=now,
            archived=archived,
            records=len(records),
            live_written=live_written,
            failed_sources=tuple(failed),
        )

    async def run(self, max_iterations: Optional[int] = None) -> None:
        """Tick forever (or `max_iterations` times), sleeping the live refresh interval between ticks."""
        logger.info(
            f"Running - interval {self.config.interval_minutes} min, "
            f"live refresh {self.config.live_refresh_minutes} min, sources {self.registry.sources}"
        )
        self._running = True
        iteration = 0
        try:
            while max_iterations is None or iteration < max_iterations:
                await self.tick()
                iteration += 1
                if max_iterations is not None and iteration >= max_iterations:
                    break
                await asyncio.sleep(self.config.live_refresh_minutes * 60)
        finally:
            self._running = False

    def close(self) -> None:
        """Release adapter sessions and store connections."""
        for adapter in self.registry:
            try:
                adapter.close()
            except Exception as exc:
                logger.warning(f"Failed to close '{adapter.source}': {exc.__class__.__name__}: {exc}")
        self.store.dispose()

    def _normalize(self, record: Any) -> Optional[Entry]:
        if not isinstance(record, dict):
            return None
        adapter = self.registry.get(record.get("source", ""))
        if adapter is None:
            logger.debug(f"Dropping record from unknown source {record.get('source')!r}")
            return None
        try:
            return adapter.normalize(self.config, record)
        except Exception as exc:
            logger.debug(f"Dropping '{adapter.source}' record: {exc.__class__.__name__}: {exc}")
            return None

    def get(self) -> Window:
        """Normalized entries for every lookback period that has a snapshot."""
        periods = self.periods
        data: dict[str, list[Entry]] = {}
        for minutes in periods:
            snapshot = self.store.query_at_or_before(minutes)
            if snapshot is None:
                continue
            records = loads_payload(snapshot.payload)
            if not records:
                continue
            entries = [entry for entry in map(self._normalize, records) if entry]
            data[str(minutes)] = entries
        return Window(periods=periods, data=data)
