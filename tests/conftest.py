"""Shared test fixtures for pytest.

Provides a temp-file snapshot store, a controllable clock, and fake adapters
used across the ingester, distiller and API tests.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from pipeline.adapters.base import Adapter
from pipeline.adapters.registry import AdapterRegistry
from pipeline.config import PipelineConfig
from pipeline.ingester import Ingester
from pipeline.storage import SqlSnapshotStore, StoreConfig
from pipeline.types import (
    AdapterParameters,
    ColumnDimension,
    Dimensions,
    ObservableSpec,
    RowDimension,
)

BASE_TS = 1_700_000_000


class FakeClock:
    """Manually advanced Unix clock (seconds)."""

    def __init__(self, now: float = BASE_TS) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdapter(Adapter):
    """In-memory adapter.

    Records carry `id` and `value`; with `col_key` set, rows hold a list of
    `{"name", "value"}` columns under that key and observables read the column.
    """

    def __init__(
        self,
        source: str = "fake",
        records: Optional[list[dict[str, Any]]] = None,
        *,
        error: Optional[Exception] = None,
        col_key: Optional[str] = None,
        observables: Optional[dict[str, dict[str, ObservableSpec]]] = None,
    ) -> None:
        self.source = source
        self.records = records
        self.error = error
        self.col_key = col_key
        self.fetch_calls: list[bool] = []
        self._observables = observables

    async def fetch(self, config: PipelineConfig, archive: bool) -> Optional[list[dict[str, Any]]]:
        self.fetch_calls.append(archive)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.records)

    def normalize(self, config: PipelineConfig, record: dict[str, Any]) -> dict[str, Any]:
        if "id" not in record:
            raise KeyError("id")
        return dict(record)

    def distill(self, config: PipelineConfig, row: dict[str, Any], col: Optional[dict[str, Any]]) -> dict[str, Any]:
        return {
            "source": row["source"],
            "id": row["id"],
            "col": col["name"] if col else None,
            "observables": {},
        }

    @property
    def parameters(self) -> AdapterParameters:
        if self.col_key:
            value = lambda row, col: col["value"]  # noqa: E731
        else:
            value = lambda row, col: row.get("value")  # noqa: E731

        observables = self._observables or {
            "metrics": {
                "value": ObservableSpec("raw", value),
                "trend": ObservableSpec("slope", value),
                "rate": ObservableSpec("rate", value),
                "streak": ObservableSpec("streak", value),
                "total": ObservableSpec("sum", value),
            }
        }
        source = self.source
        cols = None
        if self.col_key:
            cols = ColumnDimension(
                key=self.col_key,
                predicate=lambda col: (lambda c: c.get("name") == col["name"]),
            )
        return AdapterParameters(
            observables=observables,
            dimensions=Dimensions(
                rows=RowDimension(
                    predicate=lambda row: (lambda e: e.get("source") == source and e.get("id") == row["id"])
                ),
                cols=cols,
            ),
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> SqlSnapshotStore:
    """Initialized SQLite snapshot store in a temp file."""
    store = SqlSnapshotStore(config=StoreConfig(database_url=f"sqlite:///{tmp_path / 'snapshots.db'}"))
    store.initialize()
    yield store
    store.dispose()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(interval_minutes=60, live_refresh_minutes=1, periods=4, sources=())


@pytest.fixture
def make_adapter() -> Callable[..., FakeAdapter]:
    return FakeAdapter


@pytest.fixture
def make_ingester(
    store: SqlSnapshotStore, clock: FakeClock, pipeline_config: PipelineConfig
) -> Callable[..., Ingester]:
    def _make(*adapters: Adapter, config: Optional[PipelineConfig] = None) -> Ingester:
        return Ingester(
            config=config or pipeline_config,
            registry=AdapterRegistry(list(adapters)),
            store=store,
            clock=clock,
        )

    return _make
