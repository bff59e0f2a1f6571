from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

# Normalized entries and distilled rows stay plain dicts: only adapters know their shape.
Entry = dict[str, Any]
Accessor = Callable[[Entry, Optional[Entry]], Any]
EntryPredicate = Callable[[Entry], bool]

LIVE_SNAPSHOT_ID = -1


class PipelineError(Exception):
    """Base exception for pipeline errors."""


class NotReadyError(PipelineError):
    """Raised when a read is attempted before the first completed tick."""

    def __init__(self, message: str = "Ingester not ready"):
        super().__init__(message)


@dataclass(frozen=True)
class ObservableSpec:
    """How one observable is derived: reduction method name + per-entry accessor."""

    method: str
    accessor: Accessor


@dataclass(frozen=True)
class RowDimension:
    # Given a live row, returns a matcher locating that row in any period.
    predicate: Callable[[Entry], EntryPredicate]


@dataclass(frozen=True)
class ColumnDimension:
    key: str  # Name of the sub-array inside each row (e.g. "quotes")
    predicate: Optional[Callable[[Entry], EntryPredicate]] = None


@dataclass(frozen=True)
class Dimensions:
    rows: Optional[RowDimension] = None
    cols: Optional[ColumnDimension] = None


@dataclass(frozen=True)
class AdapterParameters:
    """Observable definitions and dimension predicates declared by an adapter."""

    observables: Mapping[str, Mapping[str, ObservableSpec]] = field(default_factory=dict)
    dimensions: Dimensions = field(default_factory=Dimensions)


@dataclass(frozen=True)
class Snapshot:
    id: int
    timestamp: int  # Unix seconds
    payload: str  # Opaque JSON text (list of raw adapter records)

    @property
    def is_live(self) -> bool:
        return self.id == LIVE_SNAPSHOT_ID


@dataclass(frozen=True)
class Window:
    """Normalized entries per lookback period, keyed by str(minutes). Sparse."""

    periods: list[int]
    data: dict[str, list[Entry]]

    def entries(self, period: int) -> list[Entry]:
        return self.data.get(str(period), [])

    def to_dict(self) -> dict[str, Any]:
        return {"periods": list(self.periods), "data": self.data}


@dataclass(frozen=True)
class TickResult:
    timestamp: int
    archived: bool
    records: int
    live_written: bool
    failed_sources: tuple[str, ...] = ()
