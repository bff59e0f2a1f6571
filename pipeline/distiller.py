"""Distiller - turns an ingester window into distilled observable rows.

For every adapter, each live (period 0) entry, optionally expanded over the
adapter's column dimension, becomes one output row. Each declared observable
is computed by building a newest-first series across the window's periods and
reducing it with a method from `pipeline.methods`.

`transform()` is pure: it never writes and holds no state between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from pipeline.adapters.registry import AdapterRegistry
from pipeline.config import PipelineConfig
from pipeline.methods import resolve
from pipeline.types import (
    AdapterParameters,
    Entry,
    EntryPredicate,
    ObservableSpec,
    Window,
)

logger = logging.getLogger(__name__)


def _matches(predicate: EntryPredicate, entry: Any) -> bool:
    # Predicates see every source's entries; one that raises is a non-match
    try:
        return bool(predicate(entry))
    except Exception as exc:
        logger.debug(f"Predicate failed: {exc.__class__.__name__}: {exc}")
        return False


@dataclass(frozen=True)
class _Locator:
    """Finds the entry (and column) describing one output row inside any period."""

    row: EntryPredicate
    col_key: Optional[str] = None
    col: Optional[EntryPredicate] = None

    def locate(self, entries: list[Entry]) -> Optional[tuple[Entry, Optional[Entry]]]:
        row = next((e for e in entries if _matches(self.row, e)), None)
        if row is None:
            return None
        if self.col is None:
            return row, None
        col = next((c for c in (row.get(self.col_key) or []) if _matches(self.col, c)), None)
        if col is None:
            return None
        return row, col


def extract_series(window: Window, spec: ObservableSpec, locator: _Locator) -> list[Any]:
    """Newest-first accessor values across the window; unmatched periods are skipped."""
    series = []
    for minutes in window.periods:
        found = locator.locate(window.entries(minutes))
        if found is None:
            continue
        row, col = found
        try:
            value = spec.accessor(row, col)
        except Exception as exc:
            logger.debug(f"Accessor failed for period {minutes}: {exc.__class__.__name__}: {exc}")
            continue
        if value is not None:
            series.append(value)

    # Two-point methods report "no change" rather than "insufficient data"
    if len(series) == 1:
        series.append(series[0])
    return series


def compute_observables(
    window: Window,
    shell: dict[str, Any],
    observables: Mapping[str, Mapping[str, ObservableSpec]],
    locator: _Locator,
    *,
    interval_minutes: int,
) -> dict[str, Any]:
    target = shell.setdefault("observables", {})
    for category, fields in observables.items():
        bucket = target.setdefault(category, {})
        for name, spec in fields.items():
            method = resolve(spec.method, interval_minutes=interval_minutes)
            bucket[name] = method(extract_series(window, spec, locator))
    return shell


class Distiller:
    """Applies adapter observable definitions to ingester windows."""

    def __init__(self, *, config: PipelineConfig, registry: AdapterRegistry):
        self.config = config
        self.registry = registry

    def _locator(self, source: str, params: AdapterParameters, row: Entry, col: Optional[Entry]) -> _Locator:
        dims = params.dimensions
        if dims.rows is not None:
            row_match = dims.rows.predicate(row)
        else:
            row_match = lambda e: e.get("source") == source  # noqa: E731

        if dims.cols is None or dims.cols.predicate is None or col is None:
            return _Locator(row=row_match)
        return _Locator(row=row_match, col_key=dims.cols.key, col=dims.cols.predicate(col))

    def transform(self, window: Window) -> list[dict[str, Any]]:
        reference = window.entries(0)
        output: list[dict[str, Any]] = []

        for source, adapter in self.registry.items():
            params = adapter.parameters
            col_key = params.dimensions.cols.key if params.dimensions.cols else None

            for row in (e for e in reference if e.get("source") == source):
                columns = (row.get(col_key) or []) if col_key else [None]
                for col in columns:
                    try:
                        shell = adapter.distill(self.config, row, col)
                        locator = self._locator(source, params, row, col)
                    except Exception as exc:
                        logger.warning(f"Failed to distill '{source}' row: {exc.__class__.__name__}: {exc}")
                        continue

                    output.append(
                        compute_observables(
                            window,
                            shell,
                            params.observables,
                            locator,
                            interval_minutes=self.config.interval_minutes,
                        )
                    )

        return output
