"""Base adapter interface for data sources.

An adapter owns one `source` name and must provide:
- fetch(): retrieve raw records for this tick (None or an exception = no data)
- normalize(): validate one stored raw record into the entry shape the distiller reads
- distill(): build the identity shell of one output row for a (row, col) pair
- parameters: observable definitions and dimension predicates
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from pipeline.config import PipelineConfig
from pipeline.types import AdapterParameters, Entry


class Adapter(ABC):
    source: str = ""

    @abstractmethod
    async def fetch(self, config: PipelineConfig, archive: bool) -> Optional[list[dict[str, Any]]]:
        """Fetch raw records. `archive` is True when this tick will also be archived."""

    @abstractmethod
    def normalize(self, config: PipelineConfig, record: dict[str, Any]) -> Entry:
        """Validate and reshape one raw record. Raise to drop it."""

    @abstractmethod
    def distill(self, config: PipelineConfig, row: Entry, col: Optional[Entry]) -> dict[str, Any]:
        """Return identity fields plus an empty `observables` mapping."""

    @property
    @abstractmethod
    def parameters(self) -> AdapterParameters:
        """Observable definitions and dimensions."""

    def close(self) -> None:
        """Release held resources (HTTP sessions). No-op by default."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source={self.source!r})"
