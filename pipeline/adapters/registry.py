from __future__ import annotations

from typing import Callable, Iterator, Mapping, Optional

from pipeline.adapters.base import Adapter
from pipeline.config import PipelineConfig


class AdapterRegistry:
    """Source name -> adapter, in registration (fetch/payload) order."""

    def __init__(self, adapters: Optional[list[Adapter]] = None) -> None:
        self._adapters: dict[str, Adapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: Adapter) -> None:
        if not isinstance(adapter, Adapter):
            raise ValueError(f"{type(adapter).__name__} must extend Adapter")
        if not adapter.source:
            raise ValueError(f"{type(adapter).__name__} has no source name")
        if adapter.source in self._adapters:
            raise ValueError(f"Duplicate adapter source: {adapter.source}")
        self._adapters[adapter.source] = adapter

    def get(self, source: str) -> Optional[Adapter]:
        return self._adapters.get(source)

    @property
    def sources(self) -> list[str]:
        return list(self._adapters)

    def items(self) -> list[tuple[str, Adapter]]:
        return list(self._adapters.items())

    def __iter__(self) -> Iterator[Adapter]:
        return iter(list(self._adapters.values()))

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, source: object) -> bool:
        return source in self._adapters


def build_registry(
    config: PipelineConfig,
    factories: Mapping[str, Callable[[], Adapter]],
) -> AdapterRegistry:
    """Instantiate the adapters named in `config.sources`.

    Raises:
        ValueError: If a configured source has no factory
    """
    registry = AdapterRegistry()
    for name in config.sources:
        factory = factories.get(name)
        if factory is None:
            raise ValueError(f"Unsupported source: {name}. Supported: {', '.join(factories)}")
        adapter = factory()
        if adapter.source != name:
            raise ValueError(f"Adapter for {name!r} reports source {adapter.source!r}")
        registry.register(adapter)
    return registry
