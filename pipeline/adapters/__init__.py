"""Data source adapters.

Adapters are resolved through an explicit source-name registry built from
configuration at startup; there is no dynamic module discovery.
"""

from pipeline.adapters.base import Adapter
from pipeline.adapters.coingecko import CoinGeckoAdapter
from pipeline.adapters.registry import AdapterRegistry, build_registry
from pipeline.config import PipelineConfig

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "CoinGeckoAdapter",
    "build_registry",
    "create_registry",
]

ADAPTERS = {
    "coingecko": CoinGeckoAdapter,
}


def create_registry(config: PipelineConfig) -> AdapterRegistry:
    """Registry holding one adapter per configured source, in configured order."""
    return build_registry(config, ADAPTERS)
