"""Tests for the adapter registry and source factory."""

from __future__ import annotations

import pytest

from pipeline.adapters import ADAPTERS, CoinGeckoAdapter, create_registry
from pipeline.adapters.registry import AdapterRegistry, build_registry
from pipeline.config import PipelineConfig


def test_registry_preserves_order(make_adapter):
    registry = AdapterRegistry([make_adapter("b"), make_adapter("a")])

    assert registry.sources == ["b", "a"]
    assert [a.source for a in registry] == ["b", "a"]
    assert len(registry) == 2
    assert "a" in registry
    assert registry.get("missing") is None


def test_registry_rejects_duplicates(make_adapter):
    registry = AdapterRegistry([make_adapter("a")])

    with pytest.raises(ValueError, match="Duplicate adapter source: a"):
        registry.register(make_adapter("a"))


def test_registry_rejects_non_adapters():
    with pytest.raises(ValueError, match="must extend Adapter"):
        AdapterRegistry([object()])


def test_registry_rejects_empty_source(make_adapter):
    with pytest.raises(ValueError, match="no source name"):
        AdapterRegistry([make_adapter("")])


def test_build_registry_unknown_source():
    config = PipelineConfig(sources=("coingecko", "nope"))

    with pytest.raises(ValueError, match="Unsupported source: nope"):
        build_registry(config, ADAPTERS)


def test_build_registry_source_mismatch(make_adapter):
    config = PipelineConfig(sources=("alpha",))

    with pytest.raises(ValueError, match="reports source 'beta'"):
        build_registry(config, {"alpha": lambda: make_adapter("beta")})


def test_build_registry_uses_configured_order(make_adapter):
    config = PipelineConfig(sources=("y", "x"))
    factories = {"x": lambda: make_adapter("x"), "y": lambda: make_adapter("y")}

    assert build_registry(config, factories).sources == ["y", "x"]


def test_create_registry_default_sources():
    registry = create_registry(PipelineConfig())

    assert registry.sources == ["coingecko"]
    assert isinstance(registry.get("coingecko"), CoinGeckoAdapter)
