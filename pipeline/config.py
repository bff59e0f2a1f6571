"""Pipeline configuration.

Values come from the environment (see `PipelineConfig.from_env`). Invalid values
raise ValueError at startup; there is no silent fallback for a bad setting.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

DEFAULT_SOURCES = ("coingecko",)


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_list(env: Mapping[str, str], name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = env.get(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for ingestion and distillation."""

    # Archive interval; also the spacing between lookback periods
    interval_minutes: int = 60

    # Live slot refresh interval
    live_refresh_minutes: int = 1

    # Number of lookback periods (24 with interval=60 covers one day)
    periods: int = 24

    # Adapter source names, in fetch/payload order
    sources: tuple[str, ...] = DEFAULT_SOURCES

    # Per-source adapter settings, keyed by source name
    settings: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.interval_minutes < 1:
            raise ValueError(f"interval_minutes must be >= 1, got {self.interval_minutes}")
        if self.live_refresh_minutes < 1:
            raise ValueError(f"live_refresh_minutes must be >= 1, got {self.live_refresh_minutes}")
        if self.periods < 1:
            raise ValueError(f"periods must be >= 1, got {self.periods}")
        if len(set(self.sources)) != len(self.sources):
            raise ValueError(f"duplicate source names in {self.sources}")

    @property
    def interval_seconds(self) -> int:
        return self.interval_minutes * 60

    def settings_for(self, source: str) -> Mapping[str, Any]:
        return self.settings.get(source, {})

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        env = os.environ if env is None else env
        return cls(
            interval_minutes=_env_int(env, "PIPELINE_INTERVAL_MINUTES", 60),
            live_refresh_minutes=_env_int(env, "PIPELINE_LIVE_REFRESH_MINUTES", 1),
            periods=_env_int(env, "PIPELINE_PERIODS", 24),
            sources=_env_list(env, "PIPELINE_SOURCES", DEFAULT_SOURCES),
            settings={
                "coingecko": {
                    "ids": list(_env_list(env, "COINGECKO_IDS", ("bitcoin", "ethereum"))),
                    "vs_currencies": list(_env_list(env, "COINGECKO_VS_CURRENCIES", ("usd",))),
                },
            },
        )
