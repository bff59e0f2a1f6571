"""CoinGecko spot price adapter.

Uses the free tier `/simple/price` endpoint (no API key required).
Rate limit: 10-30 calls/minute on free tier, well above one call per tick.

One raw record per coin, with one quote per configured vs-currency. Rows are
coins and columns are quotes, so every (coin, currency) pair becomes one
distilled row exposing:
  - price: latest value, relative trend (slope), log return and per-second rate
  - volume: latest 24h volume and its trend
  - feed: periods without a new upstream update (streak) and staleness in seconds
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Literal, Optional

import requests
from pydantic import BaseModel, Field

from pipeline.adapters.base import Adapter
from pipeline.config import PipelineConfig
from pipeline.types import (
    AdapterParameters,
    ColumnDimension,
    Dimensions,
    Entry,
    ObservableSpec,
    RowDimension,
)

logger = logging.getLogger(__name__)

SOURCE = "coingecko"


class CoinQuote(BaseModel):
    currency: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    market_cap: Optional[float] = None
    volume_24h: Optional[float] = None
    change_24h: Optional[float] = None


class CoinRecord(BaseModel):
    source: Literal["coingecko"]
    id: str = Field(..., min_length=1)
    last_updated_at: int = Field(..., ge=0)
    quotes: list[CoinQuote]


class CoinGeckoAdapter(Adapter):
    """Adapter for CoinGecko simple prices (free tier, no API key)."""

    source = SOURCE

    BASE_URL = "https://api.coingecko.com/api/v3"
    DEFAULT_TIMEOUT = 10  # seconds

    def __init__(self, *, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "snapshot-pipeline/1.0",
        })

    async def fetch(self, config: PipelineConfig, archive: bool) -> Optional[list[dict[str, Any]]]:
        settings = config.settings_for(self.source)
        ids = [str(i) for i in settings.get("ids", [])]
        currencies = [str(c).lower() for c in settings.get("vs_currencies", ["usd"])]
        if not ids:
            logger.warning("No CoinGecko ids configured")
            return None
        return await asyncio.to_thread(self.fetch_prices, ids=ids, vs_currencies=currencies)

    def fetch_prices(self, *, ids: list[str], vs_currencies: list[str]) -> list[dict[str, Any]]:
        """Fetch spot prices for `ids` quoted in each of `vs_currencies`.

        Returns:
            One raw record per coin present in the response

        Raises:
            RuntimeError: If the API request fails or returns an unexpected shape
        """
        url = f"{self.BASE_URL}/simple/price"
        params = {
            "ids": ",".join(ids),
            "vs_currencies": ",".join(vs_currencies),
            "include_market_cap": "true",
            "include_24hr_vol": "true",
            "include_24hr_change": "true",
            "include_last_updated_at": "true",
        }

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise RuntimeError(f"CoinGecko API request failed: {exc}") from exc

        if not isinstance(data, dict):
            raise RuntimeError(f"Unexpected response format: {type(data)}")

        records = []
        for coin_id in ids:
            coin = data.get(coin_id)
            if not isinstance(coin, dict):
                continue

            quotes = []
            for currency in vs_currencies:
                price = coin.get(currency)
                if price is None:
                    continue
                quotes.append({
                    "currency": currency,
                    "price": float(price),
                    "market_cap": coin.get(f"{currency}_market_cap"),
                    "volume_24h": coin.get(f"{currency}_24h_vol"),
                    "change_24h": coin.get(f"{currency}_24h_change"),
                })

            if not quotes:
                continue

            records.append({
                "source": self.source,
                "id": coin_id,
                "last_updated_at": int(coin.get("last_updated_at") or time.time()),
                "quotes": quotes,
            })

        return records

    def normalize(self, config: PipelineConfig, record: dict[str, Any]) -> Entry:
        return CoinRecord.model_validate(record).model_dump()

    def distill(self, config: PipelineConfig, row: Entry, col: Optional[Entry]) -> dict[str, Any]:
        return {
            "source": row["source"],
            "id": row["id"],
            "currency": col["currency"] if col else None,
            "observables": {},
        }

    @property
    def parameters(self) -> AdapterParameters:
        return AdapterParameters(
            observables={
                "price": {
                    "value": ObservableSpec("raw", lambda row, col: col["price"]),
                    "slope": ObservableSpec("slope", lambda row, col: col["price"]),
                    "lret": ObservableSpec("lret", lambda row, col: col["price"]),
                    "rate": ObservableSpec("rate", lambda row, col: col["price"]),
                },
                "volume": {
                    "value": ObservableSpec("raw", lambda row, col: col["volume_24h"]),
                    "slope": ObservableSpec("slope", lambda row, col: col["volume_24h"]),
                },
                "feed": {
                    "unchanged": ObservableSpec("streak", lambda row, col: row["last_updated_at"]),
                    "freshness": ObservableSpec(
                        "raw", lambda row, col: max(0, int(time.time()) - row["last_updated_at"])
                    ),
                },
            },
            dimensions=Dimensions(
                rows=RowDimension(
                    predicate=lambda row: (
                        lambda e: e.get("source") == SOURCE and e.get("id") == row["id"]
                    )
                ),
                cols=ColumnDimension(
                    key="quotes",
                    predicate=lambda col: (lambda c: c.get("currency") == col["currency"]),
                ),
            ),
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
