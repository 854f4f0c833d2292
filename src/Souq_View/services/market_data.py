"""Pass-through market data endpoints for the stock detail screens.

Profile, candles, financials, technicals, insider transactions, news and
sentiment are served by the backend as opaque JSON. This service fetches
them through the shared ``BackendClient``, narrows the few shapes the screens
depend on (profile, candles, key statistics), and caches results via
``ServiceCache``.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
import math
from collections.abc import Mapping
from typing import Any, Final, Literal

from Souq_View.models.market_data import HistoricalCandle, OverviewInsight, StockDetails
from Souq_View.services._helpers import coerce_number, finite_number
from Souq_View.services.cache import (
    DATA_TYPE_FINANCIALS,
    DATA_TYPE_HISTORICAL,
    DATA_TYPE_INSIDERS,
    DATA_TYPE_NEWS,
    DATA_TYPE_PROFILE,
    DATA_TYPE_SENTIMENT,
    DATA_TYPE_TECHNICALS,
    ServiceCache,
)
from Souq_View.services.http_client import BackendClient
from Souq_View.utils.exceptions import DataFetchError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_INTERVAL: Final[str] = "1day"
DEFAULT_TIMEFRAME: Final[str] = "5min"

CANDLE_LIST_KEYS: Final[tuple[str, ...]] = ("data", "values", "candles")
EXECUTIVE_KEYS: Final[tuple[str, ...]] = ("executives", "officers", "key_executives", "management")

# statistics field -> candidate keys on the quote, by precedence
STATISTIC_FALLBACKS: Final[dict[str, tuple[str, ...]]] = {
    "market_cap": ("market_cap", "market_capitalization"),
    "pe": ("pe", "pe_ratio"),
    "volume": ("volume", "average_volume"),
}

FinancialsPeriod = Literal["quarterly", "annual"]


class MarketDataService:
    """Async access to the backend's per-symbol detail endpoints.

    Usage::

        service = MarketDataService(client=backend_client, cache=ServiceCache())
        details = await service.get_stock_details("AAPL")
        news = await service.get_news("AAPL")
    """

    def __init__(self, client: BackendClient, cache: ServiceCache) -> None:
        self._client = client
        self._cache = cache

    # ------------------------------------------------------------------
    # Narrowed endpoints
    # ------------------------------------------------------------------

    async def get_stock_profile(self, symbol: str) -> dict[str, Any] | None:
        """Fetch the company profile, or None when unavailable.

        The backend may wrap the profile under ``data``; failures are logged
        and reported as None because the profile is decorative.
        """
        symbol = symbol.upper().strip()
        try:
            raw = await self._cached_get(
                DATA_TYPE_PROFILE, symbol, "/stock/profile", {"symbol": symbol}
            )
        except DataFetchError as exc:
            logger.warning("Profile unavailable for %s: %s", symbol, exc)
            return None
        if isinstance(raw, Mapping) and "data" in raw:
            raw = raw["data"]
        return dict(raw) if isinstance(raw, Mapping) else None

    async def get_stock_detail(self, symbol: str) -> dict[str, Any]:
        """Fetch stock-detail and merge the standalone profile into it.

        Raises:
            DataFetchError: When the stock-detail request fails.
        """
        symbol = symbol.upper().strip()
        detail_raw, profile = await asyncio.gather(
            self._client.get_json(
                "/stock/stock-detail", {"symbol": symbol}, label=f"stock-detail({symbol})"
            ),
            self.get_stock_profile(symbol),
        )
        if isinstance(detail_raw, Mapping) and "data" in detail_raw:
            detail_raw = detail_raw["data"]
        detail = dict(detail_raw) if isinstance(detail_raw, Mapping) else {}

        existing = detail.get("profile")
        merged_profile = {**(existing if isinstance(existing, Mapping) else {}), **(profile or {})}
        detail["profile"] = normalize_profile(merged_profile) or merged_profile
        return detail

    async def get_stock_details(self, symbol: str) -> StockDetails:
        """Everything the detail screen needs: detail, quote, profile, candles.

        Raises:
            DataFetchError: When the stock-detail request fails.
        """
        detail, candles = await asyncio.gather(
            self.get_stock_detail(symbol),
            self.get_historical(symbol, DEFAULT_INTERVAL),
        )
        quote_raw = detail.get("quote", detail)
        quote = dict(quote_raw) if isinstance(quote_raw, Mapping) else None
        detail["statistics"] = merge_statistics(detail.get("statistics"), quote or {})
        profile = detail.get("profile")
        return StockDetails(
            detail=detail,
            quote=quote,
            profile=dict(profile) if isinstance(profile, Mapping) else None,
            historical=candles,
        )

    async def get_historical(
        self,
        symbol: str,
        interval: str = DEFAULT_INTERVAL,
        outputsize: str | None = None,
    ) -> list[HistoricalCandle]:
        """Fetch chart candles; failures yield an empty chart."""
        symbol = symbol.upper().strip()
        try:
            raw = await self._cached_get(
                DATA_TYPE_HISTORICAL,
                f"{symbol}:{interval}:{outputsize or ''}",
                "/stock/historical",
                {"symbol": symbol, "interval": interval, "outputsize": outputsize},
            )
        except DataFetchError as exc:
            logger.warning("Historical data unavailable for %s: %s", symbol, exc)
            return []
        return normalize_historical(raw)

    async def get_overview_insight(
        self,
        symbol: str,
        *,
        quote: object = None,
        news: object = None,
    ) -> OverviewInsight:
        """Ask the backend's AI route for the overview summary (not cached)."""
        body: dict[str, Any] = {"symbol": symbol.upper().strip()}
        if quote is not None or news is not None:
            body.update({"quote": quote, "news": news})
        raw = await self._client.post_json("/ai/overview-insight", body, label="overview-insight")
        if not isinstance(raw, Mapping):
            return OverviewInsight()
        return OverviewInsight.model_validate(raw)

    # ------------------------------------------------------------------
    # Opaque endpoints (raise DataFetchError on failure)
    # ------------------------------------------------------------------

    async def get_financials(
        self,
        symbol: str,
        period: FinancialsPeriod = "quarterly",
        fiscal_date: str | None = None,
    ) -> Any:
        symbol = symbol.upper().strip()
        return await self._cached_get(
            DATA_TYPE_FINANCIALS,
            f"{symbol}:{period}:{fiscal_date or ''}",
            "/stock/financials",
            {"symbol": symbol, "type": period, "fiscal_date": fiscal_date},
        )

    async def get_insider_transactions(self, symbol: str) -> Any:
        symbol = symbol.upper().strip()
        return await self._cached_get(
            DATA_TYPE_INSIDERS, symbol, f"/stock/insider-transactions/{symbol}", None
        )

    async def get_technicals(self, symbol: str, timeframe: str = DEFAULT_TIMEFRAME) -> Any:
        symbol = symbol.upper().strip()
        return await self._cached_get(
            DATA_TYPE_TECHNICALS,
            f"{symbol}:{timeframe}",
            "/stock/technicals",
            {"symbol": symbol, "timeframe": timeframe},
        )

    async def get_news(self, ticker: str) -> Any:
        ticker = ticker.upper().strip()
        return await self._cached_get(DATA_TYPE_NEWS, ticker, f"/news/stock/{ticker}", None)

    async def get_sentiment(self, symbol: str) -> Any:
        symbol = symbol.upper().strip()
        return await self._cached_get(DATA_TYPE_SENTIMENT, symbol, f"/sentiment/{symbol}", None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _cached_get(
        self,
        data_type: str,
        key_suffix: str,
        path: str,
        params: Mapping[str, Any] | None,
    ) -> Any:
        """Cache-first GET; only successful responses are stored."""
        cache_key = f"api:{data_type}:{key_suffix}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return json.loads(cached)

        raw = await self._client.get_json(path, params, label=f"{data_type}({key_suffix})")
        await self._cache.set(cache_key, json.dumps(raw), self._cache.get_ttl(data_type))
        return raw


# ---------------------------------------------------------------------------
# Shape narrowing
# ---------------------------------------------------------------------------


def normalize_profile(profile: object) -> dict[str, Any] | None:
    """Give the profile a text ``description`` and a list of ``executives``."""
    if not isinstance(profile, Mapping):
        return None

    description = profile.get("description")
    summary = profile.get("longBusinessSummary")
    if isinstance(description, str) and description:
        text = description
    elif isinstance(summary, str) and summary:
        text = summary
    elif isinstance(description, Mapping) and isinstance(description.get("en"), str):
        text = description["en"]
    else:
        text = ""

    executives_raw = next(
        (profile[key] for key in EXECUTIVE_KEYS if profile.get(key) is not None), None
    )
    if isinstance(executives_raw, list):
        executives = executives_raw
    elif isinstance(executives_raw, Mapping):
        executives = list(executives_raw.values())
    else:
        executives = []

    return {**profile, "description": text or description, "executives": executives}


def normalize_historical(raw: object) -> list[HistoricalCandle]:
    """Narrow any candle payload to chart candles, dropping rows without a close."""
    rows: object = []
    if isinstance(raw, list):
        rows = raw
    elif isinstance(raw, Mapping):
        rows = next((raw[key] for key in CANDLE_LIST_KEYS if isinstance(raw.get(key), list)), [])

    candles: list[HistoricalCandle] = []
    for row in rows if isinstance(rows, list) else []:
        if not isinstance(row, Mapping):
            continue
        close = coerce_number(_first_present(row, "close", "c"))
        if not math.isfinite(close):
            continue
        stamp = row.get("datetime")
        candles.append(
            HistoricalCandle(
                time=_candle_time(_first_present(row, "time", "timestamp"), stamp),
                datetime=stamp if isinstance(stamp, str) else None,
                open=coerce_number(_first_present(row, "open", "o")),
                high=coerce_number(_first_present(row, "high", "h")),
                low=coerce_number(_first_present(row, "low", "l")),
                close=close,
                volume=finite_number(row.get("volume")),
            )
        )
    return candles


def merge_statistics(statistics: object, quote: Mapping[str, Any]) -> dict[str, Any]:
    """Fill missing key statistics from the quote object."""
    stats = dict(statistics) if isinstance(statistics, Mapping) else {}
    for field, candidates in STATISTIC_FALLBACKS.items():
        if stats.get(field) is None:
            stats[field] = next((quote[k] for k in candidates if quote.get(k) is not None), None)

    week52 = quote.get("fifty_two_week")
    week52 = week52 if isinstance(week52, Mapping) else {}
    if stats.get("fiftyTwoWeekHigh") is None:
        stats["fiftyTwoWeekHigh"] = _first_present(quote, "fifty_two_week_high") or week52.get("high")
    if stats.get("fiftyTwoWeekLow") is None:
        stats["fiftyTwoWeekLow"] = _first_present(quote, "fifty_two_week_low") or week52.get("low")
    return stats


def _first_present(row: Mapping[str, Any], *keys: str) -> object:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _candle_time(raw_time: object, stamp: object) -> float:
    """Epoch seconds from a numeric time, else from an ISO datetime, else 0."""
    number = finite_number(raw_time)
    if number is not None:
        return number
    if isinstance(stamp, str):
        try:
            parsed = datetime.datetime.fromisoformat(stamp)
        except ValueError:
            return 0.0
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.UTC)
        return parsed.timestamp()
    return 0.0
