"""Deterministic placeholder watchlist used when live data is unusable.

The placeholder set is all-or-nothing: it is never mixed with partial live
data, so a consumer can tell from ``from_fallback`` alone that no price on
screen is real.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from Souq_View.models.market_data import PLACEHOLDER, ZERO_PERCENT, MarketItem, SnapshotResult
from Souq_View.services.symbols import DEFAULT_US_WATCHLIST_SYMBOLS

PLACEHOLDER_COUNT: Final[int] = 10


def build_placeholder_items(
    symbols: Sequence[str] = DEFAULT_US_WATCHLIST_SYMBOLS,
) -> list[MarketItem]:
    """Map the first ten *symbols* to price-less placeholder items."""
    return [
        MarketItem(
            symbol=symbol,
            name=symbol,
            last_price=PLACEHOLDER,
            percent_change=ZERO_PERCENT,
        )
        for symbol in symbols[:PLACEHOLDER_COUNT]
    ]


def fallback_result(
    symbols: Sequence[str] = DEFAULT_US_WATCHLIST_SYMBOLS,
) -> SnapshotResult:
    """Generic fallback: the placeholder set flagged ``from_fallback``."""
    return SnapshotResult(items=build_placeholder_items(symbols), from_fallback=True)


def upstream_failed_result() -> SnapshotResult:
    """HTTP 502 fallback: no items, so the consumer shows "data source down"."""
    return SnapshotResult(items=[], from_fallback=True, error_502=True)
