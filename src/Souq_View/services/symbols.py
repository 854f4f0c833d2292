"""Supported instrument universe: US equities on NASDAQ/NYSE only.

Crypto pairs and listings on the excluded Gulf exchanges (ADX, DFM) are
dropped before anything reaches a consumer.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Final, Protocol, TypeVar

DEFAULT_US_WATCHLIST_SYMBOLS: Final[tuple[str, ...]] = (
    "AAPL",
    "TSLA",
    "NVDA",
    "SPY",
    "MSFT",
    "GOOGL",
    "AMZN",
    "META",
    "AMD",
    "JPM",
)

MAX_BATCH_SYMBOLS: Final[int] = 30

EXCLUDED_EXCHANGES: Final[tuple[str, ...]] = ("ADX", "DFM", "XDFM")

_CRYPTO_OR_NON_US: Final[re.Pattern[str]] = re.compile(
    r"^(BTC|ETH|DOGE|XRP|ADA|SOL|USDT|USDC|\.XDFM|:XDFM|:ADX)",
    re.IGNORECASE,
)


class HasSymbol(Protocol):
    symbol: str


def symbol_of(item: HasSymbol | Mapping[str, object]) -> str:
    """Read the ``symbol`` of a mapping or an object, ``""`` when absent."""
    raw = item.get("symbol") if isinstance(item, Mapping) else getattr(item, "symbol", None)
    return "" if raw is None else str(raw)


def is_supported_symbol(symbol: str) -> bool:
    """Return True when *symbol* belongs to the supported US universe."""
    upper = symbol.upper()
    if _CRYPTO_OR_NON_US.search(upper):
        return False
    return not any(exchange in upper for exchange in EXCLUDED_EXCHANGES)


T = TypeVar("T", bound="HasSymbol | Mapping[str, object]")


def filter_us_stocks_only(items: Iterable[T]) -> list[T]:
    """Keep only supported symbols, preserving order; the input is not mutated.

    Items with a missing or blank symbol are kept: the exclusion rules only
    drop symbols that match a crypto or Gulf-exchange pattern.
    """
    return [item for item in items if is_supported_symbol(symbol_of(item))]


def prepare_batch(symbols: Sequence[str], limit: int = MAX_BATCH_SYMBOLS) -> list[str]:
    """Clean a symbol list for one batched request.

    Blank entries are dropped, the rest uppercased and de-duplicated in
    order, and the list is capped at *limit*.
    """
    seen: set[str] = set()
    batch: list[str] = []
    for raw in symbols:
        symbol = (raw or "").strip().upper()
        if not symbol or symbol in seen:
            continue
        seen.add(symbol)
        batch.append(symbol)
        if len(batch) >= limit:
            break
    return batch
