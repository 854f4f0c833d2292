"""Decoder from arbitrary upstream snapshot JSON to canonical ``MarketItem``.

The upstream provider is not under our control: the same logical field shows
up under different names, at the top level or nested under ``quote`` or
``data``. Resolution is table-driven: each logical field has an ordered tuple
of candidate keys, and every lookup walks the ordered tuple of source
containers. Adding a new alias is a one-line change to a table.

``normalize_snapshot_item`` is total: it never raises and always returns a
fully typed ``MarketItem``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any, Final

from Souq_View.models.market_data import PLACEHOLDER, ZERO_PERCENT, MarketItem
from Souq_View.services._helpers import clean_text, coerce_number, finite_number

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Field candidate tables (ordered by precedence)
# ---------------------------------------------------------------------------

SYMBOL_KEYS: Final[tuple[str, ...]] = (
    "symbol",
    "ticker",
    "Symbol",
    "Ticker",
    "code",
    "instrument",
    "stock_symbol",
    "symbol_id",
    "ticker_symbol",
)
SYMBOL_KEY_NAMES_CASELESS: Final[frozenset[str]] = frozenset({"symbol", "ticker"})

NAME_KEYS: Final[tuple[str, ...]] = ("name", "Name")

PRICE_KEYS: Final[tuple[str, ...]] = (
    "lastPrice",
    "price",
    "close",
    "current_price",
    "previous_close",
    "last",
)

PERCENT_KEYS: Final[tuple[str, ...]] = (
    "percentChange",
    "percent_change",
    "changesPercentage",
    "change_pct",
    "change_percent",
    "change",
    "pct_change",
)

LAST_CLOSE_KEYS: Final[tuple[str, ...]] = ("lastClose", "previous_close")

# Containers searched for nested fields, after the object itself
NESTED_SOURCES: Final[tuple[str, ...]] = ("quote", "data")

# Prices below this threshold get four fractional digits
SUB_UNIT_PRICE: Final[float] = 1.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_snapshot_item(raw: object) -> MarketItem:
    """Convert one upstream object into a canonical ``MarketItem``.

    Non-mapping input yields a placeholder item rather than an error.
    """
    if not isinstance(raw, Mapping):
        return MarketItem(symbol=PLACEHOLDER, name=PLACEHOLDER, last_price=PLACEHOLDER)

    sources = _sources(raw)
    name = _display_name(raw)
    resolved = resolve_symbol(sources)
    if not resolved:
        logger.debug("Normalization breach: no symbol/ticker in %r", raw)
    symbol = (resolved or name).upper().strip() or PLACEHOLDER

    price = coerce_number(_first_value(sources, PRICE_KEYS))
    percent = coerce_number(_first_value(sources, PERCENT_KEYS))

    image = raw.get("image")
    summary = raw.get("summary")
    return MarketItem(
        symbol=symbol,
        name=name or symbol,
        last_price=format_price(price),
        percent_change=format_percent(percent),
        last_close=_first_finite(raw, LAST_CLOSE_KEYS),
        image=image if isinstance(image, str) else None,
        summary=_summary(summary),
    )


def resolve_symbol(sources: tuple[Mapping[str, Any], ...]) -> str:
    """Resolve the ticker from the ordered source containers, ``""`` if absent.

    Each container is tried with the explicit key list first, then with a
    case-insensitive scan for ``symbol``/``ticker``.
    """
    for source in sources:
        explicit = _first_text(source, SYMBOL_KEYS)
        if explicit:
            return explicit
        for key, value in source.items():
            if isinstance(key, str) and key.lower() in SYMBOL_KEY_NAMES_CASELESS:
                text = _scalar_text(value)
                if text:
                    return text
    return ""


def format_price(value: float) -> str:
    """Format a price with 2 decimals, or 4 below one unit; ``"—"`` if not finite."""
    if not math.isfinite(value):
        return PLACEHOLDER
    if value >= SUB_UNIT_PRICE:
        return f"{value:.2f}"
    return f"{value:.4f}"


def format_percent(value: float) -> str:
    """Format a percent change with 2 decimals; ``"0.00"`` if not finite."""
    if not math.isfinite(value):
        return ZERO_PERCENT
    return f"{value:.2f}"


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def _sources(raw: Mapping[str, Any]) -> tuple[Mapping[str, Any], ...]:
    """The object itself followed by its nested containers that are mappings."""
    nested = tuple(
        raw[key] for key in NESTED_SOURCES if isinstance(raw.get(key), Mapping)
    )
    return (raw, *nested)


def _first_value(sources: tuple[Mapping[str, Any], ...], keys: tuple[str, ...]) -> object:
    """First non-null value for *keys*, searching each source in order."""
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value is not None:
                return value
    return None


def _first_text(source: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        text = _scalar_text(source.get(key))
        if text:
            return text
    return ""


def _first_finite(source: Mapping[str, Any], keys: tuple[str, ...]) -> float | None:
    for key in keys:
        number = finite_number(source.get(key))
        if number is not None:
            return number
    return None


def _scalar_text(value: object) -> str:
    """Trimmed text of a string or number; containers and booleans give ``""``."""
    if isinstance(value, bool) or not isinstance(value, str | int | float):
        return ""
    return clean_text(value)


def _display_name(raw: Mapping[str, Any]) -> str:
    for key in NAME_KEYS:
        value = raw.get(key)
        if value is not None:
            return value.strip() if isinstance(value, str) else ""
    return ""


def _summary(value: object) -> dict[str, Any] | None:
    if not isinstance(value, Mapping):
        return None
    return {str(key): item for key, item in value.items()}
