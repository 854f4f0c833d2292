"""Tests for the snapshot shape normalizer.

Covers:
- Symbol resolution across alias keys, nested quote/data, and case-insensitive keys
- Name fallback when no symbol key exists
- Price formatting: 2 decimals at or above 1, 4 decimals below 1
- Unparseable or missing percent change renders "0.00"
- Totality on hostile input (non-mappings, containers as values, NaN strings)
"""

from __future__ import annotations

import math

import pytest

from Souq_View.models import PLACEHOLDER, MarketItem
from Souq_View.services.normalizer import (
    format_percent,
    format_price,
    normalize_snapshot_item,
    resolve_symbol,
)


class TestSymbolResolution:
    """Tests for how the ticker is located."""

    @pytest.mark.parametrize(
        "raw",
        [
            {"symbol": "aapl"},
            {"ticker": "AAPL"},
            {"Symbol": " AAPL "},
            {"code": "AAPL"},
            {"stock_symbol": "AAPL"},
            {"ticker_symbol": "AAPL"},
        ],
    )
    def test_alias_keys_resolve_uppercased(self, raw: dict[str, str]) -> None:
        """Every alias key yields the trimmed, uppercased ticker."""
        assert normalize_snapshot_item(raw).symbol == "AAPL"

    def test_explicit_key_precedence(self) -> None:
        """``symbol`` wins over ``ticker`` when both are present."""
        assert normalize_snapshot_item({"ticker": "MSFT", "symbol": "AAPL"}).symbol == "AAPL"

    def test_nested_quote_symbol(self) -> None:
        """A symbol nested under ``quote`` is found before falling back to the name."""
        item = normalize_snapshot_item({"name": "Apple Inc.", "quote": {"symbol": "AAPL"}})
        assert item.symbol == "AAPL"
        assert item.name == "Apple Inc."

    def test_case_insensitive_scan(self) -> None:
        """An unusual casing such as ``SYMBOL`` is still recognised."""
        assert resolve_symbol(({"SYMBOL": "nvda"},)) == "nvda"

    def test_name_used_when_no_symbol(self) -> None:
        """Without any symbol key the uppercased name becomes the symbol."""
        item = normalize_snapshot_item({"name": "Tesla", "price": 10})
        assert item.symbol == "TESLA"
        assert item.name == "Tesla"

    def test_nothing_resolvable_gives_placeholder(self) -> None:
        """No symbol and no name yields the placeholder symbol."""
        item = normalize_snapshot_item({"price": 5})
        assert item.symbol == PLACEHOLDER

    def test_container_symbol_value_ignored(self) -> None:
        """A dict under ``symbol`` is not stringified into a ticker."""
        item = normalize_snapshot_item({"symbol": {"id": 1}, "ticker": "AMD"})
        assert item.symbol == "AMD"


class TestPriceFormatting:
    """Tests for format_price and price key precedence."""

    @pytest.mark.parametrize("price", [1.0, 150, 700.0, 12345.678])
    def test_two_decimals_at_or_above_one(self, price: float) -> None:
        """Prices >= 1 have exactly two fractional digits."""
        text = format_price(float(price))
        assert len(text.split(".")[1]) == 2

    @pytest.mark.parametrize("price", [0.5, 0.01234, 0.99999])
    def test_four_decimals_below_one(self, price: float) -> None:
        """Prices strictly between 0 and 1 have exactly four fractional digits."""
        text = format_price(price)
        assert len(text.split(".")[1]) == 4

    def test_non_finite_is_placeholder(self) -> None:
        assert format_price(math.nan) == PLACEHOLDER
        assert format_price(math.inf) == PLACEHOLDER

    def test_price_key_precedence(self) -> None:
        """``lastPrice`` beats ``price`` beats ``close``."""
        item = normalize_snapshot_item({"symbol": "X", "close": 3, "price": 2, "lastPrice": 1})
        assert item.last_price == "1.00"

    def test_numeric_string_price(self) -> None:
        assert normalize_snapshot_item({"symbol": "X", "price": "42.5"}).last_price == "42.50"

    def test_missing_price_is_zero(self) -> None:
        """A missing price coerces to zero, which is below one unit."""
        assert normalize_snapshot_item({"symbol": "X"}).last_price == "0.0000"

    def test_garbage_price_is_placeholder(self) -> None:
        assert normalize_snapshot_item({"symbol": "X", "price": "n/a"}).last_price == PLACEHOLDER

    def test_nested_data_price(self) -> None:
        item = normalize_snapshot_item({"symbol": "X", "data": {"price": 2.5}})
        assert item.last_price == "2.50"

    def test_integer_beyond_float_range(self) -> None:
        """Huge JSON integers render as the placeholder instead of raising."""
        item = normalize_snapshot_item(
            {"symbol": "AAPL", "price": 10**400, "percent_change": 10**400, "lastClose": 10**400}
        )
        assert item.last_price == PLACEHOLDER
        assert item.percent_change == "0.00"
        assert item.last_close is None


class TestPercentFormatting:
    """Tests for format_percent and percent key aliases."""

    def test_two_decimals(self) -> None:
        assert format_percent(1.2) == "1.20"
        assert format_percent(-0.456) == "-0.46"

    @pytest.mark.parametrize("raw", ["abc", "1_000", [], {"v": 1}])
    def test_unparseable_is_zero(self, raw: object) -> None:
        """Unparseable percent values render as "0.00"."""
        item = normalize_snapshot_item({"symbol": "X", "percent_change": raw})
        assert item.percent_change == "0.00"

    def test_changes_percentage_alias(self) -> None:
        item = normalize_snapshot_item({"symbol": "X", "changesPercentage": "3.333"})
        assert item.percent_change == "3.33"

    def test_boolean_counts_as_one(self) -> None:
        item = normalize_snapshot_item({"symbol": "X", "change": True})
        assert item.percent_change == "1.00"


class TestTotality:
    """The normalizer never raises and always returns a MarketItem."""

    @pytest.mark.parametrize("raw", [None, 42, "AAPL", [1, 2], 3.5])
    def test_non_mapping_input(self, raw: object) -> None:
        item = normalize_snapshot_item(raw)
        assert isinstance(item, MarketItem)
        assert item.symbol == PLACEHOLDER

    def test_optional_fields_carried(self) -> None:
        item = normalize_snapshot_item(
            {
                "symbol": "AAPL",
                "image": "https://img/aapl.png",
                "lastClose": 148.5,
                "summary": {"sector": "Tech"},
            }
        )
        assert item.image == "https://img/aapl.png"
        assert item.last_close == pytest.approx(148.5)
        assert item.summary == {"sector": "Tech"}

    def test_wrong_typed_optionals_dropped(self) -> None:
        item = normalize_snapshot_item(
            {"symbol": "AAPL", "image": 5, "summary": "text", "lastClose": "n/a", "name": 7}
        )
        assert item.image is None
        assert item.summary is None
        assert item.last_close is None
        assert item.name == "AAPL"
