"""Tests for shared service helpers: lenient number coercion and text cleanup.

Covers:
- coerce_number(): numbers, numeric strings, blanks, booleans, garbage
- finite_number(): only real finite JSON numbers
- Integers too large for a float
- clean_text(): None and whitespace
"""

from __future__ import annotations

import math

import pytest

from Souq_View.services._helpers import clean_text, coerce_number, finite_number


class TestCoerceNumber:
    """Tests for coerce_number()."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (150, 150.0),
            (1.2, 1.2),
            ("42.5", 42.5),
            (" -3 ", -3.0),
            ("", 0.0),
            ("   ", 0.0),
            (None, 0.0),
            (True, 1.0),
            (False, 0.0),
        ],
    )
    def test_numeric_values(self, raw: object, expected: float) -> None:
        assert coerce_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["abc", "1_000", "1.2.3", [], {}, object()])
    def test_garbage_is_nan(self, raw: object) -> None:
        assert math.isnan(coerce_number(raw))

    def test_huge_integers_are_infinite(self) -> None:
        assert coerce_number(10**400) == math.inf
        assert coerce_number(-(10**400)) == -math.inf


class TestFiniteNumber:
    """Tests for finite_number()."""

    def test_accepts_numbers(self) -> None:
        assert finite_number(3) == 3.0
        assert finite_number(2.5) == 2.5

    @pytest.mark.parametrize("raw", [True, "3", None, math.nan, math.inf, 10**400])
    def test_rejects_everything_else(self, raw: object) -> None:
        assert finite_number(raw) is None


class TestCleanText:
    """Tests for clean_text()."""

    def test_none_is_empty(self) -> None:
        assert clean_text(None) == ""

    def test_strips(self) -> None:
        assert clean_text("  AAPL \n") == "AAPL"
        assert clean_text(42) == "42"
