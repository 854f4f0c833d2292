"""Tests for community models.

Covers:
- CommentRecord: null counters, numeric ids, reply/report flags, validation
- CommentThread id passthrough
- CommentEvent record_id
- StockVoteCounts rounding
"""

import pytest
from pydantic import ValidationError

from Souq_View.models import (
    CommentEvent,
    CommentEventType,
    CommentRecord,
    CommentThread,
    Sentiment,
    StockVoteCounts,
)

ROW = {
    "id": "c1",
    "stock_symbol": "AAPL",
    "text": "Strong quarter",
    "sentiment": "bullish",
    "created_at": "2025-01-15T14:00:00Z",
}


class TestCommentRecord:
    """Tests for CommentRecord validation."""

    def test_minimal_row(self) -> None:
        record = CommentRecord.model_validate(ROW)
        assert record.sentiment == Sentiment.BULLISH
        assert (record.upvotes, record.downvotes) == (0, 0)
        assert not record.is_reply
        assert not record.is_reported

    def test_null_counters_are_zero(self) -> None:
        record = CommentRecord.model_validate({**ROW, "upvotes": None, "downvotes": None})
        assert (record.upvotes, record.downvotes) == (0, 0)

    def test_numeric_ids_become_text(self) -> None:
        record = CommentRecord.model_validate({**ROW, "id": 12, "parent_id": 7})
        assert record.id == "12"
        assert record.parent_id == "7"
        assert record.is_reply

    def test_reported(self) -> None:
        record = CommentRecord.model_validate({**ROW, "reported_at": "2025-01-16T09:00:00Z"})
        assert record.is_reported

    def test_unknown_columns_ignored(self) -> None:
        record = CommentRecord.model_validate({**ROW, "avatar_url": "x"})
        assert not hasattr(record, "avatar_url")

    @pytest.mark.parametrize(
        "override",
        [{"sentiment": "neutral"}, {"upvotes": -1}, {"created_at": "not a date"}],
    )
    def test_invalid_rows(self, override: dict) -> None:
        with pytest.raises(ValidationError):
            CommentRecord.model_validate({**ROW, **override})

    def test_frozen(self) -> None:
        record = CommentRecord.model_validate(ROW)
        with pytest.raises(ValidationError):
            record.upvotes = 3  # type: ignore[misc]


class TestThreadAndEvent:
    """Tests for CommentThread and CommentEvent."""

    def test_thread_id(self) -> None:
        thread = CommentThread(comment=CommentRecord.model_validate(ROW))
        assert thread.id == "c1"
        assert thread.replies == []

    def test_event_record_id(self) -> None:
        event = CommentEvent(type=CommentEventType.UPDATE, record={"id": 5, "upvotes": 2})
        assert event.record_id == "5"
        assert CommentEvent(type=CommentEventType.INSERT, record={}).record_id is None


class TestStockVoteCounts:
    """Tests for StockVoteCounts.from_counts()."""

    @pytest.mark.parametrize(
        ("bulls", "bears", "expected"),
        [
            (0, 0, (50, 50)),
            (1, 0, (100, 0)),
            (1, 1, (50, 50)),
            (2, 1, (67, 33)),
            (1, 2, (33, 67)),
        ],
    )
    def test_percentages(self, bulls: int, bears: int, expected: tuple[int, int]) -> None:
        counts = StockVoteCounts.from_counts(bulls, bears)
        assert (counts.bull_pct, counts.bear_pct) == expected
        assert (counts.bulls, counts.bears) == (bulls, bears)
