"""Community models: comment rows, threads, realtime events, and vote counts.

Comment rows mirror the ``comments`` table. They are frozen; every change
(vote, report, realtime update) produces a new instance via ``model_copy``.
"""

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, field_validator

from Souq_View.models.enums import CommentEventType, Sentiment


class CommentRecord(BaseModel):
    """A single comment or reply for a stock symbol.

    ``parent_id`` is ``None`` for top-level comments. Replies reference a
    top-level comment; deeper nesting is not modelled.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    stock_symbol: str
    user_id: str | None = None
    text: str
    sentiment: Sentiment
    upvotes: NonNegativeInt = 0
    downvotes: NonNegativeInt = 0
    parent_id: str | None = None
    reported_at: datetime.datetime | None = None
    reported_by: str | None = None
    created_at: datetime.datetime
    updated_at: datetime.datetime | None = None

    @field_validator("upvotes", "downvotes", mode="before")
    @classmethod
    def _null_counter_is_zero(cls, value: object) -> object:
        """Older rows carry ``NULL`` downvotes."""
        return 0 if value is None else value

    @field_validator("id", "parent_id", "user_id", "reported_by", mode="before")
    @classmethod
    def _ids_as_text(cls, value: object) -> object:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def is_reply(self) -> bool:
        """True when this record hangs under a top-level comment."""
        return self.parent_id is not None

    @property
    def is_reported(self) -> bool:
        return self.reported_at is not None


class CommentThread(BaseModel):
    """A top-level comment with its replies, oldest reply first."""

    model_config = ConfigDict(frozen=True)

    comment: CommentRecord
    replies: list[CommentRecord] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.comment.id


class CommentEvent(BaseModel):
    """One change delivered by the realtime channel.

    ``record`` is the raw row mapping as delivered; for updates it may hold
    only the changed columns plus ``id``.
    """

    model_config = ConfigDict(frozen=True)

    type: CommentEventType
    record: dict[str, Any]
    commit_timestamp: datetime.datetime | None = None

    @property
    def record_id(self) -> str | None:
        raw = self.record.get("id")
        return None if raw is None else str(raw)


class StockVoteCounts(BaseModel):
    """Aggregate bull/bear split for the tug-of-war bar.

    Percentages are rounded independently, so they may miss 100 by one.
    """

    model_config = ConfigDict(frozen=True)

    bulls: NonNegativeInt = 0
    bears: NonNegativeInt = 0
    bull_pct: int = 50
    bear_pct: int = 50

    @classmethod
    def from_counts(cls, bulls: int, bears: int) -> "StockVoteCounts":
        """Build counts with percentages; zero votes yields an even 50/50 split."""
        total = bulls + bears
        if total == 0:
            return cls(bulls=0, bears=0, bull_pct=50, bear_pct=50)
        return cls(
            bulls=bulls,
            bears=bears,
            bull_pct=_round_half_up(bulls / total * 100),
            bear_pct=_round_half_up(bears / total * 100),
        )


def _round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (``round`` uses banker's rounding)."""
    return int(value + 0.5)
