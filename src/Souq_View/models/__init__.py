"""Pydantic v2 models and enums for the SouqView core.

Re-exports all public models so consumers can import directly:
    from Souq_View.models import MarketItem, SnapshotResult, CommentRecord
"""

from Souq_View.models.comments import (
    CommentEvent,
    CommentRecord,
    CommentThread,
    StockVoteCounts,
)
from Souq_View.models.enums import (
    CommentEventType,
    CounterField,
    MutationStatus,
    Sentiment,
    SnapshotProvenance,
)
from Souq_View.models.market_data import (
    PLACEHOLDER,
    ZERO_PERCENT,
    HistoricalCandle,
    MarketItem,
    OverviewInsight,
    SnapshotResult,
    StockDetails,
)

__all__ = [
    # Enums
    "CommentEventType",
    "CounterField",
    "MutationStatus",
    "Sentiment",
    "SnapshotProvenance",
    # Market data
    "PLACEHOLDER",
    "ZERO_PERCENT",
    "HistoricalCandle",
    "MarketItem",
    "OverviewInsight",
    "SnapshotResult",
    "StockDetails",
    # Community
    "CommentEvent",
    "CommentRecord",
    "CommentThread",
    "StockVoteCounts",
]
