"""StrEnum types for the SouqView core.

All enums use Python 3.13+ StrEnum. Values are lowercase strings matching
what the backends store. Use enum members in business logic, never raw strings.
"""

from enum import StrEnum


class Sentiment(StrEnum):
    """Bullish/bearish stance attached to comments and stock votes."""

    BULLISH = "bullish"
    BEARISH = "bearish"


class SnapshotProvenance(StrEnum):
    """Where the items of a snapshot came from."""

    FRESH = "fresh"
    FALLBACK = "fallback"
    STALE_CACHE = "stale_cache"


class CommentEventType(StrEnum):
    """Kind of change delivered by the realtime channel."""

    INSERT = "insert"
    UPDATE = "update"


class MutationStatus(StrEnum):
    """Lifecycle of an optimistic comment mutation."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class CounterField(StrEnum):
    """Comment vote counters that can be incremented."""

    UPVOTES = "upvotes"
    DOWNVOTES = "downvotes"
