"""Client-side state for comment threads and stock votes.

Re-exports the public sync types so consumers can import directly:
    from Souq_View.sync import StockCommentsSession, VoteAggregator
"""

from Souq_View.sync.comment_store import CommentStore
from Souq_View.sync.merge_engine import RealtimeMergeEngine
from Souq_View.sync.session import LivenessFlag, StockCommentsSession, SymbolScope
from Souq_View.sync.vote_aggregator import VoteAggregator

__all__ = [
    # State
    "CommentStore",
    "RealtimeMergeEngine",
    # Lifecycle
    "LivenessFlag",
    "StockCommentsSession",
    "SymbolScope",
    "VoteAggregator",
]
