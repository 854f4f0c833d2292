"""Backend clients, snapshot normalization, and community data services.

Re-exports all public service classes so consumers can import directly:
    from Souq_View.services import BackendClient, SnapshotFetcher, CommentService
"""

from Souq_View.services.cache import CacheEntry, ServiceCache
from Souq_View.services.comments import CommentService
from Souq_View.services.fallback import build_placeholder_items, fallback_result
from Souq_View.services.http_client import BackendClient
from Souq_View.services.market_data import MarketDataService
from Souq_View.services.normalizer import normalize_snapshot_item
from Souq_View.services.rate_limiter import RateLimiter
from Souq_View.services.realtime import (
    CommentChannel,
    Subscription,
    SupabaseRealtimeChannel,
)
from Souq_View.services.snapshot import SnapshotFetcher
from Souq_View.services.supabase import SupabaseClient, UserIdResolver
from Souq_View.services.symbols import filter_us_stocks_only
from Souq_View.services.votes import StockVoteService

__all__ = [
    # Infrastructure
    "BackendClient",
    "CacheEntry",
    "RateLimiter",
    "ServiceCache",
    "SupabaseClient",
    # Market data
    "MarketDataService",
    "SnapshotFetcher",
    "build_placeholder_items",
    "fallback_result",
    "filter_us_stocks_only",
    "normalize_snapshot_item",
    # Community
    "CommentChannel",
    "CommentService",
    "StockVoteService",
    "Subscription",
    "SupabaseRealtimeChannel",
    "UserIdResolver",
]
