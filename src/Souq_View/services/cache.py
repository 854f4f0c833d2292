"""In-memory cache with TTL and market-hours awareness.

Provides a cache-first pattern for the pass-through detail endpoints: check
cache, fetch on miss, store, and return. Price-sensitive data (historical
candles, technicals) gets short TTLs while the market is open and longer ones
after the close. Nothing is persisted across processes.
"""

from __future__ import annotations

import datetime
import logging
from typing import Final
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants: TTL values in seconds
# ---------------------------------------------------------------------------

# Market-hours TTLs
TTL_HISTORICAL_MARKET: Final[int] = 1 * 60  # 1 minute
TTL_HISTORICAL_AFTER: Final[int] = 30 * 60  # 30 minutes
TTL_TECHNICALS_MARKET: Final[int] = 1 * 60  # 1 minute
TTL_TECHNICALS_AFTER: Final[int] = 30 * 60  # 30 minutes

# Fixed TTLs (same regardless of market hours)
TTL_PROFILE: Final[int] = 24 * 60 * 60  # 24 hours
TTL_FINANCIALS: Final[int] = 24 * 60 * 60  # 24 hours
TTL_INSIDERS: Final[int] = 6 * 60 * 60  # 6 hours
TTL_NEWS: Final[int] = 10 * 60  # 10 minutes
TTL_SENTIMENT: Final[int] = 10 * 60  # 10 minutes
TTL_DEFAULT: Final[int] = 5 * 60  # 5 minutes

# Market hours constants
MARKET_OPEN_HOUR: Final[int] = 9
MARKET_OPEN_MINUTE: Final[int] = 30
MARKET_CLOSE_HOUR: Final[int] = 16
MARKET_CLOSE_MINUTE: Final[int] = 0

# Data type string constants
DATA_TYPE_PROFILE: Final[str] = "profile"
DATA_TYPE_HISTORICAL: Final[str] = "historical"
DATA_TYPE_FINANCIALS: Final[str] = "financials"
DATA_TYPE_TECHNICALS: Final[str] = "technicals"
DATA_TYPE_INSIDERS: Final[str] = "insiders"
DATA_TYPE_NEWS: Final[str] = "news"
DATA_TYPE_SENTIMENT: Final[str] = "sentiment"

# Lazy cleanup: run eviction at most every N accesses
LAZY_CLEANUP_INTERVAL: Final[int] = 100

ET_TIMEZONE: Final[ZoneInfo] = ZoneInfo("America/New_York")


class CacheEntry(BaseModel):
    """A single cached value with metadata for expiration checking."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str  # JSON-serialized payload
    created_at: datetime.datetime
    ttl_seconds: int

    def is_expired(self) -> bool:
        """Return True if this entry has exceeded its TTL.

        A ttl_seconds of 0 means the entry never expires.
        """
        if self.ttl_seconds == 0:
            return False
        now = datetime.datetime.now(datetime.UTC)
        age = (now - self.created_at).total_seconds()
        return age > self.ttl_seconds


class ServiceCache:
    """Process-local TTL cache keyed by ``"<source>:<data_type>:<args>"``.

    Usage::

        cache = ServiceCache()
        cached = await cache.get("api:profile:AAPL")
        if cached is None:
            data = await fetch_profile("AAPL")
            await cache.set(
                "api:profile:AAPL",
                json.dumps(data),
                cache.get_ttl(DATA_TYPE_PROFILE),
            )
    """

    def __init__(self) -> None:
        self._memory_cache: dict[str, CacheEntry] = {}
        self._access_count: int = 0

    def __len__(self) -> int:
        return len(self._memory_cache)

    async def get(self, key: str) -> str | None:
        """Return the cached value for *key*, or None on miss or expiry.

        Expired entries are removed on access.
        """
        self._increment_access_count()

        entry = self._memory_cache.get(key)
        if entry is None:
            logger.debug("Cache miss: %s", key)
            return None
        if entry.is_expired():
            del self._memory_cache[key]
            logger.debug("Cache expired: %s", key)
            return None
        logger.debug("Cache hit: %s", key)
        return entry.value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store *value* under *key* for *ttl_seconds* (0 = never expires)."""
        self._memory_cache[key] = CacheEntry(
            key=key,
            value=value,
            created_at=datetime.datetime.now(datetime.UTC),
            ttl_seconds=ttl_seconds,
        )
        logger.debug("Cache set: %s (ttl=%ds)", key, ttl_seconds)

    async def invalidate(self, key: str) -> None:
        """Remove a specific key."""
        self._memory_cache.pop(key, None)
        logger.debug("Cache invalidated: %s", key)

    async def invalidate_pattern(self, pattern: str) -> None:
        """Remove all keys matching *pattern*.

        Supports ``*`` as a wildcard suffix, e.g. ``"api:historical:AAPL:*"``.
        """
        if pattern.endswith("*"):
            prefix = pattern[:-1]
            keys_to_remove = [k for k in self._memory_cache if k.startswith(prefix)]
        else:
            keys_to_remove = [k for k in self._memory_cache if k == pattern]

        for key in keys_to_remove:
            del self._memory_cache[key]

        logger.debug(
            "Cache invalidated pattern '%s': %d entries removed",
            pattern,
            len(keys_to_remove),
        )

    def is_market_hours(self) -> bool:
        """Return True if US equity markets are currently open.

        Market hours: 9:30 AM - 4:00 PM ET, Monday through Friday.
        Does not account for market holidays.
        """
        now_et = datetime.datetime.now(ET_TIMEZONE)

        if now_et.weekday() >= 5:  # Saturday or Sunday
            return False

        market_open = now_et.replace(
            hour=MARKET_OPEN_HOUR,
            minute=MARKET_OPEN_MINUTE,
            second=0,
            microsecond=0,
        )
        market_close = now_et.replace(
            hour=MARKET_CLOSE_HOUR,
            minute=MARKET_CLOSE_MINUTE,
            second=0,
            microsecond=0,
        )

        return market_open <= now_et < market_close

    def get_ttl(self, data_type: str) -> int:
        """Return the TTL in seconds for one of the DATA_TYPE_* constants."""
        during_market = self.is_market_hours()

        match data_type:
            case "historical":
                return TTL_HISTORICAL_MARKET if during_market else TTL_HISTORICAL_AFTER
            case "technicals":
                return TTL_TECHNICALS_MARKET if during_market else TTL_TECHNICALS_AFTER
            case "profile":
                return TTL_PROFILE
            case "financials":
                return TTL_FINANCIALS
            case "insiders":
                return TTL_INSIDERS
            case "news":
                return TTL_NEWS
            case "sentiment":
                return TTL_SENTIMENT
            case _:
                logger.warning("Unknown data type '%s', using 5-minute TTL", data_type)
                return TTL_DEFAULT

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _increment_access_count(self) -> None:
        """Track accesses and trigger lazy cleanup when threshold is reached."""
        self._access_count += 1
        if self._access_count >= LAZY_CLEANUP_INTERVAL:
            self._access_count = 0
            self._evict_expired_entries()

    def _evict_expired_entries(self) -> None:
        expired_keys = [k for k, v in self._memory_cache.items() if v.is_expired()]
        for key in expired_keys:
            del self._memory_cache[key]

        if expired_keys:
            logger.debug("Lazy cleanup: evicted %d expired entries", len(expired_keys))
