"""Async rate limiter with token bucket algorithm and 429 retry logic.

Provides concurrency control via asyncio.Semaphore and rate limiting via a
token bucket. Gates every request to the market-data backend so a burst of
screen loads cannot trip the upstream provider's limits, and retries
automatically when the backend answers HTTP 429.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from Souq_View.utils.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BACKEND_REQUESTS_PER_SECOND: float = 5.0
BACKEND_MAX_CONCURRENT: int = 4
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_BACKOFF_DELAYS: list[float] = [2.0, 4.0, 8.0]


class RateLimiter:
    """Async rate limiter combining concurrency control and token bucket.

    Usage::

        limiter = RateLimiter(max_concurrent=4, requests_per_second=5.0)

        # Simple acquire/release
        await limiter.acquire()
        try:
            result = await some_http_call()
        finally:
            limiter.release()

        # Or use execute() for automatic retry on HTTP 429
        result = await limiter.execute(
            lambda: client.get("/stock/market-snapshot"),
            label="market-snapshot",
        )
    """

    def __init__(
        self,
        max_concurrent: int = BACKEND_MAX_CONCURRENT,
        requests_per_second: float = BACKEND_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_delays: list[float] | None = None,
    ) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._requests_per_second = requests_per_second
        self._max_retries = max_retries
        self._backoff_delays = (
            backoff_delays if backoff_delays is not None else list(DEFAULT_BACKOFF_DELAYS)
        )

        # Token bucket state
        self._token_interval = 1.0 / requests_per_second
        self._tokens = float(max_concurrent)
        self._max_tokens = float(max_concurrent)
        self._last_refill_time = time.monotonic()
        self._bucket_lock = asyncio.Lock()

        logger.debug(
            "RateLimiter initialized: max_concurrent=%d, rate=%.1f req/s, max_retries=%d",
            max_concurrent,
            requests_per_second,
            max_retries,
        )

    async def acquire(self) -> None:
        """Block until both concurrency and rate limits allow a request."""
        await self._semaphore.acquire()
        await self._wait_for_token()

    def release(self) -> None:
        """Release a concurrency slot back to the semaphore."""
        self._semaphore.release()

    async def execute(
        self,
        request: Callable[[], Awaitable[T]],
        *,
        label: str,
    ) -> T:
        """Run *request* under the limiter, retrying on RateLimitExceededError.

        *request* is a zero-argument factory so that each attempt gets a
        fresh awaitable. A ``retry_after`` value on the exception takes
        precedence over the backoff schedule.

        Args:
            request: Callable returning the awaitable to run.
            label: Human-readable label for log messages.

        Returns:
            The result of the awaitable.

        Raises:
            RateLimitExceededError: After exhausting all retries.
        """
        for attempt in range(self._max_retries + 1):
            await self.acquire()
            try:
                return await request()
            except RateLimitExceededError as exc:
                if attempt >= self._max_retries:
                    logger.error(
                        "Rate limited on %s after %d retries",
                        label,
                        self._max_retries,
                    )
                    raise
                delay = self._get_retry_delay(exc, attempt)
                logger.warning(
                    "Rate limited on %s (attempt %d/%d), retrying in %.1fs",
                    label,
                    attempt + 1,
                    self._max_retries,
                    delay,
                )
            finally:
                self.release()

            # Sleep outside the semaphore so other requests can proceed
            await asyncio.sleep(delay)

        msg = f"Rate limiter exhausted for {label}"
        raise AssertionError(msg)  # pragma: no cover

    # ------------------------------------------------------------------
    # Token bucket internals
    # ------------------------------------------------------------------

    async def _wait_for_token(self) -> None:
        """Wait until a token is available in the bucket."""
        while True:
            async with self._bucket_lock:
                self._refill_tokens()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return

            await asyncio.sleep(self._token_interval)

    def _refill_tokens(self) -> None:
        """Add tokens based on elapsed time since the last refill."""
        now = time.monotonic()
        elapsed = now - self._last_refill_time
        new_tokens = elapsed * self._requests_per_second
        self._tokens = min(self._max_tokens, self._tokens + new_tokens)
        self._last_refill_time = now

    def _get_retry_delay(
        self,
        exc: RateLimitExceededError,
        attempt: int,
    ) -> float:
        """Pick the wait before the next retry: Retry-After, else the schedule."""
        if exc.retry_after is not None and exc.retry_after > 0:
            return exc.retry_after

        if attempt < len(self._backoff_delays):
            return self._backoff_delays[attempt]

        return self._backoff_delays[-1]
