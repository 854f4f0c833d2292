"""Shared test fixtures for the SouqView test suite.

Provides realistic sample comment rows and HTTP doubles so tests don't need
to inline large construction blocks. HTTP is faked with ``httpx.MockTransport``;
no test touches the network.
"""

from __future__ import annotations

import datetime
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from Souq_View.models import CommentRecord, Sentiment
from Souq_View.services.http_client import BackendClient
from Souq_View.services.rate_limiter import RateLimiter
from Souq_View.services.supabase import SupabaseClient

Handler = Callable[[httpx.Request], httpx.Response]

SUPABASE_URL = "https://demo.supabase.co"
SUPABASE_KEY = "anon-key"


def comment_row(
    comment_id: str,
    *,
    symbol: str = "AAPL",
    parent_id: str | None = None,
    text: str = "Strong quarter",
    minute: int = 0,
    upvotes: int = 0,
    downvotes: int = 0,
    updated_minute: int | None = None,
) -> dict[str, Any]:
    """A raw ``comments`` row as PostgREST or the realtime channel delivers it."""
    created = datetime.datetime(2025, 1, 15, 14, minute, tzinfo=datetime.UTC)
    updated = (
        datetime.datetime(2025, 1, 15, 15, updated_minute, tzinfo=datetime.UTC)
        if updated_minute is not None
        else None
    )
    return {
        "id": comment_id,
        "stock_symbol": symbol,
        "user_id": "user-1",
        "text": text,
        "sentiment": "bullish",
        "upvotes": upvotes,
        "downvotes": downvotes,
        "parent_id": parent_id,
        "reported_at": None,
        "reported_by": None,
        "created_at": created.isoformat(),
        "updated_at": updated.isoformat() if updated else None,
    }


def make_record(comment_id: str, **kwargs: Any) -> CommentRecord:
    return CommentRecord.model_validate(comment_row(comment_id, **kwargs))


@pytest.fixture()
def fast_rate_limiter() -> RateLimiter:
    """Rate limiter with millisecond backoff so 429 tests stay fast."""
    return RateLimiter(
        max_concurrent=5,
        requests_per_second=1000.0,
        max_retries=3,
        backoff_delays=[0.001, 0.002, 0.004],
    )


@pytest.fixture()
def backend_factory(fast_rate_limiter: RateLimiter) -> Callable[[Handler], BackendClient]:
    """Build a BackendClient whose requests are answered by *handler*."""

    def _build(handler: Handler) -> BackendClient:
        return BackendClient(
            "http://backend.test/api",
            rate_limiter=fast_rate_limiter,
            transport=httpx.MockTransport(handler),
        )

    return _build


@pytest.fixture()
def supabase_factory() -> Callable[..., SupabaseClient]:
    """Build a SupabaseClient whose requests are answered by *handler*."""

    def _build(handler: Handler, *, access_token: str | None = "user-token") -> SupabaseClient:
        return SupabaseClient(
            SUPABASE_URL,
            SUPABASE_KEY,
            access_token=access_token,
            transport=httpx.MockTransport(handler),
        )

    return _build


@pytest.fixture()
def sample_comment() -> CommentRecord:
    """A top-level bullish AAPL comment."""
    return make_record("c1", minute=5)


@pytest.fixture()
def sample_reply() -> CommentRecord:
    """A reply to ``sample_comment``."""
    return make_record("r1", parent_id="c1", minute=6, text="Agreed")


@pytest.fixture()
def bearish_comment() -> CommentRecord:
    return CommentRecord.model_validate(
        {**comment_row("c2", minute=10, text="Overvalued"), "sentiment": Sentiment.BEARISH}
    )


@pytest.fixture()
def row_factory() -> Callable[..., dict[str, Any]]:
    """Factory for raw comment rows (see ``comment_row``)."""
    return comment_row


@pytest.fixture()
def record_factory() -> Callable[..., CommentRecord]:
    """Factory for validated comment records (see ``comment_row``)."""
    return make_record
