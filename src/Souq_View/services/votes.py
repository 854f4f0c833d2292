"""Bull/bear stock votes: one vote per user per symbol.

Rows live in ``stock_votes``; a user changing their mind upserts over their
previous row on the ``(stock_symbol, user_id)`` key.
"""

from __future__ import annotations

import datetime
import logging
from typing import Final

from Souq_View.models.comments import StockVoteCounts
from Souq_View.models.enums import Sentiment
from Souq_View.services.supabase import SupabaseClient

logger = logging.getLogger(__name__)

VOTES_TABLE: Final[str] = "stock_votes"
VOTE_CONFLICT_KEY: Final[str] = "stock_symbol,user_id"


class StockVoteService:
    """Reads the aggregate split and writes the signed-in user's vote."""

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def fetch_counts(self, symbol: str) -> StockVoteCounts:
        symbol = symbol.upper().strip()
        rows = await self._client.select(
            VOTES_TABLE,
            filters={"stock_symbol": f"eq.{symbol}"},
            columns="vote",
        )
        bulls = sum(1 for row in rows if row.get("vote") == Sentiment.BULLISH)
        bears = sum(1 for row in rows if row.get("vote") == Sentiment.BEARISH)
        logger.debug("Votes for %s: %d bullish, %d bearish", symbol, bulls, bears)
        return StockVoteCounts.from_counts(bulls, bears)

    async def fetch_my_vote(self, symbol: str, user_id: str) -> Sentiment | None:
        """The user's current vote on *symbol*, or None if they have not voted."""
        rows = await self._client.select(
            VOTES_TABLE,
            filters={"stock_symbol": f"eq.{symbol.upper().strip()}", "user_id": f"eq.{user_id}"},
            columns="vote",
            limit=1,
        )
        if not rows:
            return None
        raw = rows[0].get("vote")
        try:
            return Sentiment(raw)
        except ValueError:
            logger.warning("Ignoring unknown vote value %r", raw)
            return None

    async def set_vote(self, symbol: str, user_id: str, vote: Sentiment) -> None:
        """Record *vote*, replacing any earlier vote by the same user."""
        await self._client.upsert(
            VOTES_TABLE,
            {
                "stock_symbol": symbol.upper().strip(),
                "user_id": user_id,
                "vote": Sentiment(vote).value,
                "updated_at": datetime.datetime.now(datetime.UTC).isoformat(),
            },
            on_conflict=VOTE_CONFLICT_KEY,
        )
