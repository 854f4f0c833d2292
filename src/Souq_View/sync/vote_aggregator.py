"""Tug-of-war sentiment bar for one symbol.

Holds the aggregate bull/bear split and the signed-in user's own vote. After a
successful vote the aggregate is re-fetched rather than recomputed locally, so
the bar always reflects what the server counted.
"""

from __future__ import annotations

import asyncio
import logging

from Souq_View.models.comments import StockVoteCounts
from Souq_View.models.enums import Sentiment
from Souq_View.services.supabase import UserIdResolver
from Souq_View.services.votes import StockVoteService
from Souq_View.sync.session import LivenessFlag
from Souq_View.utils.exceptions import DataFetchError

logger = logging.getLogger(__name__)


class VoteAggregator:
    """Vote state for one symbol; public methods never raise ``DataFetchError``.

    Usage::

        votes = VoteAggregator("AAPL", votes=vote_service, identity=supabase)
        await votes.load()
        votes.counts.bull_pct, votes.counts.bear_pct
        await votes.set_vote(Sentiment.BULLISH)
    """

    def __init__(
        self,
        symbol: str,
        *,
        votes: StockVoteService,
        identity: UserIdResolver,
    ) -> None:
        self._symbol = symbol.upper().strip()
        self._votes = votes
        self._identity = identity
        self._liveness = LivenessFlag()
        self.counts: StockVoteCounts = StockVoteCounts.from_counts(0, 0)
        self.my_vote: Sentiment | None = None
        self.last_error: DataFetchError | None = None

    @property
    def symbol(self) -> str:
        return self._symbol

    async def load(self) -> bool:
        """Fetch the aggregate and the user's own vote concurrently."""
        liveness = self._liveness
        try:
            counts, my_vote = await asyncio.gather(
                self._votes.fetch_counts(self._symbol),
                self._fetch_my_vote(),
            )
        except DataFetchError as exc:
            logger.warning("Failed to load votes for %s: %s", self._symbol, exc)
            if liveness.alive:
                self.last_error = exc
            return False

        if not liveness.alive:
            return False
        self.counts = counts
        self.my_vote = my_vote
        self.last_error = None
        return True

    async def set_vote(self, vote: Sentiment) -> bool:
        """Submit *vote*; False when nobody is signed in or the write fails."""
        liveness = self._liveness
        try:
            user_id = await self._identity.current_user_id()
            if user_id is None:
                logger.info("Vote on %s ignored: no signed-in user", self._symbol)
                return False
            await self._votes.set_vote(self._symbol, user_id, vote)
        except DataFetchError as exc:
            logger.warning("Failed to vote on %s: %s", self._symbol, exc)
            if liveness.alive:
                self.last_error = exc
            return False

        if not liveness.alive:
            return True
        self.my_vote = Sentiment(vote)
        try:
            counts = await self._votes.fetch_counts(self._symbol)
        except DataFetchError as exc:
            logger.warning("Vote saved but refreshing %s counts failed: %s", self._symbol, exc)
            return True
        if liveness.alive:
            self.counts = counts
        return True

    def close(self) -> None:
        self._liveness.close()

    async def _fetch_my_vote(self) -> Sentiment | None:
        user_id = await self._identity.current_user_id()
        if user_id is None:
            return None
        return await self._votes.fetch_my_vote(self._symbol, user_id)
