"""Comment persistence: threaded loads, inserts, counters, and reports.

Rows live in the ``comments`` table. Top-level comments are fetched newest
first; their replies are fetched in one follow-up query and grouped locally.
Vote counters are bumped with a compare-and-set PATCH so concurrent voters
never overwrite each other's increments.
"""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import Final

from pydantic import ValidationError

from Souq_View.config import DEFAULT_COMMENT_LIMIT
from Souq_View.models.comments import CommentRecord, CommentThread
from Souq_View.models.enums import CounterField, Sentiment
from Souq_View.services._helpers import SUPABASE_SOURCE
from Souq_View.services.supabase import SupabaseClient
from Souq_View.utils.exceptions import CounterConflictError, DataSourceUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

COMMENTS_TABLE: Final[str] = "comments"
NEWEST_FIRST: Final[str] = "created_at.desc"
OLDEST_FIRST: Final[str] = "created_at.asc"
MAX_CAS_ATTEMPTS: Final[int] = 3


class CommentService:
    """Reads and writes comment rows through an injected ``SupabaseClient``.

    Usage::

        service = CommentService(supabase_client)
        threads = await service.fetch_comments("AAPL", limit=100)
        record = await service.insert_comment(
            "AAPL", "Strong quarter", Sentiment.BULLISH, user_id=user_id
        )
        upvotes = await service.increment_counter(record.id, CounterField.UPVOTES)
    """

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def fetch_comments(
        self,
        symbol: str,
        limit: int = DEFAULT_COMMENT_LIMIT,
    ) -> list[CommentThread]:
        """Load the newest *limit* top-level comments with all their replies.

        Threads come back newest first; replies inside a thread oldest first.
        """
        symbol = symbol.upper().strip()
        rows = await self._client.select(
            COMMENTS_TABLE,
            filters={"stock_symbol": f"eq.{symbol}", "parent_id": "is.null"},
            order=NEWEST_FIRST,
            limit=limit,
        )
        top_level = parse_records(rows)
        if not top_level:
            return []

        replies = await self.fetch_replies([record.id for record in top_level])
        by_parent: dict[str, list[CommentRecord]] = defaultdict(list)
        for reply in replies:
            if reply.parent_id is not None:
                by_parent[reply.parent_id].append(reply)

        logger.debug(
            "Loaded %d comments and %d replies for %s", len(top_level), len(replies), symbol
        )
        return [
            CommentThread(comment=record, replies=by_parent.get(record.id, []))
            for record in top_level
        ]

    async def fetch_replies(self, parent_ids: Sequence[str]) -> list[CommentRecord]:
        """All replies under *parent_ids*, oldest first."""
        if not parent_ids:
            return []
        id_list = ",".join(parent_ids)
        rows = await self._client.select(
            COMMENTS_TABLE,
            filters={"parent_id": f"in.({id_list})"},
            order=OLDEST_FIRST,
        )
        return parse_records(rows)

    async def insert_comment(
        self,
        symbol: str,
        text: str,
        sentiment: Sentiment,
        *,
        user_id: str | None,
        parent_id: str | None = None,
    ) -> CommentRecord:
        """Insert a comment (or a reply when *parent_id* is set).

        Raises:
            ValueError: When *text* is blank after trimming.
            DataFetchError: When the insert fails or returns an invalid row.
        """
        body = text.strip()
        if not body:
            msg = "Comment text must not be blank"
            raise ValueError(msg)

        row = {
            "stock_symbol": symbol.upper().strip(),
            "user_id": user_id,
            "text": body,
            "sentiment": Sentiment(sentiment).value,
            "parent_id": parent_id,
            "upvotes": 0,
            "downvotes": 0,
        }
        stored = await self._client.insert(COMMENTS_TABLE, row)
        try:
            return CommentRecord.model_validate(stored)
        except ValidationError as exc:
            raise DataSourceUnavailableError(
                f"comment insert returned an invalid row: {exc.error_count()} errors",
                ticker=row["stock_symbol"],
                source=SUPABASE_SOURCE,
            ) from exc

    async def increment_counter(
        self,
        comment_id: str,
        field: CounterField,
        current: int | None = None,
    ) -> int:
        """Add one to a vote counter and return the stored value.

        Each attempt PATCHes only if the counter still holds the value read
        before it; a miss re-reads the row and tries again.

        Raises:
            CounterConflictError: After ``MAX_CAS_ATTEMPTS`` lost races.
            DataSourceUnavailableError: When the comment no longer exists.
        """
        field = CounterField(field)
        expected = current if current is not None else await self._read_counter(comment_id, field)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            updated = await self._client.update(
                COMMENTS_TABLE,
                {field.value: expected + 1},
                filters={"id": f"eq.{comment_id}", field.value: f"eq.{expected}"},
            )
            if updated:
                return _counter_value(updated[0], field)

            logger.debug(
                "Counter %s on %s moved (attempt %d/%d)",
                field,
                comment_id,
                attempt,
                MAX_CAS_ATTEMPTS,
            )
            expected = await self._read_counter(comment_id, field)

        raise CounterConflictError(
            f"{field} on comment {comment_id} kept changing",
            ticker=comment_id,
            source=SUPABASE_SOURCE,
        )

    async def report_comment(self, comment_id: str, user_id: str | None) -> CommentRecord:
        """Flag a comment for moderation and return the stored row.

        Raises:
            DataSourceUnavailableError: When the comment no longer exists.
        """
        stamp = datetime.datetime.now(datetime.UTC).isoformat()
        updated = await self._client.update(
            COMMENTS_TABLE,
            {"reported_at": stamp, "reported_by": user_id},
            filters={"id": f"eq.{comment_id}"},
        )
        records = parse_records(updated)
        if not records:
            raise DataSourceUnavailableError(
                f"comment {comment_id} not found",
                ticker=comment_id,
                source=SUPABASE_SOURCE,
            )
        return records[0]

    async def _read_counter(self, comment_id: str, field: CounterField) -> int:
        rows = await self._client.select(
            COMMENTS_TABLE,
            filters={"id": f"eq.{comment_id}"},
            columns=f"id,{field.value}",
            limit=1,
        )
        if not rows:
            raise DataSourceUnavailableError(
                f"comment {comment_id} not found",
                ticker=comment_id,
                source=SUPABASE_SOURCE,
            )
        return _counter_value(rows[0], field)


def parse_records(rows: Sequence[object]) -> list[CommentRecord]:
    """Validate rows into records, skipping (and logging) malformed ones."""
    records: list[CommentRecord] = []
    for row in rows:
        try:
            records.append(CommentRecord.model_validate(row))
        except ValidationError as exc:
            logger.warning("Skipping malformed comment row: %d errors", exc.error_count())
    return records


def _counter_value(row: dict[str, object], field: CounterField) -> int:
    value = row.get(field.value)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)
