"""Apply realtime comment events to a ``CommentStore``.

Events are scoped to one symbol. Inserts go through the store's keyed upsert
(so the echo of our own insert deduplicates); updates shallow-merge the
delivered columns into the existing record. Anything for another symbol, or
that fails validation, is dropped with a log line.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from Souq_View.models.comments import CommentEvent, CommentRecord
from Souq_View.models.enums import CommentEventType
from Souq_View.sync.comment_store import CommentStore

logger = logging.getLogger(__name__)


class RealtimeMergeEngine:
    """Merge realtime events for *symbol* into *store*."""

    def __init__(self, store: CommentStore, symbol: str) -> None:
        self._store = store
        self._symbol = symbol.upper().strip()

    @property
    def symbol(self) -> str:
        return self._symbol

    def apply(self, event: CommentEvent) -> bool:
        """Apply one event; returns True when the visible list changed."""
        raw_symbol = event.record.get("stock_symbol")
        if raw_symbol is not None and str(raw_symbol).upper().strip() != self._symbol:
            logger.debug("Dropping %s event for %s (active: %s)", event.type, raw_symbol, self._symbol)
            return False

        match event.type:
            case CommentEventType.INSERT:
                return self._apply_insert(event)
            case CommentEventType.UPDATE:
                return self._apply_update(event)
        return False

    def _apply_insert(self, event: CommentEvent) -> bool:
        try:
            record = CommentRecord.model_validate(event.record)
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid realtime insert %s: %d errors",
                event.record_id,
                exc.error_count(),
            )
            return False
        return self._store.upsert(record)

    def _apply_update(self, event: CommentEvent) -> bool:
        comment_id = event.record_id
        if comment_id is None:
            logger.warning("Dropping realtime update without an id")
            return False
        try:
            merged = self._store.patch(comment_id, event.record)
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid realtime update %s: %d errors",
                comment_id,
                exc.error_count(),
            )
            return False
        if merged is None:
            logger.debug("Realtime update for %s changed nothing", comment_id)
            return False
        return merged.id in self._store
