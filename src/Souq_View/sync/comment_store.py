"""Keyed, order-deriving store for one symbol's comment threads.

Records are held in a map keyed by id; the threaded, ordered view is derived
on demand (top-level newest first, replies oldest first). Writes are
idempotent and last-write-wins per id, with ``updated_at`` as a monotonic
tie-break so a late fetch result cannot roll back a newer realtime update.

Replies that arrive before their parent are parked in a bounded buffer and
attached once the parent is seen.
"""

from __future__ import annotations

import datetime
import logging
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from typing import Any, Final

from Souq_View.models.comments import CommentRecord, CommentThread

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_ORPHAN_PARENTS: Final[int] = 50
MAX_ORPHANS_PER_PARENT: Final[int] = 20


class CommentStore:
    """State for one comment list.

    Usage::

        store = CommentStore()
        store.load(await comment_service.fetch_comments("AAPL"))
        store.upsert(new_record)
        for thread in store.threads():
            ...
    """

    def __init__(
        self,
        *,
        max_orphan_parents: int = MAX_ORPHAN_PARENTS,
        max_orphans_per_parent: int = MAX_ORPHANS_PER_PARENT,
    ) -> None:
        self._records: dict[str, CommentRecord] = {}
        self._orphans: OrderedDict[str, OrderedDict[str, CommentRecord]] = OrderedDict()
        self._max_orphan_parents = max_orphan_parents
        self._max_orphans_per_parent = max_orphans_per_parent
        self._view: list[CommentThread] | None = None

    def __len__(self) -> int:
        """Number of visible records (top-level comments plus attached replies)."""
        return len(self._records)

    def __contains__(self, comment_id: object) -> bool:
        return comment_id in self._records

    def get(self, comment_id: str) -> CommentRecord | None:
        return self._records.get(comment_id)

    @property
    def orphan_count(self) -> int:
        """Replies waiting for a parent that has not been seen yet."""
        return sum(len(replies) for replies in self._orphans.values())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def load(self, threads: Iterable[CommentThread]) -> None:
        """Merge a fetched page of threads into the store."""
        for thread in threads:
            self.upsert(thread.comment)
            for reply in thread.replies:
                self.upsert(reply)

    def upsert(self, record: CommentRecord) -> bool:
        """Insert or replace *record*; returns True when visible state changed.

        A record older than the stored copy (by ``updated_at``) is ignored.
        A reply whose parent is unknown is buffered instead.
        """
        if record.is_reply and not self._is_top_level(record.parent_id):
            self._buffer_orphan(record)
            return False

        stored = self._records.get(record.id)
        if stored is not None:
            if _is_older(record, stored):
                logger.debug("Ignoring stale copy of comment %s", record.id)
                return False
            if stored == record:
                return False

        self._records[record.id] = record
        self._view = None
        if not record.is_reply:
            self._flush_orphans(record.id)
        return True

    def patch(self, comment_id: str, changes: Mapping[str, Any]) -> CommentRecord | None:
        """Shallow-merge *changes* into the record with *comment_id*.

        Applies to visible records and to buffered orphans. Returns the merged
        record, or None when the id is unknown or the change is stale.

        Raises:
            pydantic.ValidationError: When the merged record is invalid.
        """
        stored = self._records.get(comment_id)
        if stored is None:
            return self._patch_orphan(comment_id, changes)

        merged = CommentRecord.model_validate({**stored.model_dump(), **changes})
        if merged.parent_id != stored.parent_id:
            merged = merged.model_copy(update={"parent_id": stored.parent_id})
        if not self.upsert(merged):
            return None
        return merged

    def clear(self) -> None:
        self._records.clear()
        self._orphans.clear()
        self._view = None

    # ------------------------------------------------------------------
    # Derived view
    # ------------------------------------------------------------------

    def threads(self) -> list[CommentThread]:
        """Ordered threads; the same list object is returned until state changes."""
        if self._view is None:
            replies: dict[str, list[CommentRecord]] = {}
            top_level: list[CommentRecord] = []
            for record in self._records.values():
                if record.parent_id is None:
                    top_level.append(record)
                else:
                    replies.setdefault(record.parent_id, []).append(record)

            top_level.sort(key=_sort_key, reverse=True)
            self._view = [
                CommentThread(
                    comment=record,
                    replies=sorted(replies.get(record.id, []), key=_sort_key),
                )
                for record in top_level
            ]
        return self._view

    # ------------------------------------------------------------------
    # Orphan buffer
    # ------------------------------------------------------------------

    def _is_top_level(self, comment_id: str | None) -> bool:
        parent = self._records.get(comment_id) if comment_id is not None else None
        return parent is not None and not parent.is_reply

    def _buffer_orphan(self, record: CommentRecord) -> None:
        parent_id = record.parent_id
        if parent_id is None:
            return
        waiting = self._orphans.get(parent_id)
        if waiting is None:
            if len(self._orphans) >= self._max_orphan_parents:
                evicted, dropped = self._orphans.popitem(last=False)
                logger.warning(
                    "Orphan buffer full; dropped %d replies waiting for %s",
                    len(dropped),
                    evicted,
                )
            waiting = self._orphans[parent_id] = OrderedDict()

        stored = waiting.get(record.id)
        if stored is not None and _is_older(record, stored):
            return
        waiting[record.id] = record
        if len(waiting) > self._max_orphans_per_parent:
            waiting.popitem(last=False)
        logger.debug("Buffered reply %s until parent %s arrives", record.id, parent_id)

    def _flush_orphans(self, parent_id: str) -> None:
        waiting = self._orphans.pop(parent_id, None)
        if not waiting:
            return
        logger.debug("Attaching %d buffered replies to %s", len(waiting), parent_id)
        for reply in waiting.values():
            self.upsert(reply)

    def _patch_orphan(self, comment_id: str, changes: Mapping[str, Any]) -> CommentRecord | None:
        for waiting in self._orphans.values():
            stored = waiting.get(comment_id)
            if stored is None:
                continue
            merged = CommentRecord.model_validate({**stored.model_dump(), **changes})
            if _is_older(merged, stored):
                return None
            waiting[comment_id] = merged.model_copy(update={"parent_id": stored.parent_id})
            return waiting[comment_id]
        return None


def _is_older(incoming: CommentRecord, stored: CommentRecord) -> bool:
    """True when *incoming* is strictly older than *stored* by ``updated_at``."""
    if incoming.updated_at is None or stored.updated_at is None:
        return False
    return _as_utc(incoming.updated_at) < _as_utc(stored.updated_at)


def _sort_key(record: CommentRecord) -> tuple[datetime.datetime, str]:
    return (_as_utc(record.created_at), record.id)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    """Naive timestamps from older rows are UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=datetime.UTC)
