"""Tests for CommentStore: keyed upserts, ordering, staleness, and orphans.

Covers:
- Ordering: top-level newest first, replies oldest first
- Idempotent upsert: a duplicate insert leaves one record and the same view
- Last-write-wins with updated_at as a monotonic tie-break
- patch(): merge, unknown id, parent_id kept, validation errors
- Orphan replies buffered, attached on parent arrival, bounded FIFO
- load() merges fetched threads with realtime state
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from pydantic import ValidationError

from Souq_View.models import CommentRecord, CommentThread
from Souq_View.sync.comment_store import CommentStore

RecordFactory = Callable[..., CommentRecord]


@pytest.fixture()
def store() -> CommentStore:
    return CommentStore()


def _ids(store: CommentStore) -> list[tuple[str, list[str]]]:
    return [(thread.id, [reply.id for reply in thread.replies]) for thread in store.threads()]


class TestOrdering:
    """Tests for the derived threaded view."""

    def test_newest_first_replies_oldest_first(
        self, store: CommentStore, record_factory: RecordFactory
    ) -> None:
        store.upsert(record_factory("c1", minute=1))
        store.upsert(record_factory("c2", minute=9))
        store.upsert(record_factory("r2", parent_id="c1", minute=5))
        store.upsert(record_factory("r1", parent_id="c1", minute=3))

        assert _ids(store) == [("c2", []), ("c1", ["r1", "r2"])]
        assert len(store) == 4

    def test_view_is_cached_until_change(
        self, store: CommentStore, sample_comment: CommentRecord, bearish_comment: CommentRecord
    ) -> None:
        store.upsert(sample_comment)
        first = store.threads()
        assert store.threads() is first

        store.upsert(bearish_comment)
        assert store.threads() is not first


class TestUpsert:
    """Tests for idempotent, last-write-wins upserts."""

    def test_duplicate_insert_is_noop(
        self, store: CommentStore, sample_comment: CommentRecord
    ) -> None:
        assert store.upsert(sample_comment) is True
        view = store.threads()

        assert store.upsert(sample_comment) is False
        assert len(store) == 1
        assert store.threads() is view

    def test_newer_copy_replaces(self, store: CommentStore, record_factory: RecordFactory) -> None:
        store.upsert(record_factory("c1", upvotes=1, updated_minute=1))
        assert store.upsert(record_factory("c1", upvotes=2, updated_minute=2)) is True
        assert store.get("c1").upvotes == 2  # type: ignore[union-attr]

    def test_stale_copy_ignored(self, store: CommentStore, record_factory: RecordFactory) -> None:
        store.upsert(record_factory("c1", upvotes=5, updated_minute=10))
        assert store.upsert(record_factory("c1", upvotes=1, updated_minute=2)) is False
        assert store.get("c1").upvotes == 5  # type: ignore[union-attr]

    def test_missing_updated_at_is_last_write_wins(
        self, store: CommentStore, record_factory: RecordFactory
    ) -> None:
        store.upsert(record_factory("c1", upvotes=5, updated_minute=10))
        assert store.upsert(record_factory("c1", upvotes=1)) is True
        assert store.get("c1").upvotes == 1  # type: ignore[union-attr]

    def test_clear(self, store: CommentStore, sample_comment: CommentRecord) -> None:
        store.upsert(sample_comment)
        store.clear()
        assert len(store) == 0
        assert store.threads() == []


class TestPatch:
    """Tests for patch()."""

    def test_merges_changed_columns(
        self, store: CommentStore, sample_comment: CommentRecord
    ) -> None:
        store.upsert(sample_comment)
        merged = store.patch("c1", {"id": "c1", "upvotes": 9})

        assert merged is not None
        assert merged.upvotes == 9
        assert merged.text == sample_comment.text

    def test_unknown_id_leaves_view_untouched(
        self, store: CommentStore, sample_comment: CommentRecord
    ) -> None:
        store.upsert(sample_comment)
        view = store.threads()

        assert store.patch("missing", {"upvotes": 3}) is None
        assert store.threads() is view

    def test_parent_id_is_kept(
        self, store: CommentStore, sample_comment: CommentRecord, sample_reply: CommentRecord
    ) -> None:
        store.upsert(sample_comment)
        store.upsert(sample_reply)
        merged = store.patch("r1", {"parent_id": None, "text": "Edited"})

        assert merged is not None
        assert merged.parent_id == "c1"
        assert _ids(store) == [("c1", ["r1"])]

    def test_invalid_merge_raises(self, store: CommentStore, sample_comment: CommentRecord) -> None:
        store.upsert(sample_comment)
        with pytest.raises(ValidationError):
            store.patch("c1", {"upvotes": -1})
        assert store.get("c1") == sample_comment


class TestOrphans:
    """Tests for replies that arrive before their parent."""

    def test_reply_waits_for_parent(
        self, store: CommentStore, sample_comment: CommentRecord, sample_reply: CommentRecord
    ) -> None:
        assert store.upsert(sample_reply) is False
        assert store.orphan_count == 1
        assert store.threads() == []

        store.upsert(sample_comment)
        assert store.orphan_count == 0
        assert _ids(store) == [("c1", ["r1"])]

    def test_patch_reaches_buffered_reply(
        self, store: CommentStore, sample_comment: CommentRecord, sample_reply: CommentRecord
    ) -> None:
        store.upsert(sample_reply)
        store.patch("r1", {"upvotes": 4})
        store.upsert(sample_comment)
        assert store.get("r1").upvotes == 4  # type: ignore[union-attr]

    def test_reply_to_reply_stays_buffered(
        self, store: CommentStore, record_factory: RecordFactory
    ) -> None:
        store.upsert(record_factory("c1"))
        store.upsert(record_factory("r1", parent_id="c1", minute=1))
        store.upsert(record_factory("rr1", parent_id="r1", minute=2))

        assert "rr1" not in store
        assert store.orphan_count == 1

    def test_parent_buffer_is_bounded(self, record_factory: RecordFactory) -> None:
        store = CommentStore(max_orphan_parents=2, max_orphans_per_parent=2)
        store.upsert(record_factory("a1", parent_id="A"))
        store.upsert(record_factory("b1", parent_id="B"))
        store.upsert(record_factory("c1", parent_id="C"))

        # oldest parent's waiting replies were evicted
        store.upsert(record_factory("A"))
        assert "a1" not in store
        assert store.orphan_count == 2

    def test_replies_per_parent_bounded(self, record_factory: RecordFactory) -> None:
        store = CommentStore(max_orphans_per_parent=2)
        for index in range(3):
            store.upsert(record_factory(f"r{index}", parent_id="P", minute=index))

        store.upsert(record_factory("P"))
        assert _ids(store) == [("P", ["r1", "r2"])]


class TestLoad:
    """Tests for load()."""

    def test_load_keeps_newer_realtime_copy(
        self, store: CommentStore, record_factory: RecordFactory
    ) -> None:
        store.upsert(record_factory("c1", upvotes=7, updated_minute=30))
        fetched = [
            CommentThread(
                comment=record_factory("c1", upvotes=3, updated_minute=5),
                replies=[record_factory("r1", parent_id="c1", minute=2)],
            )
        ]
        store.load(fetched)

        assert store.get("c1").upvotes == 7  # type: ignore[union-attr]
        assert _ids(store) == [("c1", ["r1"])]
