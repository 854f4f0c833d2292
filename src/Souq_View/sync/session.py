"""Symbol-scoped comment session: load, live updates, and optimistic mutations.

A ``StockCommentsSession`` owns the comment list for one symbol. It subscribes
to the realtime channel first and loads second, so nothing committed between
the two is missed; the keyed store makes the overlap harmless.

Mutations (upvote, downvote, report) are applied locally at once and marked
``PENDING``. The network call then either confirms them, replacing the local
value with the server's, or fails them, reverting the local patch. Nothing is
retried automatically.

Every public method absorbs ``DataFetchError``: failures show up as
``last_error`` and as ``MutationStatus.FAILED``, never as exceptions.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable

from Souq_View.config import DEFAULT_COMMENT_LIMIT
from Souq_View.models.comments import CommentEvent, CommentRecord, CommentThread
from Souq_View.models.enums import CounterField, MutationStatus, Sentiment
from Souq_View.services.comments import CommentService
from Souq_View.services.realtime import CommentChannel, Subscription
from Souq_View.services.supabase import UserIdResolver
from Souq_View.sync.comment_store import CommentStore
from Souq_View.sync.merge_engine import RealtimeMergeEngine
from Souq_View.utils.exceptions import DataFetchError

logger = logging.getLogger(__name__)

ChangeListener = Callable[[list[CommentThread]], None]


class LivenessFlag:
    """Cleared when the owning view goes away; late results check it first."""

    def __init__(self) -> None:
        self._alive: bool = True

    @property
    def alive(self) -> bool:
        return self._alive

    def close(self) -> None:
        self._alive = False


class StockCommentsSession:
    """Live comment list for one symbol.

    Usage::

        session = StockCommentsSession(
            "AAPL", comments=comment_service, channel=channel, identity=supabase
        )
        await session.start()
        status = await session.upvote(comment_id)
        ...
        await session.close()
    """

    def __init__(
        self,
        symbol: str,
        *,
        comments: CommentService,
        identity: UserIdResolver,
        channel: CommentChannel | None = None,
        limit: int = DEFAULT_COMMENT_LIMIT,
        on_change: ChangeListener | None = None,
    ) -> None:
        self._symbol = symbol.upper().strip()
        self._comments = comments
        self._identity = identity
        self._channel = channel
        self._limit = limit
        self._on_change = on_change
        self._store = CommentStore()
        self._engine = RealtimeMergeEngine(self._store, self._symbol)
        self._liveness = LivenessFlag()
        self._subscription: Subscription | None = None
        self._mutations: dict[str, MutationStatus] = {}
        self.last_error: DataFetchError | None = None
        self.loading: bool = False

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def alive(self) -> bool:
        return self._liveness.alive

    @property
    def realtime(self) -> bool:
        """True while a realtime subscription is open."""
        return self._subscription is not None

    def threads(self) -> list[CommentThread]:
        return self._store.threads()

    def mutation_status(self, comment_id: str) -> MutationStatus | None:
        """Status of the latest mutation on *comment_id*, if any."""
        return self._mutations.get(comment_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to live changes, then load the first page."""
        if self._channel is not None:
            try:
                self._subscription = await self._channel.subscribe(self._symbol, self.on_event)
            except DataFetchError as exc:
                logger.warning("Realtime unavailable for %s: %s", self._symbol, exc)
        if not self._liveness.alive:
            await self._release_subscription()
            return
        await self.refresh()

    async def refresh(self) -> bool:
        """Fetch the latest page and merge it; returns False on failure."""
        liveness = self._liveness
        self.loading = True
        try:
            threads = await self._comments.fetch_comments(self._symbol, self._limit)
        except DataFetchError as exc:
            logger.warning("Failed to load comments for %s: %s", self._symbol, exc)
            if liveness.alive:
                self.last_error = exc
                self.loading = False
            return False

        if not liveness.alive:
            logger.debug("Discarding comment load for closed session %s", self._symbol)
            return False
        self._store.load(threads)
        self.last_error = None
        self.loading = False
        self._notify()
        return True

    async def close(self) -> None:
        """Stop the session; in-flight loads and late events are ignored."""
        self._liveness.close()
        await self._release_subscription()

    def on_event(self, event: CommentEvent) -> None:
        """Realtime handler passed to the channel."""
        if not self._liveness.alive:
            return
        if self._engine.apply(event):
            self._notify()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_comment(
        self,
        text: str,
        sentiment: Sentiment,
        parent_id: str | None = None,
    ) -> CommentRecord | None:
        """Post a comment or reply; returns the stored record, or None on failure."""
        if not text.strip():
            logger.info("Ignoring blank comment for %s", self._symbol)
            return None
        try:
            user_id = await self._identity.current_user_id()
            record = await self._comments.insert_comment(
                self._symbol, text, sentiment, user_id=user_id, parent_id=parent_id
            )
        except DataFetchError as exc:
            logger.warning("Failed to post comment on %s: %s", self._symbol, exc)
            self.last_error = exc
            return None

        if self._liveness.alive and self._store.upsert(record):
            self._notify()
        return record

    async def upvote(self, comment_id: str) -> MutationStatus:
        return await self._increment(comment_id, CounterField.UPVOTES)

    async def downvote(self, comment_id: str) -> MutationStatus:
        return await self._increment(comment_id, CounterField.DOWNVOTES)

    async def report(self, comment_id: str) -> MutationStatus:
        """Flag a comment for moderation."""
        record = self._store.get(comment_id)
        if record is None:
            return MutationStatus.FAILED

        liveness = self._liveness
        stamp = datetime.datetime.now(datetime.UTC)
        self._begin(comment_id, reported_at=stamp)
        try:
            user_id = await self._identity.current_user_id()
            stored = await self._comments.report_comment(comment_id, user_id)
        except DataFetchError as exc:
            logger.warning("Report failed for comment %s: %s", comment_id, exc)
            if liveness.alive:
                self._revert(comment_id, "reported_at", stamp, record.reported_at)
            return self._finish(comment_id, MutationStatus.FAILED)

        if liveness.alive:
            self._store.patch(
                comment_id,
                {"reported_at": stored.reported_at, "reported_by": stored.reported_by},
            )
            self._notify()
        return self._finish(comment_id, MutationStatus.CONFIRMED)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _increment(self, comment_id: str, field: CounterField) -> MutationStatus:
        record = self._store.get(comment_id)
        if record is None:
            return MutationStatus.FAILED

        liveness = self._liveness
        original: int = getattr(record, field.value)
        optimistic = original + 1
        self._begin(comment_id, **{field.value: optimistic})
        try:
            authoritative = await self._comments.increment_counter(
                comment_id, field, current=original
            )
        except DataFetchError as exc:
            logger.warning("%s failed for comment %s: %s", field, comment_id, exc)
            if liveness.alive:
                self._revert(comment_id, field.value, optimistic, original)
            return self._finish(comment_id, MutationStatus.FAILED)

        if liveness.alive:
            latest = self._store.get(comment_id)
            local = getattr(latest, field.value) if latest is not None else 0
            # a realtime echo may already carry a newer count
            self._store.patch(comment_id, {field.value: max(local, authoritative)})
            self._notify()
        return self._finish(comment_id, MutationStatus.CONFIRMED)

    def _begin(self, comment_id: str, **changes: object) -> None:
        self._mutations[comment_id] = MutationStatus.PENDING
        self._store.patch(comment_id, changes)
        self._notify()

    def _revert(self, comment_id: str, field: str, optimistic: object, original: object) -> None:
        """Undo an optimistic patch unless something newer replaced it."""
        latest = self._store.get(comment_id)
        if latest is not None and getattr(latest, field) == optimistic:
            self._store.patch(comment_id, {field: original})
            self._notify()

    def _finish(self, comment_id: str, status: MutationStatus) -> MutationStatus:
        self._mutations[comment_id] = status
        return status

    def _notify(self) -> None:
        if self._on_change is not None and self._liveness.alive:
            self._on_change(self._store.threads())

    async def _release_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        try:
            await subscription.unsubscribe()
        except DataFetchError as exc:
            logger.warning("Failed to unsubscribe from %s: %s", self._symbol, exc)


SessionFactory = Callable[[str], StockCommentsSession]


class SymbolScope:
    """Holds at most one live session; switching releases the old one first.

    Usage::

        scope = SymbolScope(lambda symbol: StockCommentsSession(symbol, ...))
        session = await scope.switch("AAPL")
        session = await scope.switch("TSLA")  # AAPL is closed before TSLA opens
    """

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._current: StockCommentsSession | None = None

    @property
    def current(self) -> StockCommentsSession | None:
        return self._current

    async def switch(self, symbol: str) -> StockCommentsSession:
        await self.close()
        session = self._factory(symbol)
        self._current = session
        await session.start()
        return session

    async def close(self) -> None:
        previous, self._current = self._current, None
        if previous is not None:
            await previous.close()
