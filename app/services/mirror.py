import asyncio
import logging
from collections.abc import Callable, Sequence

from app.models.bookmark import Bookmark
from app.models.change import ChangeEvent, ChangeKind
from app.models.user import Identity
from app.services.bookmark import BookmarkError, BookmarkStore
from app.services.realtime import ChangeFeed, Subscription

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChangeEvent], None]


def apply_change(
    records: Sequence[Bookmark], event: ChangeEvent, owner_id: str | None = None
) -> list[Bookmark]:
    """Apply one change event to the mirror.

    Inserts are prepended without re-sorting, so on-screen order follows
    arrival order. Updates keep their position. Events for a different owner
    are ignored.

    Args:
        records: Current mirror contents
        event: The change to apply
        owner_id: Owner the mirror belongs to, if known

    Returns:
        The new mirror contents; the input is never modified
    """
    if owner_id is not None and event.owner_id != owner_id:
        return list(records)
    if event.kind is ChangeKind.INSERT and event.record is not None:
        return [event.record, *records]
    if event.kind is ChangeKind.UPDATE and event.record is not None:
        new = event.record
        return [new if b.id == new.id else b for b in records]
    if event.kind is ChangeKind.DELETE:
        return [b for b in records if b.id != event.old_id]
    return list(records)


class BookmarkMirror:
    """Client-held copy of one identity's bookmarks.

    Filled by one bulk fetch and kept current by a change-feed subscription
    whose events are consumed by a single task and applied through
    `apply_change`. Optimistic deletes remove rows locally ahead of the
    remote call.
    """

    def __init__(
        self, store: BookmarkStore, feed: ChangeFeed, table: str = "bookmarks"
    ) -> None:
        self._store = store
        self._feed = feed
        self._table = table
        self._records: list[Bookmark] = []
        self._identity: Identity | None = None
        self._subscription: Subscription | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._generation = 0
        self._listeners: list[ChangeListener] = []

    @property
    def records(self) -> list[Bookmark]:
        return list(self._records)

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def start(self, identity: Identity) -> None:
        """Load and subscribe for an identity.

        Any previous subscription is released first so events for a stale
        identity cannot leak in.

        Args:
            identity: The identity whose bookmarks to mirror
        """
        self.stop()
        self._identity = identity
        self._subscription = self._feed.subscribe(self._table, identity.user_id)
        self._consumer = asyncio.create_task(self._consume(self._subscription))
        logger.info("Mirroring bookmarks for user %s", identity.user_id)
        await self.refetch()

    def stop(self) -> None:
        """Release the subscription and drop the identity."""
        self._generation += 1
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._consumer is not None:
            self._consumer.cancel()
            self._consumer = None
        if self._identity is not None:
            logger.info("Stopped mirroring for user %s", self._identity.user_id)
        self._identity = None

    async def refetch(self) -> bool:
        """Replace the mirror with the storage's current contents.

        A failed fetch leaves the mirror as it was. A fetch that completes
        after the mirror was stopped or rebound is discarded.

        Returns:
            True if the mirror was replaced
        """
        if self._identity is None:
            return False
        generation = self._generation
        owner_id = self._identity.user_id
        try:
            records = await self._store.fetch_bookmarks(owner_id)
        except BookmarkError as e:
            logger.warning("Bookmark fetch failed for user %s: %s", owner_id, e)
            return False
        if generation != self._generation:
            logger.debug("Discarding fetch result for stale mirror of %s", owner_id)
            return False
        self._records = [b for b in records if b.user_id == owner_id]
        return True

    def apply(self, event: ChangeEvent) -> None:
        owner_id = self._identity.user_id if self._identity else None
        if owner_id is None:
            return
        self._records = apply_change(self._records, event, owner_id)
        for listener in list(self._listeners):
            listener(event)

    def remove_local(self, bookmark_id: str) -> Bookmark | None:
        """Optimistically drop a bookmark from the mirror.

        Returns:
            The removed bookmark, or None if it was not present
        """
        for i, bookmark in enumerate(self._records):
            if bookmark.id == bookmark_id:
                del self._records[i]
                return bookmark
        return None

    def get(self, bookmark_id: str) -> Bookmark | None:
        return next((b for b in self._records if b.id == bookmark_id), None)

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            logger.debug("Applying %s for %s", event.kind.value, event.target_id)
            self.apply(event)
