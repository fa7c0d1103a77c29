import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from app.models.bookmark import Bookmark, BookmarkCreate, BookmarkUpdate, Tag
from app.models.change import ChangeEvent, ChangeKind
from app.models.user import Identity
from app.services.bookmark import BookmarkError, BookmarkNotFoundError, BookmarkStore
from app.services.mirror import BookmarkMirror
from app.services.mutation import MutationCoordinator
from app.services.notifier import Notifier
from app.services.realtime import ChangeFeed

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class FakeBookmarkStore(BookmarkStore):
    """In-memory storage that publishes its writes like the hosted backend.

    Rows are kept in creation order; fetches return them newest first.
    Setting one of the `fail_*` flags makes the matching call raise.
    """

    def __init__(self, feed: ChangeFeed) -> None:
        self.feed = feed
        self.rows: list[Bookmark] = []
        self.calls: list[str] = []
        self.fail_fetch = False
        self.fail_create = False
        self.fail_update = False
        self.fail_delete = False
        self._ids = count(100)
        self._clock = count(1)

    def seed(self, *bookmarks: Bookmark) -> None:
        self.rows.extend(bookmarks)

    async def fetch_bookmarks(self, owner_id: str) -> list[Bookmark]:
        self.calls.append("fetch")
        if self.fail_fetch:
            raise BookmarkError("fetch failed")
        owned = [b for b in self.rows if b.user_id == owner_id]
        return sorted(owned, key=lambda b: b.created_at, reverse=True)

    async def create_bookmark(self, bookmark: BookmarkCreate) -> Bookmark:
        self.calls.append("create")
        if self.fail_create:
            raise BookmarkError("create failed")
        created = Bookmark(
            id=str(next(self._ids)),
            created_at=BASE_TIME + timedelta(days=next(self._clock)),
            **bookmark.model_dump(),
        )
        self.rows.append(created)
        self.feed.publish(
            ChangeEvent(
                kind=ChangeKind.INSERT, owner_id=created.user_id, record=created
            )
        )
        return created

    async def update_bookmark(
        self, bookmark_id: str, bookmark: BookmarkUpdate
    ) -> Bookmark:
        self.calls.append("update")
        if self.fail_update:
            raise BookmarkError("update failed")
        for i, row in enumerate(self.rows):
            if row.id == bookmark_id:
                updated = row.model_copy(update=bookmark.model_dump())
                self.rows[i] = updated
                self.feed.publish(
                    ChangeEvent(
                        kind=ChangeKind.UPDATE,
                        owner_id=updated.user_id,
                        record=updated,
                    )
                )
                return updated
        raise BookmarkNotFoundError(bookmark_id)

    async def delete_bookmark(self, bookmark_id: str) -> None:
        self.calls.append("delete")
        if self.fail_delete:
            raise BookmarkError("delete failed")
        for row in self.rows:
            if row.id == bookmark_id:
                self.rows.remove(row)
                self.feed.publish(
                    ChangeEvent(
                        kind=ChangeKind.DELETE, owner_id=row.user_id, old_id=row.id
                    )
                )
                return
        raise BookmarkNotFoundError(bookmark_id)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def settle() -> Callable[[], Awaitable[None]]:
    """Let queued change-feed events reach their consumers."""
    return _settle


@pytest.fixture
def test_identity() -> Identity:
    return Identity(
        user_id="user-1",
        email="reader@example.com",
        display_name="Test Reader",
        avatar_url=None,
    )


@pytest.fixture
def other_identity() -> Identity:
    return Identity(user_id="user-2", email="other@example.com")


@pytest.fixture
def make_bookmark(test_identity: Identity) -> Callable[..., Bookmark]:
    def factory(
        id: str | int,
        title: str = "Untitled",
        url: str = "https://example.com",
        description: str | None = None,
        tag: Tag | None = None,
        created: int = 0,
        user_id: str | None = None,
    ) -> Bookmark:
        return Bookmark(
            id=str(id),
            user_id=user_id or test_identity.user_id,
            title=title,
            url=url,
            description=description,
            tag=tag,
            created_at=BASE_TIME + timedelta(hours=created),
        )

    return factory


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def store(feed: ChangeFeed) -> FakeBookmarkStore:
    return FakeBookmarkStore(feed)


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def mirror(store: FakeBookmarkStore, feed: ChangeFeed) -> BookmarkMirror:
    return BookmarkMirror(store, feed)


@pytest.fixture
def coordinator(
    store: FakeBookmarkStore, mirror: BookmarkMirror, notifier: Notifier
) -> MutationCoordinator:
    return MutationCoordinator(store, mirror, notifier)
