import asyncio

import pytest

from app.models.change import ChangeEvent, ChangeKind
from app.services.mirror import BookmarkMirror, apply_change


def insert(record):
    return ChangeEvent(kind=ChangeKind.INSERT, owner_id=record.user_id, record=record)


def update(record):
    return ChangeEvent(kind=ChangeKind.UPDATE, owner_id=record.user_id, record=record)


def delete(record):
    return ChangeEvent(kind=ChangeKind.DELETE, owner_id=record.user_id, old_id=record.id)


@pytest.mark.unit
class TestApplyChange:
    def test_insert_prepends_without_resorting(self, make_bookmark):
        # Arrange
        records = [make_bookmark(2, created=2), make_bookmark(1, created=1)]
        # Older timestamp than everything in the mirror
        new = make_bookmark(3, created=0)

        # Act
        result = apply_change(records, insert(new))

        # Assert
        assert [b.id for b in result] == ["3", "2", "1"]

    def test_update_replaces_in_place(self, make_bookmark):
        # Arrange
        records = [make_bookmark(1), make_bookmark(2, title="Old"), make_bookmark(3)]
        edited = make_bookmark(2, title="New")

        # Act
        result = apply_change(records, update(edited))

        # Assert
        assert [b.id for b in result] == ["1", "2", "3"]
        assert result[1].title == "New"

    def test_delete_removes_matching_id(self, make_bookmark):
        records = [make_bookmark(1), make_bookmark(2)]

        result = apply_change(records, delete(records[0]))

        assert [b.id for b in result] == ["2"]

    def test_does_not_modify_input(self, make_bookmark):
        records = [make_bookmark(1)]

        apply_change(records, insert(make_bookmark(2)))

        assert [b.id for b in records] == ["1"]

    def test_ignores_other_owner(self, make_bookmark, other_identity):
        records = [make_bookmark(1)]
        foreign = make_bookmark(9, user_id=other_identity.user_id)

        result = apply_change(records, insert(foreign), owner_id="user-1")

        assert [b.id for b in result] == ["1"]

    def test_update_for_unknown_id_is_noop(self, make_bookmark):
        records = [make_bookmark(1)]

        result = apply_change(records, update(make_bookmark(5)))

        assert result == records


@pytest.mark.unit
class TestBookmarkMirror:
    async def test_start_fetches_newest_first(
        self, mirror: BookmarkMirror, store, make_bookmark, test_identity
    ):
        # Arrange
        store.seed(make_bookmark(1, created=1), make_bookmark(2, created=2))

        # Act
        await mirror.start(test_identity)

        # Assert
        assert [b.id for b in mirror.records] == ["2", "1"]
        assert mirror.active
        mirror.stop()

    async def test_start_excludes_other_owners(
        self, mirror, store, make_bookmark, test_identity, other_identity
    ):
        store.seed(make_bookmark(1), make_bookmark(2, user_id=other_identity.user_id))

        await mirror.start(test_identity)

        assert [b.id for b in mirror.records] == ["1"]
        mirror.stop()

    async def test_failed_fetch_keeps_previous_contents(
        self, mirror, store, make_bookmark, test_identity
    ):
        # Arrange
        store.seed(make_bookmark(1))
        await mirror.start(test_identity)
        store.fail_fetch = True
        store.seed(make_bookmark(2))

        # Act
        replaced = await mirror.refetch()

        # Assert
        assert replaced is False
        assert [b.id for b in mirror.records] == ["1"]
        mirror.stop()

    async def test_subscription_events_are_applied(
        self, settle, mirror, feed, make_bookmark, test_identity
    ):
        # Arrange
        await mirror.start(test_identity)
        one, two = make_bookmark(1, created=1), make_bookmark(2, created=2)

        # Act
        feed.publish(insert(one))
        feed.publish(insert(two))
        feed.publish(update(one.model_copy(update={"title": "Renamed"})))
        await settle()

        # Assert
        assert [b.id for b in mirror.records] == ["2", "1"]
        assert mirror.records[1].title == "Renamed"

        feed.publish(delete(two))
        await settle()
        assert [b.id for b in mirror.records] == ["1"]
        mirror.stop()

    async def test_insert_while_mirror_has_records_prepends(
        self, settle, mirror, store, feed, make_bookmark, test_identity
    ):
        # Arrange
        store.seed(make_bookmark(1, created=1), make_bookmark(2, created=2))
        await mirror.start(test_identity)

        # Act
        feed.publish(insert(make_bookmark(3, created=0)))
        await settle()

        # Assert
        assert [b.id for b in mirror.records] == ["3", "2", "1"]
        mirror.stop()

    async def test_other_owner_events_not_delivered(
        self, settle, mirror, feed, make_bookmark, test_identity, other_identity
    ):
        await mirror.start(test_identity)

        feed.publish(insert(make_bookmark(7, user_id=other_identity.user_id)))
        await settle()

        assert mirror.records == []
        mirror.stop()

    async def test_stop_releases_subscription(self, mirror, feed, test_identity):
        await mirror.start(test_identity)
        assert feed.subscriber_count == 1

        mirror.stop()

        assert feed.subscriber_count == 0
        assert not mirror.active
        assert mirror.identity is None

    async def test_restart_for_new_identity_does_not_duplicate(
        self, settle, mirror, feed, make_bookmark, test_identity, other_identity
    ):
        # Arrange
        await mirror.start(test_identity)

        # Act
        await mirror.start(other_identity)
        feed.publish(insert(make_bookmark(1)))
        feed.publish(insert(make_bookmark(2, user_id=other_identity.user_id)))
        await settle()

        # Assert
        assert feed.subscriber_count == 1
        assert [b.id for b in mirror.records] == ["2"]
        mirror.stop()

    async def test_fetch_result_after_stop_is_ignored(
        self, settle, mirror, store, make_bookmark, test_identity
    ):
        # Arrange
        store.seed(make_bookmark(1))
        gate = asyncio.Event()
        original = store.fetch_bookmarks

        async def slow_fetch(owner_id):
            await gate.wait()
            return await original(owner_id)

        store.fetch_bookmarks = slow_fetch
        task = asyncio.create_task(mirror.start(test_identity))
        await settle()

        # Act
        mirror.stop()
        gate.set()
        await task

        # Assert
        assert mirror.records == []

    async def test_remove_local(self, mirror, store, make_bookmark, test_identity):
        store.seed(make_bookmark(1), make_bookmark(2))
        await mirror.start(test_identity)

        removed = mirror.remove_local("1")

        assert removed is not None and removed.id == "1"
        assert [b.id for b in mirror.records] == ["2"]
        assert mirror.remove_local("missing") is None
        mirror.stop()

    async def test_change_listeners(self, settle, mirror, feed, make_bookmark, test_identity):
        # Arrange
        await mirror.start(test_identity)
        seen = []
        unsubscribe = mirror.on_change(seen.append)

        # Act
        feed.publish(insert(make_bookmark(1)))
        await settle()
        unsubscribe()
        feed.publish(insert(make_bookmark(2)))
        await settle()

        # Assert
        assert [e.target_id for e in seen] == ["1"]
        mirror.stop()
