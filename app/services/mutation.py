import logging

from pydantic import BaseModel

from app.models.bookmark import (
    Bookmark,
    BookmarkCreate,
    BookmarkDraft,
    BookmarkUpdate,
    Tag,
)
from app.models.user import Identity
from app.services.bookmark import BookmarkError, BookmarkStore
from app.services.mirror import BookmarkMirror
from app.services.notifier import Notifier

logger = logging.getLogger(__name__)

SAVED = "Bookmark saved"
UPDATED = "Bookmark updated"
DELETED = "Bookmark deleted"
SAVE_FAILED = "Failed to save — try again"
UPDATE_FAILED = "Failed to update — try again"
DELETE_FAILED = "Delete failed — restoring..."


class BookmarkForm(BaseModel):
    """State of the create/edit panel.

    Attributes:
        title: Title input
        url: URL input
        description: Note input
        tag: Selected tag, if any
        edit_id: ID of the bookmark being edited, None when creating
        open: Whether the panel is shown
    """

    title: str = ""
    url: str = ""
    description: str = ""
    tag: Tag | None = None
    edit_id: str | None = None
    open: bool = False

    @property
    def is_valid(self) -> bool:
        return bool(self.title.strip()) and bool(self.url.strip())

    def fill(self, draft: BookmarkDraft) -> None:
        self.title = draft.title
        self.url = draft.url
        self.description = draft.description or ""
        self.tag = draft.tag

    def reset(self) -> None:
        self.title = ""
        self.url = ""
        self.description = ""
        self.tag = None
        self.edit_id = None


class MutationCoordinator:
    """Turns create, update and delete intents into remote writes.

    Creates and updates are not applied locally; the mirror learns about
    them from the change feed. Deletes are optimistic: the row leaves the
    mirror first, and a failed remote delete is compensated by a full
    refetch rather than by re-inserting the row.
    """

    def __init__(
        self,
        store: BookmarkStore,
        mirror: BookmarkMirror,
        notifier: Notifier,
    ) -> None:
        self._store = store
        self._mirror = mirror
        self._notifier = notifier
        self.form = BookmarkForm()
        self.submitting = False
        self.delete_target: str | None = None

    @property
    def can_submit(self) -> bool:
        return self.form.is_valid and not self.submitting

    def open_create(self) -> None:
        self.form.reset()
        self.form.open = True

    def open_edit(self, bookmark: Bookmark) -> None:
        self.form.title = bookmark.title
        self.form.url = bookmark.url
        self.form.description = bookmark.description or ""
        self.form.tag = bookmark.tag
        self.form.edit_id = bookmark.id
        self.form.open = True

    def close_form(self) -> None:
        self.form.open = False
        self.form.reset()

    async def submit(self, identity: Identity) -> bool:
        """Submit the form as a create or, with an edit id, an update.

        Nothing is sent while the form is invalid or a previous submit is
        still in flight.

        Args:
            identity: The signed-in owner

        Returns:
            True if the remote write succeeded
        """
        if not self.can_submit:
            return False
        self.submitting = True
        try:
            if self.form.edit_id:
                return await self._update(self.form.edit_id)
            return await self._create(identity)
        finally:
            self.submitting = False

    async def _create(self, identity: Identity) -> bool:
        bookmark = BookmarkCreate(
            title=self.form.title,
            url=self.form.url,
            description=self.form.description,
            tag=self.form.tag,
            user_id=identity.user_id,
        )
        try:
            await self._store.create_bookmark(bookmark)
        except BookmarkError as e:
            logger.warning("Create failed: %s", e)
            self._notifier.show(SAVE_FAILED)
            return False
        self._notifier.show(SAVED)
        self.close_form()
        return True

    async def _update(self, bookmark_id: str) -> bool:
        bookmark = BookmarkUpdate(
            title=self.form.title,
            url=self.form.url,
            description=self.form.description,
            tag=self.form.tag,
        )
        try:
            await self._store.update_bookmark(bookmark_id, bookmark)
        except BookmarkError as e:
            logger.warning("Update of %s failed: %s", bookmark_id, e)
            self._notifier.show(UPDATE_FAILED)
            return False
        self._notifier.show(UPDATED)
        self.close_form()
        return True

    def request_delete(self, bookmark_id: str) -> None:
        self.delete_target = bookmark_id

    def cancel_delete(self) -> None:
        self.delete_target = None

    async def confirm_delete(self) -> bool:
        """Delete the bookmark awaiting confirmation.

        Returns:
            True if the remote delete succeeded
        """
        if self.delete_target is None:
            return False
        bookmark_id = self.delete_target
        self.apply_delete(bookmark_id)
        return await self.commit_delete(bookmark_id)

    def apply_delete(self, bookmark_id: str) -> None:
        """Local phase: drop the row, close the dialog and confirm at once."""
        self._mirror.remove_local(bookmark_id)
        self.delete_target = None
        self._notifier.show(DELETED)

    async def commit_delete(self, bookmark_id: str) -> bool:
        """Remote phase: delete in storage, resynchronizing on failure."""
        try:
            await self._store.delete_bookmark(bookmark_id)
        except BookmarkError as e:
            logger.warning("Delete of %s failed: %s", bookmark_id, e)
            self._notifier.show(DELETE_FAILED)
            await self.compensate_delete()
            return False
        return True

    async def compensate_delete(self) -> None:
        # Storage is authoritative once a delete has failed
        await self._mirror.refetch()
