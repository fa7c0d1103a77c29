import logging
from abc import ABC, abstractmethod
from os import environ
from typing import Any

import httpx
from pydantic import ValidationError

from app.db import BackendClient
from app.models.bookmark import Bookmark, BookmarkCreate, BookmarkUpdate
from app.models.change import ChangeEvent, ChangeKind
from app.services.realtime import ChangeFeed

logger = logging.getLogger(__name__)


class BookmarkError(Exception):
    """Base exception for bookmark-related errors."""

    pass


class BookmarkNotFoundError(BookmarkError):
    """Exception raised when a bookmark is not found."""

    pass


class BookmarkStore(ABC):
    """Interface of the storage collaborator the page depends on.

    Owner scoping is enforced by the storage backend; callers supply the owner
    on writes and trust the backend to reject reads of other owners' rows.
    """

    table: str = "bookmarks"

    @abstractmethod
    async def fetch_bookmarks(self, owner_id: str) -> list[Bookmark]:
        """Fetch every bookmark of an owner, newest first.

        Raises:
            BookmarkError: If the fetch fails
        """
        raise NotImplementedError

    @abstractmethod
    async def create_bookmark(self, bookmark: BookmarkCreate) -> Bookmark:
        """Insert a bookmark.

        Raises:
            BookmarkError: If the insert is rejected
        """
        raise NotImplementedError

    @abstractmethod
    async def update_bookmark(
        self, bookmark_id: str, bookmark: BookmarkUpdate
    ) -> Bookmark:
        """Update the mutable fields of a bookmark.

        Raises:
            BookmarkNotFoundError: If no visible bookmark has that id
            BookmarkError: If the update is rejected
        """
        raise NotImplementedError

    @abstractmethod
    async def delete_bookmark(self, bookmark_id: str) -> None:
        """Delete a bookmark.

        Raises:
            BookmarkNotFoundError: If no visible bookmark has that id
            BookmarkError: If the delete is rejected
        """
        raise NotImplementedError


class BookmarkService(BookmarkStore):
    """Service for reading and writing bookmarks in hosted storage.

    Requests go to the backend's REST endpoint for the bookmarks table using
    the caller's access token, so row-level policies scope every query to the
    signed-in owner. Successful writes are published to the change feed so
    every open session of the owner hears about them.

    Attributes:
        table: Name of the bookmarks table
    """

    def __init__(
        self,
        client: BackendClient,
        feed: ChangeFeed,
        access_token: str,
        table: str | None = None,
    ) -> None:
        self._client = client
        self._feed = feed
        self._access_token = access_token
        self.table: str = table or environ.get("BOOKMARKS_TABLE", "bookmarks")

    @property
    def _path(self) -> str:
        return f"/rest/v1/{self.table}"

    def _headers(self, returning: bool = False) -> dict[str, str]:
        headers = self._client.headers(self._access_token)
        if returning:
            headers["Prefer"] = "return=representation"
        return headers

    async def _request(
        self,
        method: str,
        params: dict[str, str],
        json: dict[str, Any] | None = None,
        returning: bool = False,
    ) -> list[dict[str, Any]]:
        try:
            response = await self._client.client.request(
                method,
                self._path,
                params=params,
                json=json,
                headers=self._headers(returning),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BookmarkError(f"{method} {self._path} failed: {str(e)}")
        if not response.content:
            return []
        try:
            rows = response.json()
        except ValueError as e:
            raise BookmarkError(
                f"{method} {self._path} returned invalid JSON: {str(e)}"
            )
        if not isinstance(rows, list):
            raise BookmarkError(
                f"{method} {self._path} returned {type(rows).__name__}, not rows"
            )
        return rows

    def _parse(self, rows: list[dict[str, Any]]) -> list[Bookmark]:
        try:
            return [Bookmark(**row) for row in rows]
        except (TypeError, ValidationError) as e:
            raise BookmarkError(f"Malformed bookmark row: {str(e)}")

    async def fetch_bookmarks(self, owner_id: str) -> list[Bookmark]:
        """Fetch every bookmark of an owner.

        Args:
            owner_id: ID of the owning identity

        Returns:
            Bookmarks ordered by creation time, newest first

        Raises:
            BookmarkError: If fetching fails
        """
        rows = await self._request(
            "GET",
            {
                "select": "*",
                "user_id": f"eq.{owner_id}",
                "order": "created_at.desc",
            },
        )
        return self._parse(rows)

    async def create_bookmark(self, bookmark: BookmarkCreate) -> Bookmark:
        """Create a new bookmark.

        Args:
            bookmark: The bookmark data, including the owner

        Returns:
            The created bookmark as stored

        Raises:
            BookmarkError: If bookmark creation fails
        """
        rows = await self._request(
            "POST",
            {"select": "*"},
            json=bookmark.model_dump(mode="json"),
            returning=True,
        )
        created = self._parse(rows)
        if not created:
            raise BookmarkError("Failed to create bookmark")
        self._publish(ChangeKind.INSERT, created[0])
        return created[0]

    async def update_bookmark(
        self, bookmark_id: str, bookmark: BookmarkUpdate
    ) -> Bookmark:
        """Update a bookmark's title, url, description and tag.

        Args:
            bookmark_id: ID of the bookmark to update
            bookmark: The new field values

        Returns:
            The updated bookmark

        Raises:
            BookmarkNotFoundError: If no visible bookmark has that id
            BookmarkError: If the update fails
        """
        rows = await self._request(
            "PATCH",
            {"id": f"eq.{bookmark_id}", "select": "*"},
            json=bookmark.model_dump(mode="json"),
            returning=True,
        )
        updated = self._parse(rows)
        if not updated:
            raise BookmarkNotFoundError(f"Bookmark {bookmark_id} not found")
        self._publish(ChangeKind.UPDATE, updated[0])
        return updated[0]

    async def delete_bookmark(self, bookmark_id: str) -> None:
        """Delete a bookmark.

        Args:
            bookmark_id: ID of the bookmark to delete

        Raises:
            BookmarkNotFoundError: If no visible bookmark has that id
            BookmarkError: If the delete fails
        """
        rows = await self._request(
            "DELETE",
            {"id": f"eq.{bookmark_id}", "select": "id,user_id"},
            returning=True,
        )
        if not rows:
            raise BookmarkNotFoundError(f"Bookmark {bookmark_id} not found")
        self._feed.publish(
            ChangeEvent(
                kind=ChangeKind.DELETE,
                table=self.table,
                owner_id=str(rows[0]["user_id"]),
                old_id=str(rows[0]["id"]),
            )
        )

    def _publish(self, kind: ChangeKind, bookmark: Bookmark) -> None:
        self._feed.publish(
            ChangeEvent(
                kind=kind,
                table=self.table,
                owner_id=bookmark.user_id,
                record=bookmark,
            )
        )
