import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from app.dependencies import get_current_user, get_page
from app.models.bookmark import BookmarkDraft
from app.models.change import ChangeEvent
from app.models.user import Identity
from app.models.view import SortKey, ViewMode
from app.schemas.responses import (
    BookmarkItemSchema,
    BookmarkViewResponseSchema,
    MutationResponseSchema,
)
from app.services.mutation import MutationCoordinator
from app.services.page import BookmarkPage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


def _render(page: BookmarkPage) -> BookmarkViewResponseSchema:
    items = page.view
    empty_title, empty_hint = page.empty_message if not items else (None, None)
    return BookmarkViewResponseSchema(
        items=[BookmarkItemSchema.build(b) for b in items],
        criteria=page.criteria,
        tags=page.tags,
        total=len(page.mirror.records),
        empty_title=empty_title,
        empty_hint=empty_hint,
        notice=page.notifier.message,
    )


async def _submit(page: BookmarkPage, identity: Identity) -> MutationResponseSchema:
    mutations = page.mutations
    if not mutations.form.is_valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Title and URL are required",
        )
    if not await mutations.submit(identity):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=page.notifier.message or "Write failed",
        )
    return MutationResponseSchema(success=True, notice=page.notifier.message)


def _guard_in_flight(mutations: MutationCoordinator) -> None:
    if mutations.submitting:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A submission is already in progress",
        )


@router.get("", response_model=BookmarkViewResponseSchema)
async def list_bookmarks(
    page: Annotated[BookmarkPage, Depends(get_page)],
    q: Annotated[str | None, Query(max_length=500)] = None,
    tag: str | None = None,
    sort: SortKey | None = None,
    mode: ViewMode | None = None,
) -> BookmarkViewResponseSchema:
    """Get the filtered and sorted bookmarks of the session.

    Criteria passed here are kept on the page until changed again.

    Args:
        page: The session's page
        q: Free-text search
        tag: "All" or one tag
        sort: Sort order
        mode: Grid or list layout

    Returns:
        The derived view with the filter strip and current notice

    Raises:
        HTTPException: If the tag is unknown
    """
    changes = {
        key: value
        for key, value in {"query": q, "tag": tag, "sort": sort, "mode": mode}.items()
        if value is not None
    }
    if changes:
        try:
            page.update_criteria(**changes)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            )
    return _render(page)


@router.get("/tags", response_model=list[str])
async def list_tags(
    page: Annotated[BookmarkPage, Depends(get_page)],
) -> list[str]:
    """Get "All" followed by the tags present in the session's bookmarks."""
    return page.tags


@router.post(
    "",
    response_model=MutationResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_bookmark(
    draft: BookmarkDraft,
    page: Annotated[BookmarkPage, Depends(get_page)],
    current_user: Annotated[Identity, Depends(get_current_user)],
) -> MutationResponseSchema:
    """Save a new bookmark.

    The bookmark is not added to the view here; it arrives through the
    change feed like any other insert.

    Args:
        draft: Form input
        page: The session's page
        current_user: The signed-in identity

    Returns:
        Outcome and notice

    Raises:
        HTTPException: If the input is invalid, a submit is in flight, or
            storage rejects the write
    """
    mutations = page.mutations
    _guard_in_flight(mutations)
    mutations.open_create()
    mutations.form.fill(draft)
    return await _submit(page, current_user)


@router.put("/{bookmark_id}", response_model=MutationResponseSchema)
async def update_bookmark(
    bookmark_id: str,
    draft: BookmarkDraft,
    page: Annotated[BookmarkPage, Depends(get_page)],
    current_user: Annotated[Identity, Depends(get_current_user)],
) -> MutationResponseSchema:
    """Edit a bookmark's title, URL, note and tag.

    Args:
        bookmark_id: ID of the bookmark to edit
        draft: Form input
        page: The session's page
        current_user: The signed-in identity

    Returns:
        Outcome and notice

    Raises:
        HTTPException: If the bookmark is not in the session's mirror, the
            input is invalid, a submit is in flight, or storage rejects it
    """
    mutations = page.mutations
    _guard_in_flight(mutations)
    bookmark = page.mirror.get(bookmark_id)
    if bookmark is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Bookmark {bookmark_id} not found",
        )
    mutations.open_edit(bookmark)
    mutations.form.fill(draft)
    return await _submit(page, current_user)


@router.delete("/{bookmark_id}", response_model=MutationResponseSchema)
async def delete_bookmark(
    bookmark_id: str,
    page: Annotated[BookmarkPage, Depends(get_page)],
) -> MutationResponseSchema:
    """Delete a bookmark.

    The bookmark leaves the view immediately. If storage then rejects the
    delete, the view is reloaded from storage before responding.

    Args:
        bookmark_id: ID of the bookmark to delete
        page: The session's page

    Returns:
        Outcome and the latest notice
    """
    mutations = page.mutations
    mutations.request_delete(bookmark_id)
    success = await mutations.confirm_delete()
    return MutationResponseSchema(success=success, notice=page.notifier.message)


@router.get("/events")
async def stream_events(
    request: Request,
    page: Annotated[BookmarkPage, Depends(get_page)],
) -> StreamingResponse:
    """Stream change events applied to the session's mirror.

    Each line is one JSON-encoded change event.
    """
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
    unsubscribe = page.mirror.on_change(queue.put_nowait)

    async def stream() -> AsyncIterator[str]:
        try:
            while page.mounted:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=15)
                except TimeoutError:
                    continue
                yield event.model_dump_json() + "\n"
        finally:
            unsubscribe()
            logger.debug("Event stream closed for %s", page.identity)

    return StreamingResponse(stream(), media_type="application/x-ndjson")

