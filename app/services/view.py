from collections.abc import Sequence

from app.models.bookmark import ALL_TAGS, Bookmark, Tag
from app.models.view import SortKey, ViewCriteria


def _matches(bookmark: Bookmark, query: str) -> bool:
    return (
        query in bookmark.title.casefold()
        or query in bookmark.url.casefold()
        or query in (bookmark.description or "").casefold()
    )


def _title_key(bookmark: Bookmark) -> tuple[str, str]:
    # Case-insensitive first; on ties lowercase sorts before uppercase
    return bookmark.title.casefold(), bookmark.title.swapcase()


def derive_view(records: Sequence[Bookmark], criteria: ViewCriteria) -> list[Bookmark]:
    """Filter and sort the mirror into the sequence to render.

    The mirror is never modified. Sorting is stable, so bookmarks with equal
    keys keep the order they have in the mirror.

    Args:
        records: Mirror contents, newest first
        criteria: Query, tag filter and sort key

    Returns:
        The bookmarks to display, in display order
    """
    result = list(records)
    if criteria.query:
        q = criteria.query.casefold()
        result = [b for b in result if _matches(b, q)]
    if criteria.tag != ALL_TAGS:
        result = [b for b in result if b.tag == criteria.tag]
    if criteria.sort is SortKey.OLDEST:
        result.sort(key=lambda b: b.created_at)
    elif criteria.sort is SortKey.ALPHA:
        result.sort(key=_title_key)
    return result


def available_tags(records: Sequence[Bookmark]) -> list[str]:
    """Tags to offer in the filter strip.

    Returns:
        "All" followed by each tag present in the mirror, in tag order
    """
    present = {b.tag for b in records if b.tag is not None}
    return [ALL_TAGS, *(t.value for t in Tag if t in present)]


def empty_message(criteria: ViewCriteria) -> tuple[str, str]:
    """Headline and hint shown when the derived view is empty."""
    if criteria.is_filtered:
        return "No results found", "Try a different search or filter"
    return "Your vault is empty", "Start saving links to build your collection"
