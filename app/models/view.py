from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

from app.models.bookmark import ALL_TAGS, Tag


class SortKey(str, Enum):
    """Orderings offered by the sort selector.

    Attributes:
        NEWEST: Mirror order, which is newest first
        OLDEST: Ascending by creation time
        ALPHA: By title
    """

    NEWEST = "newest"
    OLDEST = "oldest"
    ALPHA = "alpha"


class ViewMode(str, Enum):
    """Layouts the bookmark list can be rendered in."""

    GRID = "grid"
    LIST = "list"


class ViewCriteria(BaseModel):
    """Transient filter and sort state of the page.

    Attributes:
        query: Free-text search, matched case-insensitively
        tag: Either the "All" sentinel or one tag
        sort: Sort order of the derived view
        mode: Card grid or compact rows
    """

    model_config = ConfigDict(frozen=True)

    query: str = ""
    tag: str = ALL_TAGS
    sort: SortKey = SortKey.NEWEST
    mode: ViewMode = ViewMode.GRID

    @field_validator("tag")
    @classmethod
    def known_tag(cls, v: str) -> str:
        if v != ALL_TAGS and v not in {t.value for t in Tag}:
            raise ValueError(f"Unknown tag: {v}")
        return v

    @property
    def is_filtered(self) -> bool:
        return bool(self.query) or self.tag != ALL_TAGS
