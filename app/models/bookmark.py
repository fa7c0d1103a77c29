from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from app.utils.display import favicon_url

ALL_TAGS = "All"


class Tag(str, Enum):
    """Closed set of labels a bookmark can carry.

    The set is fixed; users cannot add their own tags.
    """

    DESIGN = "Design"
    DEV = "Dev"
    READING = "Reading"
    TOOLS = "Tools"
    RESEARCH = "Research"
    MISC = "Misc"

    @property
    def color(self) -> str:
        return TAG_COLORS[self]


TAG_COLORS: dict[Tag, str] = {
    Tag.DESIGN: "rose",
    Tag.DEV: "cyan",
    Tag.READING: "amber",
    Tag.TOOLS: "violet",
    Tag.RESEARCH: "emerald",
    Tag.MISC: "slate",
}


class BookmarkBase(BaseModel):
    """Base model for bookmark data.

    This model contains the fields a user can edit on a bookmark.

    Attributes:
        title: Display title of the bookmark
        url: Target URL, not validated as well-formed
        description: Optional free-text note
        tag: Optional tag from the closed tag set
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: str | None = None
    tag: Tag | None = None

    @field_validator("tag", mode="before")
    @classmethod
    def blank_tag_is_none(cls, v: object) -> object:
        # Rows saved without a tag store an empty string
        if v == "":
            return None
        return v


class BookmarkCreate(BookmarkBase):
    """Model for creating a new bookmark.

    Attributes:
        user_id: ID of the owner; row-level policies reject any other value
    """

    user_id: str


class BookmarkUpdate(BookmarkBase):
    """Model for updating an existing bookmark.

    Only the editable fields are sent; owner and creation time never change.
    """

    pass


class Bookmark(BookmarkBase):
    """Model representing a stored bookmark.

    Attributes:
        id: Opaque identifier assigned by storage
        user_id: ID of the owning identity
        created_at: Creation time assigned by storage
        favicon: Derived favicon URL, or None when the URL has no hostname
    """

    id: str
    user_id: str
    created_at: datetime

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        if isinstance(v, int):
            return str(v)
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def favicon(self) -> str | None:
        return favicon_url(self.url)


class BookmarkDraft(BaseModel):
    """Unvalidated form input for the create/edit panel."""

    title: str = ""
    url: str = ""
    description: str | None = None
    tag: Tag | None = None

    @field_validator("tag", mode="before")
    @classmethod
    def blank_tag_is_none(cls, v: object) -> object:
        if v == "":
            return None
        return v
