from datetime import datetime

from pydantic import BaseModel, Field

from app.models.bookmark import Bookmark
from app.models.view import ViewCriteria
from app.utils.display import time_ago


class HealthCheckResponseSchema(BaseModel):
    success: bool


class SignInResponseSchema(BaseModel):
    url: str = Field(description="Provider authorization URL to redirect to")


class ProfileResponseSchema(BaseModel):
    """Profile menu contents.

    Attributes:
        user_id: ID of the identity
        email: Email shown under the name
        label: Display name, or "My Account"
        initial: Avatar fallback letter
        avatar_url: Avatar picture, if any
    """

    user_id: str
    email: str
    label: str
    initial: str
    avatar_url: str | None = None


class BookmarkItemSchema(BaseModel):
    """A bookmark as rendered in a card or row."""

    bookmark: Bookmark
    age: str

    @classmethod
    def build(cls, bookmark: Bookmark, now: datetime | None = None) -> "BookmarkItemSchema":
        return cls(bookmark=bookmark, age=time_ago(bookmark.created_at, now))


class BookmarkViewResponseSchema(BaseModel):
    """Everything the page needs to render the bookmark list.

    Attributes:
        items: The derived view, in display order
        criteria: Criteria the view was derived with
        tags: Tag filter strip, "All" first
        total: Size of the mirror
        empty_title: Headline when there are no items
        empty_hint: Hint when there are no items
        notice: Current transient status message
    """

    items: list[BookmarkItemSchema]
    criteria: ViewCriteria
    tags: list[str]
    total: int
    empty_title: str | None = None
    empty_hint: str | None = None
    notice: str | None = None


class MutationResponseSchema(BaseModel):
    success: bool
    notice: str | None = None
