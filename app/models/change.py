from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator

from app.models.bookmark import Bookmark


class ChangeKind(str, Enum):
    """Kinds of row changes delivered by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A single row change on the bookmarks table.

    Attributes:
        kind: What happened to the row
        table: Table the row belongs to
        owner_id: Owner of the row, used for subscription filtering
        record: The new row for inserts and updates
        old_id: ID of the removed row for deletes
    """

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    table: str = "bookmarks"
    owner_id: str
    record: Bookmark | None = None
    old_id: str | None = None

    @model_validator(mode="after")
    def check_payload(self) -> "ChangeEvent":
        if self.kind is ChangeKind.DELETE:
            if self.old_id is None:
                raise ValueError("delete events need old_id")
        elif self.record is None:
            raise ValueError(f"{self.kind.value.lower()} events need a record")
        return self

    @property
    def target_id(self) -> str:
        if self.record is not None:
            return self.record.id
        return self.old_id or ""
