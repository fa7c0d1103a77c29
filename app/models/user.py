from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class Identity(BaseModel):
    """The authenticated person whose bookmarks are visible.

    Attributes:
        user_id: Opaque identifier assigned by the auth provider
        email: Email address of the account
        display_name: Full name from the identity provider, if any
        avatar_url: Avatar picture from the identity provider, if any
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    display_name: str | None = None
    avatar_url: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or "My Account"

    @property
    def initial(self) -> str:
        return self.email[:1].upper()

    @classmethod
    def from_auth_user(cls, data: dict[str, Any]) -> "Identity":
        """Build an identity from an auth `/user` payload."""
        metadata = data.get("user_metadata") or {}
        return cls(
            user_id=str(data["id"]),
            email=data.get("email") or "",
            display_name=metadata.get("full_name") or metadata.get("name"),
            avatar_url=metadata.get("avatar_url") or metadata.get("picture"),
        )


class Session(BaseModel):
    """An established auth session.

    Attributes:
        access_token: Bearer token sent with every storage request
        identity: The identity the token belongs to
        expires_at: When the access token stops being accepted, if known
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    identity: Identity
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(UTC))
