from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.security import HTTPAuthorizationCredentials

from app.dependencies import (
    get_auth_service,
    get_current_user,
    get_page,
    get_registry,
    security,
)
from app.models.user import Identity
from app.schemas.responses import ProfileResponseSchema, SignInResponseSchema
from app.services.auth import AuthService
from app.services.page import BookmarkPage, PageRegistry

router = APIRouter(prefix="/auth", tags=["auth"])


def _profile(identity: Identity) -> ProfileResponseSchema:
    return ProfileResponseSchema(
        user_id=identity.user_id,
        email=identity.email,
        label=identity.label,
        initial=identity.initial,
        avatar_url=identity.avatar_url,
    )


@router.get("/sign-in", response_model=SignInResponseSchema)
async def sign_in(
    auth: Annotated[AuthService, Depends(get_auth_service)],
    provider: Annotated[str, Query(min_length=1)] = "google",
) -> SignInResponseSchema:
    """Get the URL that starts sign-in with an external provider.

    Args:
        auth: The auth service
        provider: External identity provider

    Returns:
        The authorization URL to redirect the browser to
    """
    return SignInResponseSchema(url=auth.sign_in_url(provider))


@router.get("/profile", response_model=ProfileResponseSchema)
async def get_profile(
    current_user: Annotated[Identity, Depends(get_current_user)],
) -> ProfileResponseSchema:
    """Get the profile menu contents for the signed-in identity."""
    return _profile(current_user)


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    page: Annotated[BookmarkPage, Depends(get_page)],
    registry: Annotated[PageRegistry, Depends(get_registry)],
) -> None:
    """Sign out and discard the session's page.

    Args:
        credentials: The bearer token of the session
        page: The session's page
        registry: Registry of mounted pages
    """
    await page.sign_out()
    registry.discard(credentials.credentials)
