from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.models.user import Identity
from app.services.auth import AuthService
from app.services.page import BookmarkPage, PageRegistry

security = HTTPBearer()


def get_registry(request: Request) -> PageRegistry:
    return request.app.state.registry


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


async def get_page(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    registry: Annotated[PageRegistry, Depends(get_registry)],
) -> BookmarkPage:
    """Dependency for getting the page of the calling browser session.

    The bearer token selects the page; the first request with a token mounts
    it, which resolves the session and starts mirroring.

    Args:
        credentials: The HTTP Authorization header credentials
        registry: Registry of mounted pages

    Returns:
        The mounted page for the session

    Raises:
        HTTPException: If the token resolves to no identity
    """
    page = await registry.get(credentials.credentials)
    if page is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No active session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return page


async def get_current_user(
    page: Annotated[BookmarkPage, Depends(get_page)],
) -> Identity:
    """Dependency for getting the current authenticated identity.

    Raises:
        HTTPException: If the session has been signed out meanwhile
    """
    if page.identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No active session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return page.identity
