import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from os import environ
from typing import Any, cast
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from pydantic import BaseModel, ConfigDict, ValidationError

from app.db import BackendClient
from app.models.user import Identity, Session

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base exception for auth-related errors."""

    pass


class InvalidTokenError(AuthError):
    """Exception raised when a token is invalid."""

    pass


class TokenExpiredError(AuthError):
    """Exception raised when a token has expired."""

    pass


class AuthEvent(str, Enum):
    """Identity-change notifications pushed to listeners."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_UPDATED = "USER_UPDATED"


class AuthChange(BaseModel):
    """A single identity-change notification.

    Attributes:
        event: What happened
        user_id: The identity the change concerns
        session: The new session, or None once signed out
    """

    model_config = ConfigDict(frozen=True)

    event: AuthEvent
    user_id: str
    session: Session | None = None


AuthListener = Callable[[AuthChange], None]


class AuthService:
    """Client for the hosted auth provider.

    Access tokens are verified locally against the project's JWT secret, then
    resolved to an identity through the provider's `/user` endpoint. The
    service also keeps the in-process channel of identity-change
    notifications that session stores subscribe to.

    Attributes:
        site_url: Public URL of this application, used for sign-in redirects
        jwt_secret: Secret the provider signs access tokens with
        audience: Expected audience claim of access tokens
        algorithms: List of supported JWT algorithms
    """

    def __init__(
        self,
        client: BackendClient,
        jwt_secret: str | None = None,
        site_url: str | None = None,
    ) -> None:
        """Initialize the auth service with provider configuration."""
        self._client = client
        self.jwt_secret: str = jwt_secret or environ.get("SUPABASE_JWT_SECRET", "")
        self.site_url: str = (
            site_url or environ.get("SITE_URL", "http://localhost:8000")
        ).rstrip("/")
        self.audience: str = "authenticated"
        self.algorithms: list[str] = ["HS256"]
        self._listeners: list[AuthListener] = []

    def validate_token(self, token: str) -> dict[str, Any]:
        """Validate an access token.

        Args:
            token: The JWT token to validate

        Returns:
            The decoded token payload

        Raises:
            InvalidTokenError: If token is invalid
            TokenExpiredError: If token has expired
        """
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=self.algorithms,
                audience=self.audience,
            )
            return cast(dict[str, Any], payload)
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except JWTClaimsError as e:
            raise InvalidTokenError(f"Invalid claims: {str(e)}")
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {str(e)}")

    async def _get_user(self, access_token: str) -> Identity:
        """Get the identity behind an access token from the provider.

        Args:
            access_token: Valid access token

        Returns:
            The identity owning the token

        Raises:
            InvalidTokenError: If the profile fetch fails
        """
        try:
            response = await self._client.client.get(
                "/auth/v1/user", headers=self._client.headers(access_token)
            )
            response.raise_for_status()
            return Identity.from_auth_user(response.json())
        except (httpx.HTTPError, KeyError, ValidationError) as e:
            raise InvalidTokenError(f"Failed to get user profile: {str(e)}")

    async def get_session(self, access_token: str | None) -> Session | None:
        """Resolve the existing session for a token.

        A missing, invalid or expired token, and any provider failure, all
        resolve to no session. There is no retry.

        Args:
            access_token: The bearer token presented by the browser session

        Returns:
            The session, or None when there is no usable session
        """
        if not access_token:
            return None
        try:
            claims = self.validate_token(access_token)
            identity = await self._get_user(access_token)
        except AuthError as e:
            logger.warning("Session check failed: %s", e)
            return None
        if claims.get("sub") and claims["sub"] != identity.user_id:
            logger.warning("Token subject does not match user %s", identity.user_id)
            return None
        expires_at = (
            datetime.fromtimestamp(claims["exp"], UTC) if "exp" in claims else None
        )
        return Session(
            access_token=access_token, identity=identity, expires_at=expires_at
        )

    def sign_in_url(self, provider: str = "google", redirect_to: str | None = None) -> str:
        """Build the URL that starts sign-in with an external provider.

        Args:
            provider: External identity provider name
            redirect_to: Where the provider sends the browser back to

        Returns:
            The provider authorization URL
        """
        query = urlencode(
            {
                "provider": provider,
                "redirect_to": redirect_to or f"{self.site_url}/auth/callback",
            }
        )
        return f"{self._client.url}/auth/v1/authorize?{query}"

    def signed_in(self, session: Session) -> None:
        """Announce a newly established session to listeners."""
        self._emit(
            AuthChange(
                event=AuthEvent.SIGNED_IN,
                user_id=session.identity.user_id,
                session=session,
            )
        )

    async def sign_out(self, session: Session) -> None:
        """Sign a session out.

        Listeners are told about the sign-out even when the provider call
        fails, since the local session is gone either way.

        Args:
            session: The session to end

        Raises:
            AuthError: If the provider rejects the sign-out
        """
        try:
            response = await self._client.client.post(
                "/auth/v1/logout", headers=self._client.headers(session.access_token)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AuthError(f"Failed to sign out: {str(e)}")
        finally:
            self._emit(
                AuthChange(
                    event=AuthEvent.SIGNED_OUT, user_id=session.identity.user_id
                )
            )

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Subscribe to identity-change notifications.

        Args:
            listener: Called with every AuthChange

        Returns:
            A handle that removes the listener when called
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, change: AuthChange) -> None:
        logger.info("Auth change %s for user %s", change.event.value, change.user_id)
        for listener in list(self._listeners):
            listener(change)
