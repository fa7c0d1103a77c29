import logging
from collections.abc import Callable

from app.models.user import Identity, Session
from app.services.auth import AuthChange, AuthEvent, AuthService

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Identity | None], None]


class SessionStore:
    """Holds the current identity of one browser session.

    `resolved` is False until the initial session check has answered; after
    that, `identity` being None means "determined absent" rather than
    "still determining".
    """

    def __init__(self, auth: AuthService, access_token: str | None) -> None:
        self._auth = auth
        self._access_token = access_token
        self._session: Session | None = None
        self._resolved = False
        self._unsubscribe: Callable[[], None] | None = None
        self._listeners: list[IdentityListener] = []

    @property
    def identity(self) -> Identity | None:
        return self._session.identity if self._session else None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def resolved(self) -> bool:
        return self._resolved

    async def init(self) -> Identity | None:
        """Check for an existing session and start listening for changes.

        The check is issued once; both a session and its absence are terminal
        outcomes.

        Returns:
            The resolved identity, or None
        """
        if self._unsubscribe is None:
            self._unsubscribe = self._auth.on_auth_state_change(self._on_change)
        self._session = await self._auth.get_session(self._access_token)
        self._resolved = True
        return self.identity

    def teardown(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._listeners.clear()

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _on_change(self, change: AuthChange) -> None:
        current = self.identity
        if current is None or change.user_id != current.user_id:
            return
        if change.event is AuthEvent.SIGNED_OUT:
            self._session = None
        elif change.session is not None and self._session is not None:
            # Keep this browser session's own token; only the profile moves
            self._session = self._session.model_copy(
                update={"identity": change.session.identity}
            )
        else:
            return
        self._resolved = True
        logger.debug("Identity changed for session: %s", change.event.value)
        for listener in list(self._listeners):
            listener(self.identity)
