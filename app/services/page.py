import asyncio
import logging

from app.db import BackendClient
from app.models.bookmark import Bookmark
from app.models.user import Identity
from app.models.view import ViewCriteria
from app.services.auth import AuthError, AuthService
from app.services.bookmark import BookmarkService, BookmarkStore
from app.services.mirror import BookmarkMirror
from app.services.mutation import MutationCoordinator
from app.services.notifier import Notifier
from app.services.realtime import ChangeFeed
from app.services.session import SessionStore
from app.services.view import available_tags, derive_view, empty_message

logger = logging.getLogger(__name__)


class BookmarkPage:
    """State of one open bookmarks page.

    Owns the session store, mirror, view criteria, mutation coordinator and
    notifier for a single browser session, with an explicit mount/unmount
    lifecycle. The mirror follows the session's identity: it is started when
    an identity resolves and stopped when it is cleared.
    """

    def __init__(
        self,
        auth: AuthService,
        store: BookmarkStore,
        feed: ChangeFeed,
        access_token: str | None,
    ) -> None:
        self.auth = auth
        self.session = SessionStore(auth, access_token)
        self.notifier = Notifier()
        self.mirror = BookmarkMirror(store, feed, store.table)
        self.mutations = MutationCoordinator(store, self.mirror, self.notifier)
        self.criteria = ViewCriteria()
        self._mounted = False
        self._rebind: asyncio.Task[None] | None = None
        self._unsubscribe_identity = self.session.on_identity_change(
            self._on_identity_change
        )

    @property
    def identity(self) -> Identity | None:
        return self.session.identity

    @property
    def expired(self) -> bool:
        session = self.session.session
        return session is not None and session.is_expired()

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def view(self) -> list[Bookmark]:
        return derive_view(self.mirror.records, self.criteria)

    @property
    def tags(self) -> list[str]:
        return available_tags(self.mirror.records)

    @property
    def empty_message(self) -> tuple[str, str]:
        return empty_message(self.criteria)

    async def mount(self) -> Identity | None:
        """Resolve the session and, when signed in, start mirroring.

        Returns:
            The resolved identity, or None
        """
        self._mounted = True
        identity = await self.session.init()
        if identity is not None:
            await self.mirror.start(identity)
        return identity

    def unmount(self) -> None:
        self._mounted = False
        if self._rebind is not None:
            self._rebind.cancel()
            self._rebind = None
        self._unsubscribe_identity()
        self.mirror.stop()
        self.session.teardown()
        self.notifier.dismiss()

    def update_criteria(self, **changes: object) -> ViewCriteria:
        """Change query, tag, sort or layout mode."""
        self.criteria = ViewCriteria(**{**self.criteria.model_dump(), **changes})
        return self.criteria

    def sign_in_url(self) -> str:
        return self.auth.sign_in_url()

    async def sign_out(self) -> None:
        """End the session. The mirror is torn down through the identity change."""
        session = self.session.session
        if session is None:
            return
        try:
            await self.auth.sign_out(session)
        except AuthError as e:
            logger.warning("Sign-out failed at provider: %s", e)

    def _on_identity_change(self, identity: Identity | None) -> None:
        if not self._mounted:
            return
        current = self.mirror.identity
        if identity is None:
            self.mirror.stop()
            return
        if current is not None and current.user_id == identity.user_id:
            return
        self._rebind = asyncio.create_task(self.mirror.start(identity))


class PageRegistry:
    """Mounted pages keyed by access token.

    Every browser session presents its own token and so gets its own page,
    with its own mirror and change-feed subscription. Concurrent first
    requests with the same token share one mount. Pages whose token has
    expired are unmounted and evicted.
    """

    def __init__(
        self, client: BackendClient, auth: AuthService, feed: ChangeFeed
    ) -> None:
        self._client = client
        self._auth = auth
        self._feed = feed
        self._pages: dict[str, BookmarkPage] = {}
        self._mounting: dict[str, asyncio.Task[BookmarkPage | None]] = {}

    def __len__(self) -> int:
        return len(self._pages)

    def create_store(self, access_token: str) -> BookmarkStore:
        return BookmarkService(self._client, self._feed, access_token)

    async def get(self, access_token: str) -> BookmarkPage | None:
        """Get the page for a token, mounting a new one on first use.

        Returns:
            The mounted page, or None when the token resolves to no identity
            or has expired
        """
        self.evict_expired()
        page = self._pages.get(access_token)
        if page is not None and page.identity is not None:
            return page
        if page is not None:
            self.discard(access_token)
        mounting = self._mounting.get(access_token)
        if mounting is None:
            mounting = asyncio.create_task(self._mount(access_token))
            self._mounting[access_token] = mounting
        return await asyncio.shield(mounting)

    async def _mount(self, access_token: str) -> BookmarkPage | None:
        store = self.create_store(access_token)
        page = BookmarkPage(self._auth, store, self._feed, access_token)
        try:
            identity = await page.mount()
        except asyncio.CancelledError:
            page.unmount()
            raise
        finally:
            self._mounting.pop(access_token, None)
        if identity is None:
            page.unmount()
            return None
        self._pages[access_token] = page
        return page

    def evict_expired(self) -> int:
        """Unmount every page whose access token has expired.

        Returns:
            Number of pages evicted
        """
        expired = [token for token, page in self._pages.items() if page.expired]
        for token in expired:
            logger.info("Evicting page with expired token")
            self.discard(token)
        return len(expired)

    def discard(self, access_token: str) -> None:
        page = self._pages.pop(access_token, None)
        if page is not None:
            page.unmount()

    def close(self) -> None:
        for mounting in list(self._mounting.values()):
            mounting.cancel()
        for token in list(self._pages):
            self.discard(token)
