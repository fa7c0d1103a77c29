from os import environ

import httpx


class BackendClient:
    """Manager for the HTTP connection to the hosted backend.

    The backend exposes auth under `/auth/v1` and the bookmarks table under
    `/rest/v1`. Every request carries the project's anon key; storage requests
    additionally carry the caller's access token so row-level policies apply.

    Attributes:
        _client: The shared httpx client, created lazily
        _url: Base URL of the backend project
        _anon_key: Public anon key of the project
        _transport: Optional transport override, used by tests
    """

    def __init__(
        self,
        url: str | None = None,
        anon_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backend client.

        Args:
            url: Backend base URL, defaults to `SUPABASE_URL`
            anon_key: Project anon key, defaults to `SUPABASE_ANON_KEY`
            transport: Optional httpx transport override
        """
        self._client: httpx.AsyncClient | None = None
        self._url: str = (url or environ.get("SUPABASE_URL", "")).rstrip("/")
        self._anon_key: str = anon_key or environ.get("SUPABASE_ANON_KEY", "")
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    @property
    def anon_key(self) -> str:
        return self._anon_key

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the httpx client.

        Returns:
            The shared async client with the project headers set
        """
        if not self._client:
            self._client = httpx.AsyncClient(
                base_url=self._url,
                headers={"apikey": self._anon_key},
                transport=self._transport,
            )
        return self._client

    def headers(self, access_token: str | None = None) -> dict[str, str]:
        """Build per-request headers for a caller.

        Args:
            access_token: The caller's bearer token, if signed in

        Returns:
            Authorization header using the token, or the anon key when absent
        """
        return {"Authorization": f"Bearer {access_token or self._anon_key}"}

    async def close(self) -> None:
        """Close the HTTP client.

        If no client exists, this is a no-op.
        """
        if self._client:
            await self._client.aclose()
            self._client = None
