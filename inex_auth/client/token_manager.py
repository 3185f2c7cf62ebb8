"""
Client token manager.

Keeps the current access/refresh pair, refreshes ahead of expiry and on
401s, and makes sure concurrent callers share a single refresh call.
"""
import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx

from inex_auth.client.errors import APIError, NetworkError, SessionExpiredError, categorize_error
from inex_auth.client.store import MemoryTokenStore, StoredTokens, TokenStore
from inex_auth.client.tokens import DEFAULT_LOOKAHEAD, TokenState, classify_token, token_expiry

logger = logging.getLogger(__name__)

# Worth retrying without touching credentials
RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})


class ClientTokenManager:
    """
    Authenticated HTTP access to the auth API.

    Usage:
        async with ClientTokenManager("https://auth.example.com") as manager:
            await manager.signin(email, password)
            response = await manager.request("GET", "/auth/verify-token")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        store: Optional[TokenStore] = None,
        lookahead: timedelta = DEFAULT_LOOKAHEAD,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        api_prefix: str = "/api/v1",
        timeout: float = 30.0
    ):
        if client is None:
            if base_url is None:
                raise ValueError("Either base_url or client is required")
            client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
            self._owns_client = True
        else:
            self._owns_client = False

        self.client = client
        self.store = store or MemoryTokenStore()
        self.lookahead = lookahead
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.api_prefix = api_prefix.rstrip("/")

        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.user: Optional[dict] = None

        self._refresh_task: Optional[asyncio.Task] = None
        self._logout_callbacks: List[Callable[[], Any]] = []

    async def __aenter__(self) -> "ClientTokenManager":
        await self.load()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # -------------------------------------------------------------------------
    # Credential state
    # -------------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.refresh_token is not None

    @property
    def access_token_expires_at(self) -> Optional[datetime]:
        return token_expiry(self.access_token)

    def on_logout(self, callback: Callable[[], Any]) -> None:
        """Register a callback (sync or async) fired whenever credentials are dropped."""
        self._logout_callbacks.append(callback)

    async def load(self) -> bool:
        """Restore credentials from the store. True if a pair was found."""
        stored = await self.store.load()
        if stored is None:
            return False
        self.access_token = stored.access_token
        self.refresh_token = stored.refresh_token
        self.user = stored.user
        return True

    async def set_tokens(
        self,
        access_token: str,
        refresh_token: str,
        user: Optional[dict] = None
    ) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        if user is not None:
            self.user = user
        await self.store.save(StoredTokens(access_token, refresh_token, self.user))

    async def logout(self) -> None:
        """Forget all credentials and notify listeners."""
        self.access_token = None
        self.refresh_token = None
        self.user = None
        await self.store.clear()
        for callback in list(self._logout_callbacks):
            result = callback()
            if inspect.isawaitable(result):
                await result

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self) -> str:
        """
        Refresh the token pair and return the new access token.

        Concurrent callers share one in-flight refresh. Cancelling a caller
        does not cancel the refresh other callers may be waiting on.
        """
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._do_refresh())
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> str:
        try:
            refresh_token = self.refresh_token
            if classify_token(refresh_token, timedelta(0)) == TokenState.EXPIRED:
                logger.warning("Refresh token missing or expired, logging out")
                await self.logout()
                raise SessionExpiredError()

            # Transport failures surface as NetworkError and keep the session
            response = await self._send(
                "POST",
                self._url("/auth/refresh-token"),
                json={"refresh_token": refresh_token}
            )

            if response.is_success:
                data = response.json()
                await self.set_tokens(data["access_token"], data["refresh_token"])
                logger.info("Token refreshed")
                return data["access_token"]

            if response.status_code in RETRYABLE_STATUSES or response.is_server_error:
                logger.warning(f"Token refresh failed with {response.status_code}, keeping session")
                raise APIError.from_response(response)

            logger.warning(f"Token refresh rejected with {response.status_code}, logging out")
            await self.logout()
            raise SessionExpiredError()
        finally:
            self._refresh_task = None

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.api_prefix}{path}"

    def _auth_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(headers or {})
        merged["Authorization"] = f"Bearer {self.access_token}"
        return merged

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send with bounded retries for transport errors and retryable statuses."""
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{method} {url} failed after {attempt} attempts: {e}")
                    raise NetworkError(categorize_error(e).message) from e
                logger.warning(f"{method} {url} attempt {attempt} failed: {e}")
            else:
                if response.status_code not in RETRYABLE_STATUSES or attempt >= self.max_attempts:
                    return response
                logger.warning(f"{method} {url} attempt {attempt} returned {response.status_code}")

            await asyncio.sleep(self.retry_delay * 2 ** (attempt - 1))

    async def request(self, method: str, path: str, auth: bool = True, **kwargs) -> httpx.Response:
        """
        Call ``path`` under the API prefix.

        Authenticated calls refresh first when the access token is close to
        expiry, and refresh-and-retry exactly once on a 401.

        Raises:
            SessionExpiredError: not signed in, refresh impossible, or a second 401
            NetworkError: transport kept failing
        """
        url = self._url(path)
        if not auth:
            return await self._send(method, url, **kwargs)

        if self.refresh_token is None:
            raise SessionExpiredError("Not signed in")

        if classify_token(self.access_token, self.lookahead) != TokenState.VALID:
            await self.refresh()

        headers = kwargs.pop("headers", None)
        sent_token = self.access_token
        response = await self._send(method, url, headers=self._auth_headers(headers), **kwargs)
        if response.status_code != 401:
            return response

        # Another caller may already have rotated the pair
        if self.access_token == sent_token:
            logger.info("Access token rejected, refreshing")
            await self.refresh()

        response = await self._send(method, url, headers=self._auth_headers(headers), **kwargs)
        if response.status_code == 401:
            logger.warning("Access token rejected after refresh")
            raise SessionExpiredError()
        return response

    # -------------------------------------------------------------------------
    # Auth endpoints
    # -------------------------------------------------------------------------

    async def _store_auth_response(self, response: httpx.Response) -> Dict[str, Any]:
        if not response.is_success:
            raise APIError.from_response(response)
        data = response.json()
        await self.set_tokens(data["access_token"], data["refresh_token"], data.get("user"))
        return data

    async def signin(self, email: str, password: str) -> Dict[str, Any]:
        response = await self.request(
            "POST", "/auth/signin", auth=False,
            json={"email": email, "password": password}
        )
        return await self._store_auth_response(response)

    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str
    ) -> Dict[str, Any]:
        response = await self.request(
            "POST", "/auth/signup", auth=False,
            json={
                "name": name,
                "email": email,
                "password": password,
                "confirm_password": confirm_password
            }
        )
        return await self._store_auth_response(response)
