"""
Client-side token refresh.

`RefreshCoordinator` is a single-flight governor: however many requests see
an expired access token at the same moment, only one refresh call is made
and every caller receives its result. `AuthenticatedClient` wraps
`httpx.AsyncClient` and routes expired-token responses through it.

State machine::

    AUTHENTICATED --(token expired)--> REFRESHING --(success)--> AUTHENTICATED
                                                  \\-(failure)--> LOGGED_OUT
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from app.core.config import client_logger

RefreshFunc = Callable[[], Awaitable[str]]


class AuthState(str, Enum):
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


class LoggedOutError(Exception):
    """Raised when the client has no usable credentials and must log in again."""

    def __init__(self, reason: str = "Logged out."):
        self.reason = reason
        super().__init__(reason)


class RefreshCoordinator:
    """
    Serializes access-token refreshes for one client.

    Args:
        refresh_func: Coroutine function returning a new access token.
        timeout: Seconds before an in-flight refresh counts as failed.
        access_token: The current access token, if already logged in.
    """

    def __init__(
        self,
        refresh_func: RefreshFunc,
        timeout: float = 10.0,
        access_token: str | None = None,
    ):
        self._refresh_func = refresh_func
        self.timeout = timeout
        self._access_token = access_token
        self._state = AuthState.AUTHENTICATED if access_token else AuthState.LOGGED_OUT
        self._inflight: asyncio.Future[str] | None = None
        self.refresh_count = 0

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def reset(self, access_token: str) -> None:
        """Install a fresh access token (after login) and leave LOGGED_OUT."""
        self._access_token = access_token
        self._state = AuthState.AUTHENTICATED

    def force_logout(self, reason: str = "Logged out.") -> None:
        if self._state is not AuthState.LOGGED_OUT:
            client_logger.info(f"Client logged out: {reason}")
        self._access_token = None
        self._state = AuthState.LOGGED_OUT

    async def get_fresh_token(self, stale_token: str | None) -> str:
        """
        Return an access token newer than ``stale_token``.

        If another caller already refreshed past ``stale_token`` the current
        token is returned without a call. If a refresh is in flight the caller
        waits for it. Otherwise this caller starts the refresh.

        Raises:
            LoggedOutError: The client is logged out or the refresh failed.
        """
        if self._state is AuthState.LOGGED_OUT:
            raise LoggedOutError("Client is logged out.")

        if (
            self._state is AuthState.AUTHENTICATED
            and self._access_token is not None
            and self._access_token != stale_token
        ):
            return self._access_token

        if self._inflight is None:
            self._state = AuthState.REFRESHING
            self._inflight = asyncio.ensure_future(self._run_refresh())

        # Shielded so a cancelled waiter does not cancel the shared refresh
        return await asyncio.shield(self._inflight)

    async def _run_refresh(self) -> str:
        self.refresh_count += 1
        try:
            token = await asyncio.wait_for(self._refresh_func(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            self.force_logout(f"refresh timed out after {self.timeout}s")
            raise LoggedOutError("Token refresh timed out.") from e
        except LoggedOutError as e:
            self.force_logout(e.reason)
            raise
        except Exception as e:
            self.force_logout(f"refresh failed: {e}")
            raise LoggedOutError("Token refresh failed.") from e
        finally:
            self._inflight = None

        self.reset(token)
        client_logger.info("Access token refreshed")
        return token


class AuthenticatedClient:
    """
    httpx client that authenticates requests and refreshes expired tokens.

    Example:
        >>> async with AuthenticatedClient("https://auth.example.com") as client:
        ...     await client.login("user@example.com", "Secret123")
        ...     response = await client.get("/auth/me")
    """

    PUBLIC_PATHS = (
        "/auth/login",
        "/auth/register",
        "/auth/refresh",
        "/auth/forgot-password",
        "/auth/verify-otp",
        "/auth/reset-password",
        "/auth/resend-otp",
    )

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        refresh_timeout: float = 10.0,
        device_fingerprint: str | None = None,
        session_header: str = "X-Session-ID",
    ):
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport)
        self.device_fingerprint = device_fingerprint
        self.session_header = session_header
        self.refresh_token: str | None = None
        self.session_id: str | None = None
        self.coordinator = RefreshCoordinator(self._refresh_access_token, refresh_timeout)

    async def __aenter__(self) -> "AuthenticatedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def state(self) -> AuthState:
        return self.coordinator.state

    @property
    def access_token(self) -> str | None:
        return self.coordinator.access_token

    @classmethod
    def is_public(cls, url: str) -> bool:
        path = httpx.URL(url).path
        return any(path.startswith(public) for public in cls.PUBLIC_PATHS)

    def _base_headers(self) -> dict[str, str]:
        headers = {}
        if self.device_fingerprint:
            headers["X-Device-Fingerprint"] = self.device_fingerprint
        return headers

    def _auth_headers(self, access_token: str | None) -> dict[str, str]:
        headers = self._base_headers()
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        if self.session_id:
            headers[self.session_header] = self.session_id
        return headers

    @staticmethod
    def _error_code(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("code") if isinstance(body, dict) else None

    def _clear(self, reason: str) -> None:
        self.refresh_token = None
        self.session_id = None
        self.coordinator.force_logout(reason)

    async def login(self, identifier: str, password: str) -> dict[str, Any]:
        """Log in and store the tokens and session id. Raises httpx.HTTPStatusError on failure."""
        headers = self._base_headers()
        if self.session_id:
            headers[self.session_header] = self.session_id
        response = await self._http.post(
            "/auth/login",
            json={"identifier": identifier, "password": password},
            headers=headers,
        )
        response.raise_for_status()
        data = response.json()
        self.refresh_token = data["refresh_token"]
        self.session_id = data["session_id"]
        self.coordinator.reset(data["access_token"])
        return data

    async def logout(self) -> None:
        """Revoke the current session on the server, then forget local state."""
        try:
            if self.state is not AuthState.LOGGED_OUT:
                await self._http.post(
                    "/auth/logout", headers=self._auth_headers(self.access_token)
                )
        finally:
            self._clear("logout")

    async def _refresh_access_token(self) -> str:
        if not self.refresh_token:
            raise LoggedOutError("No refresh token.")
        response = await self._http.post(
            "/auth/refresh", json={"refresh_token": self.refresh_token}
        )
        if response.status_code != httpx.codes.OK:
            raise LoggedOutError(
                f"Refresh rejected: {response.status_code} {self._error_code(response)}"
            )
        return response.json()["access_token"]

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, refreshing the access token at most once on expiry.

        Raises:
            LoggedOutError: Credentials are unusable; the caller must log in again.
        """
        if self.is_public(url):
            return await self._http.request(method, url, **kwargs)

        if self.state is AuthState.LOGGED_OUT:
            raise LoggedOutError("Client is logged out.")

        extra_headers = kwargs.pop("headers", None) or {}
        token = self.access_token
        response = await self._http.request(
            method, url, headers={**extra_headers, **self._auth_headers(token)}, **kwargs
        )

        code = self._error_code(response)
        if response.status_code == httpx.codes.UNAUTHORIZED and code == "token_expired":
            try:
                token = await self.coordinator.get_fresh_token(token)
            except LoggedOutError:
                self._clear("refresh failed")
                raise
            response = await self._http.request(
                method, url, headers={**extra_headers, **self._auth_headers(token)}, **kwargs
            )
            if response.status_code == httpx.codes.UNAUTHORIZED or (
                response.status_code == httpx.codes.FORBIDDEN
                and self._error_code(response) == "token_invalid"
            ):
                self._clear("rejected after refresh")
                raise LoggedOutError("Request rejected after token refresh.")
            return response

        if response.status_code == httpx.codes.UNAUTHORIZED or (
            response.status_code == httpx.codes.FORBIDDEN and code == "token_invalid"
        ):
            self._clear(f"credentials rejected ({code})")
            raise LoggedOutError(f"Credentials rejected: {code}")

        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)
