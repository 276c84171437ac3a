"""
Test suite for the client-side refresh coordinator.

Run all tests:
    pytest tests/client/test_refresh.py -v
"""

import asyncio

import httpx
import pytest

from app.client import AuthenticatedClient, AuthState, LoggedOutError, RefreshCoordinator


class TestRefreshCoordinator:
    """Test suite for RefreshCoordinator."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        """Test that simultaneous expiries trigger exactly one refresh call."""
        calls = 0

        async def refresh():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "new-token"

        coordinator = RefreshCoordinator(refresh, access_token="old-token")

        tokens = await asyncio.gather(
            *(coordinator.get_fresh_token("old-token") for _ in range(5))
        )

        assert tokens == ["new-token"] * 5
        assert calls == 1
        assert coordinator.state is AuthState.AUTHENTICATED
        assert coordinator.access_token == "new-token"

    @pytest.mark.asyncio
    async def test_already_refreshed_token_is_reused(self):
        async def refresh():
            raise AssertionError("refresh should not run")

        coordinator = RefreshCoordinator(refresh, access_token="new-token")

        assert await coordinator.get_fresh_token("old-token") == "new-token"
        assert coordinator.refresh_count == 0

    @pytest.mark.asyncio
    async def test_timeout_logs_out(self):
        async def refresh():
            await asyncio.sleep(1)
            return "never"

        coordinator = RefreshCoordinator(refresh, timeout=0.01, access_token="old-token")

        with pytest.raises(LoggedOutError):
            await coordinator.get_fresh_token("old-token")

        assert coordinator.state is AuthState.LOGGED_OUT
        assert coordinator.access_token is None

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter(self):
        async def refresh():
            await asyncio.sleep(0.01)
            raise RuntimeError("server down")

        coordinator = RefreshCoordinator(refresh, access_token="old-token")

        results = await asyncio.gather(
            *(coordinator.get_fresh_token("old-token") for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(result, LoggedOutError) for result in results)
        assert coordinator.refresh_count == 1
        assert coordinator.state is AuthState.LOGGED_OUT

    @pytest.mark.asyncio
    async def test_logged_out_refuses(self):
        async def refresh():
            return "new-token"

        coordinator = RefreshCoordinator(refresh)

        with pytest.raises(LoggedOutError):
            await coordinator.get_fresh_token(None)

    def test_reset_after_login(self):
        async def refresh():
            return "new-token"

        coordinator = RefreshCoordinator(refresh)
        coordinator.reset("login-token")

        assert coordinator.state is AuthState.AUTHENTICATED
        assert coordinator.access_token == "login-token"


class FakeAuthServer:
    """Minimal stand-in for the auth API behind an httpx.MockTransport."""

    def __init__(
        self,
        refresh_status: int = 200,
        login_token: str = "expired-token",
        reject_refreshed: bool = False,
    ):
        self.refresh_status = refresh_status
        self.login_token = login_token
        self.reject_refreshed = reject_refreshed
        self.refresh_calls = 0
        self.valid_token = "expired-token"
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/auth/login":
            return httpx.Response(
                200,
                json={
                    "access_token": self.login_token,
                    "refresh_token": "refresh-token",
                    "session_id": "session-1",
                    "token_type": "bearer",
                    "expires_in": 900,
                },
            )
        if path == "/auth/refresh":
            self.refresh_calls += 1
            if self.refresh_status != 200:
                return httpx.Response(
                    self.refresh_status,
                    json={"detail": "Invalid refresh token.", "code": "refresh_token_invalid"},
                )
            self.valid_token = "fresh-token"
            return httpx.Response(200, json={"access_token": "fresh-token", "expires_in": 900})
        if path == "/auth/register":
            return httpx.Response(202, json={"detail": "sent"})

        authorization = request.headers.get("Authorization")
        if authorization == "Bearer fresh-token" and self.reject_refreshed:
            return httpx.Response(401, json={"detail": "Token expired.", "code": "token_expired"})
        if authorization == "Bearer fresh-token" and self.valid_token == "fresh-token":
            return httpx.Response(200, json={"id": "user-1"})
        if authorization == "Bearer expired-token":
            return httpx.Response(401, json={"detail": "Token expired.", "code": "token_expired"})
        return httpx.Response(403, json={"detail": "Invalid token.", "code": "token_invalid"})


def _client(server: FakeAuthServer) -> AuthenticatedClient:
    return AuthenticatedClient(
        "http://auth.test",
        transport=httpx.MockTransport(server.handler),
        device_fingerprint="device-1",
    )


class TestAuthenticatedClient:
    """Test suite for AuthenticatedClient."""

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_once(self):
        """Test parallel requests with an expired token share a single refresh."""
        server = FakeAuthServer()
        async with _client(server) as client:
            await client.login("asha@example.com", "Secret123")

            responses = await asyncio.gather(*(client.get("/auth/me") for _ in range(3)))

        assert [response.status_code for response in responses] == [200, 200, 200]
        assert server.refresh_calls == 1
        assert client.access_token == "fresh-token"

    @pytest.mark.asyncio
    async def test_session_and_device_headers_are_sent(self):
        server = FakeAuthServer()
        async with _client(server) as client:
            await client.login("asha@example.com", "Secret123")
            await client.get("/auth/me")

        sent = server.requests[-1]
        assert sent.headers["X-Session-ID"] == "session-1"
        assert sent.headers["X-Device-Fingerprint"] == "device-1"

    @pytest.mark.asyncio
    async def test_rejected_refresh_logs_out(self):
        server = FakeAuthServer(refresh_status=401)
        async with _client(server) as client:
            await client.login("asha@example.com", "Secret123")

            with pytest.raises(LoggedOutError):
                await client.get("/auth/me")

            assert client.state is AuthState.LOGGED_OUT
            assert client.session_id is None
            assert client.refresh_token is None

            with pytest.raises(LoggedOutError):
                await client.get("/auth/me")

    @pytest.mark.asyncio
    async def test_invalid_token_logs_out_without_refresh(self):
        """Test a 403 token_invalid goes straight to LOGGED_OUT."""
        server = FakeAuthServer(login_token="tampered-token")
        async with _client(server) as client:
            await client.login("asha@example.com", "Secret123")

            with pytest.raises(LoggedOutError):
                await client.get("/auth/me")

            assert client.state is AuthState.LOGGED_OUT
            assert client.session_id is None

        assert server.refresh_calls == 0

    @pytest.mark.asyncio
    async def test_failure_after_retry_logs_out(self):
        """Test a request still rejected after its one retry does not refresh again."""
        server = FakeAuthServer(reject_refreshed=True)
        async with _client(server) as client:
            await client.login("asha@example.com", "Secret123")

            with pytest.raises(LoggedOutError):
                await client.get("/auth/me")

            assert client.state is AuthState.LOGGED_OUT
            with pytest.raises(LoggedOutError):
                await client.get("/auth/me")

        assert server.refresh_calls == 1
        me_requests = [r for r in server.requests if r.url.path == "/auth/me"]
        assert [r.headers["Authorization"] for r in me_requests] == [
            "Bearer expired-token",
            "Bearer fresh-token",
        ]

    @pytest.mark.asyncio
    async def test_public_paths_skip_auth(self):
        server = FakeAuthServer()
        async with _client(server) as client:
            response = await client.post("/auth/register", json={})

        assert response.status_code == 202
        assert "Authorization" not in server.requests[-1].headers

    @pytest.mark.asyncio
    async def test_logout_clears_state(self):
        server = FakeAuthServer()
        async with _client(server) as client:
            await client.login("asha@example.com", "Secret123")
            await client.logout()

        assert server.requests[-1].url.path == "/auth/logout"
        assert client.state is AuthState.LOGGED_OUT
        assert client.session_id is None
