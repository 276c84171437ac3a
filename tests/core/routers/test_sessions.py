"""
Test suite for the session management and admin routers.

Run all tests:
    pytest tests/core/routers/test_sessions.py -v
"""

from uuid import uuid4

import pytest

from app.core.enums import UserRole


class TestListSessions:
    """Test suite for GET /sessions."""

    @pytest.mark.asyncio
    async def test_lists_active_sessions_and_flags_current(
        self, client, make_user, login, auth_headers
    ):
        await make_user()
        laptop = await login(fingerprint="laptop")
        await login(fingerprint="phone")

        response = await client.get("/sessions", headers=auth_headers(laptop))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        current = [s for s in body["sessions"] if s["is_current"]]
        assert [s["session_id"] for s in current] == [laptop["session_id"]]

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client):
        response = await client.get("/sessions")
        assert response.status_code == 401


class TestRevokeSessions:
    """Test suite for DELETE /sessions and DELETE /sessions/{session_id}."""

    @pytest.mark.asyncio
    async def test_revoke_one_session(self, client, make_user, login, auth_headers):
        await make_user()
        laptop = await login(fingerprint="laptop")
        phone = await login(fingerprint="phone")

        response = await client.delete(
            f"/sessions/{phone['session_id']}", headers=auth_headers(laptop)
        )

        assert response.status_code == 200
        revoked = await client.get("/auth/me", headers=auth_headers(phone))
        assert revoked.status_code == 401
        still_ok = await client.get("/auth/me", headers=auth_headers(laptop))
        assert still_ok.status_code == 200

    @pytest.mark.asyncio
    async def test_revoke_unknown_session(self, client, make_user, login, auth_headers):
        await make_user()
        tokens = await login()

        response = await client.delete("/sessions/does-not-exist", headers=auth_headers(tokens))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_cannot_revoke_other_users_session(self, client, make_user, login, auth_headers):
        """Test that a foreign session id looks like an unknown one."""
        await make_user()
        await make_user(email="other@example.com", phone="9123456789")
        mine = await login()
        theirs = await login(identifier="other@example.com", fingerprint="theirs")

        response = await client.delete(
            f"/sessions/{theirs['session_id']}", headers=auth_headers(mine)
        )

        assert response.status_code == 404
        assert (await client.get("/auth/me", headers=auth_headers(theirs))).status_code == 200

    @pytest.mark.asyncio
    async def test_revoke_all_others(self, client, make_user, login, auth_headers):
        await make_user()
        current = await login(fingerprint="a")
        others = [await login(fingerprint="b"), await login(fingerprint="c")]

        response = await client.delete("/sessions", headers=auth_headers(current))

        assert response.status_code == 200
        assert response.json()["revoked_count"] == 2
        for tokens in others:
            refresh = await client.post(
                "/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
            )
            assert refresh.status_code == 401
        assert (await client.get("/auth/me", headers=auth_headers(current))).status_code == 200


class TestAdminForceLogout:
    """Test suite for POST /admin/users/{user_id}/force-logout."""

    @pytest.mark.asyncio
    async def test_force_logout(self, client, make_user, login, auth_headers):
        """Test that an admin ends every session of a user."""
        user = await make_user()
        await make_user(email="admin@example.com", phone="9000000000", role=UserRole.ADMIN)
        victim = await login(fingerprint="laptop")
        admin = await login(identifier="admin@example.com", fingerprint="admin")

        response = await client.post(
            f"/admin/users/{user.id}/force-logout",
            headers=auth_headers(admin, with_session=False),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["revoked_count"] == 1
        assert body["reason"] == "admin"
        assert (await client.get("/auth/me", headers=auth_headers(victim))).status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, make_user, login, auth_headers):
        await make_user(email="admin@example.com", phone="9000000000", role=UserRole.ADMIN)
        admin = await login(identifier="admin@example.com")

        response = await client.post(
            f"/admin/users/{uuid4()}/force-logout",
            headers=auth_headers(admin, with_session=False),
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_non_admin_is_forbidden(self, client, make_user, login, auth_headers):
        user = await make_user()
        tokens = await login()

        response = await client.post(
            f"/admin/users/{user.id}/force-logout", headers=auth_headers(tokens)
        )

        assert response.status_code == 403
