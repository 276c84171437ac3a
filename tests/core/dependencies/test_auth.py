"""
Test suite for the authentication dependencies.

Run all tests:
    pytest tests/core/dependencies/test_auth.py -v
"""

from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from app.core.config import settings
from app.core.dependencies.auth import (
    Principal,
    get_admin_principal,
    get_current_principal,
    get_session_id,
    get_user_cache,
)
from app.core.enums import LogoutReason, UserRole
from app.core.exceptions.types import (
    AuthenticationException,
    ForbiddenException,
    ServiceUnavailableException,
    SessionInvalidException,
    SessionRequiredException,
    TokenExpiredException,
    TokenInvalidException,
)
from app.core.services.session import SessionService
from app.core.services.token import TokenService
from app.core.services.user_cache import UserSnapshot
from app.core.utils import create_jwt_token


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


async def _login_session(db_session, user, device):
    async with db_session.begin():
        user_session, _ = await SessionService.create_or_extend_session(
            db_session, user.id, None, device, commit_self=False
        )
    return user_session.session_id


class TestGetCurrentPrincipal:
    """Test suite for get_current_principal."""

    @pytest.mark.asyncio
    async def test_valid_token_and_session(self, db_session, make_user, user_cache, device):
        """Test the happy path returns the principal from the snapshot."""
        user = await make_user()
        session_id = await _login_session(db_session, user, device)
        token = TokenService.issue_access_token(user, session_id)

        principal = await get_current_principal(_bearer(token), db_session, user_cache, session_id)

        assert principal.user_id == user.id
        assert principal.session_id == session_id
        assert principal.role == UserRole.USER
        assert principal.is_admin is False

    @pytest.mark.asyncio
    async def test_missing_credentials(self, db_session, user_cache):
        with pytest.raises(AuthenticationException):
            await get_current_principal(None, db_session, user_cache, None)

    @pytest.mark.asyncio
    async def test_expired_token(self, db_session, make_user, user_cache):
        user = await make_user()
        token = TokenService.issue_access_token(user, expires_delta=timedelta(seconds=-1))

        with pytest.raises(TokenExpiredException):
            await get_current_principal(_bearer(token), db_session, user_cache, None)

    @pytest.mark.asyncio
    async def test_malformed_subject(self, db_session, user_cache):
        token, _ = create_jwt_token(
            {"sub": "not-a-uuid", "type": "access"},
            settings.JWT_SECRET_KEY,
            timedelta(minutes=5),
        )

        with pytest.raises(TokenInvalidException):
            await get_current_principal(_bearer(token), db_session, user_cache, None)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, make_user, user_cache):
        """Test a valid token for a user that no longer exists."""
        user = await make_user()
        user.id = uuid4()
        token = TokenService.issue_access_token(user, "sid")

        with pytest.raises(AuthenticationException):
            await get_current_principal(_bearer(token), db_session, user_cache, "sid")

    @pytest.mark.asyncio
    async def test_session_header_required(self, db_session, make_user, user_cache):
        user = await make_user()
        token = TokenService.issue_access_token(user)

        with pytest.raises(SessionRequiredException):
            await get_current_principal(_bearer(token), db_session, user_cache, None)

    @pytest.mark.asyncio
    async def test_revoked_session_fails_even_with_valid_token(
        self, db_session, make_user, user_cache, device
    ):
        """Test that revoking the session invalidates a still-valid access token."""
        user = await make_user()
        session_id = await _login_session(db_session, user, device)
        token = TokenService.issue_access_token(user, session_id)
        await SessionService.revoke_session(db_session, session_id, LogoutReason.MANUAL)

        with pytest.raises(SessionInvalidException):
            await get_current_principal(_bearer(token), db_session, user_cache, session_id)

    @pytest.mark.asyncio
    async def test_admin_needs_no_session(self, db_session, make_user, user_cache):
        admin = await make_user(role=UserRole.ADMIN)
        token = TokenService.issue_access_token(admin)

        principal = await get_current_principal(_bearer(token), db_session, user_cache, None)

        assert principal.is_admin is True

    @pytest.mark.asyncio
    async def test_role_comes_from_stored_user(self, db_session, make_user, user_cache):
        """Test that a user cannot skip session checks with an admin role claim."""
        user = await make_user()
        token, _ = create_jwt_token(
            {"sub": str(user.id), "email": user.email, "role": "admin", "type": "access"},
            settings.JWT_SECRET_KEY,
            timedelta(minutes=5),
        )

        with pytest.raises(SessionRequiredException):
            await get_current_principal(_bearer(token), db_session, user_cache, None)

    @pytest.mark.asyncio
    async def test_snapshot_is_cached(self, db_session, make_user, user_cache):
        admin = await make_user(role=UserRole.ADMIN)
        token = TokenService.issue_access_token(admin)

        await get_current_principal(_bearer(token), db_session, user_cache, None)
        await get_current_principal(_bearer(token), db_session, user_cache, None)

        assert user_cache.stats()["hits"] == 1


class TestAdminPrincipal:

    def _principal(self, role: UserRole) -> Principal:
        snapshot = UserSnapshot(id=uuid4(), name="A", email="a@example.com", role=role)
        return Principal(
            user_id=snapshot.id, email=snapshot.email, role=role, session_id=None, snapshot=snapshot
        )

    @pytest.mark.asyncio
    async def test_admin_passes(self):
        principal = self._principal(UserRole.ADMIN)
        assert await get_admin_principal(principal) is principal

    @pytest.mark.asyncio
    async def test_user_is_forbidden(self):
        with pytest.raises(ForbiddenException):
            await get_admin_principal(self._principal(UserRole.USER))


class TestRequestHelpers:

    def test_get_user_cache_missing(self):
        request = MagicMock()
        request.app.state = MagicMock(spec=[])
        with pytest.raises(ServiceUnavailableException):
            get_user_cache(request)

    def test_get_session_id(self):
        request = MagicMock()
        request.headers = {settings.SESSION_HEADER_NAME: "abc"}
        assert get_session_id(request) == "abc"
