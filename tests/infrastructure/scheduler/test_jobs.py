"""
Test suite for the housekeeping jobs, run against the test database.

Run tests:
    pytest tests/infrastructure/scheduler/test_jobs.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.core.db.crud import otp_challenge_db, user_session_db
from app.core.db.models import OTPChallenge, RefreshToken, UserSession
from app.core.enums import LogoutReason, OTPPurpose
from app.core.services.otp import OTPService
from app.core.services.session import SessionService
from app.core.services.token import TokenService
from app.infrastructure.scheduler.jobs import (
    otp_sweep_job,
    refresh_token_cleanup_job,
    session_expiry_job,
)


def _past() -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=1)


class TestOtpSweepJob:

    @pytest.mark.asyncio
    async def test_removes_only_expired(self, db_session, publisher):
        """Test that live challenges survive the sweep."""
        for email in ("live@example.com", "stale@example.com"):
            await OTPService.create_challenge(
                db_session, email, OTPPurpose.EMAIL_VERIFICATION, recipient_email=email
            )
        async with db_session.begin():
            await otp_challenge_db.update_by_conditions(
                db_session,
                [OTPChallenge.identifier == "stale@example.com"],
                {"expires_at": _past()},
                commit_self=False,
            )

        assert await otp_sweep_job() == 1

        async with db_session.begin():
            remaining = (await db_session.execute(select(OTPChallenge.identifier))).scalars().all()
        assert remaining == ["live@example.com"]

    @pytest.mark.asyncio
    async def test_nothing_to_sweep(self, db_engine):
        assert await otp_sweep_job() == 0


class TestSessionExpiryJob:

    @pytest.mark.asyncio
    async def test_expires_stale_sessions(self, db_session, make_user, device):
        user = await make_user()
        async with db_session.begin():
            user_session, _ = await SessionService.create_or_extend_session(
                db_session, user.id, None, device, commit_self=False
            )
            await user_session_db.update(
                db_session, user_session.id, {"expires_at": _past()}, commit_self=False
            )

        assert await session_expiry_job() == 1

        async with db_session.begin():
            stored = (
                await db_session.execute(
                    select(UserSession).execution_options(populate_existing=True)
                )
            ).scalar_one()
        assert stored.is_active is False
        assert stored.logout_reason == LogoutReason.EXPIRED


class TestRefreshTokenCleanupJob:

    @pytest.mark.asyncio
    async def test_removes_expired_tokens(self, db_session, make_user, device):
        user = await make_user()
        async with db_session.begin():
            user_session, _ = await SessionService.create_or_extend_session(
                db_session, user.id, None, device, commit_self=False
            )
            await TokenService.persist_refresh_token(
                db_session, user.id, user_session, "expired-token", _past(), commit_self=False
            )

        assert await refresh_token_cleanup_job() == 1

        async with db_session.begin():
            tokens = (await db_session.execute(select(RefreshToken))).scalars().all()
        assert tokens == []
