"""
Test suite for the CRUD layer against the SQLite test database.

Run all tests:
    pytest tests/core/db/test_crud.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.core.db.crud import (
    otp_challenge_db,
    refresh_token_db,
    user_db,
    user_session_db,
)
from app.core.db.models import OTPChallenge, RefreshToken, UserSession
from app.core.enums import LogoutReason, OTPPurpose
from app.core.utils import generate_session_id, hmac_hash_otp

GRACE = timedelta(minutes=30)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _add_challenge(session, **overrides) -> OTPChallenge:
    data = {
        "identifier": "asha@example.com",
        "purpose": OTPPurpose.EMAIL_VERIFICATION,
        "code_hash": hmac_hash_otp("123456", "secret"),
        "expires_at": _now() + timedelta(minutes=10),
    }
    data.update(overrides)
    async with session.begin():
        return await otp_challenge_db.create(session, data, commit_self=False)


async def _add_session(session, user_id, **overrides) -> UserSession:
    data = {
        "session_id": generate_session_id(),
        "user_id": user_id,
        "device_fingerprint": "device-a",
        "is_active": True,
        "last_activity_at": _now(),
        "expires_at": _now() + timedelta(days=7),
    }
    data.update(overrides)
    async with session.begin():
        return await user_session_db.create(session, data, commit_self=False)


class TestUserDB:

    @pytest.mark.asyncio
    async def test_lookups_ignore_deleted_users(self, db_session, make_user):
        user = await make_user()

        async with db_session.begin():
            assert (await user_db.get_by_email(db_session, "asha@example.com")).id == user.id
            assert (await user_db.get_by_phone(db_session, "9876543210")).id == user.id
            await user_db.anonymize(db_session, user, commit_self=False)

        async with db_session.begin():
            assert await user_db.get_by_email(db_session, "asha@example.com") is None
            assert await user_db.get_by_phone(db_session, "9876543210") is None
            assert await user_db.get_active_by_id(db_session, user.id) is None

    @pytest.mark.asyncio
    async def test_anonymize_frees_identity(self, db_session, make_user):
        user = await make_user()

        async with db_session.begin():
            deleted = await user_db.anonymize(db_session, user, commit_self=False)

        assert deleted.is_deleted is True
        assert deleted.is_active is False
        assert deleted.phone is None
        assert deleted.name == "Deleted User"
        assert deleted.email.startswith("deleted_")

        # The same email and phone can be registered again
        await make_user()

    @pytest.mark.asyncio
    async def test_find_duplicate_by_phone(self, db_session, make_user):
        await make_user()

        async with db_session.begin():
            duplicate = await user_db.find_duplicate(db_session, "other@example.com", "9876543210")
            assert duplicate is not None
            assert await user_db.find_duplicate(db_session, "other@example.com", "9123456789") is None

    @pytest.mark.asyncio
    async def test_get_active_by_id_skips_inactive(self, db_session, make_user):
        user = await make_user(is_active=False)

        async with db_session.begin():
            assert await user_db.get_active_by_id(db_session, user.id) is None


class TestOTPChallengeDB:

    @pytest.mark.asyncio
    async def test_live_challenge_unverified_and_unexpired(self, db_session, db_engine):
        await _add_challenge(db_session)

        async with db_session.begin():
            live = await otp_challenge_db.get_live_challenge(
                db_session, "asha@example.com", OTPPurpose.EMAIL_VERIFICATION, GRACE
            )
        assert live is not None

    @pytest.mark.asyncio
    async def test_expired_challenge_is_not_live(self, db_session, db_engine):
        await _add_challenge(db_session, expires_at=_now() - timedelta(seconds=1))

        async with db_session.begin():
            live = await otp_challenge_db.get_live_challenge(
                db_session, "asha@example.com", OTPPurpose.EMAIL_VERIFICATION, GRACE
            )
        assert live is None

    @pytest.mark.asyncio
    async def test_purpose_is_part_of_the_key(self, db_session, db_engine):
        await _add_challenge(db_session)

        async with db_session.begin():
            live = await otp_challenge_db.get_live_challenge(
                db_session, "asha@example.com", OTPPurpose.FORGOT_PASSWORD, GRACE
            )
        assert live is None

    @pytest.mark.asyncio
    async def test_verified_challenge_live_within_grace_window(self, db_session, db_engine):
        # Expired as an unverified code, but verified recently
        await _add_challenge(
            db_session,
            expires_at=_now() - timedelta(minutes=1),
            is_verified=True,
            verified_at=_now() - timedelta(minutes=5),
        )

        async with db_session.begin():
            verified = await otp_challenge_db.get_verified_challenge(
                db_session, "asha@example.com", OTPPurpose.EMAIL_VERIFICATION, GRACE
            )
            outside = await otp_challenge_db.get_verified_challenge(
                db_session,
                "asha@example.com",
                OTPPurpose.EMAIL_VERIFICATION,
                timedelta(minutes=1),
            )
        assert verified is not None
        assert outside is None

    @pytest.mark.asyncio
    async def test_increment_attempts(self, db_session, db_engine):
        challenge = await _add_challenge(db_session)

        async with db_session.begin():
            first = await otp_challenge_db.increment_attempts(
                db_session, challenge, commit_self=False
            )
            second = await otp_challenge_db.increment_attempts(
                db_session, challenge, commit_self=False
            )
        assert (first, second) == (1, 2)

    @pytest.mark.asyncio
    async def test_delete_stale(self, db_session, db_engine):
        await _add_challenge(db_session, identifier="live@example.com")
        await _add_challenge(
            db_session,
            identifier="expired@example.com",
            expires_at=_now() - timedelta(minutes=1),
        )
        await _add_challenge(
            db_session,
            identifier="old-verified@example.com",
            is_verified=True,
            verified_at=_now() - timedelta(hours=1),
        )

        async with db_session.begin():
            deleted = await otp_challenge_db.delete_stale(db_session, GRACE, commit_self=False)

        async with db_session.begin():
            remaining = (await db_session.execute(select(OTPChallenge.identifier))).scalars().all()
        assert deleted == 2
        assert remaining == ["live@example.com"]


class TestUserSessionDB:

    @pytest.mark.asyncio
    async def test_get_valid_session_checks_owner_and_state(self, db_session, make_user):
        owner = await make_user()
        other = await make_user(email="other@example.com", phone="9123456789")
        active = await _add_session(db_session, owner.id)
        inactive = await _add_session(db_session, owner.id, is_active=False)
        expired = await _add_session(
            db_session, owner.id, expires_at=_now() - timedelta(minutes=1)
        )

        async with db_session.begin():
            assert await user_session_db.get_valid_session(db_session, active.session_id, owner.id)
            assert not await user_session_db.get_valid_session(db_session, active.session_id, other.id)
            assert not await user_session_db.get_valid_session(db_session, inactive.session_id, owner.id)
            assert not await user_session_db.get_valid_session(db_session, expired.session_id, owner.id)

    @pytest.mark.asyncio
    async def test_reusable_for_device_prefers_latest(self, db_session, make_user):
        user = await make_user()
        await _add_session(db_session, user.id, last_activity_at=_now() - timedelta(hours=2))
        latest = await _add_session(db_session, user.id)
        await _add_session(db_session, user.id, device_fingerprint="device-b")

        async with db_session.begin():
            reusable = await user_session_db.get_reusable_for_device(db_session, user.id, "device-a")
        assert reusable.id == latest.id

    @pytest.mark.asyncio
    async def test_deactivate_records_reason(self, db_session, make_user):
        user = await make_user()
        user_session = await _add_session(db_session, user.id)

        async with db_session.begin():
            count = await user_session_db.deactivate(
                db_session,
                [UserSession.user_id == user.id],
                LogoutReason.SECURITY,
                commit_self=False,
            )
        async with db_session.begin():
            stored = await user_session_db.get_by_id(db_session, user_session.id)

        assert count == 1
        assert stored.is_active is False
        assert stored.logout_reason == LogoutReason.SECURITY
        assert stored.logout_at is not None


class TestRefreshTokenDB:

    @pytest.mark.asyncio
    async def test_upsert_replaces_token_for_session(self, db_session, make_user):
        user = await make_user()
        user_session = await _add_session(db_session, user.id)
        expires_at = _now() + timedelta(days=7)

        async with db_session.begin():
            await refresh_token_db.upsert_for_session(
                db_session, user.id, user_session.id, "a" * 64, expires_at, commit_self=False
            )
            await refresh_token_db.upsert_for_session(
                db_session, user.id, user_session.id, "b" * 64, expires_at, commit_self=False
            )

        async with db_session.begin():
            tokens = (await db_session.execute(select(RefreshToken))).scalars().all()
            assert await refresh_token_db.get_valid_token(db_session, "a" * 64) is None
            valid = await refresh_token_db.get_valid_token(db_session, "b" * 64)

        assert len(tokens) == 1
        assert valid.user_session.session_id == user_session.session_id

    @pytest.mark.asyncio
    async def test_token_invalid_once_session_inactive(self, db_session, make_user):
        user = await make_user()
        user_session = await _add_session(db_session, user.id, is_active=False)

        async with db_session.begin():
            await refresh_token_db.upsert_for_session(
                db_session,
                user.id,
                user_session.id,
                "c" * 64,
                _now() + timedelta(days=7),
                commit_self=False,
            )

        async with db_session.begin():
            assert await refresh_token_db.get_valid_token(db_session, "c" * 64) is None

    @pytest.mark.asyncio
    async def test_delete_expired(self, db_session, make_user):
        user = await make_user()
        first = await _add_session(db_session, user.id)
        second = await _add_session(db_session, user.id)

        async with db_session.begin():
            await refresh_token_db.upsert_for_session(
                db_session, user.id, first.id, "d" * 64, _now() - timedelta(minutes=1), commit_self=False
            )
            await refresh_token_db.upsert_for_session(
                db_session, user.id, second.id, "e" * 64, _now() + timedelta(days=1), commit_self=False
            )

        async with db_session.begin():
            removed = await refresh_token_db.delete_expired(db_session, commit_self=False)
        assert removed == 1
