"""
Invalidation cascade for security-relevant account changes.

Each operation commits its authoritative change first in a short
transaction. Revoking sessions and refresh tokens runs afterwards in a
separate best-effort transaction whose failures are logged, not raised.
The cached snapshot is invalidated last.

Callers must not hold an open transaction on the session.
"""

from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import auth_logger
from app.core.db.crud import user_db
from app.core.db.models import User
from app.core.enums import LogoutReason, OTPPurpose
from app.core.exceptions.types import (
    AppException,
    OTPInvalidCodeException,
    UserNotFoundException,
)
from app.core.services.event_publisher import publish
from app.core.services.otp import OTPService
from app.core.services.session import SessionService
from app.core.services.user_cache import UserSnapshotCache
from app.core.utils import hash_password, mask_identifier

PASSWORD_RESET_CONFIRMATION_QUEUE = "password_reset_confirmation_emails"


class InvalidationCascade:
    """Classmethod service coordinating credential changes with revocation."""

    @classmethod
    async def _revoke_everything(
        cls,
        session: AsyncSession,
        user_id: UUID,
        reason: LogoutReason,
    ) -> int:
        try:
            async with session.begin():
                return await SessionService.revoke_all(
                    session, user_id, reason, commit_self=False
                )
        except (AppException, SQLAlchemyError) as e:
            auth_logger.error(
                f"Session revocation failed: user_id={user_id}, reason={reason.value}, "
                f"error={type(e).__name__}: {str(e)}"
            )
            return 0

    @classmethod
    async def reset_password(
        cls,
        session: AsyncSession,
        identifier: str,
        code: str,
        new_password: str,
        cache: UserSnapshotCache,
    ) -> User:
        """
        Set a new password from a verified forgot-password challenge.

        Steps:
            1. Consume the challenge and store the new hash in one transaction.
            2. Revoke all sessions (reason `security`) and refresh tokens.
            3. Invalidate the cached snapshot.
            4. Publish the confirmation mail.

        Args:
            session: The database session.
            identifier: The challenge identifier (the account's email).
            code: The verified OTP code.
            new_password: The new plain text password.
            cache: The user snapshot cache.

        Returns:
            User: The updated user.

        Raises:
            OTPNotFoundOrExpiredException: No verified, unconsumed challenge.
            OTPInvalidCodeException: The code does not match; counted as an attempt.
            UserNotFoundException: The account no longer exists.
        """
        try:
            async with session.begin():
                await OTPService.consume_challenge(
                    session,
                    identifier,
                    code,
                    OTPPurpose.FORGOT_PASSWORD,
                    commit_self=False,
                )
                user = await user_db.get_by_email(session, identifier)
                if user is None:
                    raise UserNotFoundException()
                updated = await user_db.update(
                    session,
                    user.id,
                    {"password_hash": hash_password(new_password)},
                    commit_self=False,
                )
                user = updated or user
        except OTPInvalidCodeException:
            await OTPService.record_failed_attempt(
                session, identifier, OTPPurpose.FORGOT_PASSWORD
            )
            raise

        revoked = await cls._revoke_everything(session, user.id, LogoutReason.SECURITY)
        await cache.invalidate(user.id)

        try:
            await publish(
                PASSWORD_RESET_CONFIRMATION_QUEUE,
                {"email": user.email, "user_name": user.name},
            )
        except (AppException, RuntimeError, OSError) as e:
            auth_logger.warning(
                f"Password reset confirmation not queued for "
                f"{mask_identifier(user.email)}: {type(e).__name__}"
            )

        auth_logger.info(
            f"Password reset: user_id={user.id}, sessions_revoked={revoked}"
        )
        return user

    @classmethod
    async def delete_account(
        cls,
        session: AsyncSession,
        user_id: UUID,
        cache: UserSnapshotCache,
    ) -> None:
        """
        Anonymise and soft delete an account, then revoke its sessions.

        Raises:
            UserNotFoundException: The user does not exist or is already deleted.
        """
        async with session.begin():
            user = await user_db.get_one_by_conditions(
                session,
                [user_db.model.id == user_id, user_db.model.is_deleted.is_(False)],
            )
            if user is None:
                raise UserNotFoundException()
            await user_db.anonymize(session, user, commit_self=False)

        revoked = await cls._revoke_everything(
            session, user_id, LogoutReason.ACCOUNT_DELETED
        )
        await cache.invalidate(user_id)
        auth_logger.info(f"Account deleted: user_id={user_id}, sessions_revoked={revoked}")

    @classmethod
    async def force_logout(
        cls,
        session: AsyncSession,
        user_id: UUID,
        cache: UserSnapshotCache,
        reason: LogoutReason = LogoutReason.ADMIN,
    ) -> int:
        """Revoke every session and refresh token of a user. Returns the session count."""
        revoked = await cls._revoke_everything(session, user_id, reason)
        await cache.invalidate(user_id)
        auth_logger.info(
            f"Forced logout: user_id={user_id}, reason={reason.value}, sessions_revoked={revoked}"
        )
        return revoked

    @classmethod
    async def logout_all(
        cls,
        session: AsyncSession,
        user_id: UUID,
        current_session_id: str | None,
        cache: UserSnapshotCache,
    ) -> int:
        """Revoke every session except the current one."""
        async with session.begin():
            revoked = await SessionService.revoke_all_except_current(
                session, user_id, current_session_id, commit_self=False
            )
        await cache.invalidate(user_id)
        return revoked


__all__ = ["InvalidationCascade", "PASSWORD_RESET_CONFIRMATION_QUEUE"]
