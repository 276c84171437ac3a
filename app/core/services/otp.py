"""
OTP challenge manager.

Issues, verifies, consumes and sweeps one-time codes. There is at most one
live challenge per (identifier, purpose): issuing a new one deletes the old.

Lifecycle::

    issued --verify(ok)--> verified --consume--> deleted
       |                      |
       |--verify(bad)--> attempts+1 --cap--> deleted
       |--expiry / grace window passes--> swept

Example usage:
    expires_at = await OTPService.create_challenge(
        session, "a@x.com", OTPPurpose.EMAIL_VERIFICATION, recipient_email="a@x.com"
    )
    await OTPService.verify_challenge(session, "a@x.com", "123456", OTPPurpose.EMAIL_VERIFICATION)
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import otp_logger, settings
from app.core.db.crud import otp_challenge_db
from app.core.db.models import OTPChallenge
from app.core.enums import OTPPurpose
from app.core.exceptions.types import (
    AppException,
    OTPDeliveryException,
    OTPInvalidCodeException,
    OTPMaxAttemptsExceededException,
    OTPNotFoundOrExpiredException,
)
from app.core.services.event_publisher import publish
from app.core.utils import (
    generate_otp_code,
    hmac_hash_otp,
    hmac_verify_otp,
    mask_identifier,
    mask_otp,
)

OTP_QUEUE = "otp_emails"


class OTPService:
    """Classmethod service for OTP challenges."""

    @classmethod
    def grace_window(cls) -> timedelta:
        return timedelta(minutes=settings.OTP_GRACE_WINDOW_MINUTES)

    @classmethod
    async def create_challenge(
        cls,
        session: AsyncSession,
        identifier: str,
        purpose: OTPPurpose,
        ttl_minutes: int | None = None,
        *,
        recipient_email: str,
        user_name: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        commit_self: bool = True,
    ) -> datetime:
        """
        Issue a fresh challenge for (identifier, purpose) and hand it to the notifier.

        Any previous challenge for the pair is deleted first. The code itself is
        only ever placed on the delivery queue.

        Args:
            session: The database session.
            identifier: Normalized email or phone the challenge is bound to.
            purpose: What the code unlocks.
            ttl_minutes: Lifetime of the code. Defaults to settings.OTP_EXPIRY_MINUTES.
            recipient_email: Address the code is delivered to.
            user_name: Optional name for the email greeting.
            user_id: Owning user, if the account already exists.
            ip_address: Requesting client IP.
            user_agent: Requesting client user agent.
            commit_self: If True, commits the transaction.

        Returns:
            datetime: When the challenge expires.

        Raises:
            OTPDeliveryException: If the delivery event could not be published.
            DatabaseException: If a database error occurs.
        """
        ttl = ttl_minutes if ttl_minutes is not None else settings.OTP_EXPIRY_MINUTES
        otp_code = generate_otp_code(settings.OTP_LENGTH)
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl)

        await otp_challenge_db.delete_for_identifier(
            session, identifier, purpose, commit_self=False
        )
        await otp_challenge_db.create(
            session,
            {
                "identifier": identifier,
                "purpose": purpose,
                "code_hash": hmac_hash_otp(otp_code, settings.OTP_HMAC_SECRET),
                "expires_at": expires_at,
                "attempts": 0,
                "is_verified": False,
                "user_id": user_id,
                "ip_address": ip_address,
                "user_agent": user_agent,
            },
            commit_self=False,
        )

        try:
            await publish(
                OTP_QUEUE,
                {
                    "email": recipient_email,
                    "otp_code": otp_code,
                    "purpose": purpose.value,
                    "user_name": user_name,
                    "expires_in_minutes": ttl,
                },
            )
        except (AppException, ConnectionError, OSError, RuntimeError) as e:
            otp_logger.error(
                f"OTP delivery failed: identifier={mask_identifier(identifier)}, "
                f"purpose={purpose.value}, error={type(e).__name__}: {str(e)}"
            )
            if commit_self:
                await session.rollback()
            raise OTPDeliveryException() from e

        if commit_self:
            await session.commit()

        otp_logger.info(
            f"OTP issued: identifier={mask_identifier(identifier)}, "
            f"code={mask_otp(otp_code)}, purpose={purpose.value}, "
            f"expires_at={expires_at.isoformat()}"
        )
        return expires_at

    @classmethod
    async def verify_challenge(
        cls,
        session: AsyncSession,
        identifier: str,
        code: str,
        purpose: OTPPurpose,
    ) -> OTPChallenge:
        """
        Verify a code against the live challenge.

        Commits its own work before raising, so a failed attempt is recorded
        even though the call fails. Must not be called inside an open
        ``session.begin()`` block.

        Args:
            session: The database session.
            identifier: Normalized email or phone.
            code: The submitted code.
            purpose: The purpose of the challenge.

        Returns:
            OTPChallenge: The verified challenge (kept for the grace window).

        Raises:
            OTPNotFoundOrExpiredException: No live challenge exists.
            OTPMaxAttemptsExceededException: The attempt cap is reached; the
                challenge is deleted.
            OTPInvalidCodeException: The code does not match.
        """
        masked = mask_identifier(identifier)
        challenge = await otp_challenge_db.get_live_challenge(
            session, identifier, purpose, cls.grace_window()
        )
        failure: AppException | None = None

        if challenge is None:
            failure = OTPNotFoundOrExpiredException()
        elif challenge.attempts >= settings.OTP_MAX_ATTEMPTS:
            await otp_challenge_db.delete(session, challenge.id, commit_self=False)
            failure = OTPMaxAttemptsExceededException()
        elif not hmac_verify_otp(code, challenge.code_hash, settings.OTP_HMAC_SECRET):
            attempts = await otp_challenge_db.increment_attempts(
                session, challenge, commit_self=False
            )
            if attempts >= settings.OTP_MAX_ATTEMPTS:
                await otp_challenge_db.delete(session, challenge.id, commit_self=False)
                failure = OTPMaxAttemptsExceededException()
            else:
                failure = OTPInvalidCodeException()
        else:
            challenge = (
                await otp_challenge_db.mark_verified(session, challenge, commit_self=False)
                or challenge
            )

        await session.commit()

        if failure is not None:
            otp_logger.warning(
                f"OTP verification failed: identifier={masked}, "
                f"purpose={purpose.value}, reason={type(failure).__name__}"
            )
            raise failure

        otp_logger.info(f"OTP verified: identifier={masked}, purpose={purpose.value}")
        return challenge  # type: ignore[return-value]

    @classmethod
    async def consume_challenge(
        cls,
        session: AsyncSession,
        identifier: str,
        code: str,
        purpose: OTPPurpose,
        grace_window: timedelta | None = None,
        commit_self: bool = True,
    ) -> None:
        """
        Consume a previously verified challenge. Single use.

        Runs inside the caller's transaction. A mismatch does not record an
        attempt here; callers follow up with `record_failed_attempt` once their
        transaction has been rolled back.

        Args:
            session: The database session.
            identifier: Normalized email or phone.
            code: The code that was verified.
            purpose: The purpose of the challenge.
            grace_window: How long after verification the challenge may be
                consumed. Defaults to settings.OTP_GRACE_WINDOW_MINUTES.
            commit_self: If True, commits the transaction.

        Raises:
            OTPNotFoundOrExpiredException: No verified challenge within the window.
            OTPInvalidCodeException: The code does not match.
        """
        challenge = await otp_challenge_db.get_verified_challenge(
            session, identifier, purpose, grace_window or cls.grace_window()
        )
        if challenge is None:
            otp_logger.warning(
                f"OTP consume failed: no verified challenge for "
                f"identifier={mask_identifier(identifier)}, purpose={purpose.value}"
            )
            raise OTPNotFoundOrExpiredException()

        if not hmac_verify_otp(code, challenge.code_hash, settings.OTP_HMAC_SECRET):
            raise OTPInvalidCodeException()

        # A concurrent consumer may have deleted the row since it was read
        if not await otp_challenge_db.delete(session, challenge.id, commit_self=commit_self):
            otp_logger.warning(
                f"OTP consume lost race: identifier={mask_identifier(identifier)}, "
                f"purpose={purpose.value}"
            )
            raise OTPNotFoundOrExpiredException()
        otp_logger.info(
            f"OTP consumed: identifier={mask_identifier(identifier)}, purpose={purpose.value}"
        )

    @classmethod
    async def record_failed_attempt(
        cls,
        session: AsyncSession,
        identifier: str,
        purpose: OTPPurpose,
    ) -> int:
        """
        Count a failed attempt against the live challenge and commit.

        The challenge is deleted once the cap is reached.

        Returns:
            int: Attempts after incrementing, 0 if no live challenge exists.
        """
        challenge = await otp_challenge_db.get_live_challenge(
            session, identifier, purpose, cls.grace_window()
        )
        if challenge is None:
            await session.commit()
            return 0

        attempts = await otp_challenge_db.increment_attempts(
            session, challenge, commit_self=False
        )
        if attempts >= settings.OTP_MAX_ATTEMPTS:
            await otp_challenge_db.delete(session, challenge.id, commit_self=False)
        await session.commit()
        return attempts

    @classmethod
    async def sweep_expired(cls, session: AsyncSession, commit_self: bool = True) -> int:
        """Delete challenges past expiry or past their grace window."""
        deleted = await otp_challenge_db.delete_stale(
            session, cls.grace_window(), commit_self=commit_self
        )
        otp_logger.info(f"OTP sweep removed {deleted} challenge(s)")
        return deleted


__all__ = ["OTPService", "OTP_QUEUE"]
