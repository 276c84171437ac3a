"""
Authentication service.

- Two-step registration gated by an email OTP
- Login by email or phone with device-bound sessions
- Forgot password and OTP resend with anti-enumeration responses
- Loading the cached user snapshot for authenticated requests

Every method here manages its own transactions, so callers must not hold an
open transaction on the session.

Example usage:
    expires_at = await AuthService.register_request(
        session, name="Asha", email="asha@example.com", phone="9876543210"
    )
    user, tokens = await AuthService.register_complete(
        session,
        name="Asha",
        email="asha@example.com",
        phone="9876543210",
        password="Secret123",
        otp_code="123456",
        device=device,
    )
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import auth_logger
from app.core.db.crud import user_db
from app.core.db.models import OTPChallenge, User
from app.core.enums import LogoutReason, OTPPurpose
from app.core.exceptions.types import (
    BadRequestException,
    DuplicateIdentityException,
    InvalidCredentialsException,
    OTPDeliveryException,
    OTPInvalidCodeException,
)
from app.core.services.otp import OTPService
from app.core.services.session import DeviceInfo, SessionService
from app.core.services.token import TokenPair, TokenService
from app.core.services.user_cache import UserSnapshot, UserSnapshotCache
from app.core.utils import (
    dummy_verify_password,
    hash_password,
    is_valid_phone,
    mask_identifier,
    normalize_email,
    normalize_phone,
    verify_password,
)

IdentifierKind = Literal["email", "phone"]

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists with this email or phone number, "
    "a password reset OTP has been sent to the registered email address"
)
RESEND_OTP_MESSAGE = "If the account exists, an OTP has been sent"


class AuthService:
    """Classmethod service implementing the authentication flows."""

    # =========================================================================
    # Identifiers
    # =========================================================================

    @classmethod
    def normalize_identifier(cls, identifier: str) -> tuple[str, IdentifierKind]:
        """
        Normalize an email or phone identifier.

        Raises:
            BadRequestException: If the value is neither an email nor a valid phone.

        Examples:
            >>> AuthService.normalize_identifier(" Asha@Example.com ")
            ('asha@example.com', 'email')
            >>> AuthService.normalize_identifier("+91 98765 43210")
            ('9876543210', 'phone')
        """
        if "@" in identifier:
            return normalize_email(identifier), "email"
        phone = normalize_phone(identifier)
        if not is_valid_phone(phone):
            raise BadRequestException("Identifier must be a valid email or phone number.")
        return phone, "phone"

    @classmethod
    async def resolve_user_by_identifier(
        cls, session: AsyncSession, identifier: str
    ) -> User | None:
        """Find the live user holding an email or phone. Runs in the caller's transaction."""
        normalized, kind = cls.normalize_identifier(identifier)
        if kind == "email":
            return await user_db.get_by_email(session, normalized)
        return await user_db.get_by_phone(session, normalized)

    @classmethod
    async def challenge_identifier(
        cls, session: AsyncSession, identifier: str, purpose: OTPPurpose
    ) -> str:
        """
        Map a client identifier onto the identifier its challenge is stored under.

        Forgot-password challenges are always keyed by the account's email, so
        a phone number is resolved to its user first.
        """
        normalized, kind = cls.normalize_identifier(identifier)
        if purpose != OTPPurpose.FORGOT_PASSWORD or kind == "email":
            return normalized

        async with session.begin():
            user = await user_db.get_by_phone(session, normalized)
        return user.email if user is not None else normalized

    # =========================================================================
    # Registration
    # =========================================================================

    @classmethod
    async def register_request(
        cls,
        session: AsyncSession,
        *,
        name: str,
        email: str,
        phone: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> datetime:
        """
        Registration step 1: send an email verification OTP.

        No user row is created here.

        Returns:
            datetime: Expiry of the issued challenge.

        Raises:
            DuplicateIdentityException: The email or phone is already registered.
            OTPDeliveryException: The OTP could not be queued.
        """
        email = normalize_email(email)
        phone = normalize_phone(phone)

        async with session.begin():
            if await user_db.find_duplicate(session, email, phone):
                auth_logger.warning(
                    f"Registration rejected: duplicate identity {mask_identifier(email)}"
                )
                raise DuplicateIdentityException()

            expires_at = await OTPService.create_challenge(
                session,
                email,
                OTPPurpose.EMAIL_VERIFICATION,
                recipient_email=email,
                user_name=name,
                ip_address=ip_address,
                user_agent=user_agent,
                commit_self=False,
            )

        auth_logger.info(f"Registration OTP sent: email={mask_identifier(email)}")
        return expires_at

    @classmethod
    async def register_complete(
        cls,
        session: AsyncSession,
        *,
        name: str,
        email: str,
        phone: str,
        password: str,
        otp_code: str,
        device: DeviceInfo,
        location: str | None = None,
    ) -> tuple[User, TokenPair]:
        """
        Registration step 2: verify the OTP and create the account.

        The challenge is verified first (failed attempts are recorded). The
        consume, duplicate recheck, user insert, session and token issuance
        then share one transaction.

        Returns:
            tuple[User, TokenPair]: The new user and its first token pair.

        Raises:
            OTPNotFoundOrExpiredException, OTPInvalidCodeException,
            OTPMaxAttemptsExceededException: The OTP was not accepted.
            DuplicateIdentityException: The email or phone was taken meanwhile.
        """
        email = normalize_email(email)
        phone = normalize_phone(phone)

        await OTPService.verify_challenge(
            session, email, otp_code, OTPPurpose.EMAIL_VERIFICATION
        )

        try:
            async with session.begin():
                await OTPService.consume_challenge(
                    session,
                    email,
                    otp_code,
                    OTPPurpose.EMAIL_VERIFICATION,
                    commit_self=False,
                )

                if await user_db.find_duplicate(session, email, phone):
                    auth_logger.warning(
                        f"Registration rejected after OTP: duplicate identity "
                        f"{mask_identifier(email)}"
                    )
                    raise DuplicateIdentityException()

                user = await user_db.create(
                    session,
                    {
                        "name": name,
                        "email": email,
                        "phone": phone,
                        "password_hash": hash_password(password),
                        "location": location,
                    },
                    commit_self=False,
                )
                user_session, _ = await SessionService.create_or_extend_session(
                    session, user.id, None, device, commit_self=False
                )
                tokens = await TokenService.issue_token_pair(
                    session, user, user_session, commit_self=False
                )
        except OTPInvalidCodeException:
            await OTPService.record_failed_attempt(
                session, email, OTPPurpose.EMAIL_VERIFICATION
            )
            raise

        auth_logger.info(f"User registered: user_id={user.id}")
        return user, tokens

    # =========================================================================
    # Login / Logout
    # =========================================================================

    @classmethod
    async def login(
        cls,
        session: AsyncSession,
        *,
        identifier: str,
        password: str,
        device: DeviceInfo,
        existing_session_id: str | None = None,
    ) -> tuple[User, TokenPair]:
        """
        Authenticate by email or phone and password.

        Unknown identifiers, wrong passwords and inactive accounts all fail
        with the same InvalidCredentialsException; unknown identifiers still
        pay for a bcrypt check.

        Returns:
            tuple[User, TokenPair]: The user and a token pair for the session.
        """
        async with session.begin():
            user = await cls.resolve_user_by_identifier(session, identifier)

            if user is None:
                dummy_verify_password(password)
                auth_logger.warning(
                    f"Login failed: unknown identifier {mask_identifier(identifier)}"
                )
                raise InvalidCredentialsException()

            if not verify_password(password, user.password_hash) or not user.is_active:
                auth_logger.warning(f"Login failed: user_id={user.id}")
                raise InvalidCredentialsException()

            user_session, reused = await SessionService.create_or_extend_session(
                session, user.id, existing_session_id, device, commit_self=False
            )
            tokens = await TokenService.issue_token_pair(
                session, user, user_session, commit_self=False
            )

        auth_logger.info(f"Login: user_id={user.id}, session_reused={reused}")
        return user, tokens

    @classmethod
    async def logout(
        cls, session: AsyncSession, user_id: UUID, session_id: str | None
    ) -> bool:
        """Revoke the current session and its refresh token."""
        if not session_id:
            return False
        async with session.begin():
            revoked = await SessionService.revoke_session(
                session, session_id, LogoutReason.MANUAL, user_id=user_id, commit_self=False
            )
        auth_logger.info(f"Logout: user_id={user_id}, revoked={revoked}")
        return revoked

    # =========================================================================
    # OTP flows
    # =========================================================================

    @classmethod
    async def forgot_password(
        cls,
        session: AsyncSession,
        identifier: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Send a forgot-password OTP to the account's email.

        Unknown identifiers and delivery failures are silent; the same message
        is always returned.
        """
        try:
            async with session.begin():
                user = await cls.resolve_user_by_identifier(session, identifier)
                if user is None or not user.is_active:
                    auth_logger.info(
                        f"Forgot password for unknown identifier {mask_identifier(identifier)}"
                    )
                    return FORGOT_PASSWORD_MESSAGE

                await OTPService.create_challenge(
                    session,
                    user.email,
                    OTPPurpose.FORGOT_PASSWORD,
                    recipient_email=user.email,
                    user_name=user.name,
                    user_id=user.id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    commit_self=False,
                )
        except OTPDeliveryException:
            auth_logger.error(
                f"Forgot password OTP not delivered for {mask_identifier(identifier)}"
            )

        return FORGOT_PASSWORD_MESSAGE

    @classmethod
    async def verify_otp(
        cls,
        session: AsyncSession,
        identifier: str,
        otp_code: str,
        otp_type: OTPPurpose,
    ) -> OTPChallenge:
        """Verify an OTP without consuming it."""
        challenge_identifier = await cls.challenge_identifier(session, identifier, otp_type)
        return await OTPService.verify_challenge(
            session, challenge_identifier, otp_code, otp_type
        )

    @classmethod
    async def resend_otp(
        cls,
        session: AsyncSession,
        identifier: str,
        otp_type: OTPPurpose,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Issue a fresh OTP when the account state allows it.

        Email verification codes are only sent for unregistered emails,
        forgot-password and phone verification codes only for existing users.
        The response is identical in every case.
        """
        normalized, kind = cls.normalize_identifier(identifier)

        try:
            async with session.begin():
                if otp_type == OTPPurpose.EMAIL_VERIFICATION:
                    if kind != "email":
                        raise BadRequestException("Email verification requires an email.")
                    if await user_db.get_by_email(session, normalized) is None:
                        await OTPService.create_challenge(
                            session,
                            normalized,
                            otp_type,
                            recipient_email=normalized,
                            ip_address=ip_address,
                            user_agent=user_agent,
                            commit_self=False,
                        )
                else:
                    user = await cls.resolve_user_by_identifier(session, identifier)
                    if user is not None and user.is_active:
                        challenge_identifier = (
                            user.email
                            if otp_type == OTPPurpose.FORGOT_PASSWORD
                            else user.phone or normalized
                        )
                        await OTPService.create_challenge(
                            session,
                            challenge_identifier,
                            otp_type,
                            recipient_email=user.email,
                            user_name=user.name,
                            user_id=user.id,
                            ip_address=ip_address,
                            user_agent=user_agent,
                            commit_self=False,
                        )
        except OTPDeliveryException:
            auth_logger.error(
                f"Resent OTP not delivered for {mask_identifier(normalized)}, "
                f"type={otp_type.value}"
            )

        return RESEND_OTP_MESSAGE

    # =========================================================================
    # Snapshots
    # =========================================================================

    @classmethod
    async def load_snapshot(
        cls,
        session: AsyncSession,
        user_id: UUID,
        cache: UserSnapshotCache,
    ) -> UserSnapshot | None:
        """
        Return the user's snapshot from the cache, reading the DB on a miss.

        Deleted and inactive users yield None and are never cached.
        """
        snapshot = await cache.get(user_id)
        if snapshot is not None:
            return snapshot

        async with session.begin():
            user = await user_db.get_active_by_id(session, user_id)
        if user is None:
            return None

        snapshot = UserSnapshot.model_validate(user)
        await cache.set(snapshot)
        return snapshot


__all__ = [
    "AuthService",
    "FORGOT_PASSWORD_MESSAGE",
    "RESEND_OTP_MESSAGE",
]
