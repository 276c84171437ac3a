"""
Session registry.

Sessions bind a user to a device. Logins from the same device reuse and
extend one row; logouts deactivate rows and keep them with a reason.
Every revocation also removes the refresh token bound to the session.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import hashlib
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import session_logger, settings
from app.core.db.crud import refresh_token_db, user_session_db
from app.core.db.models import UserSession
from app.core.enums import LogoutReason, UserRole
from app.core.exceptions.types import SessionInvalidException, SessionRequiredException
from app.core.services.token import TokenService
from app.core.utils import generate_session_id, parse_user_agent


@dataclass
class DeviceInfo:
    """Client device description captured at login."""

    fingerprint: str
    browser: str = "Unknown"
    os: str = "Unknown"
    device: str = "Unknown"
    ip: str | None = None
    user_agent: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"browser": self.browser, "os": self.os, "device": self.device, **self.extra}


def get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_device_info(request: Request) -> DeviceInfo:
    """
    Build the DeviceInfo of the current request.

    The fingerprint header wins; without it the fingerprint is the SHA256 of
    the user agent and client IP.
    """
    user_agent = request.headers.get("user-agent")
    ip = get_client_ip(request)
    fingerprint = request.headers.get(settings.DEVICE_FINGERPRINT_HEADER_NAME)
    if not fingerprint:
        fingerprint = hashlib.sha256(
            f"{user_agent or ''}|{ip or ''}".encode("utf-8")
        ).hexdigest()

    parsed = parse_user_agent(user_agent)
    return DeviceInfo(
        fingerprint=fingerprint[:128],
        browser=parsed["browser"],
        os=parsed["os"],
        device=parsed["device"],
        ip=ip,
        user_agent=user_agent[:512] if user_agent else None,
    )


class SessionService:
    """Classmethod service for device-bound sessions."""

    @classmethod
    def session_ttl(cls) -> timedelta:
        return timedelta(days=settings.SESSION_EXPIRE_DAYS)

    @classmethod
    async def create_or_extend_session(
        cls,
        session: AsyncSession,
        user_id: UUID,
        existing_session_id: str | None,
        device: DeviceInfo,
        commit_self: bool = True,
    ) -> tuple[UserSession, bool]:
        """
        Reuse the caller's session or open a new one.

        A supplied session id owned by the user is reused. Without one, the
        user's most recent active session on the same device is reused.
        Reuse pushes the expiry out. A revoked session is never brought back,
        so its logout record survives.

        Args:
            session: The database session.
            user_id: The authenticated user.
            existing_session_id: Session id sent by the client, if any.
            device: Device of the current request.
            commit_self: If True, commits the transaction.

        Returns:
            tuple[UserSession, bool]: The session and whether it was reused.
        """
        now = datetime.now(timezone.utc)
        expires_at = now + cls.session_ttl()
        existing: UserSession | None = None

        if existing_session_id:
            candidate = await user_session_db.get_by_session_id(session, existing_session_id)
            # A revoked session stays revoked; the caller gets a new one
            if (
                candidate is not None
                and candidate.user_id == user_id
                and candidate.is_active
            ):
                existing = candidate
        elif device.fingerprint:
            existing = await user_session_db.get_reusable_for_device(
                session, user_id, device.fingerprint
            )

        if existing is not None:
            updated = await user_session_db.update(
                session,
                existing.id,
                {
                    "last_activity_at": now,
                    "expires_at": expires_at,
                    "ip_address": device.ip,
                    "user_agent": device.user_agent,
                    "device_info": device.as_dict(),
                },
                commit_self=commit_self,
            )
            session_logger.info(f"Session extended: user_id={user_id}")
            return updated or existing, True

        created = await user_session_db.create(
            session,
            {
                "session_id": generate_session_id(),
                "user_id": user_id,
                "ip_address": device.ip,
                "user_agent": device.user_agent,
                "device_fingerprint": device.fingerprint,
                "device_info": device.as_dict(),
                "is_active": True,
                "last_activity_at": now,
                "expires_at": expires_at,
            },
            commit_self=commit_self,
        )
        session_logger.info(
            f"Session created: user_id={user_id}, device={device.device}, os={device.os}"
        )
        return created, False

    @classmethod
    async def validate_session(
        cls,
        session: AsyncSession,
        session_id: str | None,
        user_id: UUID,
        role: UserRole | str,
    ) -> UserSession | None:
        """
        Check the session sent with an authenticated request.

        Admins are exempt and get None back.

        Raises:
            SessionRequiredException: No session id was sent.
            SessionInvalidException: Unknown, inactive, expired or foreign session.
        """
        if UserRole(role) == UserRole.ADMIN:
            return None
        if not session_id:
            raise SessionRequiredException()

        user_session = await user_session_db.get_valid_session(session, session_id, user_id)
        if user_session is None:
            session_logger.warning(f"Session rejected: user_id={user_id}")
            raise SessionInvalidException()
        return user_session

    @classmethod
    async def revoke_session(
        cls,
        session: AsyncSession,
        session_id: str,
        reason: LogoutReason,
        user_id: UUID | None = None,
        commit_self: bool = True,
    ) -> bool:
        """
        Deactivate one session and delete its refresh token.

        Args:
            session: The database session.
            session_id: The session to revoke.
            reason: Recorded logout reason.
            user_id: If given, the session must belong to this user.
            commit_self: If True, commits the transaction.

        Returns:
            bool: True if an active session was revoked.
        """
        user_session = await user_session_db.get_by_session_id(session, session_id)
        if user_session is None or (user_id is not None and user_session.user_id != user_id):
            return False

        deactivated = await user_session_db.deactivate(
            session,
            [UserSession.id == user_session.id],
            reason,
            commit_self=False,
        )
        await TokenService.revoke_for_session(session, user_session.id, commit_self=False)
        if commit_self:
            await session.commit()

        session_logger.info(
            f"Session revoked: user_id={user_session.user_id}, reason={reason.value}"
        )
        return deactivated > 0

    @classmethod
    async def _revoke_sessions(
        cls,
        session: AsyncSession,
        conditions: list,
        reason: LogoutReason,
        commit_self: bool,
    ) -> int:
        targets = await user_session_db.get_by_conditions(
            session, [UserSession.is_active.is_(True), *conditions]
        )
        ids = [target.id for target in targets]
        if not ids:
            if commit_self:
                await session.commit()
            return 0

        count = await user_session_db.deactivate(
            session, [UserSession.id.in_(ids)], reason, commit_self=False
        )
        await refresh_token_db.delete_by_conditions(
            session,
            [refresh_token_db.model.user_session_id.in_(ids)],
            commit_self=False,
        )
        if commit_self:
            await session.commit()
        return count

    @classmethod
    async def revoke_all_except_current(
        cls,
        session: AsyncSession,
        user_id: UUID,
        current_session_id: str | None,
        commit_self: bool = True,
    ) -> int:
        """Revoke every other active session of the user. Returns the count."""
        conditions: list = [UserSession.user_id == user_id]
        if current_session_id:
            conditions.append(UserSession.session_id != current_session_id)

        count = await cls._revoke_sessions(
            session, conditions, LogoutReason.MANUAL, commit_self
        )
        session_logger.info(f"Other sessions revoked: user_id={user_id}, count={count}")
        return count

    @classmethod
    async def revoke_all(
        cls,
        session: AsyncSession,
        user_id: UUID,
        reason: LogoutReason,
        commit_self: bool = True,
    ) -> int:
        """Revoke every active session and every refresh token of the user."""
        count = await cls._revoke_sessions(
            session, [UserSession.user_id == user_id], reason, commit_self=False
        )
        await refresh_token_db.delete_for_user(session, user_id, commit_self=commit_self)
        session_logger.info(
            f"All sessions revoked: user_id={user_id}, reason={reason.value}, count={count}"
        )
        return count

    @classmethod
    async def list_sessions(cls, session: AsyncSession, user_id: UUID) -> list[UserSession]:
        return list(await user_session_db.list_active(session, user_id))

    @classmethod
    async def expire_stale(cls, session: AsyncSession, commit_self: bool = True) -> int:
        """Mark active sessions past their expiry as logged out (reason `expired`)."""
        now = datetime.now(timezone.utc)
        count = await user_session_db.deactivate(
            session,
            [UserSession.expires_at <= now],
            LogoutReason.EXPIRED,
            commit_self=commit_self,
        )
        session_logger.info(f"Expired sessions deactivated: {count}")
        return count


__all__ = ["SessionService", "DeviceInfo", "get_device_info", "get_client_ip"]
