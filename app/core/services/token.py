"""
Token issuer for access and refresh JWTs.

Access tokens are short lived and carry the user's identity, role and
session id. Refresh tokens are bound to one session; only their SHA256 hash
is stored, and persisting a new one for a session replaces the previous.

Example usage:
    pair = await TokenService.issue_token_pair(session, user, user_session)
    claims = TokenService.verify_access_token(pair.access_token)
    result = await TokenService.refresh(session, pair.refresh_token)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings, token_logger
from app.core.db.crud import refresh_token_db, user_db
from app.core.db.models import RefreshToken, User, UserSession
from app.core.enums import TokenType
from app.core.exceptions.types import (
    RefreshTokenInvalidOrRevokedException,
    TokenExpiredException,
    TokenInvalidException,
)
from app.core.utils import create_jwt_token, hash_token


@dataclass
class TokenPair:
    """Access/refresh token pair returned on login and registration."""

    access_token: str
    refresh_token: str
    session_id: str
    token_type: str = "bearer"
    expires_in: int = 0


@dataclass
class AccessTokenResult:
    """Result of exchanging a refresh token."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = 0


class TokenService:
    """Classmethod service issuing and verifying JWTs."""

    @classmethod
    def access_token_ttl(cls) -> timedelta:
        return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    @classmethod
    def refresh_token_ttl(cls) -> timedelta:
        return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    # =========================================================================
    # Issuing
    # =========================================================================

    @classmethod
    def issue_access_token(
        cls,
        user: User,
        session_id: str | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Issue a signed access token.

        Args:
            user: The authenticated user.
            session_id: Session the token is bound to, if any.
            expires_delta: Overrides the configured lifetime.

        Returns:
            str: The encoded JWT.
        """
        claims: dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "type": TokenType.ACCESS.value,
        }
        if session_id:
            claims["sid"] = session_id

        token, _ = create_jwt_token(
            claims,
            settings.JWT_SECRET_KEY,
            expires_delta if expires_delta is not None else cls.access_token_ttl(),
        )
        return token

    @classmethod
    def issue_refresh_token(cls, user: User, session_id: str) -> tuple[str, datetime]:
        """Issue a signed refresh token bound to `session_id`."""
        return create_jwt_token(
            {
                "sub": str(user.id),
                "email": user.email,
                "type": TokenType.REFRESH.value,
                "sid": session_id,
            },
            settings.JWT_REFRESH_SECRET_KEY,
            cls.refresh_token_ttl(),
        )

    @classmethod
    async def persist_refresh_token(
        cls,
        session: AsyncSession,
        user_id: UUID,
        user_session: UserSession,
        token: str,
        expires_at: datetime,
        commit_self: bool = True,
    ) -> RefreshToken:
        """
        Store the hash of a refresh token for a session.

        A token previously stored for the same session stops working
        immediately.
        """
        return await refresh_token_db.upsert_for_session(
            session,
            user_id=user_id,
            user_session_id=user_session.id,
            token_hash=hash_token(token),
            expires_at=expires_at,
            commit_self=commit_self,
        )

    @classmethod
    async def issue_token_pair(
        cls,
        session: AsyncSession,
        user: User,
        user_session: UserSession,
        commit_self: bool = True,
    ) -> TokenPair:
        """
        Issue an access/refresh pair for a session and persist the refresh token.

        Args:
            session: The database session.
            user: The authenticated user.
            user_session: The session both tokens are bound to.
            commit_self: If True, commits the transaction.

        Returns:
            TokenPair: Tokens, session id and access token lifetime in seconds.
        """
        access_token = cls.issue_access_token(user, user_session.session_id)
        refresh_token, refresh_expires_at = cls.issue_refresh_token(
            user, user_session.session_id
        )
        await cls.persist_refresh_token(
            session,
            user.id,
            user_session,
            refresh_token,
            refresh_expires_at,
            commit_self=commit_self,
        )

        expires_in = int(cls.access_token_ttl().total_seconds())
        token_logger.info(
            f"Token pair issued: user_id={user.id}, expires_in={expires_in}s"
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            session_id=user_session.session_id,
            expires_in=expires_in,
        )

    # =========================================================================
    # Verification
    # =========================================================================

    @classmethod
    def _expired_at(cls, token: str, secret_key: str) -> datetime | None:
        try:
            claims = jwt.decode(
                token,
                secret_key,
                algorithms=[settings.JWT_ALGORITHM],
                options={"verify_exp": False},
            )
        except jwt.PyJWTError:
            return None
        exp = claims.get("exp")
        return datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None

    @classmethod
    def verify_access_token(cls, token: str) -> dict[str, Any]:
        """
        Decode and validate an access token.

        Returns:
            dict: The token claims.

        Raises:
            TokenExpiredException: The token has expired; carries `expired_at`.
            TokenInvalidException: Bad signature, malformed token or wrong type.
        """
        try:
            claims = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            expired_at = cls._expired_at(token, settings.JWT_SECRET_KEY)
            token_logger.info("Access token rejected: expired")
            raise TokenExpiredException(expired_at=expired_at)
        except jwt.PyJWTError as e:
            token_logger.warning(f"Access token rejected: {type(e).__name__}")
            raise TokenInvalidException()

        if claims.get("type") != TokenType.ACCESS.value:
            token_logger.warning("Access token rejected: wrong token type")
            raise TokenInvalidException()
        return claims

    @classmethod
    def verify_refresh_token(cls, token: str) -> dict[str, Any]:
        """
        Decode and validate a refresh token.

        Raises:
            RefreshTokenInvalidOrRevokedException: The token has expired.
            TokenInvalidException: Bad signature, malformed token or wrong type.
        """
        try:
            claims = jwt.decode(
                token,
                settings.JWT_REFRESH_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                options={"require": ["exp", "sub", "sid"]},
            )
        except jwt.ExpiredSignatureError:
            token_logger.info("Refresh token rejected: expired")
            raise RefreshTokenInvalidOrRevokedException()
        except jwt.PyJWTError as e:
            token_logger.warning(f"Refresh token rejected: {type(e).__name__}")
            raise TokenInvalidException()

        if claims.get("type") != TokenType.REFRESH.value:
            token_logger.warning("Refresh token rejected: wrong token type")
            raise TokenInvalidException()
        return claims

    @classmethod
    async def refresh(cls, session: AsyncSession, refresh_token: str) -> AccessTokenResult:
        """
        Exchange a refresh token for a new access token.

        The refresh token is not rotated. Its stored record must be unrevoked,
        unexpired, owned by `sub` and bound to the active session `sid`.

        Raises:
            RefreshTokenInvalidOrRevokedException: Any lookup check fails.
            TokenInvalidException: The token itself is not a valid refresh token.
        """
        claims = cls.verify_refresh_token(refresh_token)

        record = await refresh_token_db.get_valid_token(session, hash_token(refresh_token))
        if record is None:
            token_logger.warning("Token refresh failed: unknown or revoked refresh token")
            raise RefreshTokenInvalidOrRevokedException()

        if (
            str(record.user_id) != claims["sub"]
            or record.user_session.session_id != claims["sid"]
        ):
            token_logger.warning(
                f"Token refresh failed: claims do not match record for user_id={record.user_id}"
            )
            raise RefreshTokenInvalidOrRevokedException()

        user = await user_db.get_active_by_id(session, record.user_id)
        if user is None:
            token_logger.warning(f"Token refresh failed: user inactive {record.user_id}")
            raise RefreshTokenInvalidOrRevokedException()

        access_token = cls.issue_access_token(user, record.user_session.session_id)
        token_logger.info(f"Access token refreshed: user_id={user.id}")
        return AccessTokenResult(
            access_token=access_token,
            expires_in=int(cls.access_token_ttl().total_seconds()),
        )

    # =========================================================================
    # Revocation
    # =========================================================================

    @classmethod
    async def revoke_all(
        cls, session: AsyncSession, user_id: UUID, commit_self: bool = True
    ) -> int:
        """Delete every refresh token of the user."""
        count = await refresh_token_db.delete_for_user(
            session, user_id, commit_self=commit_self
        )
        token_logger.info(f"Refresh tokens revoked: user_id={user_id}, count={count}")
        return count

    @classmethod
    async def revoke_for_session(
        cls, session: AsyncSession, user_session_id: UUID, commit_self: bool = True
    ) -> int:
        """Delete the refresh token bound to one session."""
        return await refresh_token_db.delete_for_session(
            session, user_session_id, commit_self=commit_self
        )

    @classmethod
    async def cleanup_expired(cls, session: AsyncSession, commit_self: bool = True) -> int:
        count = await refresh_token_db.delete_expired(session, commit_self=commit_self)
        token_logger.info(f"Expired refresh tokens removed: {count}")
        return count


__all__ = ["TokenService", "TokenPair", "AccessTokenResult"]
