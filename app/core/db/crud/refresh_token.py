"""
CRUD operations for the RefreshToken model.

- Upserting the token bound to a session
- Looking up valid tokens by hash
- Deleting tokens per session or per user
- Cleaning up expired tokens
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.core.db.crud.base import BaseDB
from app.core.db.models.refresh_token import RefreshToken
from app.core.db.models.session import UserSession


class RefreshTokenDB(BaseDB[RefreshToken]):
    """
    Database operations for RefreshToken.

    Example:
        >>> record = await refresh_token_db.upsert_for_session(
        ...     session, user.id, user_session.id, token_hash, expires_at
        ... )
        >>> found = await refresh_token_db.get_valid_token(session, token_hash)
    """

    def __init__(self):
        super().__init__(model=RefreshToken)
        self.session_loader = joinedload(RefreshToken.user_session)

    async def upsert_for_session(
        self,
        session: AsyncSession,
        user_id: UUID,
        user_session_id: UUID,
        token_hash: str,
        expires_at: datetime,
        commit_self: bool = True,
    ) -> RefreshToken:
        """
        Store the token hash for a session, replacing any previous one.

        Args:
            session: The database session.
            user_id: Owner of the token.
            user_session_id: Primary key of the bound session.
            token_hash: SHA256 hash of the refresh token.
            expires_at: Token expiry.
            commit_self: Whether to commit after writing.

        Returns:
            The stored RefreshToken.
        """
        existing = await self.get_one_by_conditions(
            session, [self.model.user_session_id == user_session_id]
        )
        data = {
            "user_id": user_id,
            "token_hash": token_hash,
            "expires_at": expires_at,
            "revoked_at": None,
        }
        if existing is None:
            return await self.create(
                session,
                {**data, "user_session_id": user_session_id},
                commit_self=commit_self,
            )

        updated = await self.update(session, existing.id, data, commit_self=commit_self)
        return updated or existing

    async def get_valid_token(
        self,
        session: AsyncSession,
        token_hash: str,
    ) -> RefreshToken | None:
        """
        Find a token that is unrevoked and unexpired, and whose session is
        still active and unexpired.
        """
        now = datetime.now(timezone.utc)
        return await self.get_one_by_conditions(
            session,
            [
                self.model.token_hash == token_hash,
                self.model.revoked_at.is_(None),
                self.model.expires_at > now,
                self.model.user_session.has(
                    (UserSession.is_active.is_(True)) & (UserSession.expires_at > now)
                ),
            ],
            options=[self.session_loader],
        )

    async def delete_for_user(
        self, session: AsyncSession, user_id: UUID, commit_self: bool = True
    ) -> int:
        return await self.delete_by_conditions(
            session, [self.model.user_id == user_id], commit_self=commit_self
        )

    async def delete_for_session(
        self, session: AsyncSession, user_session_id: UUID, commit_self: bool = True
    ) -> int:
        return await self.delete_by_conditions(
            session,
            [self.model.user_session_id == user_session_id],
            commit_self=commit_self,
        )

    async def delete_expired(
        self, session: AsyncSession, commit_self: bool = True
    ) -> int:
        now = datetime.now(timezone.utc)
        return await self.delete_by_conditions(
            session, [self.model.expires_at <= now], commit_self=commit_self
        )
