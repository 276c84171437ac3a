"""
CRUD operations for the UserSession model.

"""

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db.crud.base import BaseDB
from app.core.db.models.session import UserSession
from app.core.enums import LogoutReason


class UserSessionDB(BaseDB[UserSession]):
    def __init__(self):
        super().__init__(model=UserSession)

    async def get_by_session_id(
        self, session: AsyncSession, session_id: str
    ) -> UserSession | None:
        return await self.get_one_by_conditions(
            session, [self.model.session_id == session_id]
        )

    async def get_valid_session(
        self, session: AsyncSession, session_id: str, user_id: UUID
    ) -> UserSession | None:
        """Return the session only if it is active, unexpired and owned by user_id."""
        now = datetime.now(timezone.utc)
        return await self.get_one_by_conditions(
            session,
            [
                self.model.session_id == session_id,
                self.model.user_id == user_id,
                self.model.is_active.is_(True),
                self.model.expires_at > now,
            ],
        )

    async def get_reusable_for_device(
        self, session: AsyncSession, user_id: UUID, fingerprint: str
    ) -> UserSession | None:
        """Most recent active, unexpired session for the user on this device."""
        now = datetime.now(timezone.utc)
        return await self.get_one_by_conditions(
            session,
            [
                self.model.user_id == user_id,
                self.model.device_fingerprint == fingerprint,
                self.model.is_active.is_(True),
                self.model.expires_at > now,
            ],
            order_by=[self.model.last_activity_at.desc()],
        )

    async def list_active(
        self, session: AsyncSession, user_id: UUID
    ) -> Sequence[UserSession]:
        now = datetime.now(timezone.utc)
        return await self.get_by_conditions(
            session,
            [
                self.model.user_id == user_id,
                self.model.is_active.is_(True),
                self.model.expires_at > now,
            ],
            order_by=[self.model.last_activity_at.desc()],
        )

    async def deactivate(
        self,
        session: AsyncSession,
        conditions: list,
        reason: LogoutReason,
        commit_self: bool = True,
    ) -> int:
        """
        Deactivate every active session matching `conditions`.

        Rows are kept with their logout time and reason.

        Returns:
            The number of sessions deactivated.
        """
        return await self.update_by_conditions(
            session,
            [self.model.is_active.is_(True), *conditions],
            {
                "is_active": False,
                "logout_at": datetime.now(timezone.utc),
                "logout_reason": reason,
            },
            commit_self=commit_self,
        )
