from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db.crud.base import BaseDB
from app.core.db.models import User


class UserDB(BaseDB[User]):
    def __init__(self):
        super().__init__(model=User)

    async def get_active_by_id(self, session: AsyncSession, user_id: UUID) -> User | None:
        return await self.get_one_by_conditions(
            session,
            [
                self.model.id == user_id,
                self.model.is_deleted.is_(False),
                self.model.is_active.is_(True),
            ],
        )

    async def get_by_email(self, session: AsyncSession, email: str) -> User | None:
        return await self.get_one_by_conditions(
            session,
            [self.model.email == email, self.model.is_deleted.is_(False)],
        )

    async def get_by_phone(self, session: AsyncSession, phone: str) -> User | None:
        return await self.get_one_by_conditions(
            session,
            [self.model.phone == phone, self.model.is_deleted.is_(False)],
        )

    async def find_duplicate(
        self, session: AsyncSession, email: str, phone: str | None
    ) -> User | None:
        """Return any live user already holding the email or phone."""
        if user := await self.get_by_email(session, email):
            return user
        if phone:
            return await self.get_by_phone(session, phone)
        return None

    async def anonymize(
        self, session: AsyncSession, user: User, commit_self: bool = True
    ) -> User | None:
        """
        Soft delete a user and free its email and phone for re-registration.

        Args:
            session: The database session.
            user: The user to anonymise.
            commit_self: Whether to commit after updating.

        Returns:
            The updated user, or None if it no longer exists.
        """
        now = datetime.now(timezone.utc)
        return await self.update(
            session,
            user.id,
            {
                "email": f"deleted_{user.id}_{user.email}",
                "phone": None,
                "name": "Deleted User",
                "location": None,
                "is_active": False,
                "is_deleted": True,
                "deleted_at": now,
            },
            commit_self=commit_self,
        )
