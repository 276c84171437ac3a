"""
CRUD operations for the OTPChallenge model.

Expiry is always evaluated in SQL so that the comparison happens against the
stored timestamps rather than in Python.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db.crud.base import BaseDB
from app.core.db.models.otp import OTPChallenge
from app.core.enums import OTPPurpose


class OTPChallengeDB(BaseDB[OTPChallenge]):
    """
    CRUD operations for OTPChallenge.

    Provides lookups for live and verified challenges, attempt counting and
    the periodic sweep.
    """

    def __init__(self):
        super().__init__(model=OTPChallenge)

    def _live_condition(self, now: datetime, grace_window: timedelta):
        return or_(
            and_(self.model.is_verified.is_(False), self.model.expires_at > now),
            and_(
                self.model.is_verified.is_(True),
                self.model.verified_at > now - grace_window,
            ),
        )

    async def get_live_challenge(
        self,
        session: AsyncSession,
        identifier: str,
        purpose: OTPPurpose,
        grace_window: timedelta,
    ) -> OTPChallenge | None:
        """
        Fetch the live challenge for (identifier, purpose).

        A challenge is live while it is unverified and unexpired, or verified
        within the grace window.

        Args:
            session: The async database session.
            identifier: Normalized email or phone.
            purpose: The purpose of the challenge.
            grace_window: How long a verified challenge stays usable.

        Returns:
            The challenge if one is live, None otherwise.

        Raises:
            DatabaseException: If a database error occurs.
        """
        now = datetime.now(timezone.utc)
        return await self.get_one_by_conditions(
            session,
            [
                self.model.identifier == identifier,
                self.model.purpose == purpose,
                self._live_condition(now, grace_window),
            ],
        )

    async def get_verified_challenge(
        self,
        session: AsyncSession,
        identifier: str,
        purpose: OTPPurpose,
        grace_window: timedelta,
    ) -> OTPChallenge | None:
        """Fetch a challenge verified no longer than `grace_window` ago."""
        now = datetime.now(timezone.utc)
        return await self.get_one_by_conditions(
            session,
            [
                self.model.identifier == identifier,
                self.model.purpose == purpose,
                self.model.is_verified.is_(True),
                self.model.verified_at > now - grace_window,
            ],
        )

    async def delete_for_identifier(
        self,
        session: AsyncSession,
        identifier: str,
        purpose: OTPPurpose,
        commit_self: bool = True,
    ) -> int:
        """Delete every challenge for (identifier, purpose)."""
        return await self.delete_by_conditions(
            session,
            [self.model.identifier == identifier, self.model.purpose == purpose],
            commit_self=commit_self,
        )

    async def increment_attempts(
        self,
        session: AsyncSession,
        challenge: OTPChallenge,
        commit_self: bool = True,
    ) -> int:
        """
        Increment the attempt counter in a single UPDATE.

        Returns:
            The attempt count after incrementing.

        Raises:
            DatabaseException: If a database error occurs.
        """
        updated = await self.update(
            session,
            challenge.id,
            {"attempts": self.model.attempts + 1},
            commit_self=commit_self,
        )
        return updated.attempts if updated else challenge.attempts + 1

    async def mark_verified(
        self,
        session: AsyncSession,
        challenge: OTPChallenge,
        commit_self: bool = True,
    ) -> OTPChallenge | None:
        return await self.update(
            session,
            challenge.id,
            {"is_verified": True, "verified_at": datetime.now(timezone.utc)},
            commit_self=commit_self,
        )

    async def delete_stale(
        self,
        session: AsyncSession,
        grace_window: timedelta,
        commit_self: bool = True,
    ) -> int:
        """
        Delete challenges that can no longer be verified or consumed.

        Returns:
            The number of deleted challenges.
        """
        now = datetime.now(timezone.utc)
        return await self.delete_by_conditions(
            session,
            [
                or_(
                    and_(
                        self.model.is_verified.is_(False),
                        self.model.expires_at <= now,
                    ),
                    and_(
                        self.model.is_verified.is_(True),
                        self.model.verified_at <= now - grace_window,
                    ),
                )
            ],
            commit_self=commit_self,
        )
