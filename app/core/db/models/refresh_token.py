"""
Refresh token model, one record per session.

"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.db.models.base import BaseModel

if TYPE_CHECKING:
    from app.core.db.models.session import UserSession
    from app.core.db.models.user import User


class RefreshToken(BaseModel):
    """
    Model for storing refresh tokens.

    Each session owns at most one record; persisting a new token for a session
    overwrites the previous hash, which makes the previous token unusable.
    Plain tokens are never stored.

    Attributes:
        user_id: Foreign key to the user who owns this token.
        user_session_id: Session the token is bound to (unique).
        token_hash: SHA256 hash of the refresh token.
        expires_at: When this token expires.
        revoked_at: When the token was revoked (None if still valid).

    Example:
        >>> token = RefreshToken(
        ...     user_id=user.id,
        ...     user_session_id=user_session.id,
        ...     token_hash=hash_token(refresh_token),
        ...     expires_at=user_session.expires_at,
        ... )
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_session_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user_sessions.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),  # SHA256 produces 64 hex characters
        unique=True,
        index=True,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="refresh_tokens",
    )

    user_session: Mapped["UserSession"] = relationship(
        "UserSession",
        back_populates="refresh_token",
    )

    def __repr__(self) -> str:
        return (
            f"<RefreshToken(id={self.id}, user_id={self.user_id}, "
            f"expires_at={self.expires_at}, revoked={self.revoked_at is not None})>"
        )


__all__ = ["RefreshToken"]
