"""
User session model for device-bound sessions.

"""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.db.models.base import BaseModel, utc_now
from app.core.enums import LogoutReason

if TYPE_CHECKING:
    from app.core.db.models.refresh_token import RefreshToken
    from app.core.db.models.user import User


class UserSession(BaseModel):
    """
    Server-side session binding a user to a device.

    Rows are never deleted on logout; they are deactivated and keep the logout
    time and reason as an audit trail. Repeated logins from the same device
    reuse and extend the same row.

    Attributes:
        session_id: Opaque high-entropy identifier sent in the session header.
        user_id: Owner of the session.
        device_fingerprint: Fingerprint of the client device.
        device_info: Parsed browser, OS and device type.
        is_active: Whether the session may authenticate requests.
        last_activity_at: Last login or extension.
        expires_at: Hard expiry of the session.
        logout_at: When the session was deactivated.
        logout_reason: Why the session was deactivated.
    """

    __tablename__ = "user_sessions"

    session_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    ip_address: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    user_agent: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
    )

    device_fingerprint: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        index=True,
    )

    device_info: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    logout_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    logout_reason: Mapped[LogoutReason | None] = mapped_column(
        Enum(LogoutReason, native_enum=False, name="logout_reason"),
        nullable=True,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="sessions",
    )

    refresh_token: Mapped["RefreshToken | None"] = relationship(
        "RefreshToken",
        back_populates="user_session",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<UserSession(user_id={self.user_id}, active={self.is_active}, "
            f"expires_at={self.expires_at})>"
        )


__all__ = ["UserSession"]
