"""
OTP challenge model for one-time verification codes.

"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.models.base import BaseModel
from app.core.enums import OTPPurpose


class OTPChallenge(BaseModel):
    """
    One live OTP challenge per (identifier, purpose).

    Codes are stored as HMAC-SHA256 hashes. A verified challenge is kept until
    it is consumed or its grace window passes, so that two-phase flows such as
    verify-then-reset can re-check it.

    Attributes:
        user_id: Owning user, None for pre-registration challenges.
        identifier: Normalized email address or phone number.
        purpose: What the code unlocks.
        code_hash: HMAC-SHA256 hash of the code.
        expires_at: When an unverified challenge stops being accepted.
        attempts: Failed verification attempts, capped at OTP_MAX_ATTEMPTS.
        is_verified: Whether the code has been verified.
        verified_at: When the code was verified.
    """

    __tablename__ = "otp_challenges"
    __table_args__ = (
        UniqueConstraint("identifier", "purpose", name="uq_otp_identifier_purpose"),
    )

    user_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    identifier: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    purpose: Mapped[OTPPurpose] = mapped_column(
        Enum(OTPPurpose, native_enum=False, name="otp_purpose"),
        nullable=False,
    )

    code_hash: Mapped[str] = mapped_column(
        String(64),  # SHA256 hex digest
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    ip_address: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    user_agent: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<OTPChallenge(identifier={self.identifier}, purpose={self.purpose}, "
            f"attempts={self.attempts}, verified={self.is_verified})>"
        )


__all__ = ["OTPChallenge"]
