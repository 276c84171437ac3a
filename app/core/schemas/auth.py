"""
Authentication schemas for request validation and response serialization.

- Two-step registration
- Login by email or phone
- Token refresh
- Forgot password, OTP verification and password reset
- Sessions and profile

Request bodies use one canonical field per concept (``identifier``,
``otp_code``, ``otp_type``) and reject unknown fields.
"""

from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    field_validator,
)

from app.core.enums import LogoutReason, OTPPurpose, UserRole
from app.core.utils import is_valid_phone, normalize_phone

PasswordStr = Annotated[
    str,
    StringConstraints(min_length=8, max_length=128),
    Field(description="Password (min 8 characters)"),
]

OTPCodeStr = Annotated[
    str,
    StringConstraints(pattern=r"^\d{4,8}$"),
    Field(description="Numeric verification code"),
]

IdentifierStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=3, max_length=255),
    Field(description="Email address or phone number"),
]


def _check_password_complexity(v: str) -> str:
    if not any(c.isupper() for c in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class MessageResponse(BaseModel):
    """Generic message response."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"message": "Operation completed successfully"}}
    )

    message: str


# ============================================================================
# Registration
# ============================================================================


class RegisterRequest(RequestModel):
    """Registration step 1: request an email verification OTP."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "name": "Asha Rao",
                "email": "asha@example.com",
                "phone": "9876543210",
                "password": "SecurePass123",
                "location": "Bengaluru",
            }
        },
    )

    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    email: EmailStr
    phone: Annotated[str, Field(description="10-digit mobile number")]
    password: PasswordStr
    location: Annotated[str | None, StringConstraints(max_length=255)] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        phone = normalize_phone(v)
        if not is_valid_phone(phone):
            raise ValueError("Phone must be a valid 10-digit mobile number")
        return phone

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_complexity(v)


class RegisterVerifyRequest(RegisterRequest):
    """Registration step 2: the same details plus the emailed OTP."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "name": "Asha Rao",
                "email": "asha@example.com",
                "phone": "9876543210",
                "password": "SecurePass123",
                "otp_code": "123456",
            }
        },
    )

    otp_code: OTPCodeStr


class RegisterResponse(BaseModel):
    """Response for registration step 1."""

    message: str = "OTP sent to your email. Please verify to complete registration"
    email: EmailStr
    expires_at: datetime


# ============================================================================
# Login / Tokens
# ============================================================================


class LoginRequest(RequestModel):
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {"identifier": "asha@example.com", "password": "SecurePass123"}
        },
    )

    identifier: IdentifierStr
    password: Annotated[str, StringConstraints(min_length=1, max_length=128)]


class UserResponse(BaseModel):
    """Public profile of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    phone: str | None = None
    role: UserRole
    location: str | None = None
    is_active: bool = True
    created_at: datetime | None = None


class TokenResponse(BaseModel):
    """Tokens issued on login and on completed registration."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIs...",
                "refresh_token": "eyJhbGciOiJIUzI1NiIs...",
                "token_type": "bearer",
                "expires_in": 900,
                "session_id": "q3V0...",
            }
        }
    )

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: str
    user: UserResponse


class RefreshTokenRequest(RequestModel):
    refresh_token: Annotated[str, StringConstraints(min_length=1)]


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


# ============================================================================
# OTP / Password
# ============================================================================


class ForgotPasswordRequest(RequestModel):
    identifier: IdentifierStr


class VerifyOTPRequest(RequestModel):
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "identifier": "asha@example.com",
                "otp_code": "123456",
                "otp_type": "forgot_password",
            }
        },
    )

    identifier: IdentifierStr
    otp_code: OTPCodeStr
    otp_type: OTPPurpose


class VerifyOTPResponse(BaseModel):
    message: str = "OTP verified successfully"
    otp_type: OTPPurpose
    verified: bool = True


class ResetPasswordRequest(RequestModel):
    identifier: IdentifierStr
    otp_code: OTPCodeStr
    new_password: PasswordStr

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_complexity(v)


class ResendOTPRequest(RequestModel):
    identifier: IdentifierStr
    otp_type: OTPPurpose


# ============================================================================
# Sessions
# ============================================================================


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    ip_address: str | None = None
    device_info: dict[str, Any] | None = None
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    is_current: bool = False


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int


class RevokeSessionsResponse(BaseModel):
    message: str
    revoked_count: int


class ForceLogoutResponse(BaseModel):
    message: str = "User logged out from all sessions"
    user_id: UUID
    revoked_count: int
    reason: LogoutReason = LogoutReason.ADMIN
