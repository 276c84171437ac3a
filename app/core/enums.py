from enum import Enum


class OTPPurpose(str, Enum):
    """Purpose of an OTP challenge."""

    EMAIL_VERIFICATION = "email_verification"
    FORGOT_PASSWORD = "forgot_password"
    PHONE_VERIFICATION = "phone_verification"


class UserRole(str, Enum):
    """Role of a user account."""

    USER = "user"
    ADMIN = "admin"


class LogoutReason(str, Enum):
    """Why a session was deactivated."""

    MANUAL = "manual"
    EXPIRED = "expired"
    SECURITY = "security"
    ADMIN = "admin"
    ACCOUNT_DELETED = "account_deleted"


class TokenType(str, Enum):
    """Value of the `type` claim carried by signed tokens."""

    ACCESS = "access"
    REFRESH = "refresh"


__all__ = [
    "OTPPurpose",
    "UserRole",
    "LogoutReason",
    "TokenType",
]
