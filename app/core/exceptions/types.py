from datetime import datetime

from fastapi import status


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
        self.details = details
        super().__init__(message)


class DatabaseException(AppException):
    """Exception raised for database-related errors."""

    def __init__(self, message: str = "A database error occurred."):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class ServiceUnavailableException(AppException):
    """Exception raised when a required collaborator is unavailable."""

    def __init__(self, message: str = "Service temporarily unavailable."):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


# ============================================================================
# Authentication
# ============================================================================


class AuthenticationException(AppException):
    """Exception raised for authentication-related errors."""

    code: str = "authentication_failed"

    def __init__(
        self, message: str = "Authentication failed.", details: dict | None = None
    ):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, details)


class InvalidCredentialsException(AuthenticationException):
    """Raised for an unknown identifier and a wrong password alike."""

    code = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials."):
        super().__init__(message)


class TokenExpiredException(AuthenticationException):
    """Raised when an access token has expired; clients should refresh."""

    code = "token_expired"

    def __init__(
        self,
        message: str = "Token expired.",
        expired_at: datetime | None = None,
    ):
        super().__init__(
            message,
            details={"expired_at": expired_at.isoformat() if expired_at else None},
        )
        self.expired_at = expired_at


class RefreshTokenInvalidOrRevokedException(AuthenticationException):
    """Raised when a refresh token is unknown, revoked or expired."""

    code = "refresh_token_invalid"

    def __init__(self, message: str = "Refresh token is invalid or has been revoked."):
        super().__init__(message)


class SessionRequiredException(AuthenticationException):
    """Raised when a non-admin request carries no session identifier."""

    code = "session_required"

    def __init__(self, message: str = "Session ID required."):
        super().__init__(message)


class SessionInvalidException(AuthenticationException):
    """Raised when the session is unknown, revoked, expired or foreign."""

    code = "session_invalid"

    def __init__(self, message: str = "Session invalid or revoked."):
        super().__init__(message)


class TokenInvalidException(AppException):
    """Raised for a bad signature or a token of the wrong type."""

    code = "token_invalid"

    def __init__(self, message: str = "Invalid token."):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


# ============================================================================
# OTP
# ============================================================================


class OTPException(AppException):
    """Base class for OTP verification failures."""

    code: str = "otp_failed"

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class OTPNotFoundOrExpiredException(OTPException):
    """Raised when no live challenge exists."""

    code = "otp_not_found_or_expired"

    def __init__(self, message: str = "OTP not found or expired. Please request a new one."):
        super().__init__(message)


class OTPInvalidCodeException(OTPException):
    """Raised when the submitted code does not match."""

    code = "otp_invalid"

    def __init__(self, message: str = "Invalid OTP code."):
        super().__init__(message)


class OTPMaxAttemptsExceededException(OTPException):
    """Raised when a challenge has reached its attempt cap."""

    code = "otp_max_attempts_exceeded"

    def __init__(
        self, message: str = "Maximum OTP attempts exceeded. Please request a new one."
    ):
        super().__init__(message)


class OTPDeliveryException(ServiceUnavailableException):
    """Raised when the OTP could not be handed to the notifier."""

    def __init__(self, message: str = "Unable to send OTP. Please try again later."):
        super().__init__(message)


# ============================================================================
# General
# ============================================================================


class RateLimitExceededException(AppException):
    """Exception raised when rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: int | None = None,
    ):
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS)
        self.retry_after = retry_after


class NotFoundException(AppException):
    """Exception raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class UserNotFoundException(NotFoundException):
    """Exception raised when a user is not found."""

    def __init__(self, message: str = "User not found."):
        super().__init__(message)


class ConflictException(AppException):
    """Exception raised when there's a conflict with existing resources."""

    def __init__(self, message: str = "Resource conflict."):
        super().__init__(message, status.HTTP_409_CONFLICT)


class DuplicateIdentityException(ConflictException):
    """Raised when the email or phone is already registered."""

    def __init__(self, message: str = "User with this email or phone already exists."):
        super().__init__(message)


class BadRequestException(AppException):
    """Exception raised for bad request errors."""

    def __init__(self, message: str = "Bad request."):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ForbiddenException(AppException):
    """Exception raised when access is forbidden."""

    def __init__(self, message: str = "Access forbidden."):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


__all__ = [
    "AppException",
    "DatabaseException",
    "ServiceUnavailableException",
    "AuthenticationException",
    "InvalidCredentialsException",
    "TokenExpiredException",
    "RefreshTokenInvalidOrRevokedException",
    "SessionRequiredException",
    "SessionInvalidException",
    "TokenInvalidException",
    "OTPException",
    "OTPNotFoundOrExpiredException",
    "OTPInvalidCodeException",
    "OTPMaxAttemptsExceededException",
    "OTPDeliveryException",
    "RateLimitExceededException",
    "NotFoundException",
    "UserNotFoundException",
    "ConflictException",
    "DuplicateIdentityException",
    "BadRequestException",
    "ForbiddenException",
]
