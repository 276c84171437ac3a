"""
Schemas for API request validation and response serialization.

"""

from app.core.schemas.auth import (
    # Base
    MessageResponse,
    # Registration
    RegisterRequest,
    RegisterVerifyRequest,
    RegisterResponse,
    # Login / Tokens
    LoginRequest,
    UserResponse,
    TokenResponse,
    RefreshTokenRequest,
    AccessTokenResponse,
    # OTP / Password
    ForgotPasswordRequest,
    VerifyOTPRequest,
    VerifyOTPResponse,
    ResetPasswordRequest,
    ResendOTPRequest,
    # Sessions
    SessionResponse,
    SessionListResponse,
    RevokeSessionsResponse,
    ForceLogoutResponse,
)

__all__ = [
    "MessageResponse",
    "RegisterRequest",
    "RegisterVerifyRequest",
    "RegisterResponse",
    "LoginRequest",
    "UserResponse",
    "TokenResponse",
    "RefreshTokenRequest",
    "AccessTokenResponse",
    "ForgotPasswordRequest",
    "VerifyOTPRequest",
    "VerifyOTPResponse",
    "ResetPasswordRequest",
    "ResendOTPRequest",
    "SessionResponse",
    "SessionListResponse",
    "RevokeSessionsResponse",
    "ForceLogoutResponse",
]
