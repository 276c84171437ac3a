"""
Authentication router.

This module provides endpoints for:
- Two-step registration (request OTP, then complete with the OTP)
- Login by email or phone, logout and token refresh
- Forgot password, OTP verification, password reset and OTP resend
- Profile lookup and account deletion

All endpoints are prefixed with /auth when mounted in the main app.
"""

from fastapi import APIRouter, Depends, Request, Response, status

from app.core.config import settings
from app.core.dependencies.auth import (
    CurrentPrincipal,
    DeviceInfoDep,
    SessionIdHeader,
    UserCacheDep,
)
from app.core.dependencies.db import SessionDep
from app.core.enums import OTPPurpose
from app.core.schemas.auth import (
    AccessTokenResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    RegisterVerifyRequest,
    ResendOTPRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
    VerifyOTPRequest,
    VerifyOTPResponse,
)
from app.core.services.auth import AuthService
from app.core.services.cascade import InvalidationCascade
from app.core.services.rate_limit import rate_limit_by_identifier, rate_limit_by_ip
from app.core.services.session import get_client_ip
from app.core.services.token import TokenService

router = APIRouter()

check_identifier_limit = rate_limit_by_identifier()


def _token_response(user, tokens) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        session_id=tokens.session_id,
        user=UserResponse.model_validate(user),
    )


# =============================================================================
# Registration
# =============================================================================


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a registration OTP",
    dependencies=[Depends(rate_limit_by_ip())],
    description="""
## Registration Step 1

Checks that neither the email nor the phone is registered, then emails a
verification code. **No account is created yet.**

Complete registration with `POST /auth/register/verify`.

### Error Responses

| Status | Reason |
|--------|--------|
| `409 Conflict` | Email or phone already registered |
| `429 Too Many Requests` | Too many OTP requests |
| `503 Service Unavailable` | The OTP could not be queued for delivery |
""",
    responses={
        409: {
            "description": "Duplicate identity",
            "content": {
                "application/json": {
                    "example": {"detail": "User with this email or phone already exists."}
                }
            },
        },
    },
)
async def register(
    request: Request,
    request_data: RegisterRequest,
    session: SessionDep,
) -> RegisterResponse:
    await check_identifier_limit(str(request_data.email), request.url.path)
    expires_at = await AuthService.register_request(
        session,
        name=request_data.name,
        email=request_data.email,
        phone=request_data.phone,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return RegisterResponse(email=request_data.email, expires_at=expires_at)


@router.post(
    "/register/verify",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Complete registration with the OTP",
    description="""
## Registration Step 2

Verifies the emailed code and creates the account. On success the user is
logged in: both tokens and a session id are returned.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | OTP invalid, expired, or attempts exhausted |
| `409 Conflict` | Email or phone registered in the meantime |
""",
)
async def register_verify(
    request_data: RegisterVerifyRequest,
    session: SessionDep,
    device: DeviceInfoDep,
    response: Response,
) -> TokenResponse:
    user, tokens = await AuthService.register_complete(
        session,
        name=request_data.name,
        email=request_data.email,
        phone=request_data.phone,
        password=request_data.password,
        otp_code=request_data.otp_code,
        device=device,
        location=request_data.location,
    )
    response.headers[settings.SESSION_HEADER_NAME] = tokens.session_id
    return _token_response(user, tokens)


# =============================================================================
# Login / Logout / Refresh
# =============================================================================


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Log in with email or phone",
    dependencies=[
        Depends(
            rate_limit_by_ip(
                settings.LOGIN_RATE_LIMIT_REQUESTS, settings.LOGIN_RATE_LIMIT_WINDOW
            )
        )
    ],
    description="""
## Login

Authenticates with an email or phone number and a password.

Send `X-Session-ID` to resume an existing session, and
`X-Device-Fingerprint` to identify the device. Repeated logins from the same
device reuse and extend one session. The session id is returned in the body
and in the `X-Session-ID` response header.

### Error Responses

| Status | Reason |
|--------|--------|
| `401 Unauthorized` | Invalid credentials |
| `429 Too Many Requests` | Too many login attempts |
""",
    responses={
        401: {
            "description": "Invalid credentials",
            "content": {
                "application/json": {
                    "example": {"detail": "Invalid credentials.", "code": "invalid_credentials"}
                }
            },
        },
    },
)
async def login(
    request_data: LoginRequest,
    session: SessionDep,
    device: DeviceInfoDep,
    session_id: SessionIdHeader,
    response: Response,
) -> TokenResponse:
    user, tokens = await AuthService.login(
        session,
        identifier=request_data.identifier,
        password=request_data.password,
        device=device,
        existing_session_id=session_id,
    )
    response.headers[settings.SESSION_HEADER_NAME] = tokens.session_id
    return _token_response(user, tokens)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Log out of the current session",
)
async def logout(principal: CurrentPrincipal, session: SessionDep) -> MessageResponse:
    """Revoke the current session (reason `manual`) and its refresh token."""
    await AuthService.logout(session, principal.user_id, principal.session_id)
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/refresh",
    response_model=AccessTokenResponse,
    summary="Exchange a refresh token for a new access token",
    description="""
## Refresh

Returns a new access token. The refresh token is **not** rotated; it stays
valid until it expires or its session is revoked.

### Error Responses

| Status | Reason |
|--------|--------|
| `401 Unauthorized` | Refresh token unknown, revoked, expired, or its session ended |
| `403 Forbidden` | Not a refresh token |
""",
)
async def refresh(
    request_data: RefreshTokenRequest, session: SessionDep
) -> AccessTokenResponse:
    async with session.begin():
        result = await TokenService.refresh(session, request_data.refresh_token)
    return AccessTokenResponse(
        access_token=result.access_token,
        token_type=result.token_type,
        expires_in=result.expires_in,
    )


# =============================================================================
# Password recovery and OTP
# =============================================================================


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset OTP",
    dependencies=[Depends(rate_limit_by_ip())],
    description="""
## Forgot Password

Emails a reset code to the account's registered email address. A phone
number may be used as the identifier.

The response is identical whether or not the account exists.
""",
)
async def forgot_password(
    request: Request,
    request_data: ForgotPasswordRequest,
    session: SessionDep,
) -> MessageResponse:
    await check_identifier_limit(request_data.identifier, request.url.path)
    message = await AuthService.forgot_password(
        session,
        request_data.identifier,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return MessageResponse(message=message)


@router.post(
    "/verify-otp",
    response_model=VerifyOTPResponse,
    summary="Verify an OTP",
    description="""
## Verify OTP

Checks a code without consuming it. A verified forgot-password code can then
be used with `POST /auth/reset-password` within the grace window.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | OTP invalid, expired, or attempts exhausted |
""",
)
async def verify_otp(
    request_data: VerifyOTPRequest, session: SessionDep
) -> VerifyOTPResponse:
    await AuthService.verify_otp(
        session,
        request_data.identifier,
        request_data.otp_code,
        request_data.otp_type,
    )
    return VerifyOTPResponse(otp_type=request_data.otp_type)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Reset the password with a verified OTP",
    description="""
## Reset Password

Consumes a verified forgot-password code and sets the new password. Every
session of the account is then revoked and a confirmation email is sent.
""",
)
async def reset_password(
    request_data: ResetPasswordRequest,
    session: SessionDep,
    cache: UserCacheDep,
) -> MessageResponse:
    identifier = await AuthService.challenge_identifier(
        session, request_data.identifier, OTPPurpose.FORGOT_PASSWORD
    )
    await InvalidationCascade.reset_password(
        session,
        identifier,
        request_data.otp_code,
        request_data.new_password,
        cache,
    )
    return MessageResponse(
        message="Password reset successfully. Please log in with your new password"
    )


@router.post(
    "/resend-otp",
    response_model=MessageResponse,
    summary="Resend an OTP",
    dependencies=[Depends(rate_limit_by_ip())],
    description="""
## Resend OTP

Issues a fresh code, replacing any previous one for the same identifier and
type. The response is identical whether or not a code was sent.
""",
)
async def resend_otp(
    request: Request,
    request_data: ResendOTPRequest,
    session: SessionDep,
) -> MessageResponse:
    await check_identifier_limit(request_data.identifier, request.url.path)
    message = await AuthService.resend_otp(
        session,
        request_data.identifier,
        request_data.otp_type,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return MessageResponse(message=message)


# =============================================================================
# Profile / Account
# =============================================================================


@router.get("/me", response_model=UserResponse, summary="Current user profile")
async def me(principal: CurrentPrincipal) -> UserResponse:
    return UserResponse.model_validate(principal.snapshot.model_dump())


@router.delete(
    "/account",
    response_model=MessageResponse,
    summary="Delete the current account",
    description="""
## Delete Account

Anonymises and deactivates the account, freeing its email and phone for a
new registration, and revokes every session.
""",
)
async def delete_account(
    principal: CurrentPrincipal,
    session: SessionDep,
    cache: UserCacheDep,
) -> MessageResponse:
    await InvalidationCascade.delete_account(session, principal.user_id, cache)
    return MessageResponse(message="Account deleted successfully")
