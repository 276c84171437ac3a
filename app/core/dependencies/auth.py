"""
Authentication dependencies for FastAPI endpoints.

- Extracting and validating the JWT access token
- Loading the user snapshot through the cache
- Enforcing the session header for non-admin users
- Restricting endpoints to admins

Example usage:
    from app.core.dependencies.auth import AdminPrincipal, CurrentPrincipal

    @router.get("/me")
    async def me(principal: CurrentPrincipal):
        return principal.snapshot

    @router.post("/admin/thing")
    async def admin_only(principal: AdminPrincipal): ...
"""

from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import auth_logger, settings
from app.core.dependencies.db import SessionDep
from app.core.enums import UserRole
from app.core.exceptions.types import (
    AuthenticationException,
    ForbiddenException,
    ServiceUnavailableException,
    TokenInvalidException,
)
from app.core.services.auth import AuthService
from app.core.services.session import DeviceInfo, SessionService, get_device_info
from app.core.services.token import TokenService
from app.core.services.user_cache import UserSnapshot, UserSnapshotCache

# auto_error=False so a missing header goes through AuthenticationException
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """The authenticated caller of a request."""

    user_id: UUID
    email: str
    role: UserRole
    session_id: str | None
    snapshot: UserSnapshot

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_user_cache(request: Request) -> UserSnapshotCache:
    """Return the cache owned by the application lifespan."""
    cache = getattr(request.app.state, "user_cache", None)
    if cache is None:
        raise ServiceUnavailableException("User cache is not available.")
    return cache


def get_session_id(request: Request) -> str | None:
    return request.headers.get(settings.SESSION_HEADER_NAME) or None


UserCacheDep = Annotated[UserSnapshotCache, Depends(get_user_cache)]
SessionIdHeader = Annotated[str | None, Depends(get_session_id)]
DeviceInfoDep = Annotated[DeviceInfo, Depends(get_device_info)]


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    session: SessionDep,
    cache: UserCacheDep,
    session_id: SessionIdHeader,
) -> Principal:
    """
    Authenticate the request.

    1. Verify the Bearer access token (expired -> 401 token_expired,
       tampered or wrong type -> 403 token_invalid).
    2. Load the user snapshot from the cache, falling back to the database.
    3. For non-admins, validate the X-Session-ID header.

    Raises:
        AuthenticationException: Missing token, or the user no longer exists.
        TokenExpiredException, TokenInvalidException: Token failures.
        SessionRequiredException, SessionInvalidException: Session failures.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationException("Not authenticated.")

    claims = TokenService.verify_access_token(credentials.credentials)

    try:
        user_id = UUID(claims["sub"])
    except ValueError:
        auth_logger.warning("Authentication failed: malformed subject claim")
        raise TokenInvalidException()

    snapshot = await AuthService.load_snapshot(session, user_id, cache)
    if snapshot is None:
        auth_logger.warning(f"Authentication failed: user not found or inactive {user_id}")
        raise AuthenticationException("User not found or inactive.")

    # Role comes from the stored user, not from the token
    async with session.begin():
        await SessionService.validate_session(session, session_id, user_id, snapshot.role)

    return Principal(
        user_id=user_id,
        email=snapshot.email,
        role=snapshot.role,
        session_id=session_id,
        snapshot=snapshot,
    )


async def get_admin_principal(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    if not principal.is_admin:
        auth_logger.warning(f"Admin access denied: user_id={principal.user_id}")
        raise ForbiddenException("Admin access required.")
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
AdminPrincipal = Annotated[Principal, Depends(get_admin_principal)]


__all__ = [
    "Principal",
    "CurrentPrincipal",
    "AdminPrincipal",
    "UserCacheDep",
    "SessionIdHeader",
    "DeviceInfoDep",
    "get_current_principal",
    "get_admin_principal",
    "get_user_cache",
    "get_session_id",
]
