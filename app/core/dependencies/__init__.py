"""
Dependencies for FastAPI endpoints.

"""

from app.core.dependencies.auth import (
    AdminPrincipal,
    CurrentPrincipal,
    DeviceInfoDep,
    Principal,
    SessionIdHeader,
    UserCacheDep,
    bearer_scheme,
    get_admin_principal,
    get_current_principal,
    get_session_id,
    get_user_cache,
)
from app.core.dependencies.db import SessionDep, get_async_session

__all__ = [
    "Principal",
    "get_current_principal",
    "get_admin_principal",
    "get_user_cache",
    "get_session_id",
    "bearer_scheme",
    # Type aliases
    "AdminPrincipal",
    "CurrentPrincipal",
    "DeviceInfoDep",
    "SessionIdHeader",
    "UserCacheDep",
    "SessionDep",
    "get_async_session",
]
