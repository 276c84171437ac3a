"""
Admin router. Every endpoint requires an admin principal.

"""

from uuid import UUID

from fastapi import APIRouter

from app.core.config import auth_logger
from app.core.db.crud import user_db
from app.core.dependencies.auth import AdminPrincipal, UserCacheDep
from app.core.dependencies.db import SessionDep
from app.core.exceptions.types import UserNotFoundException
from app.core.schemas.auth import ForceLogoutResponse
from app.core.services.cascade import InvalidationCascade

router = APIRouter()


@router.post(
    "/users/{user_id}/force-logout",
    response_model=ForceLogoutResponse,
    summary="Log a user out of every session",
    description="""
## Force Logout

Revokes every session and refresh token of the user (reason `admin`) and
drops the cached profile. Access tokens already issued stop working at the
next session check.
""",
)
async def force_logout(
    user_id: UUID,
    principal: AdminPrincipal,
    session: SessionDep,
    cache: UserCacheDep,
) -> ForceLogoutResponse:
    async with session.begin():
        user = await user_db.get_by_id(session, user_id)
    if user is None:
        raise UserNotFoundException()

    count = await InvalidationCascade.force_logout(session, user_id, cache)
    auth_logger.info(
        f"Admin force logout: admin_id={principal.user_id}, user_id={user_id}, count={count}"
    )
    return ForceLogoutResponse(user_id=user_id, revoked_count=count)
