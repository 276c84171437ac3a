"""
Session management router.

Lists the caller's active sessions and revokes one or all of them. Mounted
under /sessions.
"""

from fastapi import APIRouter, status

from app.core.dependencies.auth import CurrentPrincipal, UserCacheDep
from app.core.dependencies.db import SessionDep
from app.core.enums import LogoutReason
from app.core.exceptions.types import NotFoundException
from app.core.schemas.auth import (
    MessageResponse,
    RevokeSessionsResponse,
    SessionListResponse,
    SessionResponse,
)
from app.core.services.cascade import InvalidationCascade
from app.core.services.session import SessionService

router = APIRouter()


@router.get(
    "",
    response_model=SessionListResponse,
    summary="List active sessions",
    description="""
## List Sessions

Returns the caller's active, unexpired sessions, most recently used first.
The session that made the request is flagged with `is_current`.
""",
)
async def list_sessions(
    principal: CurrentPrincipal, session: SessionDep
) -> SessionListResponse:
    async with session.begin():
        sessions = await SessionService.list_sessions(session, principal.user_id)

    items = [
        SessionResponse(
            session_id=s.session_id,
            ip_address=s.ip_address,
            device_info=s.device_info,
            created_at=s.created_at,
            last_activity_at=s.last_activity_at,
            expires_at=s.expires_at,
            is_current=s.session_id == principal.session_id,
        )
        for s in sessions
    ]
    return SessionListResponse(sessions=items, total=len(items))


@router.delete(
    "/{session_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Revoke one session",
    responses={
        404: {
            "description": "Session not found",
            "content": {"application/json": {"example": {"detail": "Session not found."}}},
        },
    },
)
async def revoke_session(
    session_id: str,
    principal: CurrentPrincipal,
    session: SessionDep,
) -> MessageResponse:
    """Revoke one of the caller's sessions (reason `manual`)."""
    async with session.begin():
        revoked = await SessionService.revoke_session(
            session,
            session_id,
            LogoutReason.MANUAL,
            user_id=principal.user_id,
            commit_self=False,
        )
    if not revoked:
        raise NotFoundException("Session not found.")
    return MessageResponse(message="Session revoked successfully")


@router.delete(
    "",
    response_model=RevokeSessionsResponse,
    summary="Revoke all other sessions",
)
async def revoke_other_sessions(
    principal: CurrentPrincipal,
    session: SessionDep,
    cache: UserCacheDep,
) -> RevokeSessionsResponse:
    """Revoke every session of the caller except the one making the request."""
    count = await InvalidationCascade.logout_all(
        session, principal.user_id, principal.session_id, cache
    )
    return RevokeSessionsResponse(
        message=f"Revoked {count} other session(s)",
        revoked_count=count,
    )
