"""Session management endpoints for the authenticated user."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from aeronotes.api.routes.auth import check_rate_limit
from aeronotes.core.dependencies import CurrentAuth, RateLimiterDep, SessionServiceDep
from aeronotes.core.rate_limiter import get_client_ip
from aeronotes.schemas.auth import RevokeSessionsResponse, SessionListResponse, SessionResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    request: Request,
    auth: CurrentAuth,
    sessions: SessionServiceDep,
    limiter: RateLimiterDep,
):
    """List the caller's active sessions."""
    check_rate_limit(limiter, "sessions_ip", get_client_ip(request))

    items = [
        SessionResponse(
            session_id=session.session_id,
            created_at=session.created_at,
            last_activity=session.last_activity,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            is_current=session.session_id == auth.session.session_id,
        )
        for session in sessions.get_user_sessions(auth.user.id)
    ]
    return SessionListResponse(sessions=items, total=len(items))


@router.delete("", response_model=RevokeSessionsResponse)
async def revoke_other_sessions(
    request: Request,
    auth: CurrentAuth,
    sessions: SessionServiceDep,
    limiter: RateLimiterDep,
):
    """Log out everywhere except the current session."""
    check_rate_limit(limiter, "sessions_ip", get_client_ip(request))

    revoked = sessions.invalidate_user_sessions(auth.user.id, except_session_id=auth.session.session_id)
    logger.info(f"User {auth.user.id} revoked {revoked} other sessions")
    return RevokeSessionsResponse(revoked=revoked)


@router.delete("/{session_id}", response_model=RevokeSessionsResponse)
async def revoke_session(
    session_id: str,
    request: Request,
    auth: CurrentAuth,
    sessions: SessionServiceDep,
    limiter: RateLimiterDep,
):
    """Revoke one of the caller's sessions."""
    check_rate_limit(limiter, "sessions_ip", get_client_ip(request))

    owned = {session.session_id for session in sessions.get_user_sessions(auth.user.id)}
    if session_id not in owned:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    sessions.invalidate_session(session_id)
    return RevokeSessionsResponse(revoked=1)
