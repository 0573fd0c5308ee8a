"""FastAPI dependencies: database session, app-wide services and the authenticated caller."""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from aeronotes.core.exceptions import AuthenticationError
from aeronotes.core.rate_limiter import RateLimiter
from aeronotes.db.session import get_db
from aeronotes.models.user import User
from aeronotes.services.auth_service import AuthService
from aeronotes.services.otp.service import OTPService
from aeronotes.services.session_service import Session, SessionService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


# ─────────────────────────────────────────────
# App-wide services (built once in the lifespan)
# ─────────────────────────────────────────────

def get_otp_service(request: Request) -> OTPService:
    return request.app.state.otp_service


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


OTPServiceDep = Annotated[OTPService, Depends(get_otp_service)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]


# ─────────────────────────────────────────────
# Authenticated caller
# ─────────────────────────────────────────────

@dataclass
class AuthContext:
    user: User
    session: Session
    token_payload: Dict[str, Any]


async def get_auth_context(
    db: DbSession,
    sessions: SessionServiceDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> AuthContext:
    """
    Resolve the bearer access token.

    Rejected when invalid, blacklisted, bound to an inactive session, or
    belonging to an inactive user.
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = AuthService.decode_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    if sessions.is_token_blacklisted(payload.get("jti", "")):
        logger.warning(f"Rejected blacklisted token for user {payload.get('sub')}")
        raise AuthenticationError("Token has been revoked")

    session = sessions.get_session(payload.get("sid", ""))
    if session is None or session.user_id != payload.get("sub"):
        raise AuthenticationError("Session is no longer active")

    user = await AuthService.get_user_by_id(db, payload["sub"])
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return AuthContext(user=user, session=session, token_payload=payload)


async def get_current_user(auth: Annotated[AuthContext, Depends(get_auth_context)]) -> User:
    return auth.user


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]
CurrentUser = Annotated[User, Depends(get_current_user)]
