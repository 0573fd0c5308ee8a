"""Authentication endpoints: OTP signup, PIN login, token refresh and logout."""

import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials

from aeronotes.core.config import get_settings
from aeronotes.core.exceptions import AuthenticationError, ExpiredError, StorageError
from aeronotes.core.dependencies import (
    CurrentUser,
    DbSession,
    OTPServiceDep,
    RateLimiterDep,
    SessionServiceDep,
    bearer_scheme,
)
from aeronotes.core.rate_limiter import RateLimiter, get_client_ip
from aeronotes.schemas.auth import (
    AuthResponse,
    LogoutRequest,
    LogoutResponse,
    PinLoginRequest,
    RefreshRequest,
    SignupRequest,
    TokenResponse,
    UserResponse,
)
from aeronotes.schemas.otp import SendOTPRequest, SendOTPResponse
from aeronotes.services.auth_service import AuthService
from aeronotes.services.otp.storage import TOO_MANY_ATTEMPTS
from aeronotes.services.otp.validation import mask_phone
from aeronotes.services.session_service import Session, SessionService

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter()


def check_rate_limit(limiter: RateLimiter, limit_type: str, identifier: str) -> None:
    """Check rate limit and raise HTTPException if exceeded."""
    allowed, retry_after = limiter.is_allowed(limit_type, identifier)
    if not allowed:
        logger.warning(f"Rate limit exceeded for {limit_type}: {identifier[:20]}...")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Please try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        path="/",
    )


def open_session(request: Request, sessions: SessionService, user_id: str) -> Session:
    session = sessions.create_session(
        user_id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    if session is None:
        raise StorageError("Could not create session", operation="create_session")
    return session


# ─────────────────────────────────────────────
# Send OTP
# ─────────────────────────────────────────────

@router.post("/send-otp", response_model=SendOTPResponse)
async def send_otp(
    body: SendOTPRequest,
    request: Request,
    otp_service: OTPServiceDep,
    limiter: RateLimiterDep,
):
    """
    Send a verification code to a phone number.
    Rate limited per IP and per phone number.
    """
    check_rate_limit(limiter, "otp_send_ip", get_client_ip(request))
    check_rate_limit(limiter, "otp_send_phone", body.phone_number)

    result = await otp_service.send_otp(
        body.phone_number,
        length=settings.otp_length,
        expiry_minutes=settings.otp_expiry_minutes,
    )

    if not result.success:
        logger.warning(f"Send OTP failed for {mask_phone(body.phone_number)}: {result.error}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result.error or "Failed to send OTP",
        )

    return SendOTPResponse(
        message="OTP sent successfully",
        message_id=result.message_id,
        expires_in_minutes=settings.otp_expiry_minutes,
    )


# ─────────────────────────────────────────────
# Verify OTP + Signup
# ─────────────────────────────────────────────

@router.post("/verify-otp-and-signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def verify_otp_and_signup(
    body: SignupRequest,
    request: Request,
    response: Response,
    db: DbSession,
    otp_service: OTPServiceDep,
    sessions: SessionServiceDep,
    limiter: RateLimiterDep,
):
    """
    Verify the phone number with its OTP, create the account with a PIN,
    and sign the user in.
    """
    check_rate_limit(limiter, "otp_verify_ip", get_client_ip(request))
    check_rate_limit(limiter, "otp_verify_phone", body.phone_number)

    if await AuthService.get_user_by_phone(db, body.phone_number):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This phone number is already registered.",
        )

    result = await otp_service.verify_otp(body.phone_number, body.otp)
    if not result.success:
        if result.expired:
            raise ExpiredError(result.error or "OTP has expired")
        if result.error == TOO_MANY_ATTEMPTS:
            code = status.HTTP_429_TOO_MANY_REQUESTS
        else:
            code = status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=result.error or "Invalid OTP code")

    limiter.reset("otp_verify_phone", body.phone_number)

    try:
        user = await AuthService.create_user(db, body.phone_number, body.pin)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    session = open_session(request, sessions, user.id)
    tokens = AuthService.create_tokens(sessions, user.id, session.session_id)
    set_session_cookie(response, session.session_id)

    logger.info(f"User {user.id} signed up with phone {mask_phone(user.phone_number)}")

    return AuthResponse(
        message="Signup successful and signed in",
        user=UserResponse.model_validate(user),
        tokens=tokens,
    )


# ─────────────────────────────────────────────
# Login with PIN
# ─────────────────────────────────────────────

@router.post("/login-with-pin", response_model=AuthResponse)
async def login_with_pin(
    body: PinLoginRequest,
    request: Request,
    response: Response,
    db: DbSession,
    sessions: SessionServiceDep,
    limiter: RateLimiterDep,
):
    """Authenticate with the last four digits of the phone number and the PIN."""
    check_rate_limit(limiter, "login_ip", get_client_ip(request))

    user = await AuthService.authenticate_with_pin(db, body.last_four_digits, body.pin)
    if not user:
        raise AuthenticationError("Invalid login credentials")

    session = open_session(request, sessions, user.id)
    tokens = AuthService.create_tokens(sessions, user.id, session.session_id)
    set_session_cookie(response, session.session_id)

    logger.info(f"User {user.id} logged in from {session.ip_address}")

    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        tokens=tokens,
    )


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    body: RefreshRequest,
    request: Request,
    db: DbSession,
    sessions: SessionServiceDep,
    limiter: RateLimiterDep,
):
    """
    Rotate refresh token and get a new access token + refresh token.
    """
    client_ip = get_client_ip(request)
    check_rate_limit(limiter, "refresh_ip", client_ip)

    tokens = await AuthService.refresh_tokens(db, sessions, body.refresh_token)

    if not tokens:
        logger.warning(f"Failed token refresh from IP {client_ip}")
        raise AuthenticationError("Invalid or expired refresh token")

    return tokens


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    response: Response,
    sessions: SessionServiceDep,
    limiter: RateLimiterDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    body: Optional[LogoutRequest] = None,
    session_cookie: Annotated[Optional[str], Cookie(alias=settings.session_cookie_name)] = None,
):
    """
    Log out the current session.

    Always reports success so callers learn nothing about token or session
    validity.
    """
    client_ip = get_client_ip(request)
    check_rate_limit(limiter, "logout_ip", client_ip)

    user_id = None
    try:
        if body and body.refresh_token:
            sessions.revoke_refresh_token(body.refresh_token)

        payload = AuthService.decode_token(credentials.credentials) if credentials else None
        session_id = session_cookie
        if payload:
            user_id = payload.get("sub")
            session_id = session_id or payload.get("sid")
            if payload.get("jti"):
                expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
                sessions.blacklist_token(payload["jti"], expires_at)
        elif credentials:
            logger.info("Invalid token during logout, proceeding anyway")

        if body and body.session_id:
            # A session named in the body is only ended for its owner
            named = sessions.get_session(body.session_id) if payload else None
            if named and named.user_id == payload.get("sub"):
                session_id = body.session_id
            else:
                logger.warning(f"Ignoring logout session_id not owned by caller from IP {client_ip}")

        if session_id:
            session = sessions.get_session(session_id)
            if session:
                user_id = session.user_id
                sessions.invalidate_session(session_id)

    except Exception as e:
        logger.error(f"Logout error from IP {client_ip}: {e}")

    if user_id:
        logger.info(f"User {user_id} logged out from IP {client_ip}")
    else:
        logger.info(f"Logout attempt from IP {client_ip} (no valid session)")

    clear_session_cookie(response)
    return LogoutResponse()


# ─────────────────────────────────────────────
# Current User
# ─────────────────────────────────────────────

@router.get("/me", response_model=UserResponse)
async def get_current_user(current_user: CurrentUser):
    """Return authenticated user's info."""
    return current_user
