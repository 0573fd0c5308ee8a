"""Pydantic schemas for API request/response validation."""

from aeronotes.schemas.auth import (
    AuthResponse,
    LogoutRequest,
    LogoutResponse,
    PinLoginRequest,
    RefreshRequest,
    RevokeSessionsResponse,
    SessionListResponse,
    SessionResponse,
    SignupRequest,
    TokenResponse,
    UserResponse,
)
from aeronotes.schemas.otp import OTPStatusResponse, SendOTPRequest, SendOTPResponse

__all__ = [
    "AuthResponse",
    "LogoutRequest",
    "LogoutResponse",
    "PinLoginRequest",
    "RefreshRequest",
    "RevokeSessionsResponse",
    "SessionListResponse",
    "SessionResponse",
    "SignupRequest",
    "TokenResponse",
    "UserResponse",
    "OTPStatusResponse",
    "SendOTPRequest",
    "SendOTPResponse",
]
