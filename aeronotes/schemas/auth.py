"""Auth schemas for API validation."""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# ASCII digits only; Unicode \d would admit other scripts
PHONE_PATTERN = re.compile(r"\+[1-9]\d{1,14}", re.ASCII)
PIN_PATTERN = r"^[0-9]{4,8}$"
OTP_PATTERN = r"^[0-9]{4,8}$"


def normalize_phone(value: str) -> str:
    """Accept numbers typed without the leading '+', then require E.164."""
    value = value.strip()
    if not value.startswith("+"):
        value = f"+{value}"
    if not PHONE_PATTERN.fullmatch(value):
        raise ValueError("Invalid phone number format. Must be in E.164 format (+1234567890)")
    return value


class SignupRequest(BaseModel):
    """Verify the OTP and create the account in one step."""
    phone_number: str
    otp: str = Field(pattern=OTP_PATTERN)
    pin: str = Field(pattern=PIN_PATTERN)

    @field_validator("phone_number")
    @classmethod
    def check_phone_number(cls, value: str) -> str:
        return normalize_phone(value)


class PinLoginRequest(BaseModel):
    last_four_digits: str = Field(pattern=r"^[0-9]{4}$")
    pin: str = Field(pattern=PIN_PATTERN)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None
    session_id: Optional[str] = None


class TokenResponse(BaseModel):
    """Schema for JWT token response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    session_id: str


class UserResponse(BaseModel):
    id: str
    phone_number: str
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    """Tokens plus the authenticated user."""
    message: str
    user: UserResponse
    tokens: TokenResponse


class SessionResponse(BaseModel):
    session_id: str
    created_at: datetime
    last_activity: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    is_current: bool = False


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int


class RevokeSessionsResponse(BaseModel):
    success: bool = True
    revoked: int


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logout successful"
