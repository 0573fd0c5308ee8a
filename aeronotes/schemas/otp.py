"""OTP schemas for API validation."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from aeronotes.schemas.auth import normalize_phone


class SendOTPRequest(BaseModel):
    phone_number: str

    @field_validator("phone_number")
    @classmethod
    def check_phone_number(cls, value: str) -> str:
        return normalize_phone(value)


class SendOTPResponse(BaseModel):
    message: str
    message_id: Optional[str] = None
    expires_in_minutes: int


class OTPStatusResponse(BaseModel):
    """Diagnostic view of the OTP service. Never includes secrets."""
    initialized: bool
    active_provider: str
    providers_count: int
    storage: Dict[str, int]
    providers: List[Dict[str, Any]]
    config: Dict[str, Any]
