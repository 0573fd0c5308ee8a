"""Database models."""

from aeronotes.models.otp_code import OTPCode
from aeronotes.models.user import User

__all__ = [
    "OTPCode",
    "User",
]
