"""Services for business logic."""

from aeronotes.services.auth_service import AuthService
from aeronotes.services.otp import OTPService, OTPStorage
from aeronotes.services.session_service import SessionService

__all__ = ["AuthService", "OTPService", "OTPStorage", "SessionService"]
