"""
Application error taxonomy.

Services convert these into result objects at their boundary; route handlers
and the global exception handler map them onto HTTP responses.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base application error."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(AppError):
    """Malformed identity, code or option. Caller's fault, fix and resend."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFoundError(AppError):
    """No session, refresh token or OTP record for the given key."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", {"resource": resource})
        self.resource = resource


class ExpiredError(AppError):
    """OTP past its TTL. Terminal for that code."""

    status_code = 410
    code = "OTP_EXPIRED"

    def __init__(self, message: str = "OTP has expired"):
        super().__init__(message)


class ProviderError(AppError):
    """Transport or vendor failure. Transient; the send may be retried."""

    status_code = 502
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, {"provider": provider} if provider else None)
        self.provider = provider


class StorageError(AppError):
    """Persistence unavailable. Fatal for the current operation."""

    status_code = 503
    code = "STORAGE_ERROR"

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message, {"operation": operation} if operation else None)
        self.operation = operation


class ConfigurationError(AppError):
    status_code = 500
    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message, {"config_key": config_key} if config_key else None)
        self.config_key = config_key
