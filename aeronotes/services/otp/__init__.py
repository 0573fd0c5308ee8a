"""
OTP issuance and verification.

`OTPService` picks a provider, generates codes and ties delivery to
`OTPStorage`, which keeps one expiring code per phone number.
"""

from aeronotes.services.otp.config import OTPConfig, build_otp_config
from aeronotes.services.otp.service import InitResult, OTPService, VerifyResult
from aeronotes.services.otp.storage import OTPState, OTPStats, OTPStorage, StorageVerifyResult, StoreResult

__all__ = [
    "OTPConfig",
    "build_otp_config",
    "InitResult",
    "OTPService",
    "VerifyResult",
    "OTPState",
    "OTPStats",
    "OTPStorage",
    "StorageVerifyResult",
    "StoreResult",
]
