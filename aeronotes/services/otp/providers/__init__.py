"""OTP provider adapters and the registry keyed by provider name."""

from typing import Dict, Type

from aeronotes.services.otp.providers.base import (
    OTPProvider,
    ProviderFeatures,
    ProviderVerifyResult,
    SendResult,
)
from aeronotes.services.otp.providers.infobip_provider import InfobipOTPProvider
from aeronotes.services.otp.providers.mock_provider import MockOTPProvider
from aeronotes.services.otp.providers.twilio_provider import TwilioOTPProvider

PROVIDER_TYPES: Dict[str, Type[OTPProvider]] = {
    MockOTPProvider.provider_type: MockOTPProvider,
    TwilioOTPProvider.provider_type: TwilioOTPProvider,
    InfobipOTPProvider.provider_type: InfobipOTPProvider,
}

__all__ = [
    "OTPProvider",
    "ProviderFeatures",
    "ProviderVerifyResult",
    "SendResult",
    "MockOTPProvider",
    "TwilioOTPProvider",
    "InfobipOTPProvider",
    "PROVIDER_TYPES",
]
