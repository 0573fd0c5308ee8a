"""
Abstract OTP provider interface.

Every SMS/2FA vendor is wrapped by one adapter implementing this contract.
Adapters never raise for transport failures; they return ``success=False``
with an error message. The only exception is calling ``verify_otp`` on an
adapter that does not support server-side verification.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from aeronotes.core.exceptions import ProviderError


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ProviderVerifyResult:
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ProviderFeatures:
    server_side_verification: bool = False
    delivery_status: bool = False
    # Vendor generates (and delivers) its own code; the local code is ignored
    vendor_generated_code: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


class OTPProvider(ABC):
    """Abstract base class for OTP providers."""

    #: Registry key, e.g. "mock"
    provider_type: str = ""
    #: Human-readable name for logs
    name: str = ""

    @abstractmethod
    async def send_otp(self, phone_number: str, code: str) -> SendResult:
        """
        Deliver an OTP code to a phone number.

        Args:
            phone_number: E.164 phone number
            code: Locally generated code. Vendor-generated-code adapters ignore it.

        Returns:
            SendResult with the vendor's message/challenge id on success
        """

    async def verify_otp(
        self,
        phone_number: str,
        code: str,
        message_id: Optional[str] = None,
    ) -> ProviderVerifyResult:
        """Server-side verification. Adapters that support it override this."""
        raise ProviderError(
            f"{self.name or type(self).__name__} does not support server-side verification",
            provider=self.provider_type,
        )

    @abstractmethod
    def is_configured(self) -> bool:
        """True iff every credential/setting this adapter needs is present."""

    def get_supported_features(self) -> ProviderFeatures:
        return ProviderFeatures()

    def get_provider_name(self) -> str:
        return self.name or type(self).__name__

    def get_provider_info(self) -> Dict[str, Any]:
        """Diagnostic summary. Must never include secrets."""
        return {
            "name": self.get_provider_name(),
            "type": self.provider_type,
            "configured": self.is_configured(),
            "features": self.get_supported_features().to_dict(),
        }

    async def close(self) -> None:
        """Release transport resources, if any."""
        return None
