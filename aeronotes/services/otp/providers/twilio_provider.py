"""
Twilio OTP provider.

Two modes:
- SMS (``from_phone_number``): sends the locally generated code as a plain
  message. No server-side verification; the storage check is the only check.
- Verify (``verify_service_sid``): Twilio generates, delivers and checks its
  own code. The local code is ignored on send.

The Twilio SDK is synchronous, so calls run in a worker thread.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from aeronotes.services.otp.config import PROVIDER_TWILIO, TwilioProviderConfig
from aeronotes.services.otp.providers.base import (
    OTPProvider,
    ProviderFeatures,
    ProviderVerifyResult,
    SendResult,
)
from aeronotes.services.otp.validation import mask_phone

logger = logging.getLogger(__name__)


def _twilio_error_message(exc: TwilioException) -> str:
    if isinstance(exc, TwilioRestException):
        return exc.msg or f"Twilio error: {exc.status}"
    return str(exc) or "Twilio error"


class TwilioOTPProvider(OTPProvider):
    """Twilio SMS / Verify provider."""

    provider_type = PROVIDER_TWILIO
    name = "Twilio SMS Provider"

    def __init__(self, config: TwilioProviderConfig, client: Optional[Client] = None):
        self.config = config
        self._client = client

    @property
    def uses_verify(self) -> bool:
        return bool(self.config.verify_service_sid)

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.config.account_sid, self.config.auth_token)
        return self._client

    async def send_otp(self, phone_number: str, code: str) -> SendResult:
        if self.uses_verify:
            return await self.send_otp_via_verify(phone_number)

        body = self.config.message_template.format(code=code)
        try:
            message = await asyncio.to_thread(
                self.client.messages.create,
                body=body,
                from_=self.config.from_phone_number,
                to=phone_number,
            )
        except TwilioException as e:
            logger.error(f"[OTP][Twilio] SMS to {mask_phone(phone_number)} failed: {e}")
            return SendResult(success=False, error=_twilio_error_message(e))

        logger.info(f"[OTP][Twilio] SMS sent to {mask_phone(phone_number)}, SID: {message.sid}")
        return SendResult(success=True, message_id=message.sid)

    async def send_otp_via_verify(self, phone_number: str) -> SendResult:
        """Start a Verify challenge; Twilio generates the code."""
        service = self.client.verify.v2.services(self.config.verify_service_sid)
        try:
            verification = await asyncio.to_thread(
                service.verifications.create,
                to=phone_number,
                channel="sms",
            )
        except TwilioException as e:
            logger.error(f"[OTP][TwilioVerify] Verification to {mask_phone(phone_number)} failed: {e}")
            return SendResult(success=False, error=_twilio_error_message(e))

        if verification.status not in ("pending", "approved"):
            return SendResult(
                success=False,
                error=f"Twilio Verify returned status '{verification.status}'",
            )

        logger.info(
            f"[OTP][TwilioVerify] Verification sent to {mask_phone(phone_number)}, SID: {verification.sid}"
        )
        return SendResult(success=True, message_id=verification.sid)

    async def verify_otp(
        self,
        phone_number: str,
        code: str,
        message_id: Optional[str] = None,
    ) -> ProviderVerifyResult:
        if not self.uses_verify:
            return await super().verify_otp(phone_number, code, message_id)

        service = self.client.verify.v2.services(self.config.verify_service_sid)
        try:
            check = await asyncio.to_thread(
                service.verification_checks.create,
                to=phone_number,
                code=code,
            )
        except TwilioException as e:
            logger.error(f"[OTP][TwilioVerify] Check for {mask_phone(phone_number)} failed: {e}")
            return ProviderVerifyResult(success=False, error=_twilio_error_message(e))

        if check.status != "approved":
            logger.warning(f"[OTP][TwilioVerify] Check for {mask_phone(phone_number)} returned {check.status}")
            return ProviderVerifyResult(success=False, error="Invalid OTP code")

        return ProviderVerifyResult(success=True)

    def is_configured(self) -> bool:
        has_basic = bool(self.config.account_sid and self.config.auth_token)
        return has_basic and bool(self.config.from_phone_number or self.config.verify_service_sid)

    def get_supported_features(self) -> ProviderFeatures:
        return ProviderFeatures(
            server_side_verification=self.uses_verify,
            delivery_status=True,
            vendor_generated_code=self.uses_verify,
        )

    def get_provider_info(self) -> Dict[str, Any]:
        info = super().get_provider_info()
        info["config"] = {
            "account_sid": self.config.account_sid,
            "from_phone_number": self.config.from_phone_number,
            "verify_service_sid": self.config.verify_service_sid,
            "auth_token_configured": bool(self.config.auth_token),
            "mode": "verify" if self.uses_verify else "sms",
        }
        return info
