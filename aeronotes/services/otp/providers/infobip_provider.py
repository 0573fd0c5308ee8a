"""
Infobip 2FA OTP provider.

Infobip generates and delivers its own PIN from a message template; the
locally generated code is ignored on send and the returned ``pinId`` is
needed to verify.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from aeronotes.services.otp.config import PROVIDER_INFOBIP, InfobipProviderConfig
from aeronotes.services.otp.providers.base import (
    OTPProvider,
    ProviderFeatures,
    ProviderVerifyResult,
    SendResult,
)
from aeronotes.services.otp.validation import mask_phone

logger = logging.getLogger(__name__)


def _json_body(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _service_exception_text(response: httpx.Response) -> Optional[str]:
    payload = _json_body(response)
    if payload is None:
        return None
    exception = (payload.get("requestError") or {}).get("serviceException") or {}
    return exception.get("text") or exception.get("messageId")


class InfobipOTPProvider(OTPProvider):
    """Infobip 2FA API provider."""

    provider_type = PROVIDER_INFOBIP
    name = "Infobip 2FA Provider"

    def __init__(self, config: InfobipProviderConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"App {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def send_otp(self, phone_number: str, code: str) -> SendResult:
        payload = {
            "applicationId": self.config.application_id,
            "messageId": self.config.message_id,
            # Infobip expects the number without the leading '+'
            "to": phone_number.lstrip("+"),
        }

        logger.info(f"[OTP][Infobip] Sending PIN to {mask_phone(phone_number)} via 2FA API")
        try:
            response = await self.client.post("/2fa/2/pin", json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"[OTP][Infobip] Request failed: {e}")
            return SendResult(success=False, error=f"Infobip request failed: {e}")

        if response.is_error:
            logger.error(f"[OTP][Infobip] API error {response.status_code}: {response.text}")
            message = _service_exception_text(response) or f"Infobip API error: {response.status_code}"
            return SendResult(success=False, error=message)

        result = _json_body(response)
        if result is None:
            logger.error(f"[OTP][Infobip] Unreadable send response: {response.text}")
            return SendResult(success=False, error="Infobip returned an invalid response")

        pin_id = result.get("pinId") or result.get("messageId")
        logger.info(f"[OTP][Infobip] PIN sent, pinId: {pin_id}")
        return SendResult(success=True, message_id=pin_id)

    async def verify_otp(
        self,
        phone_number: str,
        code: str,
        message_id: Optional[str] = None,
    ) -> ProviderVerifyResult:
        if not message_id:
            return ProviderVerifyResult(success=False, error="Message ID required for Infobip verification")

        logger.info(f"[OTP][Infobip] Verifying PIN for {mask_phone(phone_number)}")
        try:
            response = await self.client.post(
                f"/2fa/2/pin/{message_id}/verify",
                json={"pin": code},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"[OTP][Infobip] Verification request failed: {e}")
            return ProviderVerifyResult(success=False, error=f"Infobip request failed: {e}")

        if response.is_error:
            logger.error(f"[OTP][Infobip] Verification error {response.status_code}: {response.text}")
            return ProviderVerifyResult(
                success=False,
                error=f"Infobip verification failed: {response.status_code}",
            )

        result = _json_body(response)
        if result is None:
            logger.error(f"[OTP][Infobip] Unreadable verification response: {response.text}")
            return ProviderVerifyResult(success=False, error="Infobip returned an invalid response")

        if result.get("verified") is True:
            return ProviderVerifyResult(success=True)
        return ProviderVerifyResult(success=False, error="Invalid OTP code")

    def is_configured(self) -> bool:
        return bool(
            self.config.base_url
            and self.config.api_key
            and self.config.application_id
            and self.config.message_id
        )

    def get_supported_features(self) -> ProviderFeatures:
        return ProviderFeatures(
            server_side_verification=True,
            delivery_status=True,
            vendor_generated_code=True,
        )

    def get_provider_info(self) -> Dict[str, Any]:
        info = super().get_provider_info()
        info["config"] = {
            "base_url": self.config.base_url,
            "application_id": self.config.application_id,
            "message_id": self.config.message_id,
            "sender_id": self.config.sender_id,
            "api_key_configured": bool(self.config.api_key),
        }
        return info

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
