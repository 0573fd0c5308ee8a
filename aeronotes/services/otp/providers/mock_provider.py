"""
Mock OTP provider for development and testing.

Logs codes instead of sending SMS. This is the only channel allowed to log a
raw OTP code.
"""

import asyncio
import logging
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aeronotes.services.otp.config import MockProviderConfig, PROVIDER_MOCK
from aeronotes.services.otp.providers.base import (
    OTPProvider,
    ProviderFeatures,
    ProviderVerifyResult,
    SendResult,
)
from aeronotes.services.otp.validation import is_valid_code

logger = logging.getLogger(__name__)


class MockOTPProvider(OTPProvider):
    """Always-configured provider that simulates an SMS gateway."""

    provider_type = PROVIDER_MOCK
    name = "Mock OTP Provider"

    def __init__(self, config: Optional[MockProviderConfig] = None):
        self.config = config or MockProviderConfig()

    async def _simulate_latency(self, low: float, spread: float) -> None:
        if self.config.simulate_delay:
            await asyncio.sleep(low + random.random() * spread)

    async def send_otp(self, phone_number: str, code: str) -> SendResult:
        await self._simulate_latency(0.5, 1.0)

        failure_rate = self.config.failure_rate if self.config.simulate_failures else 0.0
        if random.random() < failure_rate:
            return SendResult(success=False, error="Simulated network failure")

        message_id = f"mock_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

        logger.info("=" * 60)
        logger.info("[MOCK SMS] No SMS was sent, simulation only")
        logger.info(f"[MOCK SMS] To: {phone_number}")
        logger.info(f"[MOCK SMS] OTP Code: {code}")
        logger.info(f"[MOCK SMS] Message ID: {message_id}")
        logger.info(f"[MOCK SMS] Timestamp: {datetime.now(timezone.utc).isoformat()}")
        logger.info("=" * 60)

        return SendResult(success=True, message_id=message_id)

    async def verify_otp(
        self,
        phone_number: str,
        code: str,
        message_id: Optional[str] = None,
    ) -> ProviderVerifyResult:
        """Accepts any well-formed code; the storage check is authoritative."""
        await self._simulate_latency(0.2, 0.5)

        if not is_valid_code(code):
            return ProviderVerifyResult(success=False, error="Invalid OTP format")

        logger.debug(f"[MOCK SMS] Verification for {phone_number}: {code} (message {message_id})")
        return ProviderVerifyResult(success=True)

    def is_configured(self) -> bool:
        return True

    def get_supported_features(self) -> ProviderFeatures:
        return ProviderFeatures(server_side_verification=True, delivery_status=True)

    def get_provider_info(self) -> Dict[str, Any]:
        info = super().get_provider_info()
        info["config"] = {
            "simulate_failures": self.config.simulate_failures,
            "simulate_delay": self.config.simulate_delay,
        }
        return info
