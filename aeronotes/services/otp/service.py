"""
OTP service.

Manages the registered providers and the active one, generates codes, and
ties provider delivery/verification to OTP storage behind a single
``send_otp`` / ``verify_otp`` interface.
"""

import logging
import secrets
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from aeronotes.core.exceptions import ConfigurationError, NotFoundError, ValidationError
from aeronotes.services.otp.config import KNOWN_PROVIDERS, PROVIDER_MOCK, OTPConfig, ProvidersConfig
from aeronotes.services.otp.providers import PROVIDER_TYPES, OTPProvider, SendResult
from aeronotes.services.otp.storage import OTPState, OTPStorage
from aeronotes.services.otp.validation import (
    MAX_OTP_LENGTH,
    MIN_OTP_LENGTH,
    is_valid_code,
    is_valid_phone,
    mask_phone,
)

logger = logging.getLogger(__name__)

NOT_INITIALIZED = "OTP Service not initialized. Call initialize() first."


@dataclass
class InitResult:
    success: bool
    error: Optional[str] = None
    active_provider: Optional[str] = None


@dataclass
class VerifyResult:
    success: bool
    error: Optional[str] = None
    expired: bool = False
    state: OTPState = OTPState.NONE


class OTPService:
    """
    Unified interface for sending and verifying OTPs.

    Constructed once per application and initialized with an ``OTPConfig``.
    Mock is always registered; other providers only when their config
    section is present.
    """

    DEFAULT_LENGTH = 4
    DEFAULT_EXPIRY_MINUTES = 10

    def __init__(self, storage: OTPStorage):
        self.storage = storage
        self.providers: Dict[str, OTPProvider] = {}
        self.active_provider: Optional[OTPProvider] = None
        self.initialized = False

    # ─────────────────────────────────────────────────────────────
    # Setup
    # ─────────────────────────────────────────────────────────────

    async def initialize(self, config: OTPConfig) -> InitResult:
        """Register providers and pick the active one."""
        try:
            logger.info("Initializing OTP service...")

            self.register_providers(config.providers)
            self.storage.max_attempts = config.max_attempts

            requested = (config.provider or PROVIDER_MOCK).lower()
            if requested not in KNOWN_PROVIDERS:
                raise ConfigurationError(f"Unknown OTP provider '{requested}'", config_key="OTP_PROVIDER")

            if requested not in self.providers:
                logger.warning(
                    f"OTP provider '{requested}' has no configuration, falling back to mock provider"
                )
                requested = PROVIDER_MOCK

            self.set_active_provider(requested)
            self.initialized = True

            active_name = self.active_provider.get_provider_name()
            logger.info(f"OTP service initialized with provider: {active_name}")
            return InitResult(success=True, active_provider=self.active_provider.provider_type)

        except Exception as e:
            logger.error(f"Failed to initialize OTP service: {e}")
            return InitResult(success=False, error=str(e))

    def register_providers(self, providers_config: Optional[ProvidersConfig]) -> None:
        providers_config = providers_config or ProvidersConfig()

        # Each ProvidersConfig section is named after its provider type
        for provider_type, provider_class in PROVIDER_TYPES.items():
            section = getattr(providers_config, provider_type, None)
            if section is not None:
                self.register_provider(provider_class(section))

        logger.info(f"Registered {len(self.providers)} OTP providers: {list(self.providers)}")

    def register_provider(self, provider: OTPProvider) -> None:
        self.providers[provider.provider_type] = provider

    def set_active_provider(self, provider_name: str) -> OTPProvider:
        """
        Switch the active provider.

        Raises:
            NotFoundError: If no provider is registered under that name.
        """
        provider = self.providers.get(provider_name)
        if provider is None:
            raise NotFoundError(f"OTP provider '{provider_name}'")

        if not provider.is_configured() and provider_name != PROVIDER_MOCK:
            logger.warning(
                f"OTP provider '{provider_name}' is not properly configured, falling back to mock provider"
            )
            provider = self.providers[PROVIDER_MOCK]

        self.active_provider = provider
        logger.info(f"Active OTP provider set to: {provider.get_provider_name()}")
        return provider

    @staticmethod
    def generate_otp(length: int = DEFAULT_LENGTH) -> str:
        """Uniformly random numeric code of exactly ``length`` digits, no leading zero."""
        low = 10 ** (length - 1)
        return str(low + secrets.randbelow(9 * low))

    # ─────────────────────────────────────────────────────────────
    # Send / verify
    # ─────────────────────────────────────────────────────────────

    async def send_otp(
        self,
        phone_number: str,
        length: int = DEFAULT_LENGTH,
        expiry_minutes: int = DEFAULT_EXPIRY_MINUTES,
    ) -> SendResult:
        """Generate a code, deliver it through the active provider and persist it."""
        try:
            if not self.initialized or self.active_provider is None:
                return SendResult(success=False, error=NOT_INITIALIZED)

            self._check_send_input(phone_number, length)

            code = self.generate_otp(length)
            provider = self.active_provider

            logger.info(f"Sending OTP to {mask_phone(phone_number)} via {provider.get_provider_name()}")

            send_result = await provider.send_otp(phone_number, code)
            if not send_result.success:
                logger.warning(f"OTP delivery failed for {mask_phone(phone_number)}: {send_result.error}")
                return send_result

            store_result = await self.storage.store_otp(
                phone_number,
                code,
                expiry_minutes=expiry_minutes,
                message_id=send_result.message_id,
            )
            if not store_result.success:
                logger.error(f"Failed to store OTP: {store_result.error}")
                return SendResult(success=False, error="Failed to store OTP for verification")

            logger.info(f"OTP sent and stored for {mask_phone(phone_number)}")
            return SendResult(success=True, message_id=send_result.message_id)

        except ValidationError as e:
            logger.warning(f"Rejected send request: {e.message}")
            return SendResult(success=False, error=e.message)
        except Exception as e:
            logger.error(f"Error sending OTP: {e}")
            return SendResult(success=False, error=str(e))

    async def verify_otp(self, phone_number: str, code: str) -> VerifyResult:
        """
        Verify a code for a phone number.

        Storage is checked first. When the active provider verifies server-side,
        its check must pass as well. For vendor-generated codes the vendor is
        the one comparing, so the pending record is only consumed after it
        approves.
        """
        try:
            if not self.initialized or self.active_provider is None:
                return VerifyResult(success=False, error=NOT_INITIALIZED)

            self._check_verify_input(phone_number, code)

            provider = self.active_provider
            features = provider.get_supported_features()

            logger.info(f"Verifying OTP for {mask_phone(phone_number)}")

            if features.vendor_generated_code:
                return await self._verify_with_vendor(provider, phone_number, code)

            storage_result = await self.storage.verify_otp(phone_number, code)
            if not storage_result.success:
                return VerifyResult(
                    success=False,
                    error=storage_result.error,
                    expired=storage_result.expired,
                    state=storage_result.state,
                )

            if features.server_side_verification:
                logger.debug("Performing additional server-side verification")
                provider_result = await provider.verify_otp(
                    phone_number, code, storage_result.message_id
                )
                if not provider_result.success:
                    return VerifyResult(success=False, error=provider_result.error)

            logger.info(f"OTP verified for {mask_phone(phone_number)}")
            return VerifyResult(success=True, state=OTPState.VERIFIED)

        except ValidationError as e:
            logger.warning(f"Rejected verify request: {e.message}")
            return VerifyResult(success=False, error=e.message)
        except Exception as e:
            logger.error(f"Error verifying OTP: {e}")
            return VerifyResult(success=False, error=str(e))

    @staticmethod
    def _check_send_input(phone_number: str, length: int) -> None:
        if not is_valid_phone(phone_number):
            raise ValidationError(
                "Invalid phone number format. Must be in E.164 format (+1234567890)",
                field="phone_number",
            )
        if not MIN_OTP_LENGTH <= length <= MAX_OTP_LENGTH:
            raise ValidationError(
                f"OTP length must be between {MIN_OTP_LENGTH} and {MAX_OTP_LENGTH} digits",
                field="length",
            )

    @staticmethod
    def _check_verify_input(phone_number: str, code: str) -> None:
        if not phone_number or not code:
            raise ValidationError("Phone number and OTP code are required")
        if not is_valid_phone(phone_number):
            raise ValidationError("Invalid phone number format", field="phone_number")
        if not is_valid_code(code):
            raise ValidationError("Invalid OTP format. Must be 4-8 digits.", field="code")

    async def _verify_with_vendor(
        self,
        provider: OTPProvider,
        phone_number: str,
        code: str,
    ) -> VerifyResult:
        pending = await self.storage.find_pending(phone_number)
        if not pending.success:
            return VerifyResult(
                success=False,
                error=pending.error,
                expired=pending.expired,
                state=pending.state,
            )

        provider_result = await provider.verify_otp(phone_number, code, pending.message_id)
        if not provider_result.success:
            return VerifyResult(success=False, error=provider_result.error, state=OTPState.SENT)

        await self.storage.consume(phone_number)
        logger.info(f"OTP verified by {provider.get_provider_name()} for {mask_phone(phone_number)}")
        return VerifyResult(success=True, state=OTPState.VERIFIED)

    # ─────────────────────────────────────────────────────────────
    # Diagnostics / maintenance
    # ─────────────────────────────────────────────────────────────

    def get_providers_info(self) -> List[Dict[str, Any]]:
        return [
            {
                **provider.get_provider_info(),
                "name": name,
                "display_name": provider.get_provider_name(),
                "is_active": provider is self.active_provider,
            }
            for name, provider in self.providers.items()
        ]

    async def get_status(self) -> Dict[str, Any]:
        stats = await self.storage.get_stats()
        return {
            "initialized": self.initialized,
            "active_provider": self.active_provider.provider_type if self.active_provider else "none",
            "providers_count": len(self.providers),
            "storage": asdict(stats),
            "providers": self.get_providers_info(),
        }

    async def cleanup(self) -> int:
        return await self.storage.cleanup_expired_otps()

    async def close(self) -> None:
        for provider in self.providers.values():
            await provider.close()
