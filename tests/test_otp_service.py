"""
Tests for OTPService: initialization and provider fallback, input
validation, the send/verify flow and vendor-generated codes.

Run with: pytest tests/test_otp_service.py -v
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import TEST_PHONE


async def stored_code(session_factory, phone_number=TEST_PHONE) -> str:
    """Read back the code the service generated (the Mock provider only logs it)."""
    from sqlalchemy import select
    from aeronotes.models.otp_code import OTPCode

    async with session_factory() as db:
        result = await db.execute(select(OTPCode.otp_code).where(OTPCode.phone_number == phone_number))
        return result.scalar_one()


# ============================================
# Initialization
# ============================================

class TestInitialize:
    """Tests for OTPService.initialize and provider selection."""

    @pytest.mark.asyncio
    async def test_mock_provider(self, otp_service):
        status = await otp_service.get_status()

        assert status["initialized"] is True
        assert status["active_provider"] == "mock"
        assert status["providers_count"] == 1

    @pytest.mark.asyncio
    async def test_unconfigured_provider_falls_back_to_mock(self, storage, mock_otp_config):
        from aeronotes.services.otp.service import OTPService

        mock_otp_config.provider = "twilio"
        service = OTPService(storage)

        result = await service.initialize(mock_otp_config)

        assert result.success is True
        assert result.active_provider == "mock"
        assert service.active_provider.provider_type == "mock"

    @pytest.mark.asyncio
    async def test_registered_but_misconfigured_provider_falls_back(self, storage, mock_otp_config):
        from aeronotes.services.otp.config import TwilioProviderConfig
        from aeronotes.services.otp.service import OTPService

        mock_otp_config.provider = "twilio"
        mock_otp_config.providers.twilio = TwilioProviderConfig(account_sid="AC123")
        service = OTPService(storage)

        result = await service.initialize(mock_otp_config)

        assert result.success is True
        assert result.active_provider == "mock"
        assert "twilio" in service.providers

    @pytest.mark.asyncio
    async def test_unknown_provider_fails(self, storage, mock_otp_config):
        from aeronotes.services.otp.service import OTPService

        mock_otp_config.provider = "carrier-pigeon"
        service = OTPService(storage)

        result = await service.initialize(mock_otp_config)

        assert result.success is False
        assert "carrier-pigeon" in result.error
        assert service.initialized is False

    @pytest.mark.asyncio
    async def test_uninitialized_service_rejects_calls(self, storage):
        from aeronotes.services.otp.service import OTPService

        service = OTPService(storage)

        sent = await service.send_otp(TEST_PHONE)
        verified = await service.verify_otp(TEST_PHONE, "1234")

        assert sent.error == "OTP Service not initialized. Call initialize() first."
        assert verified.error == "OTP Service not initialized. Call initialize() first."

    def test_set_active_provider_unknown_name(self, otp_service):
        from aeronotes.core.exceptions import NotFoundError

        with pytest.raises(NotFoundError):
            otp_service.set_active_provider("infobip")

    def test_registry_covers_every_known_provider(self):
        from aeronotes.services.otp.config import KNOWN_PROVIDERS
        from aeronotes.services.otp.providers import PROVIDER_TYPES

        assert set(PROVIDER_TYPES) == set(KNOWN_PROVIDERS)

    def test_register_providers_builds_from_registry(self, storage):
        from aeronotes.services.otp.config import (
            InfobipProviderConfig,
            ProvidersConfig,
            TwilioProviderConfig,
        )
        from aeronotes.services.otp.providers import PROVIDER_TYPES
        from aeronotes.services.otp.service import OTPService

        twilio_class = MagicMock(return_value=MagicMock(provider_type="twilio"))
        providers_config = ProvidersConfig(
            twilio=TwilioProviderConfig(account_sid="AC123"),
            infobip=InfobipProviderConfig(base_url="https://example.api.infobip.com"),
        )
        service = OTPService(storage)

        with patch.dict(PROVIDER_TYPES, {"twilio": twilio_class}):
            service.register_providers(providers_config)

        assert set(service.providers) == {"mock", "twilio", "infobip"}
        twilio_class.assert_called_once_with(providers_config.twilio)
        assert service.providers["infobip"].config is providers_config.infobip

    def test_providers_info(self, otp_service):
        info = otp_service.get_providers_info()

        assert len(info) == 1
        assert info[0]["name"] == "mock"
        assert info[0]["is_active"] is True


# ============================================
# Code generation
# ============================================

class TestGenerateOTP:
    """Tests for OTPService.generate_otp."""

    @pytest.mark.parametrize("length", [4, 6, 8])
    def test_exact_length_without_leading_zero(self, length):
        from aeronotes.services.otp.service import OTPService

        for _ in range(200):
            code = OTPService.generate_otp(length)
            assert len(code) == length
            assert code.isdigit()
            assert code[0] != "0"


# ============================================
# Input validation
# ============================================

class TestValidation:
    """Malformed input is rejected before any provider or storage call."""

    @pytest.fixture
    def spied_service(self, otp_service):
        provider = otp_service.active_provider
        provider.send_otp = AsyncMock(wraps=provider.send_otp)
        provider.verify_otp = AsyncMock(wraps=provider.verify_otp)
        otp_service.storage = MagicMock(wraps=otp_service.storage)
        return otp_service, provider

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "phone",
        [
            "",
            "5551234567",
            "+0123456",
            "+1",
            "+1555123456789012",
            "+1 555 123",
            TEST_PHONE + "\n",
            "+\u0661\u0665\u0665\u0665\u0661\u0662\u0663\u0664",
        ],
    )
    async def test_send_rejects_bad_phone(self, spied_service, phone):
        service, provider = spied_service

        result = await service.send_otp(phone)

        assert result.success is False
        assert result.error == "Invalid phone number format. Must be in E.164 format (+1234567890)"
        provider.send_otp.assert_not_called()
        service.storage.store_otp.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("length", [3, 9])
    async def test_send_rejects_bad_length(self, spied_service, length):
        service, provider = spied_service

        result = await service.send_otp(TEST_PHONE, length=length)

        assert result.success is False
        provider.send_otp.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "phone,code,error",
        [
            ("", "1234", "Phone number and OTP code are required"),
            (TEST_PHONE, "", "Phone number and OTP code are required"),
            ("15551234567", "1234", "Invalid phone number format"),
            (TEST_PHONE, "123", "Invalid OTP format. Must be 4-8 digits."),
            (TEST_PHONE, "123456789", "Invalid OTP format. Must be 4-8 digits."),
            (TEST_PHONE, "12a4", "Invalid OTP format. Must be 4-8 digits."),
            (TEST_PHONE, "1234\n", "Invalid OTP format. Must be 4-8 digits."),
            (TEST_PHONE, "\u0661\u0662\u0663\u0664", "Invalid OTP format. Must be 4-8 digits."),
            (TEST_PHONE + "\n", "1234", "Invalid phone number format"),
        ],
    )
    async def test_verify_rejects_bad_input(self, spied_service, phone, code, error):
        service, provider = spied_service

        result = await service.verify_otp(phone, code)

        assert result.success is False
        assert result.error == error
        provider.verify_otp.assert_not_called()
        service.storage.verify_otp.assert_not_called()


# ============================================
# Send / verify flow
# ============================================

class TestSendAndVerify:
    """End-to-end flow through the Mock provider and real storage."""

    @pytest.mark.asyncio
    async def test_mock_scenario(self, otp_service, session_factory):
        sent = await otp_service.send_otp(TEST_PHONE, length=6, expiry_minutes=5)
        assert sent.success is True
        assert sent.message_id.startswith("mock_")

        code = await stored_code(session_factory)
        assert len(code) == 6
        wrong = "100000" if code != "100000" else "200000"

        mismatch = await otp_service.verify_otp(TEST_PHONE, wrong)
        assert mismatch.success is False
        assert mismatch.error == "Invalid OTP code"

        ok = await otp_service.verify_otp(TEST_PHONE, code)
        assert ok.success is True

        again = await otp_service.verify_otp(TEST_PHONE, code)
        assert again.success is False
        assert again.error.startswith("No valid OTP found")

    @pytest.mark.asyncio
    async def test_provider_failure_is_returned_and_nothing_stored(self, otp_service, session_factory):
        from aeronotes.services.otp.providers import SendResult

        otp_service.active_provider.send_otp = AsyncMock(
            return_value=SendResult(success=False, error="Simulated network failure")
        )

        result = await otp_service.send_otp(TEST_PHONE)

        assert result.success is False
        assert result.error == "Simulated network failure"
        assert (await otp_service.storage.get_stats()).total_active == 0

    @pytest.mark.asyncio
    async def test_storage_failure_reported(self, otp_service):
        from aeronotes.services.otp.storage import StoreResult

        otp_service.storage.store_otp = AsyncMock(return_value=StoreResult(success=False, error="disk full"))

        result = await otp_service.send_otp(TEST_PHONE)

        assert result.success is False
        assert result.error == "Failed to store OTP for verification"

    @pytest.mark.asyncio
    async def test_provider_exception_becomes_result(self, otp_service):
        otp_service.active_provider.send_otp = AsyncMock(side_effect=RuntimeError("socket closed"))

        result = await otp_service.send_otp(TEST_PHONE)

        assert result.success is False
        assert result.error == "socket closed"

    @pytest.mark.asyncio
    async def test_server_side_check_must_also_pass(self, otp_service, session_factory):
        from aeronotes.services.otp.providers import ProviderVerifyResult

        await otp_service.send_otp(TEST_PHONE)
        code = await stored_code(session_factory)
        otp_service.active_provider.verify_otp = AsyncMock(
            return_value=ProviderVerifyResult(success=False, error="Rejected by provider")
        )

        result = await otp_service.verify_otp(TEST_PHONE, code)

        assert result.success is False
        assert result.error == "Rejected by provider"

    @pytest.mark.asyncio
    async def test_expired_code(self, otp_service, session_factory):
        await otp_service.send_otp(TEST_PHONE, expiry_minutes=-1)
        code = await stored_code(session_factory)

        result = await otp_service.verify_otp(TEST_PHONE, code)

        assert result.success is False
        assert result.expired is True
        assert result.error == "OTP has expired"

    @pytest.mark.asyncio
    async def test_cleanup(self, otp_service):
        await otp_service.send_otp(TEST_PHONE, expiry_minutes=-1)

        assert await otp_service.cleanup() == 1


# ============================================
# Vendor-generated codes
# ============================================

class TestVendorGeneratedCodes:
    """The vendor compares the code; storage only tracks the pending challenge."""

    @pytest.fixture
    async def infobip_service(self, storage, mock_otp_config):
        from aeronotes.services.otp.config import InfobipProviderConfig
        from aeronotes.services.otp.providers import ProviderVerifyResult, SendResult
        from aeronotes.services.otp.service import OTPService

        mock_otp_config.provider = "infobip"
        mock_otp_config.providers.infobip = InfobipProviderConfig(
            base_url="https://example.api.infobip.com",
            api_key="key",
            application_id="app",
            message_id="tmpl",
        )
        service = OTPService(storage)
        result = await service.initialize(mock_otp_config)
        assert result.active_provider == "infobip"

        provider = service.active_provider
        provider.send_otp = AsyncMock(return_value=SendResult(success=True, message_id="PIN-1"))
        provider.verify_otp = AsyncMock(
            side_effect=lambda phone, code, message_id=None: ProviderVerifyResult(
                success=code == "4321", error=None if code == "4321" else "Invalid OTP code"
            )
        )
        yield service
        await service.close()

    @pytest.mark.asyncio
    async def test_vendor_code_verifies_with_pin_id(self, infobip_service):
        await infobip_service.send_otp(TEST_PHONE)

        result = await infobip_service.verify_otp(TEST_PHONE, "4321")

        assert result.success is True
        infobip_service.active_provider.verify_otp.assert_awaited_once_with(TEST_PHONE, "4321", "PIN-1")

        again = await infobip_service.verify_otp(TEST_PHONE, "4321")
        assert again.success is False
        assert again.error.startswith("No valid OTP found")

    @pytest.mark.asyncio
    async def test_vendor_rejection_keeps_challenge(self, infobip_service):
        await infobip_service.send_otp(TEST_PHONE)

        wrong = await infobip_service.verify_otp(TEST_PHONE, "1111")
        right = await infobip_service.verify_otp(TEST_PHONE, "4321")

        assert wrong.success is False
        assert wrong.error == "Invalid OTP code"
        assert right.success is True

    @pytest.mark.asyncio
    async def test_vendor_path_without_send(self, infobip_service):
        result = await infobip_service.verify_otp(TEST_PHONE, "4321")

        assert result.success is False
        infobip_service.active_provider.verify_otp.assert_not_called()
