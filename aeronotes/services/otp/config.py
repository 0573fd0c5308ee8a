"""
OTP service configuration.

Builds the ``{provider, providers}`` configuration the OTP service is
initialized with from application settings, and reports which providers are
usable. A provider section is only present when its required settings are.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from aeronotes.core.config import Settings, get_settings

PROVIDER_MOCK = "mock"
PROVIDER_TWILIO = "twilio"
PROVIDER_INFOBIP = "infobip"

KNOWN_PROVIDERS = (PROVIDER_MOCK, PROVIDER_TWILIO, PROVIDER_INFOBIP)


@dataclass
class MockProviderConfig:
    simulate_failures: bool = False
    simulate_delay: bool = True
    failure_rate: float = 0.1


@dataclass
class TwilioProviderConfig:
    account_sid: str = ""
    auth_token: str = ""
    from_phone_number: str = ""
    # Set to use the Verify API instead of plain SMS
    verify_service_sid: str = ""
    message_template: str = "Your AeroNotes verification code is: {code}"


@dataclass
class InfobipProviderConfig:
    base_url: str = ""
    api_key: str = ""
    application_id: str = ""
    message_id: str = ""  # 2FA message template id
    sender_id: str = "ServiceSMS"
    timeout_seconds: float = 30.0


@dataclass
class ProvidersConfig:
    mock: MockProviderConfig = field(default_factory=MockProviderConfig)
    twilio: Optional[TwilioProviderConfig] = None
    infobip: Optional[InfobipProviderConfig] = None


@dataclass
class OTPConfig:
    provider: str = PROVIDER_MOCK
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    max_attempts: int = 5


def has_infobip_config(settings: Settings) -> bool:
    return bool(
        settings.infobip_base_url
        and settings.infobip_api_key
        and settings.infobip_2fa_application_id
        and settings.infobip_2fa_message_id
    )


def has_twilio_config(settings: Settings) -> bool:
    has_basic = bool(settings.twilio_account_sid and settings.twilio_auth_token)
    has_sms = bool(settings.twilio_from_phone_number)
    has_verify = bool(settings.twilio_verify_service_sid)
    return has_basic and (has_sms or has_verify)


def build_otp_config(settings: Optional[Settings] = None) -> OTPConfig:
    """Get OTP service configuration from settings."""
    settings = settings or get_settings()

    providers = ProvidersConfig(
        mock=MockProviderConfig(
            simulate_failures=settings.otp_mock_simulate_failures,
            simulate_delay=settings.otp_mock_simulate_delay,
        )
    )

    if has_infobip_config(settings):
        providers.infobip = InfobipProviderConfig(
            base_url=settings.infobip_base_url,
            api_key=settings.infobip_api_key,
            application_id=settings.infobip_2fa_application_id,
            message_id=settings.infobip_2fa_message_id,
            sender_id=settings.infobip_sender_id or "ServiceSMS",
            timeout_seconds=settings.infobip_timeout_seconds,
        )

    if has_twilio_config(settings):
        providers.twilio = TwilioProviderConfig(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_phone_number=settings.twilio_from_phone_number,
            verify_service_sid=settings.twilio_verify_service_sid,
        )

    return OTPConfig(
        provider=(settings.otp_provider or PROVIDER_MOCK).lower(),
        providers=providers,
        max_attempts=settings.otp_max_attempts,
    )


def get_available_providers(settings: Optional[Settings] = None) -> List[str]:
    settings = settings or get_settings()
    providers = [PROVIDER_MOCK]
    if has_infobip_config(settings):
        providers.append(PROVIDER_INFOBIP)
    if has_twilio_config(settings):
        providers.append(PROVIDER_TWILIO)
    return providers


def validate_provider_config(provider_name: str, settings: Optional[Settings] = None) -> Dict[str, object]:
    """
    Check the settings a provider needs.

    Returns:
        {"valid": bool, "errors": [str, ...]}
    """
    settings = settings or get_settings()
    errors: List[str] = []

    if provider_name == PROVIDER_MOCK:
        pass
    elif provider_name == PROVIDER_INFOBIP:
        if not settings.infobip_base_url:
            errors.append("INFOBIP_BASE_URL is required")
        if not settings.infobip_api_key:
            errors.append("INFOBIP_API_KEY is required")
        if not settings.infobip_2fa_application_id:
            errors.append("INFOBIP_2FA_APPLICATION_ID is required")
        if not settings.infobip_2fa_message_id:
            errors.append("INFOBIP_2FA_MESSAGE_ID is required")
    elif provider_name == PROVIDER_TWILIO:
        if not settings.twilio_account_sid:
            errors.append("TWILIO_ACCOUNT_SID is required")
        if not settings.twilio_auth_token:
            errors.append("TWILIO_AUTH_TOKEN is required")
        if not settings.twilio_from_phone_number and not settings.twilio_verify_service_sid:
            errors.append(
                "Either TWILIO_FROM_PHONE_NUMBER (for SMS API) or "
                "TWILIO_VERIFY_SERVICE_SID (for Verify API) is required"
            )
    else:
        errors.append(f"Unknown provider: {provider_name}")

    return {"valid": not errors, "errors": errors}


def get_config_summary(settings: Optional[Settings] = None) -> Dict[str, object]:
    """Configuration overview for diagnostics endpoints."""
    settings = settings or get_settings()
    return {
        "active_provider": (settings.otp_provider or PROVIDER_MOCK).lower(),
        "available_providers": get_available_providers(settings),
        "configured": {
            PROVIDER_MOCK: True,
            PROVIDER_INFOBIP: has_infobip_config(settings),
            PROVIDER_TWILIO: has_twilio_config(settings),
        },
        "validation": {name: validate_provider_config(name, settings) for name in KNOWN_PROVIDERS},
        "env_vars": {name: get_provider_env_vars(name) for name in KNOWN_PROVIDERS},
    }


_PROVIDER_ENV_VARS: Dict[str, List[Dict[str, object]]] = {
    PROVIDER_MOCK: [
        {"key": "OTP_PROVIDER", "description": 'Set to "mock" to use the mock provider', "required": False},
        {
            "key": "OTP_MOCK_SIMULATE_FAILURES",
            "description": 'Set to "true" to simulate occasional send failures',
            "required": False,
        },
    ],
    PROVIDER_INFOBIP: [
        {"key": "OTP_PROVIDER", "description": 'Set to "infobip" to use Infobip', "required": False},
        {"key": "INFOBIP_BASE_URL", "description": "Infobip API base URL (https://xxxxx.api.infobip.com)", "required": True},
        {"key": "INFOBIP_API_KEY", "description": "Infobip API key", "required": True},
        {"key": "INFOBIP_2FA_APPLICATION_ID", "description": "Infobip 2FA application ID", "required": True},
        {"key": "INFOBIP_2FA_MESSAGE_ID", "description": "Infobip 2FA message template ID", "required": True},
        {"key": "INFOBIP_SENDER_ID", "description": "SMS sender ID (default: ServiceSMS)", "required": False},
    ],
    PROVIDER_TWILIO: [
        {"key": "OTP_PROVIDER", "description": 'Set to "twilio" to use Twilio', "required": False},
        {"key": "TWILIO_ACCOUNT_SID", "description": "Twilio Account SID", "required": True},
        {"key": "TWILIO_AUTH_TOKEN", "description": "Twilio Auth Token", "required": True},
        {"key": "TWILIO_FROM_PHONE_NUMBER", "description": "Sender number (SMS API)", "required": False},
        {"key": "TWILIO_VERIFY_SERVICE_SID", "description": "Verify Service SID (Verify API)", "required": False},
    ],
}


def get_provider_env_vars(provider_name: str) -> List[Dict[str, object]]:
    return list(_PROVIDER_ENV_VARS.get(provider_name, []))
