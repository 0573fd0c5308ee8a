"""Application configuration settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "AeroNotes Auth API"
    app_env: str = "development"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./aeronotes.db"

    # JWT Authentication
    jwt_secret_key: str = "your-super-secret-key-change-in-production"
    jwt_refresh_secret_key: str = "your-super-secret-refresh-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7

    # OTP
    otp_provider: str = "mock"  # "mock", "twilio" or "infobip"
    otp_length: int = 6
    otp_expiry_minutes: int = 10
    otp_max_attempts: int = 5  # 0 disables the per-code attempt limit
    otp_mock_simulate_failures: bool = False
    otp_mock_simulate_delay: bool = True

    # Twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_phone_number: str = ""
    twilio_verify_service_sid: str = ""

    # Infobip
    infobip_base_url: str = ""
    infobip_api_key: str = ""
    infobip_2fa_application_id: str = ""
    infobip_2fa_message_id: str = ""
    infobip_sender_id: str = "ServiceSMS"
    infobip_timeout_seconds: float = 30.0

    # Sessions
    session_cleanup_interval_seconds: int = 3600
    session_max_age_days: int = 30
    session_cookie_name: str = "sessionId"

    # CORS
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Security
    allowed_hosts: str = "*"

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Get allowed hosts as a list."""
        return [host.strip() for host in self.allowed_hosts.split(",")]

    @property
    def environment(self) -> str:
        """Alias for app_env."""
        return self.app_env

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
