"""Health check endpoints."""

from fastapi import APIRouter

from aeronotes.core.config import get_settings
from aeronotes.core.dependencies import OTPServiceDep, SessionServiceDep
from aeronotes.schemas.otp import OTPStatusResponse
from aeronotes.services.otp.config import get_config_summary

router = APIRouter()


@router.get("/health")
async def health_check(otp_service: OTPServiceDep, sessions: SessionServiceDep):
    """Check if the API is running."""
    return {
        "status": "healthy",
        "message": f"{get_settings().app_name} is running",
        "otp_initialized": otp_service.initialized,
        "sessions": sessions.get_stats(),
    }


@router.get("/otp/status", response_model=OTPStatusResponse)
async def otp_status(otp_service: OTPServiceDep):
    """OTP service status: active provider, storage counts, provider diagnostics."""
    status = await otp_service.get_status()
    return OTPStatusResponse(**status, config=get_config_summary())
