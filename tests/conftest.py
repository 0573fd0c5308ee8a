"""
Shared fixtures.

The application database is pointed at a throwaway SQLite file before any
`aeronotes` module reads settings; service tests use an in-memory engine.
"""

import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="aeronotes-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/app.db"
os.environ["OTP_PROVIDER"] = "mock"
os.environ["OTP_MOCK_SIMULATE_DELAY"] = "false"
os.environ["OTP_MOCK_SIMULATE_FAILURES"] = "false"
os.environ["ALLOWED_HOSTS"] = "*"

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from aeronotes.db.session import Base
from aeronotes.services.otp.config import MockProviderConfig, OTPConfig, ProvidersConfig

TEST_PHONE = "+15551234567"


@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    import aeronotes.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def storage(session_factory):
    from aeronotes.services.otp.storage import OTPStorage

    return OTPStorage(session_factory, max_attempts=5)


@pytest.fixture
def mock_otp_config():
    """Mock provider without simulated latency or failures."""
    return OTPConfig(
        provider="mock",
        providers=ProvidersConfig(mock=MockProviderConfig(simulate_failures=False, simulate_delay=False)),
        max_attempts=5,
    )


@pytest.fixture
async def otp_service(storage, mock_otp_config):
    from aeronotes.services.otp.service import OTPService

    service = OTPService(storage)
    result = await service.initialize(mock_otp_config)
    assert result.success
    yield service
    await service.close()
