"""
Tests for AuthService: PIN hashing, JWTs, PIN login and refresh rotation.

Run with: pytest tests/test_auth_service.py -v
"""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from conftest import TEST_PHONE


@pytest.fixture
def sessions():
    from aeronotes.services.session_service import SessionService

    return SessionService()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================
# PIN + JWT
# ============================================

class TestTokens:
    """Tests for PIN hashing and token handling."""

    def test_pin_hashing(self):
        """Test PIN hashing and verification."""
        from aeronotes.services.auth_service import AuthService

        hashed = AuthService.hash_pin("2468")

        assert hashed != "2468"
        assert AuthService.verify_pin("2468", hashed) is True
        assert AuthService.verify_pin("1357", hashed) is False

    def test_jwt_creation_and_decoding(self):
        """Test JWT token creation and decoding."""
        from aeronotes.services.auth_service import AuthService

        user_id = str(uuid.uuid4())
        jti = str(uuid.uuid4())

        token = AuthService._create_jwt(
            user_id=user_id,
            session_id="sess_abc_def",
            expires_delta=timedelta(minutes=30),
            token_type="access",
            jti=jti,
        )

        payload = AuthService.decode_token(token)

        assert payload is not None
        assert payload["sub"] == user_id
        assert payload["sid"] == "sess_abc_def"
        assert payload["jti"] == jti
        assert payload["type"] == "access"

    def test_refresh_token_is_not_an_access_token(self, sessions):
        from aeronotes.services.auth_service import AuthService

        tokens = AuthService.create_tokens(sessions, "user-1", sessions.create_session("user-1").session_id)

        assert AuthService.decode_token(tokens.refresh_token) is None
        assert AuthService.decode_token(tokens.access_token, "refresh") is None
        assert AuthService.decode_token(tokens.refresh_token, "refresh")["sub"] == "user-1"

    def test_expired_token_rejected(self):
        from aeronotes.services.auth_service import AuthService

        token = AuthService._create_jwt(
            user_id="user-1",
            session_id="sess_x",
            expires_delta=timedelta(seconds=-5),
            token_type="access",
            jti="j",
        )

        assert AuthService.decode_token(token) is None

    def test_create_tokens_registers_refresh_token(self, sessions):
        from aeronotes.services.auth_service import AuthService

        session = sessions.create_session("user-1")

        tokens = AuthService.create_tokens(sessions, "user-1", session.session_id)

        assert tokens.session_id == session.session_id
        assert tokens.token_type == "bearer"
        assert sessions.validate_refresh_token(tokens.refresh_token).session_id == session.session_id

    def test_constant_time_auth(self):
        from aeronotes.services.auth_service import FAKE_PIN_HASH

        assert FAKE_PIN_HASH is not None
        assert len(FAKE_PIN_HASH) > 0


# ============================================
# Accounts
# ============================================

class TestAccounts:
    """Tests for account creation and PIN login."""

    @pytest.mark.asyncio
    async def test_create_and_authenticate(self, db):
        from aeronotes.services.auth_service import AuthService

        user = await AuthService.create_user(db, TEST_PHONE, "2468")
        await db.commit()

        assert user.phone_suffix == "4567"
        assert (await AuthService.authenticate_with_pin(db, "4567", "2468")).id == user.id
        assert await AuthService.authenticate_with_pin(db, "4567", "1111") is None
        assert await AuthService.authenticate_with_pin(db, "9999", "2468") is None

    @pytest.mark.asyncio
    async def test_duplicate_phone(self, db):
        from aeronotes.services.auth_service import AuthService

        await AuthService.create_user(db, TEST_PHONE, "2468")

        with pytest.raises(ValueError, match="already registered"):
            await AuthService.create_user(db, TEST_PHONE, "1357")

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_log_in(self, db):
        from aeronotes.services.auth_service import AuthService

        user = await AuthService.create_user(db, TEST_PHONE, "2468")
        user.is_active = False
        await db.commit()

        assert await AuthService.authenticate_with_pin(db, "4567", "2468") is None

    @pytest.mark.asyncio
    async def test_database_failure_raises_storage_error(self):
        from aeronotes.core.exceptions import StorageError
        from aeronotes.services.auth_service import AuthService

        db = MagicMock()
        db.rollback = AsyncMock()
        db.flush = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))

        with patch.object(AuthService, "get_user_by_phone", AsyncMock(return_value=None)):
            with pytest.raises(StorageError) as exc_info:
                await AuthService.create_user(db, TEST_PHONE, "2468")

        assert exc_info.value.status_code == 503
        db.rollback.assert_awaited_once()


# ============================================
# Refresh rotation
# ============================================

class TestRefresh:
    """Tests for AuthService.refresh_tokens."""

    @pytest.mark.asyncio
    async def test_rotation_is_one_time(self, db, sessions):
        from aeronotes.services.auth_service import AuthService

        user = await AuthService.create_user(db, TEST_PHONE, "2468")
        await db.commit()
        session = sessions.create_session(user.id)
        tokens = AuthService.create_tokens(sessions, user.id, session.session_id)

        rotated = await AuthService.refresh_tokens(db, sessions, tokens.refresh_token)

        assert rotated is not None
        assert rotated.session_id == session.session_id
        assert "last_refresh" in sessions.get_session(session.session_id).metadata
        assert await AuthService.refresh_tokens(db, sessions, tokens.refresh_token) is None

    @pytest.mark.asyncio
    async def test_refresh_after_session_invalidated(self, db, sessions):
        from aeronotes.services.auth_service import AuthService

        user = await AuthService.create_user(db, TEST_PHONE, "2468")
        await db.commit()
        session = sessions.create_session(user.id)
        tokens = AuthService.create_tokens(sessions, user.id, session.session_id)

        sessions.invalidate_session(session.session_id)

        assert await AuthService.refresh_tokens(db, sessions, tokens.refresh_token) is None

    @pytest.mark.asyncio
    async def test_refresh_for_deleted_user_revokes_token(self, db, sessions):
        from aeronotes.services.auth_service import AuthService

        session = sessions.create_session("ghost")
        tokens = AuthService.create_tokens(sessions, "ghost", session.session_id)

        assert await AuthService.refresh_tokens(db, sessions, tokens.refresh_token) is None
        assert sessions.validate_refresh_token(tokens.refresh_token) is None
