"""Authentication Service — PIN accounts, JWT access tokens and session-bound refresh rotation"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aeronotes.core.config import get_settings
from aeronotes.core.exceptions import StorageError
from aeronotes.models.user import User
from aeronotes.schemas.auth import TokenResponse
from aeronotes.services.session_service import SessionService

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Precomputed fake hash to mitigate timing attacks
FAKE_PIN_HASH = pwd_context.hash("00000000")

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class AuthService:
    """Phone + PIN authentication on top of the session registry."""

    # ─── PIN ─────────────────────────────────────
    @staticmethod
    def hash_pin(pin: str) -> str:
        return pwd_context.hash(pin)

    @staticmethod
    def verify_pin(plain: str, hashed: str) -> bool:
        return pwd_context.verify(plain, hashed)

    # ─── JWT Creation ───────────────────────────
    @staticmethod
    def _secret_for(token_type: str) -> str:
        if token_type == TOKEN_TYPE_REFRESH:
            return settings.jwt_refresh_secret_key
        return settings.jwt_secret_key

    @staticmethod
    def _create_jwt(
        user_id: str,
        session_id: str,
        expires_delta: timedelta,
        token_type: str,
        jti: str,
    ) -> str:
        now = datetime.now(timezone.utc)
        expire = now + expires_delta
        payload = {
            "sub": str(user_id),
            "sid": session_id,
            "jti": jti,
            "iat": now,
            "exp": expire,
            "type": token_type,
        }
        return jwt.encode(payload, AuthService._secret_for(token_type), algorithm=settings.jwt_algorithm)

    # ─── Token Creation (access + refresh, refresh held by the session registry) ─────────
    @staticmethod
    def _mint_tokens(user_id: str, session_id: str) -> TokenResponse:
        access_token = AuthService._create_jwt(
            user_id=user_id,
            session_id=session_id,
            expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
            token_type=TOKEN_TYPE_ACCESS,
            jti=str(uuid.uuid4()),
        )

        refresh_token = AuthService._create_jwt(
            user_id=user_id,
            session_id=session_id,
            expires_delta=timedelta(days=settings.refresh_token_expire_days),
            token_type=TOKEN_TYPE_REFRESH,
            jti=str(uuid.uuid4()),
        )

        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=settings.access_token_expire_minutes * 60,
            session_id=session_id,
        )

    @staticmethod
    def _refresh_expiry() -> datetime:
        return datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days)

    @staticmethod
    def create_tokens(sessions: SessionService, user_id: str, session_id: str) -> TokenResponse:
        tokens = AuthService._mint_tokens(user_id, session_id)
        if not sessions.store_refresh_token(tokens.refresh_token, session_id, AuthService._refresh_expiry()):
            raise StorageError("Could not register refresh token", operation="store_refresh_token")
        return tokens

    # ─── Decode JWT ──────────────────────────────
    @staticmethod
    def decode_token(token: str, token_type: str = TOKEN_TYPE_ACCESS) -> Optional[dict]:
        try:
            payload = jwt.decode(token, AuthService._secret_for(token_type), algorithms=[settings.jwt_algorithm])
        except JWTError:
            return None
        if payload.get("type") != token_type:
            return None
        return payload

    # ─── User Lookup ─────────────────────────────
    @staticmethod
    async def get_user_by_phone(db: AsyncSession, phone_number: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.phone_number == phone_number))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    # ─── Registration ───────────────────────────
    @staticmethod
    async def create_user(db: AsyncSession, phone_number: str, pin: str) -> User:
        if await AuthService.get_user_by_phone(db, phone_number):
            raise ValueError("Phone number already registered")

        user = User(
            phone_number=phone_number,
            phone_suffix=phone_number[-4:],
            pin_hash=AuthService.hash_pin(pin),
            is_active=True,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same number
            await db.rollback()
            raise ValueError("Phone number already registered")
        except SQLAlchemyError as e:
            await db.rollback()
            raise StorageError(f"Could not create account: {e}", operation="create_user") from e

        await db.refresh(user)
        return user

    # ─── PIN Login (constant-time on miss) ──────
    @staticmethod
    async def authenticate_with_pin(db: AsyncSession, last_four_digits: str, pin: str) -> Optional[User]:
        """Match the PIN against every account sharing the phone suffix."""
        result = await db.execute(
            select(User).where(User.phone_suffix == last_four_digits).order_by(User.created_at)
        )
        candidates = list(result.scalars().all())

        if not candidates:
            pwd_context.verify(pin, FAKE_PIN_HASH)
            return None

        user = next((c for c in candidates if AuthService.verify_pin(pin, c.pin_hash)), None)
        if not user or not user.is_active:
            return None

        user.last_login = datetime.now(timezone.utc)
        return user

    # ─── Refresh Access Token (Rotation) ────────
    @staticmethod
    async def refresh_tokens(
        db: AsyncSession,
        sessions: SessionService,
        refresh_token: str,
    ) -> Optional[TokenResponse]:
        validation = sessions.validate_refresh_token(refresh_token)
        if validation is None:
            return None

        payload = AuthService.decode_token(refresh_token, TOKEN_TYPE_REFRESH)
        if not payload or payload.get("sid") != validation.session_id:
            sessions.revoke_refresh_token(refresh_token)
            return None

        user = await AuthService.get_user_by_id(db, payload["sub"])
        if not user or not user.is_active:
            sessions.revoke_refresh_token(refresh_token)
            return None

        sessions.update_session(validation.session_id, {"last_refresh": datetime.now(timezone.utc)})

        # Old token is revoked as the new one is stored (one-time use)
        tokens = AuthService._mint_tokens(user.id, validation.session_id)
        if sessions.rotate_refresh_token(refresh_token, tokens.refresh_token, AuthService._refresh_expiry()) is None:
            return None
        return tokens
