"""
Session management service.

Process-local registry of login sessions, refresh tokens and blacklisted
access tokens, with a periodic sweep. Every operation is synchronous map
manipulation, so operations are atomic with respect to each other on one
event loop. State is not shared across processes.
"""

import asyncio
import contextlib
import logging
import secrets
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

from aeronotes.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Session:
    session_id: str
    user_id: str
    created_at: datetime
    last_activity: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_info: Optional[str] = None
    is_active: bool = True
    invalidated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RefreshTokenEntry:
    session_id: str
    expires_at: datetime
    created_at: datetime


@dataclass
class RefreshTokenValidation:
    session_id: str
    expires_at: datetime
    created_at: datetime
    session: Session


@dataclass
class CleanupResult:
    sessions: int = 0
    refresh_tokens: int = 0
    blacklisted_tokens: int = 0


class SessionService:
    """Sessions, refresh tokens and the access-token blacklist."""

    SESSION_FIELDS = ("ip_address", "user_agent", "device_info", "is_active")

    def __init__(self, max_age_days: int = 30, cleanup_interval_seconds: int = 3600):
        self.max_age = timedelta(days=max_age_days)
        self.cleanup_interval_seconds = cleanup_interval_seconds

        self._active_sessions: Dict[str, Set[str]] = {}  # user_id -> session ids
        self._sessions: Dict[str, Session] = {}
        self._blacklisted_tokens: Dict[str, datetime] = {}  # jti -> expires_at
        self._refresh_tokens: Dict[str, RefreshTokenEntry] = {}

        self._cleanup_task: Optional[asyncio.Task] = None
        self._blacklist_timers: Dict[str, asyncio.TimerHandle] = {}

    # ─────────────────────────────────────────────────────────────
    # Sessions
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def generate_session_id() -> str:
        """Time-based prefix plus random suffix. Unique by convention only."""
        timestamp = _to_base36(int(time.time() * 1000))
        random_part = _to_base36(secrets.randbits(56))
        return f"sess_{timestamp}_{random_part}"

    def create_session(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        device_info: Optional[str] = None,
        **extra: Any,
    ) -> Optional[Session]:
        try:
            now = _utcnow()
            session = Session(
                session_id=self.generate_session_id(),
                user_id=user_id,
                created_at=now,
                last_activity=now,
                ip_address=ip_address,
                user_agent=user_agent,
                device_info=device_info,
                metadata=dict(extra),
            )

            self._sessions[session.session_id] = session
            self._active_sessions.setdefault(user_id, set()).add(session.session_id)
        except Exception as e:
            logger.error(f"Error creating session for user {user_id}: {e}")
            return None

        logger.info(f"Created session {session.session_id} for user {user_id}")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        """Active session by id. Reading it counts as activity."""
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return None

        session.last_activity = _utcnow()
        return session

    def get_user_sessions(self, user_id: str) -> List[Session]:
        session_ids = self._active_sessions.get(user_id, set())
        sessions = [self._sessions.get(session_id) for session_id in session_ids]
        return sorted(
            (session for session in sessions if session is not None and session.is_active),
            key=lambda session: session.created_at,
        )

    def update_session(self, session_id: str, updates: Dict[str, Any]) -> Session:
        """
        Merge fields into a session and bump its activity.

        Known session fields are set directly; anything else lands in
        ``metadata``.

        Raises:
            NotFoundError: If the session is unknown.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session")

        for key, value in updates.items():
            if key in self.SESSION_FIELDS:
                setattr(session, key, value)
            else:
                session.metadata[key] = value

        session.last_activity = _utcnow()
        return session

    def invalidate_session(self, session_id: str) -> bool:
        try:
            session = self._sessions.get(session_id)
            if session is None:
                return False

            session.is_active = False
            session.invalidated_at = _utcnow()
            self._remove_from_user_set(session)

            logger.info(f"Invalidated session {session_id} for user {session.user_id}")
            return True
        except Exception as e:
            logger.error(f"Error invalidating session {session_id}: {e}")
            return False

    def invalidate_user_sessions(self, user_id: str, except_session_id: Optional[str] = None) -> int:
        """Revoke every session of a user, optionally keeping one."""
        try:
            session_ids = list(self._active_sessions.get(user_id, set()))
            count = sum(
                1
                for session_id in session_ids
                if session_id != except_session_id and self.invalidate_session(session_id)
            )

            logger.info(f"Invalidated {count} sessions for user {user_id}")
            return count
        except Exception as e:
            logger.error(f"Error invalidating sessions for user {user_id}: {e}")
            return 0

    def _remove_from_user_set(self, session: Session) -> None:
        user_sessions = self._active_sessions.get(session.user_id)
        if user_sessions is None:
            return
        user_sessions.discard(session.session_id)
        if not user_sessions:
            del self._active_sessions[session.user_id]

    # ─────────────────────────────────────────────────────────────
    # Refresh tokens
    # ─────────────────────────────────────────────────────────────

    def store_refresh_token(self, refresh_token: str, session_id: str, expires_at: datetime) -> bool:
        try:
            self._refresh_tokens[refresh_token] = RefreshTokenEntry(
                session_id=session_id,
                expires_at=_as_utc(expires_at),
                created_at=_utcnow(),
            )
            return True
        except Exception as e:
            logger.error(f"Error storing refresh token for session {session_id}: {e}")
            return False

    def validate_refresh_token(self, refresh_token: str) -> Optional[RefreshTokenValidation]:
        """
        A refresh token is valid only while its entry is unexpired and its
        session is still active. Expired or orphaned entries are pruned here.
        """
        entry = self._refresh_tokens.get(refresh_token)
        if entry is None:
            return None

        if _utcnow() > entry.expires_at:
            del self._refresh_tokens[refresh_token]
            return None

        session = self.get_session(entry.session_id)
        if session is None:
            del self._refresh_tokens[refresh_token]
            return None

        return RefreshTokenValidation(
            session_id=entry.session_id,
            expires_at=entry.expires_at,
            created_at=entry.created_at,
            session=session,
        )

    def revoke_refresh_token(self, refresh_token: str) -> bool:
        try:
            return self._refresh_tokens.pop(refresh_token, None) is not None
        except Exception as e:
            logger.error(f"Error revoking refresh token: {e}")
            return False

    def rotate_refresh_token(
        self,
        old_token: str,
        new_token: str,
        expires_at: datetime,
    ) -> Optional[Session]:
        """Swap a valid refresh token for a new one on the same session."""
        validation = self.validate_refresh_token(old_token)
        if validation is None:
            return None

        self.revoke_refresh_token(old_token)
        if not self.store_refresh_token(new_token, validation.session_id, expires_at):
            return None
        return validation.session

    # ─────────────────────────────────────────────────────────────
    # Access-token blacklist
    # ─────────────────────────────────────────────────────────────

    def blacklist_token(self, jti: str, expires_at: datetime) -> bool:
        """Revoke an access token until it would have expired anyway."""
        try:
            expires_at = _as_utc(expires_at)
            self._blacklisted_tokens[jti] = expires_at

            ttl = (expires_at - _utcnow()).total_seconds()
            if ttl > 0:
                self._schedule_blacklist_removal(jti, expires_at, ttl)
        except Exception as e:
            logger.error(f"Error blacklisting token {jti}: {e}")
            return False

        logger.info(f"Blacklisted token {jti}")
        return True

    def is_token_blacklisted(self, jti: str) -> bool:
        expires_at = self._blacklisted_tokens.get(jti)
        if expires_at is None:
            return False
        if _utcnow() >= expires_at:
            self._blacklisted_tokens.pop(jti, None)
            return False
        return True

    def _schedule_blacklist_removal(self, jti: str, expires_at: datetime, ttl: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller); check-on-read and the sweep cover it
            return

        previous = self._blacklist_timers.pop(jti, None)
        if previous is not None:
            previous.cancel()
        self._blacklist_timers[jti] = loop.call_later(ttl, self._expire_blacklist_entry, jti, expires_at)

    def _expire_blacklist_entry(self, jti: str, expires_at: datetime) -> None:
        self._blacklist_timers.pop(jti, None)
        # Re-blacklisting with a later expiry keeps the entry
        if self._blacklisted_tokens.get(jti) == expires_at:
            del self._blacklisted_tokens[jti]

    # ─────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────

    def cleanup(self) -> CleanupResult:
        """Drop stale sessions, expired refresh tokens and expired blacklist entries."""
        result = CleanupResult()
        try:
            now = _utcnow()

            for session_id, session in list(self._sessions.items()):
                if not session.is_active or now - session.last_activity > self.max_age:
                    del self._sessions[session_id]
                    self._remove_from_user_set(session)
                    result.sessions += 1

            for token, entry in list(self._refresh_tokens.items()):
                if now > entry.expires_at:
                    del self._refresh_tokens[token]
                    result.refresh_tokens += 1

            for jti, expires_at in list(self._blacklisted_tokens.items()):
                if now >= expires_at:
                    del self._blacklisted_tokens[jti]
                    result.blacklisted_tokens += 1

            if result.sessions or result.refresh_tokens or result.blacklisted_tokens:
                logger.info(
                    f"Session cleanup: removed {result.sessions} sessions, "
                    f"{result.refresh_tokens} refresh tokens and "
                    f"{result.blacklisted_tokens} blacklisted tokens"
                )
        except Exception as e:
            logger.error(f"Error during session cleanup: {e}")
        return result

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.cleanup()

    def start_cleanup_task(self) -> None:
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"Started session cleanup every {self.cleanup_interval_seconds}s")

    async def stop(self) -> None:
        """Cancel the sweep and any pending blacklist timers."""
        for handle in self._blacklist_timers.values():
            handle.cancel()
        self._blacklist_timers.clear()

        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    def get_stats(self) -> Dict[str, int]:
        return {
            "total_sessions": len(self._sessions),
            "active_sessions": sum(1 for session in self._sessions.values() if session.is_active),
            "total_users": len(self._active_sessions),
            "blacklisted_tokens": len(self._blacklisted_tokens),
            "refresh_tokens": len(self._refresh_tokens),
        }
