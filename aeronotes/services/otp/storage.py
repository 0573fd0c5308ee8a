"""
OTP storage on the relational store.

Keeps at most one unverified code per phone number (delete-then-insert),
expires codes, and converts every storage failure into a result object so
callers treat storage as fallible I/O. No code is ever considered valid
without a confirmed record.
"""

import logging
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aeronotes.models.otp_code import OTPCode
from aeronotes.services.otp.validation import mask_phone

logger = logging.getLogger(__name__)

NO_VALID_OTP = "No valid OTP found for this phone number"
OTP_EXPIRED = "OTP has expired"
INVALID_OTP = "Invalid OTP code"
TOO_MANY_ATTEMPTS = "Too many failed attempts. Please request a new code."


class OTPState(str, enum.Enum):
    """Where a phone number stands in the OTP lifecycle after an operation."""

    NONE = "none"
    SENT = "sent"
    VERIFIED = "verified"
    EXPIRED = "expired"


@dataclass
class StoreResult:
    success: bool
    error: Optional[str] = None


@dataclass
class StorageVerifyResult:
    success: bool
    expired: bool = False
    message_id: Optional[str] = None
    error: Optional[str] = None
    state: OTPState = OTPState.NONE
    # Set when a wrong code was recorded against the attempt limit
    attempts_remaining: Optional[int] = None


@dataclass
class OTPStats:
    total_active: int = 0
    expired_count: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPStorage:
    """Persistence of phone -> code mappings with expiry."""

    DEFAULT_EXPIRY_MINUTES = 10

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 5,
    ):
        self._session_factory = session_factory
        self.max_attempts = max_attempts

    # ─────────────────────────────────────────────────────────────
    # Store
    # ─────────────────────────────────────────────────────────────

    async def store_otp(
        self,
        phone_number: str,
        code: str,
        expiry_minutes: int = DEFAULT_EXPIRY_MINUTES,
        message_id: Optional[str] = None,
    ) -> StoreResult:
        """
        Replace any pending code for a phone number with a fresh one.

        Globally expired records and the phone's unverified record are deleted
        in the same transaction as the insert.
        """
        now = _utcnow()
        async with self._session_factory() as db:
            try:
                await db.execute(delete(OTPCode).where(OTPCode.expires_at < now))
                await db.execute(
                    delete(OTPCode).where(
                        and_(OTPCode.phone_number == phone_number, OTPCode.verified.is_(False))
                    )
                )
                db.add(
                    OTPCode(
                        phone_number=phone_number,
                        otp_code=code,
                        expires_at=now + timedelta(minutes=expiry_minutes),
                        message_id=message_id,
                        verified=False,
                        failed_attempts=0,
                        created_at=now,
                    )
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Error storing OTP for {mask_phone(phone_number)}: {e}")
                return StoreResult(success=False, error=str(e))

        logger.info(f"Stored OTP for {mask_phone(phone_number)}, expires in {expiry_minutes} minutes")
        return StoreResult(success=True)

    # ─────────────────────────────────────────────────────────────
    # Verify
    # ─────────────────────────────────────────────────────────────

    async def verify_otp(self, phone_number: str, code: str) -> StorageVerifyResult:
        """
        Check a code against the pending record and consume it on match.

        A wrong code keeps the record for a retry within its TTL until the
        attempt limit is reached.
        """
        now = _utcnow()
        async with self._session_factory() as db:
            try:
                record, failure = await self._load_pending(db, phone_number, now)
                if failure is not None:
                    await db.commit()
                    return failure

                if str(record.otp_code).strip() != str(code).strip():
                    result = await self._register_failed_attempt(db, record, phone_number)
                    await db.commit()
                    return result

                message_id = record.message_id
                await db.delete(record)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Error verifying OTP for {mask_phone(phone_number)}: {e}")
                return StorageVerifyResult(success=False, error=str(e))

        logger.info(f"OTP verified and consumed for {mask_phone(phone_number)}")
        return StorageVerifyResult(success=True, message_id=message_id, state=OTPState.VERIFIED)

    async def find_pending(self, phone_number: str) -> StorageVerifyResult:
        """
        Existence and expiry check without comparing or consuming the code.

        Used when the vendor generated the code and is the one to compare it.
        """
        now = _utcnow()
        async with self._session_factory() as db:
            try:
                record, failure = await self._load_pending(db, phone_number, now)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Error looking up OTP for {mask_phone(phone_number)}: {e}")
                return StorageVerifyResult(success=False, error=str(e))

        if failure is not None:
            return failure
        return StorageVerifyResult(success=True, message_id=record.message_id, state=OTPState.SENT)

    async def consume(self, phone_number: str) -> bool:
        """Delete the pending record. False if nothing was deleted or on error."""
        async with self._session_factory() as db:
            try:
                result = await db.execute(
                    delete(OTPCode).where(
                        and_(OTPCode.phone_number == phone_number, OTPCode.verified.is_(False))
                    )
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Error consuming OTP for {mask_phone(phone_number)}: {e}")
                return False
        return result.rowcount > 0

    async def _load_pending(self, db: AsyncSession, phone_number: str, now: datetime):
        """
        Fetch the unverified record for a phone number.

        Returns:
            Tuple of (record, failure). Exactly one is None.
        """
        # Sweep other phones' expired codes; this phone's expiry is reported below
        await db.execute(
            delete(OTPCode).where(
                and_(OTPCode.expires_at < now, OTPCode.phone_number != phone_number)
            )
        )

        result = await db.execute(
            select(OTPCode)
            .where(and_(OTPCode.phone_number == phone_number, OTPCode.verified.is_(False)))
            .order_by(OTPCode.created_at.desc())
        )
        record = result.scalars().first()

        if record is None:
            return None, StorageVerifyResult(success=False, error=NO_VALID_OTP)

        if record.is_expired(now):
            await db.delete(record)
            logger.info(f"Expired OTP removed for {mask_phone(phone_number)}")
            return None, StorageVerifyResult(
                success=False, expired=True, error=OTP_EXPIRED, state=OTPState.EXPIRED
            )

        return record, None

    async def _register_failed_attempt(
        self,
        db: AsyncSession,
        record: OTPCode,
        phone_number: str,
    ) -> StorageVerifyResult:
        record.failed_attempts = (record.failed_attempts or 0) + 1

        if not self.max_attempts:
            logger.warning(f"OTP mismatch for {mask_phone(phone_number)}")
            return StorageVerifyResult(success=False, error=INVALID_OTP, state=OTPState.SENT)

        remaining = self.max_attempts - record.failed_attempts
        if remaining <= 0:
            logger.warning(
                f"OTP for {mask_phone(phone_number)} invalidated after {record.failed_attempts} failed attempts"
            )
            await db.delete(record)
            return StorageVerifyResult(success=False, error=TOO_MANY_ATTEMPTS, attempts_remaining=0)

        logger.warning(f"OTP mismatch for {mask_phone(phone_number)}, {remaining} attempts remaining")
        return StorageVerifyResult(
            success=False, error=INVALID_OTP, state=OTPState.SENT, attempts_remaining=remaining
        )

    # ─────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────

    async def cleanup_expired_otps(self, phone_number: Optional[str] = None) -> int:
        """Best-effort delete of expired codes, for all phones or one."""
        stmt = delete(OTPCode).where(OTPCode.expires_at < _utcnow())
        if phone_number:
            stmt = stmt.where(OTPCode.phone_number == phone_number)

        async with self._session_factory() as db:
            try:
                result = await db.execute(stmt)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Error cleaning up expired OTPs: {e}")
                return 0

        count = result.rowcount or 0
        if count > 0:
            logger.info(f"Cleaned up {count} expired OTPs")
        return count

    async def get_stats(self) -> OTPStats:
        now = _utcnow()
        async with self._session_factory() as db:
            try:
                total_active = await db.scalar(
                    select(func.count()).select_from(OTPCode).where(OTPCode.expires_at >= now)
                )
                expired_count = await db.scalar(
                    select(func.count()).select_from(OTPCode).where(OTPCode.expires_at < now)
                )
            except SQLAlchemyError as e:
                logger.error(f"Error getting OTP stats: {e}")
                return OTPStats()

        return OTPStats(total_active=total_active or 0, expired_count=expired_count or 0)
