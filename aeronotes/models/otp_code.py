"""OTP code model backing the OTP storage layer."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Boolean, Integer, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from aeronotes.db.session import Base


class OTPCode(Base):
    """
    One outstanding verification code for a phone number.

    At most one unverified record exists per phone number. The storage layer
    keeps that invariant with delete-then-insert inside one transaction; the
    partial unique index rejects the second insert of two racing sends.
    """

    __tablename__ = "otp_codes"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # E.164 phone number
    phone_number: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    otp_code: Mapped[str] = mapped_column(String(8), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # Provider message / challenge id, needed for server-side verification
    message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    verified: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    failed_attempts: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index(
            "idx_otp_codes_phone_unverified",
            "phone_number",
            unique=True,
            sqlite_where=text("verified = 0"),
            postgresql_where=text("verified = false"),
        ),
    )

    def __repr__(self) -> str:
        return f"<OTPCode(id={self.id}, phone={self.phone_number[:4]}***, verified={self.verified})>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > as_utc(self.expires_at)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
