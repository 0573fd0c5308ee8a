"""User model for phone + PIN authentication."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from aeronotes.db.session import Base


class User(Base):
    """A phone-verified account. The PIN is only ever stored as a bcrypt hash."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Authentication
    phone_number: Mapped[str] = mapped_column(String(16), unique=True, index=True)
    phone_suffix: Mapped[str] = mapped_column(String(4), index=True)  # last four digits
    pin_hash: Mapped[str] = mapped_column(String(255))

    # Account status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, phone=***{self.phone_suffix})>"
