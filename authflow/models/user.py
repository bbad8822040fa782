"""
User account model.

Security considerations:
- Passwords are hashed with Argon2id before they reach this table
- Verification and reset codes are stored as SHA-256 digests only
- Email is unique and always stored lower-cased
- ``version`` is bumped on every update so writers can compare-and-set
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authflow.core.database import Base, UTCDateTime, utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Registered account and its pending one-time codes."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    # Identity
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Email verification
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_code_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    verification_code_expires: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Password reset
    reset_code_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reset_code_expires: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.email}>"
