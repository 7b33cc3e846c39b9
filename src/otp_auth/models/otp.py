"""SQLAlchemy models for OTP challenges and failed-attempt counters."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from otp_auth.models.base import Base, UTCDateTime, utcnow


class AttemptScope(str, Enum):
    """Which flow a failure counter throttles."""

    OTP = "otp"
    LOGIN = "login"


class OtpChallenge(Base):
    """One issued code for a mobile number.

    Rows are append-only: a new code is a new row, and the most recently
    created row is the operative one. Only the HMAC of the code is kept.
    """

    __tablename__ = "otp_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mobile: Mapped[str] = mapped_column(String(32), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    resend_allowed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_otp_challenges_mobile_created", "mobile", "created_at"),
        Index("ix_otp_challenges_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<OtpChallenge id={self.id} mobile={self.mobile!r} expires_at={self.expires_at}>"


class AttemptCounter(Base):
    """Failed-attempt count and lockout window for one identifier and scope."""

    __tablename__ = "attempt_counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(64), nullable=False)
    scope: Mapped[str] = mapped_column(String(16), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blocked_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("identifier", "scope", name="uq_attempt_counters_identifier_scope"),
    )

    def is_blocked(self, now: datetime) -> bool:
        return self.blocked_until is not None and now < self.blocked_until

    def __repr__(self) -> str:
        return (
            f"<AttemptCounter {self.scope}:{self.identifier} "
            f"attempts={self.attempts} blocked_until={self.blocked_until}>"
        )
