"""SQLAlchemy User model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from otp_auth.models.base import Base, UTCDateTime, utcnow


class UserType(str, Enum):
    """Account classification chosen at registration."""

    PATIENT = "patient"
    STUDENT = "student"
    PREGNANT = "pregnant"
    CHRONIC = "chronic"
    DOCTOR = "doctor"
    NURSE = "nurse"
    ADMIN = "admin"


class Role(str, Enum):
    PATIENT = "patient"
    STUDENT = "student"
    DOCTOR = "doctor"
    NURSE = "nurse"
    ADMIN = "admin"
    GUEST = "guest"


# Role set granted to a freshly created account of each type
ROLES_BY_TYPE: dict[UserType, tuple[Role, ...]] = {
    UserType.PATIENT: (Role.PATIENT,),
    UserType.PREGNANT: (Role.PATIENT,),
    UserType.CHRONIC: (Role.PATIENT,),
    UserType.STUDENT: (Role.STUDENT,),
    UserType.DOCTOR: (Role.DOCTOR,),
    UserType.NURSE: (Role.NURSE,),
    UserType.ADMIN: (Role.ADMIN,),
}


class User(Base):
    """A registered account, identified by its canonical mobile number.

    ``mobile`` is always stored in E.164 form (``+201234567890``); the
    unique index on it is what rejects duplicate registrations.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    mobile: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(256), nullable=True, unique=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default=UserType.PATIENT.value)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<User id={self.id} mobile={self.mobile!r} verified={self.is_verified}>"
