from datetime import date, datetime
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, Date, String
from sqlalchemy.orm import Mapped, mapped_column

from medaccess.models.base import IDENTITY_LENGTH, Base, UTCDateTime

NAME_MAX_LENGTH = 50


class Role(StrEnum):
    patient = "patient"
    doctor = "doctor"
    hospital = "hospital"
    insurer = "insurer"
    emergency_responder = "emergency_responder"


class Patient(Base):
    """A patient account, keyed by the identity that owns it.

    Patients are never deleted; deactivation is a flag flip.
    """

    __tablename__ = "patients"

    owner: Mapped[str] = mapped_column(String(IDENTITY_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    emergency_contact: Mapped[str | None] = mapped_column(
        String(IDENTITY_LENGTH), nullable=True
    )

    record_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    access_grant_count: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Patient(owner={self.owner}, active={self.is_active})>"
