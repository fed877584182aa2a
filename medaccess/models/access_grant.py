"""Access grant: a patient's standing permission for one provider."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from medaccess.models.base import IDENTITY_LENGTH, Base, UTCDateTime
from medaccess.models.record import RecordType

GRANT_REASON_MAX_LENGTH = 100
MAX_RECORD_TYPES = len(RecordType)


class AccessGrant(Base):
    """Grants a provider scoped access to a patient's records.

    There is at most one grant per (patient, provider). A revoked grant keeps
    its row and its slot; revocation is one-way.
    """

    __tablename__ = "access_grants"

    patient_owner: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH),
        ForeignKey("patients.owner"),
        primary_key=True,
    )
    provider: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH), primary_key=True, index=True
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False)

    allowed_record_types: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Comma-separated RecordType values",
    )

    granted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    can_create: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_modify: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    reason: Mapped[str | None] = mapped_column(
        String(GRANT_REASON_MAX_LENGTH), nullable=True
    )
    revoked_by: Mapped[str | None] = mapped_column(
        String(IDENTITY_LENGTH), nullable=True
    )
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def record_types(self) -> list[RecordType]:
        return [
            RecordType(value.strip())
            for value in self.allowed_record_types.split(",")
            if value.strip()
        ]

    @record_types.setter
    def record_types(self, values) -> None:
        self.allowed_record_types = ",".join(RecordType(v).value for v in values)

    def allows_record_type(self, record_type: str) -> bool:
        """Check if this grant covers the given record type."""
        return record_type in (s.strip() for s in self.allowed_record_types.split(","))

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def __repr__(self) -> str:
        return (
            f"<AccessGrant(patient={self.patient_owner}, provider={self.provider}, "
            f"active={self.is_active})>"
        )
