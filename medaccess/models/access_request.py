"""Access request: a provider asking a patient for a grant."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from medaccess.models.base import IDENTITY_LENGTH, Base, UTCDateTime

REQUEST_REASON_MAX_LENGTH = 200


class RequestStatus(StrEnum):
    pending = "pending"
    approved = "approved"
    denied = "denied"
    expired = "expired"


class AccessRequest(Base):
    """One outstanding ask per (patient, requester).

    The stored status only ever moves pending -> approved or pending -> denied.
    Expiry is not written back; use ``effective_status`` when reading.
    """

    __tablename__ = "access_requests"

    patient_owner: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH),
        ForeignKey("patients.owner"),
        primary_key=True,
    )
    requester: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH), primary_key=True, index=True
    )
    requester_role: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str | None] = mapped_column(
        String(REQUEST_REASON_MAX_LENGTH), nullable=True
    )

    requested_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RequestStatus.pending.value,
        index=True,
    )
    responded_by: Mapped[str | None] = mapped_column(
        String(IDENTITY_LENGTH), nullable=True
    )
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    denial_reason: Mapped[str | None] = mapped_column(
        String(REQUEST_REASON_MAX_LENGTH), nullable=True
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def effective_status(self, now: datetime) -> RequestStatus:
        """Status as a reader should see it at ``now``."""
        status = RequestStatus(self.status)
        if status == RequestStatus.pending and self.is_expired(now):
            return RequestStatus.expired
        return status

    def __repr__(self) -> str:
        return (
            f"<AccessRequest(patient={self.patient_owner}, requester={self.requester}, "
            f"status={self.status})>"
        )
