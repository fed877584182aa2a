"""Append-only audit log of access decisions."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from medaccess.errors import ErrorCode, StateConflictError
from medaccess.models.base import IDENTITY_LENGTH, Base, UTCDateTime

FAILURE_REASON_MAX_LENGTH = 100
JUSTIFICATION_MAX_LENGTH = 200
CLIENT_INFO_MAX_LENGTH = 50
AUDIT_METADATA_MAX_LENGTH = 100


class AccessAction(StrEnum):
    view = "view"
    create = "create"
    modify = "modify"
    delete = "delete"
    grant_access = "grant_access"
    revoke_access = "revoke_access"
    emergency_access = "emergency_access"


class AuditLogEntry(Base):
    """One authorization decision, successful or not. Never updated."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_owner: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH),
        ForeignKey("patients.owner"),
        index=True,
        nullable=False,
    )
    record_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Null for grant-level entries",
    )
    accessor: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH), index=True, nullable=False
    )
    accessor_role: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="Effective role; null when the attempt had none",
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    record_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(
        String(FAILURE_REASON_MAX_LENGTH), nullable=True
    )
    is_emergency: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    emergency_justification: Mapped[str | None] = mapped_column(
        String(JUSTIFICATION_MAX_LENGTH), nullable=True
    )
    client_info: Mapped[str | None] = mapped_column(
        String(CLIENT_INFO_MAX_LENGTH), nullable=True
    )
    metadata_: Mapped[str | None] = mapped_column(
        "metadata",
        String(AUDIT_METADATA_MAX_LENGTH),
        nullable=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "patient_owner",
            "record_id",
            "accessor",
            "action",
            "sequence",
            name="uq_audit_log_key",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLogEntry(id={self.id}, action={self.action}, "
            f"accessor={self.accessor}, success={self.success})>"
        )


@event.listens_for(AuditLogEntry, "before_update")
@event.listens_for(AuditLogEntry, "before_delete")
def _reject_mutation(_mapper, _connection, target: AuditLogEntry) -> None:
    raise StateConflictError(ErrorCode.immutable_audit_entry, detail=f"entry {target.id}")
