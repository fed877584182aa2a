from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from medaccess.models.base import IDENTITY_LENGTH, Base, UTCDateTime

RECORD_ID_MAX_LENGTH = 64
DATA_HASH_MAX_LENGTH = 64
STORAGE_LOCATOR_MAX_LENGTH = 100
RECORD_METADATA_MAX_LENGTH = 200


class RecordType(StrEnum):
    general_medical = "general_medical"
    prescription = "prescription"
    lab_result = "lab_result"
    visit_summary = "visit_summary"
    immunization_record = "immunization_record"
    imaging = "imaging"
    emergency = "emergency"


class MedicalRecord(Base):
    """Metadata of one medical record.

    The payload itself lives off-site; ``data_hash`` ties this row to it and
    ``storage_locator`` says where to fetch it. Records are soft-deleted.
    """

    __tablename__ = "medical_records"

    patient_owner: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH),
        ForeignKey("patients.owner"),
        primary_key=True,
    )
    record_id: Mapped[str] = mapped_column(
        String(RECORD_ID_MAX_LENGTH),
        primary_key=True,
        comment="Caller-chosen id, unique within the patient",
    )
    created_by: Mapped[str] = mapped_column(
        String(IDENTITY_LENGTH), index=True, nullable=False
    )
    record_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    data_hash: Mapped[str] = mapped_column(
        String(DATA_HASH_MAX_LENGTH), nullable=False
    )
    storage_locator: Mapped[str | None] = mapped_column(
        String(STORAGE_LOCATOR_MAX_LENGTH),
        nullable=True,
        comment="IPFS/Arweave CID or other external locator",
    )
    metadata_: Mapped[str | None] = mapped_column(
        "metadata",
        String(RECORD_METADATA_MAX_LENGTH),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    access_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    modified_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_accessed: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<MedicalRecord(patient={self.patient_owner}, record_id={self.record_id}, "
            f"type='{self.record_type}')>"
        )
