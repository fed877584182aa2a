"""Pydantic schemas for medical record metadata and audited reads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from medaccess.models import RecordType, Role


class RecordCreate(BaseModel):
    """Register a record. The payload itself lives off-system; only its hash is kept."""

    record_id: str = Field(..., description="Caller-chosen id, unique per patient (max 64)")
    record_type: RecordType
    data_hash: str = Field(..., description="Content hash of the stored payload (max 64)")
    storage_locator: str | None = Field(None, description="Where the payload lives (max 100)")
    metadata: str | None = Field(None, description="Free-form description (max 200)")


class RecordUpdate(BaseModel):
    update_note: str = Field(..., description="Why the record changed (required, max 500)")
    data_hash: str | None = None
    metadata: str | None = None


class EmergencyAccessCreate(BaseModel):
    justification: str = Field(..., description="Why break-glass access is needed (max 200)")
    client_info: str | None = Field(None, description="Calling client or device (max 50)")


class RecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_owner: str
    record_id: str
    created_by: str
    record_type: RecordType
    data_hash: str
    storage_locator: str | None = None
    metadata: str | None = Field(None, validation_alias="metadata_")
    is_active: bool
    access_count: int
    created_at: datetime
    modified_at: datetime
    last_accessed: datetime


class RecordAccessResponse(BaseModel):
    """A record returned from an audited read, with the role it was read under."""

    record: RecordResponse
    role: Role | None = None
    is_emergency: bool = False
    audit_sequence: int
