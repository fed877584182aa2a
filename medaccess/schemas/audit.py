"""Pydantic schemas for the audit log read side."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from medaccess.models import AccessAction, Role


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_owner: str
    record_id: str | None = None
    accessor: str
    accessor_role: Role | None = None
    action: AccessAction
    record_type: str | None = None
    timestamp: datetime
    success: bool
    failure_reason: str | None = None
    is_emergency: bool
    emergency_justification: str | None = None
    client_info: str | None = None
    metadata: str | None = Field(None, validation_alias="metadata_")
    sequence: int


class AuditPage(BaseModel):
    items: list[AuditEntryResponse]
    total: int
    limit: int
    offset: int


class AccessorCount(BaseModel):
    accessor: str
    count: int


class AuditSummaryResponse(BaseModel):
    total_events: int
    successful_events: int
    failed_events: int
    emergency_events: int
    unique_accessors: int
    success_rate: float
    action_breakdown: dict[str, int]
    top_accessors: list[AccessorCount]
    recent_failures: list[AuditEntryResponse]


class TimelineBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: str = Field(..., description="UTC hour, day or month the bucket covers")
    total: int
    successful: int
    failed: int
    actions: dict[str, int]


class AuditExport(BaseModel):
    exported_at: datetime
    patient: str
    since: datetime | None = None
    until: datetime | None = None
    total_records: int
    items: list[AuditEntryResponse]


class ComplianceReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    generated_at: datetime
    patient: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    total_access_events: int
    emergency_access_events: int
    unauthorized_attempts: int
    data_modifications: int
    access_grants_issued: int
    access_revocations: int
