"""Pydantic schemas for API request/response validation."""

from medaccess.schemas.access import (
    AccessRequestApprove,
    AccessRequestCreate,
    AccessRequestDeny,
    AccessRequestResponse,
    BatchApprovalItem,
    BatchApprovalResponse,
    BatchApproveRequest,
    BatchGrantCreate,
    GrantCreate,
    GrantResponse,
)
from medaccess.schemas.audit import (
    AccessorCount,
    AuditEntryResponse,
    AuditExport,
    AuditPage,
    AuditSummaryResponse,
    ComplianceReportResponse,
    TimelineBucketResponse,
)
from medaccess.schemas.patient import PatientCreate, PatientResponse, PatientUpdate
from medaccess.schemas.records import (
    EmergencyAccessCreate,
    RecordAccessResponse,
    RecordCreate,
    RecordResponse,
    RecordUpdate,
)

__all__ = [
    # Patient
    "PatientCreate",
    "PatientUpdate",
    "PatientResponse",
    # Records
    "RecordCreate",
    "RecordUpdate",
    "RecordResponse",
    "RecordAccessResponse",
    "EmergencyAccessCreate",
    # Access
    "AccessRequestCreate",
    "AccessRequestApprove",
    "AccessRequestDeny",
    "AccessRequestResponse",
    "GrantCreate",
    "BatchGrantCreate",
    "GrantResponse",
    "BatchApproveRequest",
    "BatchApprovalItem",
    "BatchApprovalResponse",
    # Audit
    "AuditEntryResponse",
    "AuditPage",
    "AccessorCount",
    "AuditSummaryResponse",
    "TimelineBucketResponse",
    "AuditExport",
    "ComplianceReportResponse",
]
