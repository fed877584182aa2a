from medaccess.models.access_grant import (
    GRANT_REASON_MAX_LENGTH,
    MAX_RECORD_TYPES,
    AccessGrant,
)
from medaccess.models.access_request import (
    REQUEST_REASON_MAX_LENGTH,
    AccessRequest,
    RequestStatus,
)
from medaccess.models.audit_log import (
    AUDIT_METADATA_MAX_LENGTH,
    CLIENT_INFO_MAX_LENGTH,
    FAILURE_REASON_MAX_LENGTH,
    JUSTIFICATION_MAX_LENGTH,
    AccessAction,
    AuditLogEntry,
)
from medaccess.models.base import IDENTITY_LENGTH, Base, UTCDateTime, utcnow
from medaccess.models.patient import NAME_MAX_LENGTH, Patient, Role
from medaccess.models.record import (
    DATA_HASH_MAX_LENGTH,
    RECORD_ID_MAX_LENGTH,
    RECORD_METADATA_MAX_LENGTH,
    STORAGE_LOCATOR_MAX_LENGTH,
    MedicalRecord,
    RecordType,
)

__all__ = [
    # Base
    "Base",
    "UTCDateTime",
    "utcnow",
    # Entities
    "Patient",
    "MedicalRecord",
    "AccessGrant",
    "AccessRequest",
    "AuditLogEntry",
    # Enumerations
    "Role",
    "RecordType",
    "RequestStatus",
    "AccessAction",
    # Limits
    "IDENTITY_LENGTH",
    "NAME_MAX_LENGTH",
    "RECORD_ID_MAX_LENGTH",
    "DATA_HASH_MAX_LENGTH",
    "STORAGE_LOCATOR_MAX_LENGTH",
    "RECORD_METADATA_MAX_LENGTH",
    "GRANT_REASON_MAX_LENGTH",
    "MAX_RECORD_TYPES",
    "REQUEST_REASON_MAX_LENGTH",
    "FAILURE_REASON_MAX_LENGTH",
    "JUSTIFICATION_MAX_LENGTH",
    "CLIENT_INFO_MAX_LENGTH",
    "AUDIT_METADATA_MAX_LENGTH",
]
