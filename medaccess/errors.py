"""Domain errors raised by the access-control services.

Each error carries a stable machine-readable ``code`` and belongs to one
category class. The HTTP layer maps the category onto a status code; the
services never import anything from FastAPI.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from medaccess.services.authorization import AuthorizationDecision


class ErrorCode(StrEnum):
    # Lookups
    patient_not_found = "patient_not_found"
    record_not_found = "record_not_found"
    access_grant_not_found = "access_grant_not_found"
    access_request_not_found = "access_request_not_found"
    audit_entry_not_found = "audit_entry_not_found"
    # State
    patient_inactive = "patient_inactive"
    patient_already_active = "patient_already_active"
    patient_already_exists = "patient_already_exists"
    record_inactive = "record_inactive"
    record_already_exists = "record_already_exists"
    grant_already_exists = "grant_already_exists"
    request_already_exists = "request_already_exists"
    immutable_audit_entry = "immutable_audit_entry"
    # Relationship
    unauthorized = "unauthorized"
    cannot_revoke_grant = "cannot_revoke_grant"
    # Grants
    access_denied = "access_denied"
    access_grant_revoked = "access_grant_revoked"
    access_grant_expired = "access_grant_expired"
    request_expired = "request_expired"
    request_already_responded = "request_already_responded"
    # Input
    invalid_role = "invalid_role"
    invalid_record_type = "invalid_record_type"
    invalid_timestamp = "invalid_timestamp"
    invalid_timeline_interval = "invalid_timeline_interval"
    invalid_expiration_time = "invalid_expiration_time"
    expiration_too_long = "expiration_too_long"
    name_too_long = "name_too_long"
    identity_invalid = "identity_invalid"
    record_id_required = "record_id_required"
    record_id_too_long = "record_id_too_long"
    data_hash_too_long = "data_hash_too_long"
    storage_locator_too_long = "storage_locator_too_long"
    metadata_too_long = "metadata_too_long"
    reason_too_long = "reason_too_long"
    client_info_too_long = "client_info_too_long"
    update_note_required = "update_note_required"
    update_note_too_long = "update_note_too_long"
    deletion_reason_required = "deletion_reason_required"
    deletion_reason_too_long = "deletion_reason_too_long"
    emergency_justification_required = "emergency_justification_required"
    emergency_justification_too_long = "emergency_justification_too_long"
    cannot_grant_access_to_self = "cannot_grant_access_to_self"
    cannot_request_access_to_self = "cannot_request_access_to_self"
    no_record_types_specified = "no_record_types_specified"
    no_providers_specified = "no_providers_specified"
    no_requests_specified = "no_requests_specified"
    provider_role_mismatch = "provider_role_mismatch"
    duplicate_provider = "duplicate_provider"
    counter_overflow = "counter_overflow"
    # Caps
    too_many_record_types = "too_many_record_types"
    too_many_providers = "too_many_providers"
    too_many_requests = "too_many_requests"


MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.patient_not_found: "Patient account not found",
    ErrorCode.record_not_found: "Medical record not found",
    ErrorCode.access_grant_not_found: "Access grant not found",
    ErrorCode.access_request_not_found: "Access request not found",
    ErrorCode.audit_entry_not_found: "Audit entry not found",
    ErrorCode.patient_inactive: "Patient account is inactive",
    ErrorCode.patient_already_active: "Patient account is already active",
    ErrorCode.patient_already_exists: "Patient account already exists",
    ErrorCode.record_inactive: "Record is inactive or archived",
    ErrorCode.record_already_exists: "A record with this id already exists for the patient",
    ErrorCode.grant_already_exists: "An access grant already exists for this provider",
    ErrorCode.request_already_exists: "An access request already exists for this requester",
    ErrorCode.immutable_audit_entry: "Audit log entries cannot be changed or removed",
    ErrorCode.unauthorized: "Unauthorized: You don't have permission to perform this action",
    ErrorCode.cannot_revoke_grant: "Cannot revoke access grant that doesn't belong to you",
    ErrorCode.access_denied: "Access denied: No valid access grant exists",
    ErrorCode.access_grant_revoked: "Access grant is already revoked",
    ErrorCode.access_grant_expired: "Access grant has expired",
    ErrorCode.request_expired: "Access request has expired",
    ErrorCode.request_already_responded: "Access request has already been responded to",
    ErrorCode.invalid_role: "Invalid role for this operation",
    ErrorCode.invalid_record_type: "Invalid record type",
    ErrorCode.invalid_timestamp: "Invalid timestamp",
    ErrorCode.invalid_timeline_interval: "Timeline interval must be hour, day or month",
    ErrorCode.invalid_expiration_time: "Invalid expiration time (must be in the future)",
    ErrorCode.expiration_too_long: "Expiration time is too long (max 7 days from now)",
    ErrorCode.name_too_long: "Name is too long (max 50 characters)",
    ErrorCode.identity_invalid: "Identity must be 1 to 64 characters",
    ErrorCode.record_id_required: "Record ID is required",
    ErrorCode.record_id_too_long: "Record ID is too long (max 64 characters)",
    ErrorCode.data_hash_too_long: "Data hash is too long (max 64 characters)",
    ErrorCode.storage_locator_too_long: "Storage locator is too long (max 100 characters)",
    ErrorCode.metadata_too_long: "Metadata is too long (max 200 characters)",
    ErrorCode.reason_too_long: "Reason is too long",
    ErrorCode.client_info_too_long: "Client info is too long (max 50 characters)",
    ErrorCode.update_note_required: "Update note is required",
    ErrorCode.update_note_too_long: "Update note is too long (max 500 characters)",
    ErrorCode.deletion_reason_required: "Deletion reason is required",
    ErrorCode.deletion_reason_too_long: "Deletion reason is too long (max 300 characters)",
    ErrorCode.emergency_justification_required: "Emergency access requires justification",
    ErrorCode.emergency_justification_too_long: "Emergency justification is too long (max 200 characters)",
    ErrorCode.cannot_grant_access_to_self: "Cannot grant access to yourself",
    ErrorCode.cannot_request_access_to_self: "Cannot request access to yourself",
    ErrorCode.no_record_types_specified: "At least one record type must be specified",
    ErrorCode.no_providers_specified: "No providers specified for batch operation",
    ErrorCode.no_requests_specified: "No access requests specified for batch operation",
    ErrorCode.provider_role_mismatch: "Provider count and role count must match",
    ErrorCode.duplicate_provider: "A provider appears more than once in the batch",
    ErrorCode.counter_overflow: "Counter overflow",
    ErrorCode.too_many_record_types: "Maximum number of record types exceeded",
    ErrorCode.too_many_providers: "Too many providers (max 10 per batch)",
    ErrorCode.too_many_requests: "Too many access requests (max 10 per batch)",
}


class MedAccessError(Exception):
    """Base class for every error raised by the access-control core."""

    category = "error"
    status_code = 500

    def __init__(self, code: ErrorCode, detail: str | None = None):
        self.code = code
        self.detail = detail
        self.message = MESSAGES.get(code, code.value)
        if detail:
            self.message = f"{self.message}: {detail}"
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code.value,
            "category": self.category,
            "status_code": self.status_code,
        }


class NotFoundError(MedAccessError):
    category = "not_found"
    status_code = 404


class StateConflictError(MedAccessError):
    category = "state_conflict"
    status_code = 409


class UnauthorizedError(MedAccessError):
    category = "unauthorized"
    status_code = 403


class AccessDeniedError(MedAccessError):
    """Raised when an actor holds no usable grant.

    On the audited read paths the decision that caused the denial is attached,
    together with the fields of the audit entry that records it. The owner of
    the unit of work stores that entry with ``record_denial`` after rolling
    back its own changes.
    """

    category = "access_denied"
    status_code = 403

    def __init__(
        self,
        code: ErrorCode = ErrorCode.access_denied,
        detail: str | None = None,
        decision: "AuthorizationDecision | None" = None,
        audit_fields: dict[str, Any] | None = None,
    ):
        super().__init__(code, detail)
        self.decision = decision
        self.audit_fields = audit_fields


class ExpiredError(MedAccessError):
    category = "expired"
    status_code = 410


class AlreadyResolvedError(MedAccessError):
    category = "already_resolved"
    status_code = 409


class ValidationError(MedAccessError):
    category = "validation"
    status_code = 400


class ResourceExhaustedError(MedAccessError):
    category = "resource_exhausted"
    status_code = 413
