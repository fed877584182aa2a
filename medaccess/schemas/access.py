"""Pydantic schemas for access requests and access grants."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from medaccess.models import AccessRequest, RecordType, RequestStatus, Role

# ----- Access requests -----


class AccessRequestCreate(BaseModel):
    """A provider asks a patient for access."""

    role: Role
    reason: str | None = Field(None, description="Why access is needed (max 200)")
    custom_expiration: datetime | None = Field(
        None, description="When the request lapses; defaults to 2 days, at most 7 days ahead"
    )


class AccessRequestApprove(BaseModel):
    allowed_record_types: list[RecordType] = Field(..., description="1 to 7 record types")
    grant_expiration: datetime | None = None
    can_create: bool = False
    can_modify: bool = False
    can_view: bool = False


class AccessRequestDeny(BaseModel):
    reason: str | None = Field(None, description="Optional explanation (max 200)")


class AccessRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_owner: str
    requester: str
    requester_role: Role
    reason: str | None = None
    requested_at: datetime
    expires_at: datetime
    status: RequestStatus
    responded_by: str | None = None
    responded_at: datetime | None = None
    denial_reason: str | None = None

    @classmethod
    def at(cls, access_request: AccessRequest, now: datetime) -> "AccessRequestResponse":
        """Serialize with the status a reader sees at ``now``."""
        response = cls.model_validate(access_request)
        response.status = access_request.effective_status(now)
        return response


# ----- Access grants -----


class GrantScope(BaseModel):
    allowed_record_types: list[RecordType] = Field(..., description="1 to 7 record types")
    expires_at: datetime | None = None
    can_create: bool = False
    can_modify: bool = False
    can_view: bool = False
    reason: str | None = Field(None, description="Why access is granted (max 100)")


class GrantCreate(GrantScope):
    provider: str
    role: Role


class BatchGrantCreate(GrantScope):
    """Same scope for several providers; providers and roles pair up by position."""

    providers: list[str]
    roles: list[Role]


class GrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    patient_owner: str
    provider: str
    role: Role
    record_types: list[RecordType]
    granted_at: datetime
    expires_at: datetime | None = None
    is_active: bool
    can_create: bool
    can_modify: bool
    can_view: bool
    reason: str | None = None
    revoked_by: str | None = None
    revoked_at: datetime | None = None


class BatchApproveRequest(AccessRequestApprove):
    """One grant scope applied to several pending requests."""

    requesters: list[str] = Field(..., description="Up to 10 requesters")


class BatchApprovalItem(BaseModel):
    requester: str
    approved: bool
    grant: GrantResponse | None = None
    error_code: str | None = None
    error_message: str | None = None


class BatchApprovalResponse(BaseModel):
    approved: int
    failed: int
    results: list[BatchApprovalItem]
