"""Access API: provider requests, the patient's answer, and direct grants."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.api.deps import (
    get_actor,
    get_consent_workflow,
    get_db,
    get_grant_ledger,
)
from medaccess.models import RequestStatus
from medaccess.schemas import (
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
from medaccess.services import ConsentWorkflow, GrantLedger

router = APIRouter(prefix="/patients", tags=["Access"])


# ----- Access requests -----


@router.post(
    "/{owner}/access-requests",
    response_model=AccessRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_access_request(
    owner: str,
    data: AccessRequestCreate,
    db: AsyncSession = Depends(get_db),
    consent: ConsentWorkflow = Depends(get_consent_workflow),
    actor: str = Depends(get_actor),
):
    """Provider asks the patient for access."""
    access_request = await consent.request(
        actor, owner, data.role, data.reason, data.custom_expiration
    )
    await db.commit()
    return AccessRequestResponse.at(access_request, consent.now())


@router.get("/me/access-requests", response_model=list[AccessRequestResponse])
async def list_access_requests(
    status_filter: RequestStatus | None = Query(
        None, alias="status", description="Filter: pending, approved, denied, expired"
    ),
    consent: ConsentWorkflow = Depends(get_consent_workflow),
    actor: str = Depends(get_actor),
):
    """Requests addressed to the caller's patient account."""
    now = consent.now()
    requests = await consent.list_requests(patient_owner=actor, status=status_filter, now=now)
    return [AccessRequestResponse.at(r, now) for r in requests]


@router.get("/access-requests/outgoing", response_model=list[AccessRequestResponse])
async def list_outgoing_access_requests(
    status_filter: RequestStatus | None = Query(None, alias="status"),
    consent: ConsentWorkflow = Depends(get_consent_workflow),
    actor: str = Depends(get_actor),
):
    """Requests the caller has sent as a provider, across all patients."""
    now = consent.now()
    requests = await consent.list_requests(requester=actor, status=status_filter, now=now)
    return [AccessRequestResponse.at(r, now) for r in requests]


@router.post("/me/access-requests/batch/approve", response_model=BatchApprovalResponse)
async def approve_access_requests_batch(
    data: BatchApproveRequest,
    db: AsyncSession = Depends(get_db),
    consent: ConsentWorkflow = Depends(get_consent_workflow),
    actor: str = Depends(get_actor),
):
    """Approve several requests with one scope; each requester succeeds or fails on its own."""
    outcome = await consent.batch_approve(
        actor,
        data.requesters,
        data.allowed_record_types,
        data.grant_expiration,
        data.can_create,
        data.can_modify,
        data.can_view,
    )
    await db.commit()
    return BatchApprovalResponse(
        approved=outcome.approved,
        failed=outcome.failed,
        results=[
            BatchApprovalItem(
                requester=result.requester,
                approved=result.approved,
                grant=GrantResponse.model_validate(result.grant) if result.grant else None,
                error_code=result.error.code.value if result.error else None,
                error_message=result.error.message if result.error else None,
            )
            for result in outcome.results
        ],
    )


@router.get("/me/access-requests/{requester}", response_model=AccessRequestResponse)
async def get_access_request(
    requester: str,
    consent: ConsentWorkflow = Depends(get_consent_workflow),
    actor: str = Depends(get_actor),
):
    access_request = await consent.get(actor, requester)
    return AccessRequestResponse.at(access_request, consent.now())


@router.post("/me/access-requests/{requester}/approve", response_model=GrantResponse)
async def approve_access_request(
    requester: str,
    data: AccessRequestApprove,
    db: AsyncSession = Depends(get_db),
    consent: ConsentWorkflow = Depends(get_consent_workflow),
    actor: str = Depends(get_actor),
):
    """Approve a pending request; the grant is created in the same transaction."""
    grant = await consent.approve(
        actor,
        requester,
        data.allowed_record_types,
        data.grant_expiration,
        data.can_create,
        data.can_modify,
        data.can_view,
    )
    await db.commit()
    return GrantResponse.model_validate(grant)


@router.post("/me/access-requests/{requester}/deny", response_model=AccessRequestResponse)
async def deny_access_request(
    requester: str,
    data: AccessRequestDeny,
    db: AsyncSession = Depends(get_db),
    consent: ConsentWorkflow = Depends(get_consent_workflow),
    actor: str = Depends(get_actor),
):
    access_request = await consent.deny(actor, requester, data.reason)
    await db.commit()
    return AccessRequestResponse.at(access_request, consent.now())


# ----- Grants -----


@router.post("/me/grants", response_model=GrantResponse, status_code=status.HTTP_201_CREATED)
async def create_grant(
    data: GrantCreate,
    db: AsyncSession = Depends(get_db),
    ledger: GrantLedger = Depends(get_grant_ledger),
    actor: str = Depends(get_actor),
):
    grant = await ledger.grant_direct(
        actor,
        data.provider,
        data.role,
        data.allowed_record_types,
        data.expires_at,
        data.can_create,
        data.can_modify,
        data.can_view,
        data.reason,
    )
    await db.commit()
    return GrantResponse.model_validate(grant)


@router.post(
    "/me/grants/batch",
    response_model=list[GrantResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_grants_batch(
    data: BatchGrantCreate,
    db: AsyncSession = Depends(get_db),
    ledger: GrantLedger = Depends(get_grant_ledger),
    actor: str = Depends(get_actor),
):
    """Grant one scope to up to 10 providers; either every grant is created or none."""
    grants = await ledger.batch_grant(
        actor,
        data.providers,
        data.roles,
        data.allowed_record_types,
        data.expires_at,
        data.can_create,
        data.can_modify,
        data.can_view,
        data.reason,
    )
    await db.commit()
    return [GrantResponse.model_validate(g) for g in grants]


@router.get("/me/grants", response_model=list[GrantResponse])
async def list_grants(
    active_only: bool = Query(False),
    ledger: GrantLedger = Depends(get_grant_ledger),
    actor: str = Depends(get_actor),
):
    grants = await ledger.list_grants(actor, active_only=active_only)
    return [GrantResponse.model_validate(g) for g in grants]


@router.get("/me/grants/{provider}", response_model=GrantResponse)
async def get_grant(
    provider: str,
    ledger: GrantLedger = Depends(get_grant_ledger),
    actor: str = Depends(get_actor),
):
    grant = await ledger.get(actor, provider)
    return GrantResponse.model_validate(grant)


@router.delete("/me/grants/{provider}", response_model=GrantResponse)
async def revoke_grant(
    provider: str,
    db: AsyncSession = Depends(get_db),
    ledger: GrantLedger = Depends(get_grant_ledger),
    actor: str = Depends(get_actor),
):
    """Revoke a grant. Revocation is permanent."""
    grant = await ledger.revoke(actor, provider)
    await db.commit()
    return GrantResponse.model_validate(grant)
