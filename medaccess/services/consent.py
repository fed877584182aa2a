"""Consent workflow: provider-initiated access requests and the patient's answer."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from medaccess.config import settings
from medaccess.errors import (
    AlreadyResolvedError,
    ErrorCode,
    ExpiredError,
    MedAccessError,
    ResourceExhaustedError,
    StateConflictError,
    UnauthorizedError,
    ValidationError,
)
from medaccess.models import (
    GRANT_REASON_MAX_LENGTH,
    REQUEST_REASON_MAX_LENGTH,
    AccessGrant,
    AccessRequest,
    RecordType,
    RequestStatus,
    Role,
)
from medaccess.services.base import AccessService
from medaccess.services.events import (
    AccessRequestApproved,
    AccessRequestCreated,
    AccessRequestDenied,
)
from medaccess.services.grants import GrantLedger
from medaccess.services.validation import (
    check_future,
    check_identity,
    check_length,
    ensure_aware,
    parse_record_types,
    parse_role,
)

logger = logging.getLogger(__name__)


@dataclass
class BatchApprovalResult:
    requester: str
    grant: Optional[AccessGrant] = None
    error: Optional[MedAccessError] = None

    @property
    def approved(self) -> bool:
        return self.error is None


@dataclass
class BatchApproval:
    """Per-requester outcome of ``ConsentWorkflow.batch_approve``."""

    results: list[BatchApprovalResult] = field(default_factory=list)

    @property
    def approved(self) -> int:
        return sum(1 for result in self.results if result.approved)

    @property
    def failed(self) -> int:
        return len(self.results) - self.approved


class ConsentWorkflow(AccessService):
    """Request -> approve/deny.

    A request moves from pending to approved or denied exactly once. Expiry
    is never written back; it is evaluated against ``now`` whenever the
    request is answered or read.
    """

    async def request(
        self,
        actor: str,
        patient_owner: str,
        role: Role | str,
        reason: Optional[str] = None,
        custom_expiration: Optional[datetime] = None,
        *,
        now: datetime | None = None,
    ) -> AccessRequest:
        now = self.now(now)
        check_identity(actor)
        if actor == patient_owner:
            raise ValidationError(ErrorCode.cannot_request_access_to_self)
        role = parse_role(role)
        check_length(reason, REQUEST_REASON_MAX_LENGTH, ErrorCode.reason_too_long)
        if custom_expiration is not None:
            expires_at = ensure_aware(custom_expiration)
            check_future(expires_at, now)
            if expires_at > now + timedelta(seconds=settings.access_request_max_ttl_seconds):
                raise ValidationError(ErrorCode.expiration_too_long)
        else:
            expires_at = now + timedelta(seconds=settings.access_request_default_ttl_seconds)

        patient = await self.store.require_patient(patient_owner)
        if not patient.is_active:
            raise StateConflictError(ErrorCode.patient_inactive)

        access_request = AccessRequest(
            patient_owner=patient.owner,
            requester=actor,
            requester_role=role.value,
            reason=reason,
            requested_at=now,
            expires_at=expires_at,
            status=RequestStatus.pending.value,
        )
        await self.store.insert_unique(
            access_request, (patient.owner, actor), ErrorCode.request_already_exists
        )
        self.emit(
            AccessRequestCreated(
                patient=patient.owner,
                timestamp=now,
                requester=actor,
                role=role.value,
                reason=reason,
                expires_at=expires_at,
            )
        )
        logger.info(
            "Access request created: %s (%s) -> patient %s, expires %s",
            actor,
            role.value,
            patient.owner,
            expires_at.isoformat(),
        )
        return access_request

    async def _pending_request(
        self,
        actor: str,
        requester: str,
        patient_owner: Optional[str],
        now: datetime,
    ) -> AccessRequest:
        """Load a request the actor may answer, checking the shared preconditions."""
        owner = patient_owner or actor
        access_request = await self.store.require_request(owner, requester)
        patient = await self.store.require_patient(access_request.patient_owner)
        if not patient.is_active:
            raise StateConflictError(ErrorCode.patient_inactive)
        if access_request.patient_owner != actor:
            raise UnauthorizedError(ErrorCode.unauthorized)
        if access_request.status != RequestStatus.pending.value:
            raise AlreadyResolvedError(ErrorCode.request_already_responded)
        if access_request.is_expired(now):
            raise ExpiredError(ErrorCode.request_expired)
        return access_request

    async def approve(
        self,
        actor: str,
        requester: str,
        allowed_record_types: Sequence[RecordType | str],
        grant_expiration: Optional[datetime] = None,
        can_create: bool = False,
        can_modify: bool = False,
        can_view: bool = False,
        *,
        patient_owner: Optional[str] = None,
        now: datetime | None = None,
    ) -> AccessGrant:
        """Approve a pending request and create the grant it asked for.

        The grant gets the requester's identity and requested role. Both
        writes happen in the caller's unit of work.
        """
        now = self.now(now)
        record_types = parse_record_types(allowed_record_types)
        check_future(grant_expiration, now)

        access_request = await self._pending_request(actor, requester, patient_owner, now)
        if await self.store.get_grant(access_request.patient_owner, requester) is not None:
            raise StateConflictError(ErrorCode.grant_already_exists, detail=requester)

        patient = await self.store.require_patient(actor)
        role = Role(access_request.requester_role)
        reason = access_request.reason
        if reason is not None:
            reason = reason[:GRANT_REASON_MAX_LENGTH]

        ledger = GrantLedger(self.db, clock=self.clock, engine=self.engine)
        grant = await ledger.issue_grant(
            patient,
            requester,
            role,
            record_types,
            ensure_aware(grant_expiration) if grant_expiration is not None else None,
            can_create,
            can_modify,
            can_view,
            reason,
            now,
        )

        access_request.status = RequestStatus.approved.value
        access_request.responded_by = actor
        access_request.responded_at = now
        self.emit(
            AccessRequestApproved(
                patient=patient.owner,
                timestamp=now,
                provider=requester,
                role=role.value,
            )
        )
        logger.info("Access request from %s approved by patient %s", requester, actor)
        return grant

    async def batch_approve(
        self,
        actor: str,
        requesters: Sequence[str],
        allowed_record_types: Sequence[RecordType | str],
        grant_expiration: Optional[datetime] = None,
        can_create: bool = False,
        can_modify: bool = False,
        can_view: bool = False,
        *,
        now: datetime | None = None,
    ) -> BatchApproval:
        """Approve several of the actor's pending requests with one scope.

        The scope is validated once for the whole batch. After that each
        requester is approved or rejected on its own and the outcome is
        reported per requester; a failed item leaves no partial writes.
        """
        now = self.now(now)
        if not requesters:
            raise ValidationError(ErrorCode.no_requests_specified)
        if len(requesters) > settings.batch_approve_max_requests:
            raise ResourceExhaustedError(
                ErrorCode.too_many_requests,
                detail=f"max {settings.batch_approve_max_requests}",
            )
        record_types = parse_record_types(allowed_record_types)
        check_future(grant_expiration, now)

        outcome = BatchApproval()
        for requester in requesters:
            try:
                grant = await self.approve(
                    actor,
                    requester,
                    record_types,
                    grant_expiration,
                    can_create,
                    can_modify,
                    can_view,
                    now=now,
                )
            except MedAccessError as exc:
                outcome.results.append(BatchApprovalResult(requester=requester, error=exc))
            else:
                outcome.results.append(BatchApprovalResult(requester=requester, grant=grant))
        logger.info(
            "Batch approval by patient %s: %d approved, %d failed",
            actor,
            outcome.approved,
            outcome.failed,
        )
        return outcome

    async def deny(
        self,
        actor: str,
        requester: str,
        reason: Optional[str] = None,
        *,
        patient_owner: Optional[str] = None,
        now: datetime | None = None,
    ) -> AccessRequest:
        now = self.now(now)
        check_length(reason, REQUEST_REASON_MAX_LENGTH, ErrorCode.reason_too_long)

        access_request = await self._pending_request(actor, requester, patient_owner, now)
        access_request.status = RequestStatus.denied.value
        access_request.responded_by = actor
        access_request.responded_at = now
        access_request.denial_reason = reason

        self.emit(
            AccessRequestDenied(
                patient=access_request.patient_owner,
                timestamp=now,
                requester=requester,
                reason=reason,
            )
        )
        logger.info("Access request from %s denied by patient %s", requester, actor)
        return access_request

    async def get(self, patient_owner: str, requester: str) -> AccessRequest:
        return await self.store.require_request(patient_owner, requester)

    async def list_requests(
        self,
        patient_owner: Optional[str] = None,
        requester: Optional[str] = None,
        status: Optional[RequestStatus | str] = None,
        *,
        now: datetime | None = None,
    ) -> list[AccessRequest]:
        """List requests, filtering on the status a reader would see at ``now``."""
        now = self.now(now)
        requests = await self.store.list_requests(patient_owner=patient_owner, requester=requester)
        if status is None:
            return requests
        wanted = RequestStatus(status)
        return [r for r in requests if r.effective_status(now) == wanted]
