"""Authorization decisions.

``AuthorizationEngine`` is pure: it reads the patient, the record and the
grant it is handed and returns a decision. It performs no I/O, writes
nothing and raises nothing; callers look entities up, log the decision and
turn denials into errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Optional

from medaccess.errors import (
    AccessDeniedError,
    ErrorCode,
    ExpiredError,
    MedAccessError,
    StateConflictError,
)
from medaccess.models import AccessGrant, MedicalRecord, Patient, Role


class Capability(StrEnum):
    create = "create"
    modify = "modify"
    view = "view"


class DenialReason(StrEnum):
    patient_inactive = "patient_inactive"
    record_inactive = "record_inactive"
    no_grant = "no_grant"
    grant_inactive = "grant_inactive"
    grant_expired = "grant_expired"
    missing_permission = "missing_permission"
    record_type_not_allowed = "record_type_not_allowed"
    justification_required = "justification_required"


FAILURE_MESSAGES = {
    DenialReason.patient_inactive: "Patient account is inactive",
    DenialReason.record_inactive: "Record is inactive or archived",
    DenialReason.no_grant: "No access grant found",
    DenialReason.grant_inactive: "Access grant is not active",
    DenialReason.grant_expired: "Access grant has expired",
    DenialReason.missing_permission: "No {capability} permission",
    DenialReason.record_type_not_allowed: "Record type not allowed",
    DenialReason.justification_required: "Emergency access requires justification",
}


def is_grant_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    """A grant with no expiration never expires; otherwise it lapses after ``expires_at``."""
    return expires_at is not None and now > expires_at


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of one authorization check."""

    authorized: bool
    role: Optional[Role] = None
    reason: Optional[DenialReason] = None
    capability: Optional[Capability] = None
    is_emergency: bool = False
    justification: Optional[str] = None

    @property
    def failure_reason(self) -> Optional[str]:
        if self.reason is None:
            return None
        template = FAILURE_MESSAGES[self.reason]
        return template.format(capability=self.capability.value if self.capability else "")

    @classmethod
    def allow(cls, role: Role, capability: Optional[Capability] = None) -> "AuthorizationDecision":
        return cls(authorized=True, role=role, capability=capability)

    @classmethod
    def deny(
        cls,
        reason: DenialReason,
        capability: Optional[Capability] = None,
        role: Optional[Role] = None,
    ) -> "AuthorizationDecision":
        return cls(authorized=False, reason=reason, capability=capability, role=role)


_CAPABILITY_FLAGS = {
    Capability.create: "can_create",
    Capability.modify: "can_modify",
    Capability.view: "can_view",
}


class AuthorizationEngine:
    """Decides whether an actor may act on a patient's data."""

    def authorize(
        self,
        actor: str,
        patient: Patient,
        grant: Optional[AccessGrant],
        capability: Capability,
        now: datetime,
        record: Optional[MedicalRecord] = None,
        record_type: Optional[str] = None,
    ) -> AuthorizationDecision:
        """Evaluate the ordered access rules.

        ``grant`` is whatever is stored under (patient, actor), or None.
        ``record_type`` stands in for ``record`` when the record does not
        exist yet (creation).

        For a denial the returned ``role`` is the role of the grant that was
        presented, if any, so the audit entry can say who tried.
        """
        if not patient.is_active:
            return AuthorizationDecision.deny(DenialReason.patient_inactive, capability)
        if record is not None and not record.is_active:
            return AuthorizationDecision.deny(DenialReason.record_inactive, capability)

        if actor == patient.owner:
            return AuthorizationDecision.allow(Role.patient, capability)

        if grant is None:
            return AuthorizationDecision.deny(DenialReason.no_grant, capability)
        grant_role = Role(grant.role)
        if not grant.is_active:
            return AuthorizationDecision.deny(DenialReason.grant_inactive, capability, grant_role)
        if is_grant_expired(grant.expires_at, now):
            return AuthorizationDecision.deny(DenialReason.grant_expired, capability, grant_role)
        if not getattr(grant, _CAPABILITY_FLAGS[capability]):
            return AuthorizationDecision.deny(
                DenialReason.missing_permission, capability, grant_role
            )

        checked_type = record.record_type if record is not None else record_type
        if checked_type is not None and not grant.allows_record_type(checked_type):
            return AuthorizationDecision.deny(
                DenialReason.record_type_not_allowed, capability, grant_role
            )
        return AuthorizationDecision.allow(grant_role, capability)

    def authorize_emergency(
        self,
        actor: str,
        patient: Patient,
        record: MedicalRecord,
        justification: Optional[str],
    ) -> AuthorizationDecision:
        """Break-glass path: only the justification and the active flags matter.

        The caller's claim to be an emergency responder is not verified
        against any credential.
        """
        if not justification or not justification.strip():
            return AuthorizationDecision.deny(DenialReason.justification_required, Capability.view)
        if not patient.is_active:
            decision = AuthorizationDecision.deny(DenialReason.patient_inactive, Capability.view)
        elif not record.is_active:
            decision = AuthorizationDecision.deny(DenialReason.record_inactive, Capability.view)
        else:
            decision = AuthorizationDecision.allow(Role.emergency_responder, Capability.view)
        return AuthorizationDecision(
            authorized=decision.authorized,
            role=decision.role,
            reason=decision.reason,
            capability=decision.capability,
            is_emergency=True,
            justification=justification,
        )


_DENIAL_ERRORS: dict[DenialReason, tuple[type[MedAccessError], ErrorCode]] = {
    DenialReason.patient_inactive: (StateConflictError, ErrorCode.patient_inactive),
    DenialReason.record_inactive: (StateConflictError, ErrorCode.record_inactive),
    DenialReason.no_grant: (AccessDeniedError, ErrorCode.access_denied),
    DenialReason.grant_inactive: (AccessDeniedError, ErrorCode.access_grant_revoked),
    DenialReason.grant_expired: (ExpiredError, ErrorCode.access_grant_expired),
    DenialReason.missing_permission: (AccessDeniedError, ErrorCode.access_denied),
    DenialReason.record_type_not_allowed: (AccessDeniedError, ErrorCode.access_denied),
}


def denial_error(decision: AuthorizationDecision) -> MedAccessError:
    """Error to raise for a denial on a non-audited mutation path."""
    if decision.authorized or decision.reason is None:
        raise ValueError("denial_error() needs a denied decision")
    error_class, code = _DENIAL_ERRORS.get(
        decision.reason, (AccessDeniedError, ErrorCode.access_denied)
    )
    return error_class(code, detail=decision.failure_reason)
