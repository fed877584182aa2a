"""Grant ledger: direct grants, batch grants and revocation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from medaccess.config import settings
from medaccess.errors import (
    AlreadyResolvedError,
    ErrorCode,
    ResourceExhaustedError,
    StateConflictError,
    UnauthorizedError,
    ValidationError,
)
from medaccess.models import (
    GRANT_REASON_MAX_LENGTH,
    AccessAction,
    AccessGrant,
    Patient,
    RecordType,
    Role,
)
from medaccess.services.base import AccessService
from medaccess.services.events import AccessGranted, AccessRevoked, BatchAccessGranted
from medaccess.services.validation import (
    check_future,
    check_identity,
    check_length,
    checked_increment,
    ensure_aware,
    parse_record_types,
    parse_role,
)

logger = logging.getLogger(__name__)


class GrantLedger(AccessService):
    """Issues and revokes access grants on behalf of the patient."""

    async def _active_patient(self, actor: str) -> Patient:
        patient = await self.store.require_patient(actor)
        if not patient.is_active:
            raise StateConflictError(ErrorCode.patient_inactive)
        return patient

    async def issue_grant(
        self,
        patient: Patient,
        provider: str,
        role: Role,
        record_types: list[RecordType],
        expires_at: Optional[datetime],
        can_create: bool,
        can_modify: bool,
        can_view: bool,
        reason: Optional[str],
        now: datetime,
        *,
        emit: bool = True,
    ) -> AccessGrant:
        """Create one grant, bump the patient's counter and audit it.

        Callers have already validated their input; the slot check happens
        here, inside ``insert_unique``.
        """
        grant_count = checked_increment(patient.access_grant_count, "access_grant_count")
        grant = AccessGrant(
            patient_owner=patient.owner,
            provider=provider,
            role=role.value,
            granted_at=now,
            expires_at=expires_at,
            is_active=True,
            can_create=can_create,
            can_modify=can_modify,
            can_view=can_view,
            reason=reason,
        )
        grant.record_types = record_types
        await self.store.insert_unique(
            grant, (patient.owner, provider), ErrorCode.grant_already_exists
        )
        patient.access_grant_count = grant_count
        patient.updated_at = now

        await self.audit.record(
            patient=patient.owner,
            accessor=patient.owner,
            accessor_role=Role.patient,
            action=AccessAction.grant_access,
            timestamp=now,
            success=True,
            metadata=f"Granted {role.value} access to {provider}",
        )
        if emit:
            self.emit(
                AccessGranted(
                    patient=patient.owner,
                    timestamp=now,
                    provider=provider,
                    role=role.value,
                    record_types=tuple(t.value for t in record_types),
                )
            )
        logger.info(
            "Access granted: patient %s -> %s (%s) types=%s",
            patient.owner,
            provider,
            role.value,
            grant.allowed_record_types,
        )
        return grant

    async def grant_direct(
        self,
        actor: str,
        provider: str,
        role: Role | str,
        allowed_record_types: Sequence[RecordType | str],
        expires_at: Optional[datetime] = None,
        can_create: bool = False,
        can_modify: bool = False,
        can_view: bool = False,
        reason: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> AccessGrant:
        now = self.now(now)
        check_identity(provider)
        if provider == actor:
            raise ValidationError(ErrorCode.cannot_grant_access_to_self)
        role = parse_role(role)
        record_types = parse_record_types(allowed_record_types)
        if expires_at is not None:
            expires_at = ensure_aware(expires_at)
        check_future(expires_at, now)
        check_length(reason, GRANT_REASON_MAX_LENGTH, ErrorCode.reason_too_long)

        patient = await self._active_patient(actor)
        return await self.issue_grant(
            patient,
            provider,
            role,
            record_types,
            expires_at,
            can_create,
            can_modify,
            can_view,
            reason,
            now,
        )

    async def batch_grant(
        self,
        actor: str,
        providers: Sequence[str],
        roles: Sequence[Role | str],
        allowed_record_types: Sequence[RecordType | str],
        expires_at: Optional[datetime] = None,
        can_create: bool = False,
        can_modify: bool = False,
        can_view: bool = False,
        reason: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> list[AccessGrant]:
        """Grant the same scope to several providers at once.

        All or nothing: every slot is checked before the first grant is
        written, and a failure part-way leaves the caller's unit of work to
        roll back whatever was added.
        """
        now = self.now(now)
        providers = list(providers)
        if not providers:
            raise ValidationError(ErrorCode.no_providers_specified)
        if len(providers) > settings.batch_grant_max_providers:
            raise ResourceExhaustedError(
                ErrorCode.too_many_providers,
                detail=f"max {settings.batch_grant_max_providers}",
            )
        if len(providers) != len(roles):
            raise ValidationError(ErrorCode.provider_role_mismatch)

        parsed_roles = [parse_role(role) for role in roles]
        seen: set[str] = set()
        for provider in providers:
            check_identity(provider)
            if provider == actor:
                raise ValidationError(ErrorCode.cannot_grant_access_to_self)
            if provider in seen:
                raise ValidationError(ErrorCode.duplicate_provider, detail=provider)
            seen.add(provider)
        record_types = parse_record_types(allowed_record_types)
        if expires_at is not None:
            expires_at = ensure_aware(expires_at)
        check_future(expires_at, now)
        check_length(reason, GRANT_REASON_MAX_LENGTH, ErrorCode.reason_too_long)

        patient = await self._active_patient(actor)
        for provider in providers:
            if await self.store.get_grant(patient.owner, provider) is not None:
                raise StateConflictError(ErrorCode.grant_already_exists, detail=provider)

        grants = [
            await self.issue_grant(
                patient,
                provider,
                role,
                record_types,
                expires_at,
                can_create,
                can_modify,
                can_view,
                reason,
                now,
                emit=False,
            )
            for provider, role in zip(providers, parsed_roles)
        ]
        self.emit(
            BatchAccessGranted(
                patient=patient.owner,
                timestamp=now,
                providers=tuple(providers),
                roles=tuple(role.value for role in parsed_roles),
                record_types=tuple(t.value for t in record_types),
                granted_by=actor,
            )
        )
        logger.info("Batch access granted by %s to %d providers", actor, len(grants))
        return grants

    async def revoke(
        self,
        actor: str,
        provider: str,
        *,
        patient_owner: Optional[str] = None,
        now: datetime | None = None,
    ) -> AccessGrant:
        """Revoke the grant stored under (``patient_owner``, ``provider``).

        ``patient_owner`` defaults to the actor. Naming someone else's grant
        fails with ``cannot_revoke_grant``.
        """
        now = self.now(now)
        owner = patient_owner or actor
        grant = await self.store.require_grant(owner, provider)
        if grant.patient_owner != actor:
            raise UnauthorizedError(ErrorCode.cannot_revoke_grant)
        patient = await self.store.require_patient(actor)
        if not grant.is_active:
            raise AlreadyResolvedError(ErrorCode.access_grant_revoked)

        grant.is_active = False
        grant.revoked_by = actor
        grant.revoked_at = now
        patient.updated_at = now

        await self.audit.record(
            patient=patient.owner,
            accessor=actor,
            accessor_role=Role.patient,
            action=AccessAction.revoke_access,
            timestamp=now,
            success=True,
            metadata=f"Revoked access for {provider}",
        )
        self.emit(
            AccessRevoked(
                patient=patient.owner,
                timestamp=now,
                provider=provider,
                revoked_by=actor,
            )
        )
        logger.info("Access revoked: patient %s -> %s", patient.owner, provider)
        return grant

    async def get(self, patient_owner: str, provider: str) -> AccessGrant:
        return await self.store.require_grant(patient_owner, provider)

    async def list_grants(
        self,
        patient_owner: str,
        active_only: bool = False,
    ) -> list[AccessGrant]:
        await self.store.require_patient(patient_owner)
        return await self.store.list_grants(patient_owner=patient_owner, active_only=active_only)
