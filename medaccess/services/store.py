"""Keyed store for the access-control entities.

Every entity lives under a deterministic composite key. Creation goes
through ``insert_unique``, which is the only way the one-grant-per-pair,
one-request-per-pair and one-record-id-per-patient rules are enforced.
"""

from __future__ import annotations

from typing import Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.errors import ErrorCode, NotFoundError, StateConflictError
from medaccess.models import (
    AccessGrant,
    AccessRequest,
    AuditLogEntry,
    Base,
    MedicalRecord,
    Patient,
)

T = TypeVar("T", bound=Base)


class AccessStore:
    """Entity store backed by SQLAlchemy."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_patient(self, owner: str) -> Optional[Patient]:
        return await self.db.get(Patient, owner)

    async def require_patient(self, owner: str) -> Patient:
        patient = await self.get_patient(owner)
        if patient is None:
            raise NotFoundError(ErrorCode.patient_not_found, detail=owner)
        return patient

    async def get_record(self, patient_owner: str, record_id: str) -> Optional[MedicalRecord]:
        return await self.db.get(MedicalRecord, (patient_owner, record_id))

    async def require_record(self, patient_owner: str, record_id: str) -> MedicalRecord:
        record = await self.get_record(patient_owner, record_id)
        if record is None:
            raise NotFoundError(ErrorCode.record_not_found, detail=record_id)
        return record

    async def get_grant(self, patient_owner: str, provider: str) -> Optional[AccessGrant]:
        return await self.db.get(AccessGrant, (patient_owner, provider))

    async def require_grant(self, patient_owner: str, provider: str) -> AccessGrant:
        grant = await self.get_grant(patient_owner, provider)
        if grant is None:
            raise NotFoundError(ErrorCode.access_grant_not_found, detail=provider)
        return grant

    async def get_request(self, patient_owner: str, requester: str) -> Optional[AccessRequest]:
        return await self.db.get(AccessRequest, (patient_owner, requester))

    async def require_request(self, patient_owner: str, requester: str) -> AccessRequest:
        request = await self.get_request(patient_owner, requester)
        if request is None:
            raise NotFoundError(ErrorCode.access_request_not_found, detail=requester)
        return request

    async def exists(self, model: type[Base], key) -> bool:
        return await self.db.get(model, key) is not None

    async def insert_unique(self, entity: T, key, conflict: ErrorCode) -> T:
        """Insert ``entity`` unless something already lives under ``key``.

        The identity-map lookup gives a clean error for the common case; the
        primary-key constraint catches a concurrent writer that got there
        first.
        """
        if await self.exists(type(entity), key):
            raise StateConflictError(conflict)
        self.db.add(entity)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise StateConflictError(conflict) from exc
        return entity

    async def next_audit_sequence(
        self,
        patient_owner: str,
        record_id: Optional[str],
        accessor: str,
        action: str,
    ) -> int:
        query = select(func.max(AuditLogEntry.sequence)).where(
            AuditLogEntry.patient_owner == patient_owner,
            AuditLogEntry.accessor == accessor,
            AuditLogEntry.action == action,
        )
        if record_id is None:
            query = query.where(AuditLogEntry.record_id.is_(None))
        else:
            query = query.where(AuditLogEntry.record_id == record_id)
        result = await self.db.execute(query)
        current = result.scalar_one_or_none()
        return 0 if current is None else current + 1

    async def list_records(
        self,
        patient_owner: str,
        include_inactive: bool = False,
        record_type: Optional[str] = None,
    ) -> list[MedicalRecord]:
        query = select(MedicalRecord).where(MedicalRecord.patient_owner == patient_owner)
        if not include_inactive:
            query = query.where(MedicalRecord.is_active.is_(True))
        if record_type:
            query = query.where(MedicalRecord.record_type == record_type)
        query = query.order_by(MedicalRecord.created_at.desc(), MedicalRecord.record_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_grants(
        self,
        patient_owner: Optional[str] = None,
        provider: Optional[str] = None,
        active_only: bool = False,
    ) -> list[AccessGrant]:
        query = select(AccessGrant)
        if patient_owner is not None:
            query = query.where(AccessGrant.patient_owner == patient_owner)
        if provider is not None:
            query = query.where(AccessGrant.provider == provider)
        if active_only:
            query = query.where(AccessGrant.is_active.is_(True))
        query = query.order_by(AccessGrant.granted_at.desc(), AccessGrant.provider)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_requests(
        self,
        patient_owner: Optional[str] = None,
        requester: Optional[str] = None,
    ) -> list[AccessRequest]:
        query = select(AccessRequest)
        if patient_owner is not None:
            query = query.where(AccessRequest.patient_owner == patient_owner)
        if requester is not None:
            query = query.where(AccessRequest.requester == requester)
        query = query.order_by(AccessRequest.requested_at.desc(), AccessRequest.requester)
        result = await self.db.execute(query)
        return list(result.scalars().all())
