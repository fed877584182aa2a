"""Record store: medical record metadata, its lifecycle and its audited reads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from medaccess.errors import (
    AccessDeniedError,
    ErrorCode,
    StateConflictError,
    UnauthorizedError,
    ValidationError,
)
from medaccess.models import (
    CLIENT_INFO_MAX_LENGTH,
    DATA_HASH_MAX_LENGTH,
    JUSTIFICATION_MAX_LENGTH,
    RECORD_ID_MAX_LENGTH,
    RECORD_METADATA_MAX_LENGTH,
    STORAGE_LOCATOR_MAX_LENGTH,
    AccessAction,
    AuditLogEntry,
    MedicalRecord,
    RecordType,
    Role,
)
from medaccess.services.authorization import (
    AuthorizationDecision,
    Capability,
    denial_error,
)
from medaccess.services.base import AccessService
from medaccess.services.events import (
    EmergencyAccessed,
    RecordCreated,
    RecordDeleted,
    RecordUpdated,
)
from medaccess.services.validation import check_identity, check_length, checked_increment, parse_record_type

logger = logging.getLogger(__name__)

UPDATE_NOTE_MAX_LENGTH = 500
DELETION_REASON_MAX_LENGTH = 300


@dataclass
class RecordAccess:
    """Result of a successful audited read."""

    record: MedicalRecord
    decision: AuthorizationDecision
    audit_entry: AuditLogEntry


class RecordStore(AccessService):
    """Creates, updates, soft-deletes and reads medical records."""

    async def create(
        self,
        actor: str,
        patient_owner: str,
        record_id: str,
        record_type: RecordType | str,
        data_hash: str,
        storage_locator: Optional[str] = None,
        metadata: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> MedicalRecord:
        now = self.now(now)
        check_length(
            record_id,
            RECORD_ID_MAX_LENGTH,
            ErrorCode.record_id_too_long,
            required=True,
            required_code=ErrorCode.record_id_required,
        )
        record_type = parse_record_type(record_type)
        check_length(data_hash, DATA_HASH_MAX_LENGTH, ErrorCode.data_hash_too_long)
        check_length(storage_locator, STORAGE_LOCATOR_MAX_LENGTH, ErrorCode.storage_locator_too_long)
        check_length(metadata, RECORD_METADATA_MAX_LENGTH, ErrorCode.metadata_too_long)

        patient = await self.store.require_patient(patient_owner)
        grant = None if actor == patient.owner else await self.store.get_grant(patient.owner, actor)
        decision = self.engine.authorize(
            actor,
            patient,
            grant,
            Capability.create,
            now,
            record_type=record_type,
        )
        if not decision.authorized:
            logger.warning(
                "Record creation denied for %s on patient %s: %s",
                actor,
                patient.owner,
                decision.failure_reason,
            )
            raise denial_error(decision)
        record_count = checked_increment(patient.record_count, "record_count")

        record = MedicalRecord(
            patient_owner=patient.owner,
            record_id=record_id,
            created_by=actor,
            record_type=record_type.value,
            data_hash=data_hash,
            storage_locator=storage_locator,
            metadata_=metadata,
            is_active=True,
            access_count=0,
            created_at=now,
            modified_at=now,
            last_accessed=now,
        )
        await self.store.insert_unique(
            record, (patient.owner, record_id), ErrorCode.record_already_exists
        )
        patient.record_count = record_count
        patient.updated_at = now

        await self.audit.record(
            patient=patient.owner,
            record_id=record_id,
            accessor=actor,
            accessor_role=decision.role,
            action=AccessAction.create,
            record_type=record_type.value,
            timestamp=now,
            success=True,
            metadata="Record created",
        )
        self.emit(
            RecordCreated(
                patient=patient.owner,
                timestamp=now,
                record_id=record_id,
                created_by=actor,
                record_type=record_type.value,
            )
        )
        logger.info("Medical record %s created for patient %s by %s", record_id, patient.owner, actor)
        return record

    async def list_for_patient(
        self,
        actor: str,
        include_inactive: bool = False,
        record_type: Optional[str] = None,
    ) -> list[MedicalRecord]:
        """The patient's own record index."""
        patient = await self.store.require_patient(actor)
        if record_type is not None:
            record_type = parse_record_type(record_type).value
        return await self.store.list_records(patient.owner, include_inactive, record_type)

    async def update(
        self,
        actor: str,
        patient_owner: str,
        record_id: str,
        update_note: str,
        new_data_hash: Optional[str] = None,
        new_metadata: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> MedicalRecord:
        now = self.now(now)
        check_length(
            update_note,
            UPDATE_NOTE_MAX_LENGTH,
            ErrorCode.update_note_too_long,
            required=True,
            required_code=ErrorCode.update_note_required,
        )
        check_length(new_data_hash, DATA_HASH_MAX_LENGTH, ErrorCode.data_hash_too_long)
        check_length(new_metadata, RECORD_METADATA_MAX_LENGTH, ErrorCode.metadata_too_long)

        patient = await self.store.require_patient(patient_owner)
        record = await self.store.require_record(patient.owner, record_id)
        if not patient.is_active:
            raise StateConflictError(ErrorCode.patient_inactive)
        if not record.is_active:
            raise StateConflictError(ErrorCode.record_inactive)

        grant = None if actor == patient.owner else await self.store.get_grant(patient.owner, actor)
        if actor != patient.owner and actor == record.created_by:
            # Creators keep modify rights on their own records without a grant.
            role = Role(grant.role) if grant is not None else Role.doctor
        else:
            decision = self.engine.authorize(
                actor, patient, grant, Capability.modify, now, record=record
            )
            if not decision.authorized:
                logger.warning(
                    "Record update denied for %s on %s/%s: %s",
                    actor,
                    patient.owner,
                    record_id,
                    decision.failure_reason,
                )
                raise denial_error(decision)
            role = decision.role

        if new_data_hash is not None:
            record.data_hash = new_data_hash
        if new_metadata is not None:
            record.metadata_ = new_metadata
        record.modified_at = now

        await self.audit.record(
            patient=patient.owner,
            record_id=record_id,
            accessor=actor,
            accessor_role=role,
            action=AccessAction.modify,
            record_type=record.record_type,
            timestamp=now,
            success=True,
            metadata=f"Update: {update_note}",
        )
        self.emit(
            RecordUpdated(
                patient=patient.owner,
                timestamp=now,
                record_id=record_id,
                updater=actor,
                update_note=update_note,
            )
        )
        logger.info("Record %s/%s updated by %s", patient.owner, record_id, actor)
        return record

    async def delete(
        self,
        actor: str,
        patient_owner: str,
        record_id: str,
        reason: str,
        *,
        now: datetime | None = None,
    ) -> MedicalRecord:
        """Soft delete. Grant holders cannot delete, whatever their flags."""
        now = self.now(now)
        check_length(
            reason,
            DELETION_REASON_MAX_LENGTH,
            ErrorCode.deletion_reason_too_long,
            required=True,
            required_code=ErrorCode.deletion_reason_required,
        )

        patient = await self.store.require_patient(patient_owner)
        record = await self.store.require_record(patient.owner, record_id)
        if not patient.is_active:
            raise StateConflictError(ErrorCode.patient_inactive)
        if not record.is_active:
            raise StateConflictError(ErrorCode.record_inactive)

        is_patient = actor == patient.owner
        if not is_patient and actor != record.created_by:
            raise UnauthorizedError(ErrorCode.unauthorized, detail="only the patient or the record's creator may delete it")

        record.is_active = False
        record.modified_at = now

        await self.audit.record(
            patient=patient.owner,
            record_id=record_id,
            accessor=actor,
            accessor_role=Role.patient if is_patient else Role.doctor,
            action=AccessAction.delete,
            record_type=record.record_type,
            timestamp=now,
            success=True,
            metadata=f"Deleted: {reason}",
        )
        self.emit(
            RecordDeleted(
                patient=patient.owner,
                timestamp=now,
                record_id=record_id,
                deleter=actor,
                reason=reason,
            )
        )
        logger.info("Record %s/%s soft-deleted by %s", patient.owner, record_id, actor)
        return record

    async def view(
        self,
        actor: str,
        patient_owner: str,
        record_id: str,
        client_info: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> RecordAccess:
        """Audited read.

        Exactly one ``view`` entry is produced per call. A successful read
        adds it to the session; a denied one hands it to the caller on the
        raised ``AccessDeniedError`` and leaves the session untouched.
        """
        now = self.now(now)
        check_identity(actor)
        check_length(client_info, CLIENT_INFO_MAX_LENGTH, ErrorCode.client_info_too_long)

        patient = await self.store.require_patient(patient_owner)
        record = await self.store.require_record(patient.owner, record_id)
        grant = None if actor == patient.owner else await self.store.get_grant(patient.owner, actor)
        decision = self.engine.authorize(
            actor, patient, grant, Capability.view, now, record=record
        )

        audit_fields = dict(
            patient=patient.owner,
            record_id=record_id,
            accessor=actor,
            accessor_role=decision.role,
            action=AccessAction.view,
            record_type=record.record_type,
            timestamp=now,
            success=decision.authorized,
            failure_reason=decision.failure_reason,
            client_info=client_info,
            metadata=f"Record access attempt by {decision.role.value if decision.role else 'unknown'}",
        )
        if not decision.authorized:
            raise self._denied(actor, patient.owner, record_id, decision, audit_fields)

        record.access_count = checked_increment(record.access_count, "access_count")
        record.last_accessed = now
        entry = await self.audit.record(**audit_fields)

        logger.info(
            "Record %s/%s accessed by %s (role: %s)",
            patient.owner,
            record_id,
            actor,
            decision.role,
        )
        return RecordAccess(record=record, decision=decision, audit_entry=entry)

    async def emergency_access(
        self,
        actor: str,
        patient_owner: str,
        record_id: str,
        justification: str,
        client_info: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> RecordAccess:
        """Break-glass read that bypasses grants entirely.

        No credential backs the emergency-responder role; the justification
        and the audit entry flagged ``is_emergency`` are the only controls.
        """
        now = self.now(now)
        check_identity(actor)
        if justification is None or not justification.strip():
            raise ValidationError(ErrorCode.emergency_justification_required)
        check_length(
            justification,
            JUSTIFICATION_MAX_LENGTH,
            ErrorCode.emergency_justification_too_long,
        )
        check_length(client_info, CLIENT_INFO_MAX_LENGTH, ErrorCode.client_info_too_long)

        patient = await self.store.require_patient(patient_owner)
        record = await self.store.require_record(patient.owner, record_id)
        decision = self.engine.authorize_emergency(actor, patient, record, justification)

        audit_fields = dict(
            patient=patient.owner,
            record_id=record_id,
            accessor=actor,
            accessor_role=Role.emergency_responder,
            action=AccessAction.emergency_access,
            record_type=record.record_type,
            timestamp=now,
            success=decision.authorized,
            failure_reason=decision.failure_reason,
            is_emergency=True,
            emergency_justification=justification,
            client_info=client_info,
            metadata="EMERGENCY ACCESS - Break-glass protocol activated",
        )
        if not decision.authorized:
            raise self._denied(actor, patient.owner, record_id, decision, audit_fields)

        record.access_count = checked_increment(record.access_count, "access_count")
        record.last_accessed = now
        entry = await self.audit.record(**audit_fields)

        self.emit(
            EmergencyAccessed(
                patient=patient.owner,
                timestamp=now,
                record_id=record_id,
                responder=actor,
                justification=justification,
            )
        )
        logger.warning(
            "EMERGENCY ACCESS: record %s/%s accessed by %s | Reason: %s",
            patient.owner,
            record_id,
            actor,
            justification,
        )
        return RecordAccess(record=record, decision=decision, audit_entry=entry)

    def _denied(
        self,
        actor: str,
        patient_owner: str,
        record_id: str,
        decision: AuthorizationDecision,
        audit_fields: dict,
    ) -> AccessDeniedError:
        logger.warning(
            "Access denied for %s on %s/%s: %s",
            actor,
            patient_owner,
            record_id,
            decision.failure_reason,
        )
        return AccessDeniedError(
            ErrorCode.access_denied,
            detail=decision.failure_reason,
            decision=decision,
            audit_fields=audit_fields,
        )
