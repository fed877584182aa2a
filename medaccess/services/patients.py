"""Patient registry: patient accounts and their active/inactive lifecycle."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from medaccess.errors import ErrorCode, StateConflictError, ValidationError
from medaccess.models import NAME_MAX_LENGTH, Patient
from medaccess.services.base import AccessService
from medaccess.services.events import PatientDeactivated, PatientReactivated
from medaccess.services.validation import check_identity, check_length

logger = logging.getLogger(__name__)


class PatientRegistry(AccessService):
    """Every mutation here is performed by the patient's own identity."""

    async def initialize(
        self,
        actor: str,
        name: str,
        date_of_birth: date,
        emergency_contact: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> Patient:
        now = self.now(now)
        check_identity(actor)
        check_length(name, NAME_MAX_LENGTH, ErrorCode.name_too_long)
        if date_of_birth > now.date():
            raise ValidationError(ErrorCode.invalid_timestamp, detail="date of birth is in the future")
        if emergency_contact is not None:
            check_identity(emergency_contact)

        patient = Patient(
            owner=actor,
            name=name,
            date_of_birth=date_of_birth,
            is_active=True,
            emergency_contact=emergency_contact,
            record_count=0,
            access_grant_count=0,
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_unique(patient, actor, ErrorCode.patient_already_exists)
        logger.info("Patient account initialized for %s", actor)
        return patient

    async def get(self, owner: str) -> Patient:
        return await self.store.require_patient(owner)

    async def update(
        self,
        actor: str,
        emergency_contact: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> Patient:
        """Replace the emergency contact; ``None`` clears it."""
        now = self.now(now)
        if emergency_contact is not None:
            check_identity(emergency_contact)
        patient = await self.store.require_patient(actor)
        if not patient.is_active:
            raise StateConflictError(ErrorCode.patient_inactive)

        patient.emergency_contact = emergency_contact
        patient.updated_at = now
        logger.info("Patient %s updated emergency contact", actor)
        return patient

    async def deactivate(self, actor: str, *, now: datetime | None = None) -> Patient:
        now = self.now(now)
        patient = await self.store.require_patient(actor)
        if not patient.is_active:
            raise StateConflictError(ErrorCode.patient_inactive)

        patient.is_active = False
        patient.updated_at = now
        self.emit(PatientDeactivated(patient=actor, timestamp=now))
        logger.info("Patient %s account deactivated", actor)
        return patient

    async def reactivate(self, actor: str, *, now: datetime | None = None) -> Patient:
        now = self.now(now)
        patient = await self.store.require_patient(actor)
        if patient.is_active:
            raise StateConflictError(ErrorCode.patient_already_active)

        patient.is_active = True
        patient.updated_at = now
        self.emit(PatientReactivated(patient=actor, timestamp=now))
        logger.info("Patient %s account reactivated", actor)
        return patient
