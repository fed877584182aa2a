from datetime import date, timedelta

import pytest

from conftest import DOCTOR, NOW, PATIENT
from medaccess.errors import ErrorCode, StateConflictError, ValidationError
from medaccess.models import Patient
from medaccess.services.events import PatientDeactivated, PatientReactivated


@pytest.mark.anyio
async def test_initialize_sets_defaults(patient):
    assert patient.owner == PATIENT
    assert patient.is_active is True
    assert patient.record_count == 0
    assert patient.access_grant_count == 0
    assert patient.created_at == NOW
    assert patient.updated_at == NOW


@pytest.mark.anyio
async def test_initialize_persists_timezone_aware_timestamps(db, session_maker, patient):
    async with session_maker() as other:
        stored = await other.get(Patient, PATIENT)
    assert stored.name == "Alice"
    assert stored.created_at == NOW
    assert stored.created_at.tzinfo is not None


@pytest.mark.anyio
async def test_initialize_rejects_second_account(registry, patient):
    with pytest.raises(StateConflictError) as exc:
        await registry.initialize(PATIENT, "Alice Again", date(1985, 6, 15))
    assert exc.value.code == ErrorCode.patient_already_exists


@pytest.mark.anyio
async def test_initialize_validates_name_and_birth_date(registry):
    with pytest.raises(ValidationError) as exc:
        await registry.initialize(PATIENT, "x" * 51, date(1985, 6, 15))
    assert exc.value.code == ErrorCode.name_too_long

    with pytest.raises(ValidationError) as exc:
        await registry.initialize(PATIENT, "Alice", NOW.date() + timedelta(days=1))
    assert exc.value.code == ErrorCode.invalid_timestamp


@pytest.mark.anyio
async def test_name_at_limit_accepted(registry):
    patient = await registry.initialize(PATIENT, "x" * 50, date(1985, 6, 15))
    assert len(patient.name) == 50


@pytest.mark.anyio
async def test_update_emergency_contact(db, registry, patient):
    later = NOW + timedelta(hours=1)
    updated = await registry.update(PATIENT, DOCTOR, now=later)
    assert updated.emergency_contact == DOCTOR
    assert updated.updated_at == later

    cleared = await registry.update(PATIENT, None)
    assert cleared.emergency_contact is None


@pytest.mark.anyio
async def test_deactivate_and_reactivate_lifecycle(db, registry, patient, published):
    await registry.deactivate(PATIENT)
    await db.commit()
    assert patient.is_active is False

    with pytest.raises(StateConflictError) as exc:
        await registry.deactivate(PATIENT)
    assert exc.value.code == ErrorCode.patient_inactive

    with pytest.raises(StateConflictError) as exc:
        await registry.update(PATIENT, DOCTOR)
    assert exc.value.code == ErrorCode.patient_inactive

    await registry.reactivate(PATIENT)
    await db.commit()
    assert patient.is_active is True

    with pytest.raises(StateConflictError) as exc:
        await registry.reactivate(PATIENT)
    assert exc.value.code == ErrorCode.patient_already_active

    assert [type(e) for e in published] == [PatientDeactivated, PatientReactivated]
