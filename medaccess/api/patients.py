"""Patient account API: every route acts on the caller's own account."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.api.deps import get_actor, get_db, get_patient_registry
from medaccess.schemas import PatientCreate, PatientResponse, PatientUpdate
from medaccess.services import PatientRegistry

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    data: PatientCreate,
    db: AsyncSession = Depends(get_db),
    registry: PatientRegistry = Depends(get_patient_registry),
    actor: str = Depends(get_actor),
):
    """Open a patient account owned by the calling identity."""
    patient = await registry.initialize(
        actor, data.name, data.date_of_birth, data.emergency_contact
    )
    await db.commit()
    return PatientResponse.model_validate(patient)


@router.get("/me", response_model=PatientResponse)
async def get_my_patient(
    registry: PatientRegistry = Depends(get_patient_registry),
    actor: str = Depends(get_actor),
):
    patient = await registry.get(actor)
    return PatientResponse.model_validate(patient)


@router.patch("/me", response_model=PatientResponse)
async def update_my_patient(
    data: PatientUpdate,
    db: AsyncSession = Depends(get_db),
    registry: PatientRegistry = Depends(get_patient_registry),
    actor: str = Depends(get_actor),
):
    """Replace the emergency contact (null clears it)."""
    patient = await registry.update(actor, data.emergency_contact)
    await db.commit()
    return PatientResponse.model_validate(patient)


@router.post("/me/deactivate", response_model=PatientResponse)
async def deactivate_my_patient(
    db: AsyncSession = Depends(get_db),
    registry: PatientRegistry = Depends(get_patient_registry),
    actor: str = Depends(get_actor),
):
    patient = await registry.deactivate(actor)
    await db.commit()
    return PatientResponse.model_validate(patient)


@router.post("/me/reactivate", response_model=PatientResponse)
async def reactivate_my_patient(
    db: AsyncSession = Depends(get_db),
    registry: PatientRegistry = Depends(get_patient_registry),
    actor: str = Depends(get_actor),
):
    patient = await registry.reactivate(actor)
    await db.commit()
    return PatientResponse.model_validate(patient)
