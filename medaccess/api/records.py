"""Medical record API: metadata lifecycle plus audited and break-glass reads."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.api.deps import get_actor, get_db, get_record_store
from medaccess.errors import ErrorCode, UnauthorizedError
from medaccess.models import RecordType
from medaccess.schemas import (
    EmergencyAccessCreate,
    RecordAccessResponse,
    RecordCreate,
    RecordResponse,
    RecordUpdate,
)
from medaccess.services import RecordAccess, RecordStore

router = APIRouter(prefix="/patients/{owner}/records", tags=["Records"])


def _access_response(access: RecordAccess) -> RecordAccessResponse:
    return RecordAccessResponse(
        record=RecordResponse.model_validate(access.record),
        role=access.decision.role,
        is_emergency=access.decision.is_emergency,
        audit_sequence=access.audit_entry.sequence,
    )


@router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_record(
    owner: str,
    data: RecordCreate,
    db: AsyncSession = Depends(get_db),
    records: RecordStore = Depends(get_record_store),
    actor: str = Depends(get_actor),
):
    """Register a record for the patient; grant holders need create permission."""
    record = await records.create(
        actor,
        owner,
        data.record_id,
        data.record_type,
        data.data_hash,
        data.storage_locator,
        data.metadata,
    )
    await db.commit()
    return RecordResponse.model_validate(record)


@router.get("", response_model=list[RecordResponse])
async def list_records(
    owner: str,
    include_inactive: bool = Query(False),
    record_type: RecordType | None = Query(None),
    records: RecordStore = Depends(get_record_store),
    actor: str = Depends(get_actor),
):
    """List the record index. Only the patient may list their own records."""
    if actor != owner:
        raise UnauthorizedError(ErrorCode.unauthorized)
    items = await records.list_for_patient(actor, include_inactive, record_type)
    return [RecordResponse.model_validate(r) for r in items]


@router.get("/{record_id}", response_model=RecordAccessResponse)
async def view_record(
    owner: str,
    record_id: str,
    client_info: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    records: RecordStore = Depends(get_record_store),
    actor: str = Depends(get_actor),
):
    """Audited read. Denied attempts are logged before the 403 is returned."""
    access = await records.view(actor, owner, record_id, client_info)
    await db.commit()
    return _access_response(access)


@router.patch("/{record_id}", response_model=RecordResponse)
async def update_record(
    owner: str,
    record_id: str,
    data: RecordUpdate,
    db: AsyncSession = Depends(get_db),
    records: RecordStore = Depends(get_record_store),
    actor: str = Depends(get_actor),
):
    record = await records.update(
        actor, owner, record_id, data.update_note, data.data_hash, data.metadata
    )
    await db.commit()
    return RecordResponse.model_validate(record)


@router.delete("/{record_id}", response_model=RecordResponse)
async def delete_record(
    owner: str,
    record_id: str,
    reason: str = Query(..., description="Why the record is removed (max 300)"),
    db: AsyncSession = Depends(get_db),
    records: RecordStore = Depends(get_record_store),
    actor: str = Depends(get_actor),
):
    """Soft delete: the record stays stored but becomes inactive."""
    record = await records.delete(actor, owner, record_id, reason)
    await db.commit()
    return RecordResponse.model_validate(record)


@router.post("/{record_id}/emergency-access", response_model=RecordAccessResponse)
async def emergency_access(
    owner: str,
    record_id: str,
    data: EmergencyAccessCreate,
    db: AsyncSession = Depends(get_db),
    records: RecordStore = Depends(get_record_store),
    actor: str = Depends(get_actor),
):
    """Break-glass read that bypasses grants; always audited as an emergency."""
    access = await records.emergency_access(
        actor, owner, record_id, data.justification, data.client_info
    )
    await db.commit()
    return _access_response(access)
