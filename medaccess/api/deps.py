"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.config import settings
from medaccess.database import get_db
from medaccess.logging import bind_actor
from medaccess.models import IDENTITY_LENGTH, utcnow
from medaccess.services import (
    AuditTrail,
    ConsentWorkflow,
    GrantLedger,
    PatientRegistry,
    RecordStore,
)
from medaccess.services.base import Clock

__all__ = [
    "get_db",
    "require_api_key",
    "get_actor",
    "get_clock",
    "get_patient_registry",
    "get_record_store",
    "get_consent_workflow",
    "get_grant_ledger",
    "get_audit_trail",
]


async def require_api_key(x_api_key: str | None = Header(None, alias="X-API-Key")):
    """Require API key when configured."""
    if not settings.api_key:
        return None
    if x_api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return None


async def get_actor(x_actor_id: str | None = Header(None, alias="X-Actor-Id")) -> str:
    """Identity of the caller, as asserted by the upstream identity provider.

    The gateway in front of this service authenticates the caller; no
    signature is checked here.
    """
    if not x_actor_id or len(x_actor_id) > IDENTITY_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-Actor-Id header",
        )
    bind_actor(x_actor_id)
    return x_actor_id


def get_clock() -> Clock:
    return utcnow


Db = Annotated[AsyncSession, Depends(get_db)]
ClockDep = Annotated[Clock, Depends(get_clock)]


async def get_patient_registry(db: Db, clock: ClockDep) -> PatientRegistry:
    return PatientRegistry(db, clock=clock)


async def get_record_store(db: Db, clock: ClockDep) -> RecordStore:
    return RecordStore(db, clock=clock)


async def get_consent_workflow(db: Db, clock: ClockDep) -> ConsentWorkflow:
    return ConsentWorkflow(db, clock=clock)


async def get_grant_ledger(db: Db, clock: ClockDep) -> GrantLedger:
    return GrantLedger(db, clock=clock)


async def get_audit_trail(db: Db) -> AuditTrail:
    return AuditTrail(db)
