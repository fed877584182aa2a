import os
from datetime import UTC, date, datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DEBUG", "true")

from medaccess.database import make_session_maker  # noqa: E402
from medaccess.models import Base, RecordType  # noqa: E402
from medaccess.services import (  # noqa: E402
    AuditTrail,
    ConsentWorkflow,
    DomainEvent,
    GrantLedger,
    PatientRegistry,
    RecordStore,
    event_bus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

PATIENT = "patient-alice"
DOCTOR = "dr-bob"
HOSPITAL = "st-marys"
RESPONDER = "er-eve"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture()
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture()
def now():
    return NOW


@pytest.fixture(autouse=True)
def clean_event_bus():
    event_bus.clear()
    yield
    event_bus.clear()


@pytest.fixture()
def published():
    """Events the bus delivered, in order."""
    captured: list[DomainEvent] = []
    event_bus.subscribe(DomainEvent, captured.append)
    return captured


def _clock():
    return NOW


@pytest.fixture()
def registry(db):
    return PatientRegistry(db, clock=_clock)


@pytest.fixture()
def records(db):
    return RecordStore(db, clock=_clock)


@pytest.fixture()
def consent(db):
    return ConsentWorkflow(db, clock=_clock)


@pytest.fixture()
def ledger(db):
    return GrantLedger(db, clock=_clock)


@pytest.fixture()
def audit(db):
    return AuditTrail(db)


@pytest.fixture()
async def patient(db, registry):
    patient = await registry.initialize(PATIENT, "Alice", date(1985, 6, 15))
    await db.commit()
    return patient


@pytest.fixture()
async def prescription(db, records, patient):
    record = await records.create(
        PATIENT,
        PATIENT,
        "rx-001",
        RecordType.prescription,
        "a" * 64,
        storage_locator="ipfs://bafy-rx-001",
        metadata="Amoxicillin 500mg",
    )
    await db.commit()
    return record
