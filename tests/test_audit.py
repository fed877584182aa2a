import csv
import io
from datetime import timedelta

import pytest

from conftest import DOCTOR, HOSPITAL, NOW, PATIENT, RESPONDER
from medaccess.errors import (
    AccessDeniedError,
    ErrorCode,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from medaccess.models import AccessAction, AuditLogEntry, RecordType, Role
from medaccess.services import AuditQuery, TimelineInterval, record_denial, render_csv


@pytest.fixture()
async def history(db, records, ledger, prescription):
    """A small audit history: grants, views (one denied) and an emergency read."""
    await ledger.grant_direct(
        PATIENT, DOCTOR, Role.doctor, [RecordType.prescription], can_view=True
    )
    await db.commit()
    await records.view(DOCTOR, PATIENT, "rx-001", now=NOW + timedelta(minutes=1))
    await records.view(DOCTOR, PATIENT, "rx-001", now=NOW + timedelta(minutes=2))
    await db.commit()
    with pytest.raises(AccessDeniedError) as exc:
        await records.view(HOSPITAL, PATIENT, "rx-001", now=NOW + timedelta(minutes=3))
    await record_denial(db, exc.value)
    await records.emergency_access(
        RESPONDER, PATIENT, "rx-001", "anaphylaxis", now=NOW + timedelta(minutes=4)
    )
    await db.commit()


@pytest.mark.anyio
async def test_audit_entries_cannot_be_updated(db, audit, patient):
    entry = await audit.record(
        patient=PATIENT,
        accessor=DOCTOR,
        action=AccessAction.view,
        timestamp=NOW,
        success=True,
    )
    await db.commit()
    entry_id = entry.id

    entry.success = False
    with pytest.raises(StateConflictError) as exc:
        await db.flush()
    assert exc.value.code == ErrorCode.immutable_audit_entry
    await db.rollback()

    stored = await db.get(AuditLogEntry, entry_id)
    assert stored.success is True


@pytest.mark.anyio
async def test_audit_entries_cannot_be_deleted(db, audit, patient):
    entry = await audit.record(
        patient=PATIENT,
        accessor=DOCTOR,
        action=AccessAction.view,
        timestamp=NOW,
        success=False,
    )
    await db.commit()
    entry_id = entry.id

    await db.delete(entry)
    with pytest.raises(StateConflictError):
        await db.flush()
    await db.rollback()
    assert await db.get(AuditLogEntry, entry_id) is not None


@pytest.mark.anyio
async def test_long_strings_are_clipped(audit, patient):
    entry = await audit.record(
        patient=PATIENT,
        accessor=DOCTOR,
        action=AccessAction.view,
        timestamp=NOW,
        success=False,
        failure_reason="f" * 150,
        metadata="m" * 150,
    )
    assert len(entry.failure_reason) == 100
    assert entry.failure_reason.endswith("...")
    assert len(entry.metadata_) == 100


@pytest.mark.anyio
async def test_sequence_is_per_accessor_and_action(audit, patient):
    first = await audit.record(
        patient=PATIENT, accessor=DOCTOR, action=AccessAction.view, timestamp=NOW, success=True,
        record_id="rx-001",
    )
    second = await audit.record(
        patient=PATIENT, accessor=DOCTOR, action=AccessAction.view, timestamp=NOW, success=True,
        record_id="rx-001",
    )
    other = await audit.record(
        patient=PATIENT, accessor=HOSPITAL, action=AccessAction.view, timestamp=NOW, success=True,
        record_id="rx-001",
    )
    assert (first.sequence, second.sequence, other.sequence) == (0, 1, 0)


@pytest.mark.anyio
async def test_query_filters_and_orders_newest_first(audit, history):
    views, total = await audit.query(AuditQuery(patient=PATIENT, action=AccessAction.view))
    assert total == 3
    assert [e.accessor for e in views] == [HOSPITAL, DOCTOR, DOCTOR]

    failures, total = await audit.query(AuditQuery(patient=PATIENT, success=False))
    assert total == 1
    assert failures[0].accessor == HOSPITAL
    assert failures[0].failure_reason == "No access grant found"

    emergencies, _ = await audit.query(AuditQuery(patient=PATIENT, is_emergency=True))
    assert [e.accessor for e in emergencies] == [RESPONDER]

    window, total = await audit.query(
        AuditQuery(
            patient=PATIENT,
            since=NOW + timedelta(minutes=2),
            until=NOW + timedelta(minutes=3),
        )
    )
    assert total == 2

    page, total = await audit.query(AuditQuery(patient=PATIENT, limit=2, offset=1))
    assert len(page) == 2
    assert total > 2


@pytest.mark.anyio
async def test_query_accepts_naive_bounds(audit, history):
    naive = (NOW + timedelta(minutes=3)).replace(tzinfo=None)
    entries, _ = await audit.query(AuditQuery(patient=PATIENT, since=naive))
    assert {e.accessor for e in entries} == {HOSPITAL, RESPONDER}


@pytest.mark.anyio
async def test_summarize(audit, history):
    summary = await audit.summarize(patient=PATIENT)

    # create + grant_access + 3 views + emergency_access
    assert summary.total_events == 6
    assert summary.failed_events == 1
    assert summary.successful_events == 5
    assert summary.emergency_events == 1
    assert summary.unique_accessors == 4
    assert summary.success_rate == pytest.approx(83.33)
    assert summary.action_breakdown == {
        "view": 3,
        "create": 1,
        "emergency_access": 1,
        "grant_access": 1,
    }
    assert summary.top_accessors[:2] == [(DOCTOR, 2), (PATIENT, 2)]
    assert [e.accessor for e in summary.recent_failures] == [HOSPITAL]


@pytest.mark.anyio
async def test_summarize_empty(audit):
    summary = await audit.summarize(patient="nobody")
    assert summary.total_events == 0
    assert summary.success_rate == 0.0
    assert summary.action_breakdown == {}


@pytest.mark.anyio
async def test_timeline_groups_by_interval(db, audit, history):
    await audit.record(
        patient=PATIENT,
        accessor=DOCTOR,
        action=AccessAction.view,
        timestamp=NOW + timedelta(days=1, hours=3),
        success=True,
    )
    await db.commit()

    daily = await audit.timeline(patient=PATIENT, interval="day")
    assert [b.period for b in daily] == ["2026-03-01", "2026-03-02"]
    assert (daily[0].total, daily[0].successful, daily[0].failed) == (6, 5, 1)
    assert daily[0].actions["view"] == 3
    assert daily[1].actions == {"view": 1}

    hourly = await audit.timeline(patient=PATIENT, interval=TimelineInterval.hour)
    assert [b.period for b in hourly] == ["2026-03-01T12:00:00", "2026-03-02T15:00:00"]

    monthly = await audit.timeline(patient=PATIENT, interval="month", accessor=DOCTOR)
    assert [(b.period, b.total) for b in monthly] == [("2026-03", 3)]


@pytest.mark.anyio
async def test_timeline_rejects_unknown_interval(audit, history):
    with pytest.raises(ValidationError) as exc:
        await audit.timeline(patient=PATIENT, interval="week")
    assert exc.value.code == ErrorCode.invalid_timeline_interval


@pytest.mark.anyio
async def test_get_entry_is_scoped_to_patient(audit, history):
    entries, _ = await audit.query(AuditQuery(patient=PATIENT, success=False))
    entry = await audit.get_entry(entries[0].id, patient=PATIENT)
    assert entry.accessor == HOSPITAL

    with pytest.raises(NotFoundError) as exc:
        await audit.get_entry(entries[0].id, patient=DOCTOR)
    assert exc.value.code == ErrorCode.audit_entry_not_found
    with pytest.raises(NotFoundError):
        await audit.get_entry(10_000)


@pytest.mark.anyio
async def test_export_is_oldest_first_and_renders_csv(audit, history):
    entries = await audit.export(patient=PATIENT)
    assert [e.action for e in entries] == [
        "create",
        "grant_access",
        "view",
        "view",
        "view",
        "emergency_access",
    ]

    rows = list(csv.DictReader(io.StringIO(render_csv(entries))))
    assert len(rows) == 6
    denied = rows[4]
    assert denied["accessor"] == HOSPITAL
    assert denied["success"] == "no"
    assert denied["failure_reason"] == "No access grant found"
    assert rows[5]["is_emergency"] == "yes"
    assert rows[5]["emergency_justification"] == "anaphylaxis"

    windowed = await audit.export(patient=PATIENT, since=NOW + timedelta(minutes=3))
    assert [e.accessor for e in windowed] == [HOSPITAL, RESPONDER]


@pytest.mark.anyio
async def test_compliance_report(audit, history):
    report = await audit.compliance_report(patient=PATIENT, now=NOW + timedelta(hours=1))
    assert report.generated_at == NOW + timedelta(hours=1)
    assert report.total_access_events == 3
    assert report.emergency_access_events == 1
    assert report.unauthorized_attempts == 1
    assert report.data_modifications == 1
    assert report.access_grants_issued == 1
    assert report.access_revocations == 0
