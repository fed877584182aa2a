"""Audit API: the patient's view of who touched their data."""

import io
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from medaccess.api.deps import get_actor, get_audit_trail, get_clock
from medaccess.models import AccessAction
from medaccess.schemas import (
    AccessorCount,
    AuditEntryResponse,
    AuditExport,
    AuditPage,
    AuditSummaryResponse,
    ComplianceReportResponse,
    TimelineBucketResponse,
)
from medaccess.services import (
    AccessStore,
    AuditQuery,
    AuditTrail,
    TimelineInterval,
    render_csv,
)
from medaccess.services.base import Clock

router = APIRouter(prefix="/patients/me/audit", tags=["Audit"])


async def _require_patient(audit: AuditTrail, actor: str) -> None:
    await AccessStore(audit.db).require_patient(actor)


@router.get("", response_model=AuditPage)
async def list_audit_entries(
    accessor: str | None = Query(None),
    action: AccessAction | None = Query(None),
    record_id: str | None = Query(None),
    success: bool | None = Query(None),
    is_emergency: bool | None = Query(None),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    audit: AuditTrail = Depends(get_audit_trail),
    actor: str = Depends(get_actor),
):
    """Audit entries for the caller's records, newest first."""
    await _require_patient(audit, actor)
    filters = AuditQuery(
        patient=actor,
        accessor=accessor,
        action=action,
        record_id=record_id,
        success=success,
        is_emergency=is_emergency,
        since=since,
        until=until,
        limit=limit,
        offset=offset,
    )
    entries, total = await audit.query(filters)
    return AuditPage(
        items=[AuditEntryResponse.model_validate(e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/summary", response_model=AuditSummaryResponse)
async def audit_summary(
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    top: int = Query(10, ge=1, le=100),
    audit: AuditTrail = Depends(get_audit_trail),
    actor: str = Depends(get_actor),
):
    await _require_patient(audit, actor)
    summary = await audit.summarize(patient=actor, since=since, until=until, top=top)
    return AuditSummaryResponse(
        total_events=summary.total_events,
        successful_events=summary.successful_events,
        failed_events=summary.failed_events,
        emergency_events=summary.emergency_events,
        unique_accessors=summary.unique_accessors,
        success_rate=summary.success_rate,
        action_breakdown=summary.action_breakdown,
        top_accessors=[
            AccessorCount(accessor=accessor, count=count)
            for accessor, count in summary.top_accessors
        ],
        recent_failures=[AuditEntryResponse.model_validate(e) for e in summary.recent_failures],
    )


@router.get("/timeline", response_model=list[TimelineBucketResponse])
async def audit_timeline(
    interval: TimelineInterval = Query(TimelineInterval.day),
    accessor: str | None = Query(None),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    audit: AuditTrail = Depends(get_audit_trail),
    actor: str = Depends(get_actor),
):
    """Access activity per UTC hour, day or month, oldest first."""
    await _require_patient(audit, actor)
    buckets = await audit.timeline(
        patient=actor, interval=interval, accessor=accessor, since=since, until=until
    )
    return [TimelineBucketResponse.model_validate(b) for b in buckets]


@router.get("/export/csv")
async def export_audit_csv(
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    audit: AuditTrail = Depends(get_audit_trail),
    actor: str = Depends(get_actor),
    clock: Clock = Depends(get_clock),
):
    await _require_patient(audit, actor)
    entries = await audit.export(patient=actor, since=since, until=until)
    filename = f"audit_{actor}_{clock().strftime('%Y%m%d_%H%M%S')}.csv"
    return StreamingResponse(
        io.StringIO(render_csv(entries)),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/export/json", response_model=AuditExport)
async def export_audit_json(
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    audit: AuditTrail = Depends(get_audit_trail),
    actor: str = Depends(get_actor),
    clock: Clock = Depends(get_clock),
):
    await _require_patient(audit, actor)
    entries = await audit.export(patient=actor, since=since, until=until)
    return AuditExport(
        exported_at=clock(),
        patient=actor,
        since=since,
        until=until,
        total_records=len(entries),
        items=[AuditEntryResponse.model_validate(e) for e in entries],
    )


@router.get("/compliance", response_model=ComplianceReportResponse)
async def compliance_report(
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    audit: AuditTrail = Depends(get_audit_trail),
    actor: str = Depends(get_actor),
    clock: Clock = Depends(get_clock),
):
    """Counts a compliance officer reviews for the caller's records."""
    await _require_patient(audit, actor)
    report = await audit.compliance_report(patient=actor, since=since, until=until, now=clock())
    return ComplianceReportResponse.model_validate(report)


@router.get("/{entry_id}", response_model=AuditEntryResponse)
async def get_audit_entry(
    entry_id: int,
    audit: AuditTrail = Depends(get_audit_trail),
    actor: str = Depends(get_actor),
):
    await _require_patient(audit, actor)
    entry = await audit.get_entry(entry_id, patient=actor)
    return AuditEntryResponse.model_validate(entry)
