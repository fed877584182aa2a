"""Audit trail: append-only log of authorization decisions, plus its read side."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.errors import AccessDeniedError, ErrorCode, NotFoundError, ValidationError
from medaccess.models import (
    AUDIT_METADATA_MAX_LENGTH,
    CLIENT_INFO_MAX_LENGTH,
    FAILURE_REASON_MAX_LENGTH,
    JUSTIFICATION_MAX_LENGTH,
    AccessAction,
    AuditLogEntry,
    utcnow,
)
from medaccess.services.store import AccessStore
from medaccess.services.validation import ensure_aware

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "timestamp",
    "patient",
    "accessor",
    "accessor_role",
    "action",
    "success",
    "record_id",
    "record_type",
    "failure_reason",
    "is_emergency",
    "emergency_justification",
    "client_info",
    "metadata",
    "sequence",
]


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value if len(value) <= limit else value[: limit - 3] + "..."


class TimelineInterval(StrEnum):
    hour = "hour"
    day = "day"
    month = "month"


_PERIOD_FORMATS = {
    TimelineInterval.hour: "%Y-%m-%dT%H:00:00",
    TimelineInterval.day: "%Y-%m-%d",
    TimelineInterval.month: "%Y-%m",
}


@dataclass
class AuditQuery:
    """Filters for reading the audit log."""

    patient: Optional[str] = None
    accessor: Optional[str] = None
    action: Optional[AccessAction] = None
    record_id: Optional[str] = None
    success: Optional[bool] = None
    is_emergency: Optional[bool] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: int = 100
    offset: int = 0


@dataclass
class AuditSummary:
    total_events: int
    successful_events: int
    failed_events: int
    emergency_events: int
    unique_accessors: int
    action_breakdown: dict[str, int] = field(default_factory=dict)
    top_accessors: list[tuple[str, int]] = field(default_factory=list)
    recent_failures: list[AuditLogEntry] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if not self.total_events:
            return 0.0
        return round(self.successful_events / self.total_events * 100, 2)


@dataclass
class TimelineBucket:
    """Counts for one hour, day or month of audit activity."""

    period: str
    total: int = 0
    successful: int = 0
    failed: int = 0
    actions: dict[str, int] = field(default_factory=dict)


@dataclass
class ComplianceReport:
    generated_at: datetime
    patient: Optional[str]
    since: Optional[datetime]
    until: Optional[datetime]
    total_access_events: int
    emergency_access_events: int
    unauthorized_attempts: int
    data_modifications: int
    access_grants_issued: int
    access_revocations: int


class AuditTrail:
    """Writes and reads ``AuditLogEntry`` rows.

    ``record`` is the only write path. It never edits an existing row; the
    model itself refuses updates and deletes at flush time.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = AccessStore(db)

    async def record(
        self,
        *,
        patient: str,
        accessor: str,
        action: AccessAction,
        timestamp: datetime,
        success: bool,
        accessor_role: Optional[str] = None,
        record_id: Optional[str] = None,
        record_type: Optional[str] = None,
        failure_reason: Optional[str] = None,
        is_emergency: bool = False,
        emergency_justification: Optional[str] = None,
        client_info: Optional[str] = None,
        metadata: Optional[str] = None,
    ) -> AuditLogEntry:
        """Append one entry and flush it so its sequence is visible."""
        sequence = await self.store.next_audit_sequence(
            patient, record_id, accessor, action.value
        )
        entry = AuditLogEntry(
            patient_owner=patient,
            record_id=record_id,
            accessor=accessor,
            accessor_role=str(accessor_role) if accessor_role is not None else None,
            action=action.value,
            record_type=record_type,
            timestamp=timestamp,
            success=success,
            failure_reason=_clip(failure_reason, FAILURE_REASON_MAX_LENGTH),
            is_emergency=is_emergency,
            emergency_justification=_clip(emergency_justification, JUSTIFICATION_MAX_LENGTH),
            client_info=_clip(client_info, CLIENT_INFO_MAX_LENGTH),
            metadata_=_clip(metadata, AUDIT_METADATA_MAX_LENGTH),
            sequence=sequence,
        )
        self.db.add(entry)
        await self.db.flush()
        logger.debug(
            "audit %s patient=%s record=%s accessor=%s success=%s",
            action.value,
            patient,
            record_id,
            accessor,
            success,
        )
        return entry

    async def get_entry(self, entry_id: int, patient: Optional[str] = None) -> AuditLogEntry:
        """One entry by id; entries of other patients read as missing."""
        entry = await self.db.get(AuditLogEntry, entry_id)
        if entry is None or (patient is not None and entry.patient_owner != patient):
            raise NotFoundError(ErrorCode.audit_entry_not_found, detail=str(entry_id))
        return entry

    def _filtered(self, query, filters: AuditQuery):
        if filters.patient is not None:
            query = query.where(AuditLogEntry.patient_owner == filters.patient)
        if filters.accessor is not None:
            query = query.where(AuditLogEntry.accessor == filters.accessor)
        if filters.action is not None:
            query = query.where(AuditLogEntry.action == AccessAction(filters.action).value)
        if filters.record_id is not None:
            query = query.where(AuditLogEntry.record_id == filters.record_id)
        if filters.success is not None:
            query = query.where(AuditLogEntry.success.is_(filters.success))
        if filters.is_emergency is not None:
            query = query.where(AuditLogEntry.is_emergency.is_(filters.is_emergency))
        if filters.since is not None:
            query = query.where(AuditLogEntry.timestamp >= ensure_aware(filters.since))
        if filters.until is not None:
            query = query.where(AuditLogEntry.timestamp <= ensure_aware(filters.until))
        return query

    async def _count(self, filters: AuditQuery) -> int:
        result = await self.db.execute(
            self._filtered(select(func.count(AuditLogEntry.id)), filters)
        )
        return result.scalar_one()

    async def _action_counts(self, filters: AuditQuery) -> dict[str, int]:
        result = await self.db.execute(
            self._filtered(
                select(AuditLogEntry.action, func.count(AuditLogEntry.id)), filters
            )
            .group_by(AuditLogEntry.action)
            .order_by(func.count(AuditLogEntry.id).desc(), AuditLogEntry.action)
        )
        return {action: count for action, count in result.all()}

    async def query(self, filters: AuditQuery) -> tuple[list[AuditLogEntry], int]:
        """Return one page of matching entries, newest first, and the total."""
        total = await self._count(filters)
        page = (
            self._filtered(select(AuditLogEntry), filters)
            .order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        result = await self.db.execute(page)
        return list(result.scalars().all()), total

    async def summarize(
        self,
        patient: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        top: int = 10,
        recent_failures: int = 5,
    ) -> AuditSummary:
        """Aggregate counts over the matching entries."""
        filters = AuditQuery(patient=patient, since=since, until=until)

        total = await self._count(filters)
        successful = await self._count(
            AuditQuery(patient=patient, since=since, until=until, success=True)
        )
        emergency = await self._count(
            AuditQuery(patient=patient, since=since, until=until, is_emergency=True)
        )

        accessors_result = await self.db.execute(
            self._filtered(
                select(func.count(func.distinct(AuditLogEntry.accessor))), filters
            )
        )

        top_result = await self.db.execute(
            self._filtered(
                select(AuditLogEntry.accessor, func.count(AuditLogEntry.id)), filters
            )
            .group_by(AuditLogEntry.accessor)
            .order_by(func.count(AuditLogEntry.id).desc(), AuditLogEntry.accessor)
            .limit(top)
        )

        failures, _ = await self.query(
            AuditQuery(
                patient=patient,
                since=since,
                until=until,
                success=False,
                limit=recent_failures,
            )
        )

        return AuditSummary(
            total_events=total,
            successful_events=successful,
            failed_events=total - successful,
            emergency_events=emergency,
            unique_accessors=accessors_result.scalar_one(),
            action_breakdown=await self._action_counts(filters),
            top_accessors=[(accessor, count) for accessor, count in top_result.all()],
            recent_failures=failures,
        )

    async def timeline(
        self,
        patient: Optional[str] = None,
        interval: TimelineInterval | str = TimelineInterval.day,
        accessor: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[TimelineBucket]:
        """Activity grouped into UTC hours, days or months, oldest first.

        Periods without any entry are omitted.
        """
        try:
            interval = TimelineInterval(interval)
        except ValueError:
            raise ValidationError(
                ErrorCode.invalid_timeline_interval, detail=str(interval)
            ) from None
        period_format = _PERIOD_FORMATS[interval]

        query = self._filtered(
            select(AuditLogEntry.timestamp, AuditLogEntry.action, AuditLogEntry.success),
            AuditQuery(patient=patient, accessor=accessor, since=since, until=until),
        ).order_by(AuditLogEntry.timestamp, AuditLogEntry.id)
        result = await self.db.execute(query)

        buckets: dict[str, TimelineBucket] = {}
        for timestamp, action, success in result.all():
            period = timestamp.strftime(period_format)
            bucket = buckets.setdefault(period, TimelineBucket(period=period))
            bucket.total += 1
            if success:
                bucket.successful += 1
            else:
                bucket.failed += 1
            bucket.actions[action] = bucket.actions.get(action, 0) + 1
        return list(buckets.values())

    async def export(
        self,
        patient: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[AuditLogEntry]:
        """Every matching entry, oldest first, for compliance exports."""
        query = self._filtered(
            select(AuditLogEntry), AuditQuery(patient=patient, since=since, until=until)
        ).order_by(AuditLogEntry.timestamp, AuditLogEntry.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def compliance_report(
        self,
        patient: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ComplianceReport:
        filters = AuditQuery(patient=patient, since=since, until=until)
        actions = await self._action_counts(filters)
        unauthorized = await self._count(
            AuditQuery(patient=patient, since=since, until=until, success=False)
        )
        return ComplianceReport(
            generated_at=ensure_aware(now) if now is not None else utcnow(),
            patient=patient,
            since=since,
            until=until,
            total_access_events=actions.get(AccessAction.view.value, 0),
            emergency_access_events=actions.get(AccessAction.emergency_access.value, 0),
            unauthorized_attempts=unauthorized,
            data_modifications=sum(
                actions.get(action.value, 0)
                for action in (AccessAction.create, AccessAction.modify, AccessAction.delete)
            ),
            access_grants_issued=actions.get(AccessAction.grant_access.value, 0),
            access_revocations=actions.get(AccessAction.revoke_access.value, 0),
        )


def render_csv(entries: list[AuditLogEntry]) -> str:
    """Render audit entries as CSV, one row per entry."""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    for entry in entries:
        writer.writerow(
            {
                "timestamp": entry.timestamp.isoformat(),
                "patient": entry.patient_owner,
                "accessor": entry.accessor,
                "accessor_role": entry.accessor_role or "",
                "action": entry.action,
                "success": "yes" if entry.success else "no",
                "record_id": entry.record_id or "",
                "record_type": entry.record_type or "",
                "failure_reason": entry.failure_reason or "",
                "is_emergency": "yes" if entry.is_emergency else "no",
                "emergency_justification": entry.emergency_justification or "",
                "client_info": entry.client_info or "",
                "metadata": entry.metadata_ or "",
                "sequence": entry.sequence,
            }
        )
    return output.getvalue()


async def record_denial(db: AsyncSession, exc: AccessDeniedError) -> Optional[AuditLogEntry]:
    """Store the audit entry of a denied read in its own transaction.

    Whatever ``db`` had pending is rolled back first, so the denial is the
    only thing this commits.
    """
    await db.rollback()
    fields: Optional[dict[str, Any]] = exc.audit_fields
    if not fields:
        return None
    entry = await AuditTrail(db).record(**fields)
    await db.commit()
    return entry
