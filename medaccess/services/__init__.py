"""Access-control core services."""

from medaccess.services.audit import (
    AuditQuery,
    AuditSummary,
    AuditTrail,
    ComplianceReport,
    TimelineBucket,
    TimelineInterval,
    record_denial,
    render_csv,
)
from medaccess.services.authorization import (
    AuthorizationDecision,
    AuthorizationEngine,
    Capability,
    DenialReason,
    denial_error,
)
from medaccess.services.consent import BatchApproval, ConsentWorkflow
from medaccess.services.events import DomainEvent, EventBus, event_bus
from medaccess.services.grants import GrantLedger
from medaccess.services.patients import PatientRegistry
from medaccess.services.records import RecordAccess, RecordStore
from medaccess.services.store import AccessStore

__all__ = [
    "AccessStore",
    "AuditQuery",
    "AuditSummary",
    "AuditTrail",
    "AuthorizationDecision",
    "AuthorizationEngine",
    "BatchApproval",
    "Capability",
    "ComplianceReport",
    "ConsentWorkflow",
    "DenialReason",
    "DomainEvent",
    "EventBus",
    "GrantLedger",
    "PatientRegistry",
    "RecordAccess",
    "RecordStore",
    "TimelineBucket",
    "TimelineInterval",
    "denial_error",
    "event_bus",
    "record_denial",
    "render_csv",
]
