"""Domain events and the in-process event bus.

Services queue events on the session they work in. Queued events are handed
to the bus only after that session commits and are dropped on rollback, so
subscribers (notification and monitoring consumers) never hear about work
that did not persist.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime

from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "medaccess.pending_events"


@dataclass(frozen=True)
class DomainEvent:
    patient: str
    timestamp: datetime

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        data = asdict(self)
        data["event"] = self.name
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class PatientDeactivated(DomainEvent):
    pass


@dataclass(frozen=True)
class PatientReactivated(DomainEvent):
    pass


@dataclass(frozen=True)
class RecordCreated(DomainEvent):
    record_id: str
    created_by: str
    record_type: str


@dataclass(frozen=True)
class RecordUpdated(DomainEvent):
    record_id: str
    updater: str
    update_note: str


@dataclass(frozen=True)
class RecordDeleted(DomainEvent):
    record_id: str
    deleter: str
    reason: str


@dataclass(frozen=True)
class EmergencyAccessed(DomainEvent):
    record_id: str
    responder: str
    justification: str


@dataclass(frozen=True)
class AccessRequestCreated(DomainEvent):
    requester: str
    role: str
    reason: str | None
    expires_at: datetime


@dataclass(frozen=True)
class AccessRequestApproved(DomainEvent):
    provider: str
    role: str


@dataclass(frozen=True)
class AccessRequestDenied(DomainEvent):
    requester: str
    reason: str | None


@dataclass(frozen=True)
class AccessGranted(DomainEvent):
    provider: str
    role: str
    record_types: tuple[str, ...]


@dataclass(frozen=True)
class AccessRevoked(DomainEvent):
    provider: str
    revoked_by: str


@dataclass(frozen=True)
class BatchAccessGranted(DomainEvent):
    providers: tuple[str, ...]
    roles: tuple[str, ...]
    record_types: tuple[str, ...]
    granted_by: str


Handler = Callable[[DomainEvent], None]


@dataclass
class EventBus:
    """Fan-out of committed domain events to subscribers."""

    _handlers: dict[type, list[Handler]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, domain_event: DomainEvent) -> None:
        logger.info("event %s patient=%s", domain_event.name, domain_event.patient)
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(domain_event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(domain_event)
                except Exception:
                    logger.exception(
                        "Event handler %r failed for %s", handler, domain_event.name
                    )

    def clear(self) -> None:
        self._handlers.clear()


event_bus = EventBus()


def enqueue(session: AsyncSession | Session, domain_event: DomainEvent) -> None:
    """Queue an event to be published when ``session`` commits.

    A transaction is begun if none is open yet, so a later rollback always
    discards what was queued here.
    """
    sync_session = getattr(session, "sync_session", session)
    if not sync_session.in_transaction():
        sync_session.begin()
    session.info.setdefault(_PENDING_KEY, []).append(domain_event)


def pending_events(session: AsyncSession | Session) -> list[DomainEvent]:
    return list(session.info.get(_PENDING_KEY, []))


@sa_event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    for domain_event in session.info.pop(_PENDING_KEY, []):
        event_bus.publish(domain_event)


@sa_event.listens_for(Session, "after_soft_rollback")
def _discard_pending(session: Session, _previous_transaction) -> None:
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("Dropped %d uncommitted events", len(dropped))
