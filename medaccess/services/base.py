"""Shared plumbing for the session-bound services."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.models import utcnow
from medaccess.services.audit import AuditTrail
from medaccess.services.authorization import AuthorizationEngine
from medaccess.services.events import DomainEvent, enqueue
from medaccess.services.store import AccessStore
from medaccess.services.validation import ensure_aware

Clock = Callable[[], datetime]


class AccessService:
    """Base class for services bound to one database session.

    Services never commit: the caller owns the unit of work. A denied
    audited read leaves its audit entry on the raised error for the caller
    to store with ``record_denial``.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utcnow,
        engine: AuthorizationEngine | None = None,
    ):
        self.db = db
        self.clock = clock
        self.store = AccessStore(db)
        self.audit = AuditTrail(db)
        self.engine = engine or AuthorizationEngine()

    def now(self, now: datetime | None = None) -> datetime:
        """Resolve the evaluation time for one call."""
        return ensure_aware(now if now is not None else self.clock())

    def emit(self, domain_event: DomainEvent) -> None:
        enqueue(self.db, domain_event)
