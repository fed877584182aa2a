"""Logging configuration for the application.

Every log record carries the id of the HTTP request that produced it and the
identity of the actor the request was made for, so access decisions in the
application log can be matched against audit log entries.
"""

from __future__ import annotations

import contextvars
import logging

from medaccess.config import settings

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)
actor_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "actor",
    default=None,
)

_CONTEXT_FIELDS = {
    "request_id": request_id_var,
    "actor": actor_var,
}


def _stamp(record: logging.LogRecord) -> None:
    for field, var in _CONTEXT_FIELDS.items():
        if not getattr(record, field, None):
            setattr(record, field, var.get() or "-")


class RequestContextFilter(logging.Filter):
    """Attach request_id and actor from contextvars to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        _stamp(record)
        return True


def bind_actor(actor: str | None) -> None:
    """Remember the authenticated actor for the rest of the current context."""
    actor_var.set(actor)


def configure_logging() -> None:
    """Configure structured logging for the service."""
    factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = factory(*args, **kwargs)
        _stamp(record)
        return record

    logging.setLogRecordFactory(record_factory)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=(
            "%(asctime)s %(levelname)s %(name)s %(message)s "
            "request_id=%(request_id)s actor=%(actor)s"
        ),
    )
    root_logger = logging.getLogger()
    root_logger.addFilter(RequestContextFilter())
    for handler in root_logger.handlers:
        handler.addFilter(RequestContextFilter())
