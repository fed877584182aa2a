"""Input validation shared by the access-control services."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Optional

from medaccess.errors import (
    ErrorCode,
    ResourceExhaustedError,
    ValidationError,
)
from medaccess.models import IDENTITY_LENGTH, MAX_RECORD_TYPES, RecordType, Role

# Counters live in signed BIGINT columns.
COUNTER_MAX = 2**63 - 1


def checked_increment(value: int | None, field_name: str) -> int:
    """Increment a persisted counter, refusing to go past ``COUNTER_MAX``."""
    current = value or 0
    if current >= COUNTER_MAX:
        raise ValidationError(ErrorCode.counter_overflow, detail=field_name)
    return current + 1


def check_length(
    value: Optional[str],
    max_length: int,
    code: ErrorCode,
    *,
    required: bool = False,
    required_code: ErrorCode | None = None,
) -> None:
    if value is None or value == "":
        if required:
            raise ValidationError(required_code or code)
        return
    if len(value) > max_length:
        raise ValidationError(code, detail=f"max {max_length} characters")


def check_identity(value: str) -> None:
    if not value or len(value) > IDENTITY_LENGTH:
        raise ValidationError(ErrorCode.identity_invalid)


def parse_role(value: str | Role) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise ValidationError(ErrorCode.invalid_role, detail=str(value)) from None


def parse_record_type(value: str | RecordType) -> RecordType:
    try:
        return RecordType(value)
    except ValueError:
        raise ValidationError(ErrorCode.invalid_record_type, detail=str(value)) from None


def parse_record_types(values: Iterable[str | RecordType]) -> list[RecordType]:
    """Validate a grant's record-type set: 1 to 7 entries, known types only.

    Duplicates are folded, keeping the first occurrence's position.
    """
    raw = list(values)
    if not raw:
        raise ValidationError(ErrorCode.no_record_types_specified)
    if len(raw) > MAX_RECORD_TYPES:
        raise ResourceExhaustedError(
            ErrorCode.too_many_record_types, detail=f"max {MAX_RECORD_TYPES}"
        )
    parsed: list[RecordType] = []
    for value in raw:
        record_type = parse_record_type(value)
        if record_type not in parsed:
            parsed.append(record_type)
    return parsed


def check_future(expires_at: datetime | None, now: datetime) -> None:
    if expires_at is not None and ensure_aware(expires_at) <= now:
        raise ValidationError(ErrorCode.invalid_expiration_time)


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value

