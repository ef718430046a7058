"""
Input coercion shared by the clinic services.

Every helper raises ``ValidationError`` on malformed input so callers can map
it to a 400 response.
"""

from datetime import date, datetime, time, timezone
from typing import Any
from uuid import UUID

from src.services.errors import ValidationError


def to_uuid(value: Any, field_label: str = "id") -> UUID:
    """Convert a string or UUID to a UUID object."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"Invalid {field_label}: {value!r}", "INVALID_ID")


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(raw: Any, field_label: str) -> datetime:
    """Parse an ISO-8601 date or datetime into a naive UTC datetime.

    Accepts ``datetime`` and ``date`` objects, and strings such as
    ``2025-03-04``, ``2025-03-04T10:00`` or ``2025-03-04T10:00:00Z``.

    Raises:
        ValidationError: If the value cannot be parsed.
    """
    if isinstance(raw, datetime):
        return to_naive_utc(raw)
    if isinstance(raw, date):
        return datetime.combine(raw, time.min)

    value = str(raw).strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        raise ValidationError(f"{field_label} is not a valid date", "INVALID_DATE")


def parse_required_date(raw: Any, field_label: str) -> datetime:
    """Parse a mandatory date field.

    Raises:
        ValidationError: MISSING_DATE when empty, INVALID_DATE when unparseable.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(f"{field_label} is required", "MISSING_DATE")
    return parse_datetime(raw, field_label)


def parse_fixed_time(value: str) -> tuple[int, int]:
    """Split an ``HH:MM`` slot time into hour and minute."""
    try:
        hour_str, minute_str = value.split(":")
        hour, minute = int(hour_str), int(minute_str)
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid slot time: {value!r}", "INVALID_TIME")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValidationError(f"Invalid slot time: {value!r}", "INVALID_TIME")
    return hour, minute


def normalize_reason(reason: str | None) -> str | None:
    """Trim a free-text reason; blank becomes None."""
    if reason is None:
        return None
    trimmed = reason.strip()
    return trimmed or None
