"""
Input Normalization Utilities
=============================

Single source of truth for input normalization.
Custom period bounds handed over by the surrounding back office (or the
CLI) are parsed here, nowhere else.

Usage:
    from utils.normalize import to_datetime, ValidationError

    try:
        date_from = to_datetime(raw_from, field="from")
    except ValidationError as e:
        ...
"""

from datetime import date, datetime
from typing import Optional, Union


class ValidationError(ValueError):
    """Raised when input cannot be normalized to expected type."""

    def __init__(self, message: str, field: str = None, received_value=None):
        super().__init__(message)
        self.field = field
        self.received_value = received_value


def is_date_only(value) -> bool:
    """True for a date object or a bare YYYY-MM-DD string (no time part)."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def to_datetime(
    value: Optional[Union[str, date]],
    *,
    default: Optional[datetime] = None,
    field: str = None
) -> Optional[datetime]:
    """
    Convert ISO string to a naive datetime object.

    Accepts formats:
        - ISO 8601 format (e.g., 2024-01-15T10:30:00Z, 2024-01-15 10:30:00)
        - YYYY-MM-DD (midnight)
        - Already a datetime object (passthrough)
        - Already a date object (midnight)

    Offsets are dropped: wall-clock time in the reporting timezone is what
    the statistics windows compare against.

    Raises:
        ValidationError: If value cannot be parsed as datetime
    """
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(
            f"Expected ISO datetime, got {type(value).__name__}: {value!r}",
            field=field,
            received_value=value
        )
    return parsed.replace(tzinfo=None)
