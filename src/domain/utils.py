"""Domain Utilities - Date and identifier helpers.

This module provides small conversion helpers shared by the clinical entries,
the parameter bag and the renderers.

Security Impact:
    - No security impact - pure utility functions
"""

import calendar
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID


def add_months(value: datetime, months: int) -> datetime:
    """Shift a datetime by whole calendar months, clamping to the month's last day.

    Parameters:
        value: Starting point
        months: Number of months to add (may be negative)

    Returns:
        datetime: Shifted datetime with the same time of day

    Example:
        ```python
        add_months(datetime(2024, 8, 31), 6)  # datetime(2025, 2, 28)
        ```
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _to_local_naive(value: datetime) -> datetime:
    """Stored timestamps are naive local time; convert offset-aware values to match."""
    if value.tzinfo is not None and value.utcoffset() is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce a datetime, date or ISO-8601 string to a naive local datetime.

    Values carrying a UTC offset (including a trailing `Z`) are converted to
    local time. Returns None for values that cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_local_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _to_local_naive(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def to_uuid(value: Any) -> Optional[UUID]:
    """Coerce a UUID or its string form; None for anything else."""
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            return None
    return None


def short_id(value: UUID) -> str:
    """First eight hex characters of an id, for display."""
    return str(value)[:8]


def format_date(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""
