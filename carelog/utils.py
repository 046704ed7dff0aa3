"""Utility functions for carelog."""

import calendar
from datetime import UTC, date, datetime

#: A logbook period: ``(year, month)``.
Period = tuple[int, int]


def to_utc_iso(dt: datetime | None) -> str | None:
    """
    Convert datetime to UTC ISO format string.

    Args:
        dt: Datetime object to convert, or None

    Returns:
        ISO format string with UTC timezone, or None

    """
    if dt is None:
        return None
    # Naive datetimes are stored as UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def month_keys(year: int, month: int) -> list[str]:
    """
    Enumerate every day of a month as ISO date keys.

    Args:
        year: Year
        month: Month (1-12)

    Returns:
        ISO dates (``YYYY-MM-DD``) in ascending order

    Raises:
        ValueError: If the month is out of range

    """
    if not 1 <= month <= 12:  # noqa: PLR2004
        msg = f"Invalid month: {month}"
        raise ValueError(msg)
    _, days = calendar.monthrange(year, month)
    return [date(year, month, day).isoformat() for day in range(1, days + 1)]


def period_of(key: str) -> Period:
    """
    Get the period an ISO date key belongs to.

    Args:
        key: ISO date

    Returns:
        ``(year, month)``

    """
    day = date.fromisoformat(key)
    return day.year, day.month


def shift_period(period: Period, months: int) -> Period:
    """
    Move a period forwards or backwards by a number of months.

    Args:
        period: ``(year, month)``
        months: Number of months to move (may be negative)

    Returns:
        The shifted period

    """
    year, month = period
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def current_period() -> Period:
    """Get the period containing today."""
    today = date.today()  # noqa: DTZ011
    return today.year, today.month
