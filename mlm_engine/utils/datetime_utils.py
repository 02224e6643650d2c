"""
Datetime utilities.

Provides timezone-aware datetime functions and YYYY-MM period helpers.
"""

import re
from datetime import UTC, datetime

from mlm_engine.utils.exceptions import ValidationError


PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Make a datetime timezone-aware (UTC).

    Some drivers (sqlite) return naive datetimes for timezone columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def period_of(moment: datetime) -> str:
    """Period string (YYYY-MM) containing moment."""
    return ensure_utc(moment).strftime("%Y-%m")


def current_period() -> str:
    """Period string for now."""
    return period_of(utc_now())


def validate_period(period: str) -> str:
    """
    Validate a YYYY-MM period string.

    Raises:
        ValidationError: If period is malformed
    """
    if not isinstance(period, str) or not PERIOD_PATTERN.match(period):
        raise ValidationError(f"Invalid period {period!r}, expected YYYY-MM")
    return period


def period_end(period: str) -> datetime:
    """First instant after the period (start of the next month, UTC)."""
    match = PERIOD_PATTERN.match(validate_period(period))
    year, month = int(match.group(1)), int(match.group(2))
    if month == 12:
        return datetime(year + 1, 1, 1, tzinfo=UTC)
    return datetime(year, month + 1, 1, tzinfo=UTC)


def previous_period(period: str) -> str:
    """Period preceding the given one."""
    match = PERIOD_PATTERN.match(validate_period(period))
    year, month = int(match.group(1)), int(match.group(2))
    if month == 1:
        return f"{year - 1}-12"
    return f"{year}-{month - 1:02d}"
