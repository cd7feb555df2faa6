"""
Calendar Date Module

One explicit calendar-date value type (``datetime.date``) and the only date
arithmetic used by the resolver, projector and poster. Dates never carry a
time of day or a timezone, so day counts cannot shift across DST changes.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union
import re

from .exceptions import InvalidDateError


DAYS_PER_INSTALLMENT = 7

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[date, str]


def add_days(value: date, days: int) -> date:
    """Return ``value`` shifted by a whole number of days"""
    return value + timedelta(days=days)


def add_weeks(value: date, weeks: int) -> date:
    """Return ``value`` shifted by ``weeks`` installment periods"""
    return add_days(value, weeks * DAYS_PER_INSTALLMENT)


def days_between(start: date, end: date) -> int:
    """Signed number of days from ``start`` to ``end``"""
    return (end - start).days


def today() -> date:
    """Current calendar date"""
    return date.today()


def parse_date(value: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` string into a calendar date.

    Timestamps, offsets and compact layouts are rejected rather than
    truncated, because truncating a timestamp is exactly where a local
    timezone can move the date by one day.

    Args:
        value: Date string

    Returns:
        Parsed date

    Raises:
        InvalidDateError: If the string is not a valid calendar date
    """
    if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
        raise InvalidDateError(f"Expected a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise InvalidDateError(f"Invalid calendar date {value!r}: {e}") from e


def to_date(value: DateLike) -> date:
    """Coerce a date or ``YYYY-MM-DD`` string to a date"""
    if isinstance(value, datetime):
        raise InvalidDateError(
            f"Expected a calendar date without time of day, got {value.isoformat()}"
        )
    if isinstance(value, date):
        return value
    return parse_date(value)


def to_optional_date(value: Optional[DateLike]) -> Optional[date]:
    """Like ``to_date`` but passes ``None`` through"""
    if value is None:
        return None
    return to_date(value)


def format_date(value: Optional[date]) -> Optional[str]:
    """Format a date for storage or the wire"""
    if value is None:
        return None
    return value.isoformat()


def next_weekday_on_or_after(start: date, weekday: int) -> date:
    """
    First date on or after ``start`` that falls on ``weekday``.

    Args:
        start: Earliest acceptable date
        weekday: 0=Monday ... 6=Sunday

    Returns:
        Matching date
    """
    offset = (weekday - start.weekday()) % 7
    return add_days(start, offset)
