"""
Datetime utilities.
All persisted timestamps are naive UTC, matching the database columns.
"""
import calendar
from datetime import datetime, date, timezone


def utcnow():
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value):
    """
    Normalize a datetime to naive UTC.

    Args:
        value: datetime (naive values are assumed to already be UTC)

    Returns:
        datetime: naive UTC datetime
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(value):
    """
    Parse an ISO-8601 string, date or datetime into a naive UTC datetime.

    Accepts the trailing 'Z' emitted by JavaScript's toISOString().

    Args:
        value: str, date, datetime or None

    Returns:
        datetime or None

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        return to_naive_utc(datetime.fromisoformat(text))
    raise ValueError(f'Unsupported timestamp value: {value!r}')


def add_months(moment, months=1):
    """
    Add calendar months to a datetime.

    The day is clamped to the last day of the target month
    (January 31 + 1 month = February 28/29).
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
