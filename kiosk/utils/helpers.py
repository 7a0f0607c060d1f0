"""
Helper Utilities
Common utility functions used across the application
"""

import re
from datetime import datetime, date, time, timezone

DATE_FORMAT = '%Y-%m-%d'

# Sentinel watermark meaning "never synced"
EPOCH_DATE = '1900-01-01'


def utc_now():
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)


def to_iso(dt):
    """
    Format a datetime as an ISO-8601 UTC string with millisecond precision

    Naive datetimes are assumed to be UTC.

    Returns:
        str: e.g. 2026-02-25T23:30:00.000Z
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f'{dt.microsecond // 1000:03d}Z'


def iso_now():
    return to_iso(utc_now())


def parse_iso(value):
    """
    Parse an ISO-8601 timestamp

    Returns:
        datetime: aware datetime (UTC when no offset given) or None if invalid
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value):
    """
    Parse a business date

    Accepts a date, a datetime, 'YYYY-MM-DD' or a full ISO timestamp.

    Returns:
        date: parsed date or None if the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        if len(text) == 10:
            return datetime.strptime(text, DATE_FORMAT).date()
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def format_date(value):
    """Format a date as YYYY-MM-DD"""
    return value.strftime(DATE_FORMAT)


def end_of_day_iso(day):
    """ISO timestamp for the last millisecond of a date (UTC)"""
    return to_iso(datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc))


def normalize_phone(value):
    """Strip every non-digit character from a phone number"""
    return re.sub(r'\D', '', value or '')


def to_minor_units(value):
    """
    Coerce a monetary or quantity value to a non-negative integer

    Anything that is not a number (None, '', 'abc', NaN) becomes 0.
    """
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number or number in (float('inf'), float('-inf')):
        return 0
    return max(0, int(round(number)))


def format_currency(amount, symbol='$'):
    """
    Format an amount in minor units (cents) as currency

    Args:
        amount: Amount in cents
        symbol: Currency symbol

    Returns:
        str: Formatted amount, e.g. $120.00
    """
    sign = '-' if amount < 0 else ''
    return f"{sign}{symbol}{abs(amount) / 100:,.2f}"
