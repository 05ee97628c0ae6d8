"""
hst.py — Date/HST converter.

HST ("Hari Setelah Tanam", days after planting) anchors every cultivation
activity to a single planting date (HST 0). Negative offsets fall before
planting.

Only calendar dates are handled: no timezone conversion and no time of day.
"""

from datetime import date, datetime, timedelta

from errors import InvalidDateError


def parse_date(value):
    """
    Coerce a value to a calendar date.

    Accepts:
    - datetime.date (returned unchanged)
    - datetime.datetime (time of day dropped)
    - "YYYY-MM-DD" strings, or full ISO timestamps whose date part is used;
      anything after the date must be a valid time

    Raises:
        InvalidDateError: value is empty or not a calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError(f"Invalid date: {value!r}")

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text[-1:] in ('Z', 'z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise InvalidDateError(f"Invalid date: {value!r}") from None


def parse_optional_date(value):
    """Like parse_date, but None and empty strings map to None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_date(value)


def date_from_offset(planting_date, offset_days):
    """Return planting_date shifted by offset_days calendar days."""
    return parse_date(planting_date) + timedelta(days=int(offset_days))


def offset_from_date(planting_date, target):
    """
    Return the signed number of whole days from planting_date to target.

    When either side carries a time of day the difference is rounded to the
    nearest whole day, so DST shifts or partial days never leak into the HST.
    """
    if isinstance(planting_date, datetime) or isinstance(target, datetime):
        start = _as_datetime(planting_date)
        end = _as_datetime(target)
        return round((end - start).total_seconds() / 86400)
    return (parse_date(target) - parse_date(planting_date)).days


def _as_datetime(value):
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    day = parse_date(value)
    return datetime(day.year, day.month, day.day)


def format_hst(offset):
    """Label an offset the way the planning screens show it, e.g. 'HST -30'."""
    return f"HST {int(offset)}"


def iter_days(start, end):
    """Yield every calendar day from start to end inclusive."""
    current = parse_date(start)
    last = parse_date(end)
    while current <= last:
        yield current
        current += timedelta(days=1)
