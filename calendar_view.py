"""
calendar_view.py — Day-indexed views of work orders for calendar/accordion UIs.

This module implements:
- Range expansion: each work order registered under every day it spans
- Past/upcoming partitioning with the default-expanded day
- Day labels, overdue status, filtering, sorting and month grids

All comparisons are on calendar days; no time of day is involved.
"""

import calendar
import logging
from collections import OrderedDict
from datetime import date, timedelta

from errors import InvalidDateError
from hst import iter_days, parse_optional_date
from models import CalendarView, DayBucket

logger = logging.getLogger(__name__)

OPEN_STATUSES = ('pending', 'in-progress')
STATUS_ORDER = {'overdue': 0, 'in-progress': 1, 'pending': 2, 'completed': 3, 'cancelled': 4}
PRIORITY_ORDER = {'high': 0, 'medium': 1, 'low': 2}


def _order_key(order):
    return ('id', order.id) if order.id is not None else ('obj', id(order))


def _date_range(order):
    """
    Return (first_day, last_day) of a work order, or None when it has no dates.

    A single date stands for both ends.

    Raises:
        InvalidDateError: a date is present but does not parse.
    """
    start = parse_optional_date(order.start_date)
    end = parse_optional_date(order.end_date)
    if start is None and end is None:
        return None
    return (start or end, end or start)


def expand_by_day(work_orders):
    """
    Group work orders by every calendar day they span.

    Rules:
    - Orders with both dates are registered on each day of [start, end]
    - Orders with one date land on that day only
    - Undated orders are left out
    - An order appears at most once per day; in-day order follows the input

    Returns:
        OrderedDict mapping date -> list of work orders, sorted by day.
    """
    buckets = {}
    seen = {}
    for order in work_orders:
        try:
            span = _date_range(order)
        except InvalidDateError as e:
            logger.warning("Skipping work order %s with unparseable dates: %s", order.id, e)
            continue
        if span is None:
            continue
        first, last = span
        if first > last:
            logger.warning("Skipping work order %s: start %s after end %s", order.id, first, last)
            continue

        key = _order_key(order)
        for day in iter_days(first, last):
            registered = seen.setdefault(day, set())
            if key in registered:
                continue
            registered.add(key)
            buckets.setdefault(day, []).append(order)

    return OrderedDict(sorted(buckets.items()))


def day_label(day, today=None):
    """
    Heading for a day bucket.

    'Today', 'Tomorrow', 'Expired - Monday, 1 December 2025' for past days,
    otherwise the long date ('Wednesday, 3 December 2025').
    """
    today = today or date.today()
    long_date = f"{day.strftime('%A')}, {day.day} {day.strftime('%B')} {day.year}"
    if day == today:
        return 'Today'
    if day == today + timedelta(days=1):
        return 'Tomorrow'
    if day < today:
        return f"Expired - {long_date}"
    return long_date


def build_calendar(work_orders, today=None):
    """
    Build the accordion view: expired days newest first, then today and later
    days oldest first.

    default_expanded is today when today has work orders, else the earliest
    upcoming day, else None.
    """
    today = today or date.today()
    by_day = expand_by_day(work_orders)

    past = []
    upcoming = []
    for day, orders in by_day.items():
        bucket = DayBucket(day=day, work_orders=orders,
                           label=day_label(day, today), is_past=day < today)
        (past if bucket.is_past else upcoming).append(bucket)
    past.reverse()

    if today in by_day:
        default_expanded = today
    elif upcoming:
        default_expanded = upcoming[0].day
    else:
        default_expanded = None

    return CalendarView(past=past, upcoming=upcoming, default_expanded=default_expanded)


def effective_status(order, today=None):
    """Status to display: open orders past their end date show as overdue."""
    today = today or date.today()
    if order.status in OPEN_STATUSES:
        span = _date_range(order)
        if span is not None and span[1] < today:
            return 'overdue'
    return order.status


def filter_work_orders(work_orders, status=None, start=None, end=None, today=None):
    """
    Keep orders matching a status and overlapping the [start, end] range.

    status is compared with effective_status, so 'overdue' matches open
    orders past their end date. Either range end may be None (open). Undated
    orders are dropped whenever a range is given.
    """
    start = parse_optional_date(start)
    end = parse_optional_date(end)
    result = []
    for order in work_orders:
        if status and effective_status(order, today) != status:
            continue
        if start or end:
            span = _date_range(order)
            if span is None:
                continue
            if start and span[1] < start:
                continue
            if end and span[0] > end:
                continue
        result.append(order)
    return result


def sort_work_orders(work_orders, by='date'):
    """Stable sort by 'date' (undated last), 'status' or 'priority'."""
    if by == 'date':
        def key(order):
            span = _date_range(order)
            return (span is None, span or ())
    elif by == 'status':
        def key(order):
            return STATUS_ORDER.get(order.status, len(STATUS_ORDER))
    elif by == 'priority':
        def key(order):
            return PRIORITY_ORDER.get(order.priority, len(PRIORITY_ORDER))
    else:
        raise ValueError(f"Unknown sort key: {by!r}")
    return sorted(work_orders, key=key)


def month_grid(by_day, year, month):
    """Every day of a month paired with its work orders (empty list if none)."""
    _, days_in_month = calendar.monthrange(year, month)
    return [
        (day, by_day.get(day, []))
        for day in (date(year, month, n) for n in range(1, days_in_month + 1))
    ]
