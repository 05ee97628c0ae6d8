"""
routes/schedule.py — Work order calendar and progress routes.

Provides:
- GET   /api/work-orders/calendar?field_id=&season_id=&status=&start=&end=&sort=
                                         — JSON: day-bucketed accordion view
- GET   /api/work-orders/month/<year>/<month>?field_id=&season_id=
                                         — JSON: month grid with overdue status
- PATCH /api/work-orders/<id>/progress   — Report progress on a work order
"""

from datetime import date

from flask import Blueprint, jsonify, request

import work_orders
from calendar_view import (
    build_calendar, effective_status, expand_by_day, filter_work_orders,
    month_grid, sort_work_orders,
)
from database import list_work_orders
from errors import InvalidActivityError
from utils.validators import parse_progress, require_json, require_keys

schedule_bp = Blueprint('schedule', __name__, url_prefix='/api/work-orders')

SORT_KEYS = ('date', 'status', 'priority')


@schedule_bp.route('/calendar')
def calendar():
    args = request.args
    sort = args.get('sort', 'date')
    if sort not in SORT_KEYS:
        raise InvalidActivityError(f"Invalid sort key: {sort!r}")

    orders = list_work_orders(
        field_id=args.get('field_id', type=int),
        season_id=args.get('season_id', type=int),
    )
    orders = filter_work_orders(orders, status=args.get('status') or None,
                                start=args.get('start'), end=args.get('end'))
    view = build_calendar(sort_work_orders(orders, by=sort))
    return jsonify(view.to_dict())


@schedule_bp.route('/month/<int:year>/<int:month>')
def month_view(year, month):
    """Every day of the month with its work orders, for the calendar grid."""
    if not 1 <= month <= 12:
        raise InvalidActivityError(f"Invalid month: {month}")
    orders = list_work_orders(
        field_id=request.args.get('field_id', type=int),
        season_id=request.args.get('season_id', type=int),
    )
    today = date.today()
    return jsonify([
        {
            'day': day.isoformat(),
            'work_orders': [
                dict(order.to_dict(), effective_status=effective_status(order, today))
                for order in orders_on_day
            ],
        }
        for day, orders_on_day in month_grid(expand_by_day(orders), year, month)
    ])


@schedule_bp.route('/<int:order_id>/progress', methods=['PATCH'])
def update_progress(order_id):
    """Body: {progress: 0..100}"""
    data = require_json(request.get_json(silent=True))
    require_keys(data, 'progress')
    order = work_orders.update_progress(order_id, parse_progress(data['progress']))
    return jsonify(order.to_dict())
