"""
routes/seasons.py — Season materialization and lifecycle routes.

Provides:
- GET    /api/fields/<field_id>/seasons?status= — JSON: seasons of a field
- POST   /api/fields/<field_id>/seasons         — Materialize a plan into a new season
- POST   /api/seasons/batch                     — Materialize one plan onto several fields
- POST   /api/seasons/<season_id>/complete      — Complete a season (writes a snapshot)
- DELETE /api/seasons/<season_id>               — Delete a season with no work orders

A database backup is taken before every materialization.
"""

import logging

from flask import Blueprint, jsonify, request

import work_orders
from database import get_field, list_seasons
from errors import FieldNotFoundError
from models import Activity
from utils.backup import backup_db
from utils.snapshots import save_snapshot
from utils.validators import parse_id_list, require_json, require_keys

logger = logging.getLogger(__name__)

seasons_bp = Blueprint('seasons', __name__, url_prefix='/api')


def _activities_from(data):
    return [Activity.from_dict(require_json(a)) for a in data.get('activities') or []]


@seasons_bp.route('/fields/<int:field_id>/seasons')
def field_seasons(field_id):
    if get_field(field_id) is None:
        raise FieldNotFoundError(f"Field {field_id} not found.")
    seasons = list_seasons(field_id, status=request.args.get('status') or None)
    return jsonify([s.to_dict() for s in seasons])


@seasons_bp.route('/fields/<int:field_id>/seasons', methods=['POST'])
def materialize(field_id):
    """Body: {planting_date, activities: [...], assignee?, created_by?, notes?}"""
    data = require_json(request.get_json(silent=True))
    require_keys(data, 'planting_date')

    backup_db('pre_materialize')
    result = work_orders.materialize(
        field_id,
        _activities_from(data),
        data['planting_date'],
        assignee=data.get('assignee'),
        created_by=data.get('created_by') or '',
        notes=data.get('notes'),
    )
    return jsonify(result.to_dict()), 201


@seasons_bp.route('/seasons/batch', methods=['POST'])
def materialize_batch():
    """Body: {field_ids: [...], planting_date, activities: [...], created_by?}"""
    data = require_json(request.get_json(silent=True))
    require_keys(data, 'planting_date')
    field_ids = parse_id_list(data.get('field_ids'))

    backup_db('pre_batch_materialize')
    result = work_orders.materialize_batch(
        field_ids,
        _activities_from(data),
        data['planting_date'],
        created_by=data.get('created_by') or '',
    )
    status = 201 if result.succeeded else 409
    return jsonify(result.to_dict()), status


@seasons_bp.route('/seasons/<int:season_id>/complete', methods=['POST'])
def complete_season(season_id):
    season = work_orders.complete_season(season_id)
    snapshot = save_snapshot(season_id)
    return jsonify({'season': season.to_dict(), 'snapshot': snapshot})


@seasons_bp.route('/seasons/<int:season_id>', methods=['DELETE'])
def delete_season(season_id):
    work_orders.delete_season(season_id)
    logger.info("Season %s deleted", season_id)
    return jsonify({'deleted': season_id})
