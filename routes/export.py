"""
routes/export.py — Excel export route.

Provides:
- GET /api/seasons/<season_id>/export — Download a season's work orders as Excel

Auto-backup is triggered before every export.
"""

from flask import Blueprint, send_file

from errors import SeasonNotFoundError
from utils.backup import backup_db
from utils.export import generate_season_excel

export_bp = Blueprint('export', __name__, url_prefix='/api')


@export_bp.route('/seasons/<int:season_id>/export')
def export_season(season_id):
    """Export one season's work orders as Excel."""
    backup_db('export')

    buffer, filename = generate_season_excel(season_id)
    if not buffer:
        raise SeasonNotFoundError(f"Season {season_id} not found.")

    return send_file(
        buffer,
        as_attachment=True,
        download_name=filename,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
