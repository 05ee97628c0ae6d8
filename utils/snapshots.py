"""
utils/snapshots.py — JSON snapshot of a completed cultivation season.

Saves the season and its work orders to the history directory
(CULTIVATION_HISTORY_DIR, default history/) when a season is completed.
Format: field{field_id}_season{season_number}.json
"""

import json
import logging
import os
from datetime import datetime

from database import get_field, get_season, list_work_orders

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def get_history_dir():
    return os.environ.get('CULTIVATION_HISTORY_DIR', os.path.join(BASE_DIR, 'history'))


def save_snapshot(season_id):
    """
    Write a season and its work orders to a JSON file.

    Args:
        season_id: Cultivation season ID

    Returns:
        Filename of the saved snapshot, or None if the season does not exist.
    """
    season = get_season(season_id)
    if season is None:
        return None

    field = get_field(season.field_id)
    orders = list_work_orders(season_id=season_id)

    snapshot = {
        'field_id': season.field_id,
        'field_name': field.name if field else None,
        'season': season.to_dict(),
        'snapshot_at': datetime.now().isoformat(timespec='seconds'),
        'work_orders': [order.to_dict() for order in orders],
        'completed_count': sum(1 for order in orders if order.status == 'completed'),
    }

    history_dir = get_history_dir()
    os.makedirs(history_dir, exist_ok=True)
    filename = f"field{season.field_id}_season{season.season_number}.json"
    with open(os.path.join(history_dir, filename), 'w', encoding='utf-8') as f:
        json.dump(snapshot, f, ensure_ascii=False, indent=2)

    logger.info("Snapshot of season %s written to %s", season_id, filename)
    return filename
