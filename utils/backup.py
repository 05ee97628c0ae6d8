"""
utils/backup.py — Database backup operations.

Copies the .db file to the backup directory with timestamped filenames.
Backup triggers: before materializing a season, on export.
Format: cultivation_YYYYMMDD_HHMMSS_{reason}.db

The backup directory comes from CULTIVATION_BACKUP_DIR (default backups/).
"""

import logging
import os
import shutil
from datetime import datetime

from database import get_db_path

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
PREFIX = 'cultivation_'


def get_backup_dir():
    return os.environ.get('CULTIVATION_BACKUP_DIR', os.path.join(BASE_DIR, 'backups'))


def backup_db(reason='manual'):
    """
    Copy the current database to the backup directory.

    Args:
        reason: Short tag for the backup trigger (e.g., 'pre_materialize', 'export').

    Returns:
        The filename of the created backup, or None if there is nothing to copy
        or the copy failed.
    """
    backup_dir = get_backup_dir()
    os.makedirs(backup_dir, exist_ok=True)

    db_path = get_db_path()
    if not os.path.exists(db_path):
        return None

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    safe_reason = reason.replace(' ', '_').replace('/', '_')[:30]
    filename = f'{PREFIX}{timestamp}_{safe_reason}.db'

    try:
        shutil.copy2(db_path, os.path.join(backup_dir, filename))
    except OSError:
        logger.exception("Backup '%s' of %s failed", reason, db_path)
        return None
    logger.info("Database backed up to %s", filename)
    return filename


def list_backups():
    """
    List backup files, newest first.

    Returns:
        List of dicts with keys: filename, timestamp, size_bytes, reason.
    """
    backup_dir = get_backup_dir()
    os.makedirs(backup_dir, exist_ok=True)

    backups = []
    for f in os.listdir(backup_dir):
        if not (f.startswith(PREFIX) and f.endswith('.db')):
            continue
        # cultivation_YYYYMMDD_HHMMSS_reason.db
        parts = f[len(PREFIX):-len('.db')].split('_')
        timestamp_str = ''
        reason = ''
        if len(parts) >= 2:
            date_part, time_part = parts[0], parts[1]
            timestamp_str = (f'{date_part[:4]}-{date_part[4:6]}-{date_part[6:8]} '
                             f'{time_part[:2]}:{time_part[2:4]}:{time_part[4:6]}')
            reason = '_'.join(parts[2:])

        backups.append({
            'filename': f,
            'timestamp': timestamp_str,
            'size_bytes': os.stat(os.path.join(backup_dir, f)).st_size,
            'reason': reason,
        })

    backups.sort(key=lambda b: b['filename'], reverse=True)
    return backups
