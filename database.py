"""
database.py — SQLite schema creation, seed data, and database operations.

This module is the persistence collaborator of the scheduling engine:
fields, users, cultivation seasons, work orders, and saved templates.
Uses WAL mode for concurrent read performance.

The single-active-season rule is enforced twice: the materializer checks it
before writing, and a partial unique index rejects any second active season
for the same field that slips through a race.
"""

import json
import logging
import os
import sqlite3
from datetime import datetime

from flask import current_app, has_app_context

from errors import ActiveSeasonConflictError, SeasonNumberConflictError
from hst import parse_optional_date
from models import CultivationSeason, Field, User, WorkOrder

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'cultivation.db')

DEFAULT_SETTINGS = {
    'assignee_roles': 'Level 3,Level 4',
    'shift_non_hst_by_delta': '0',
    'default_planting_date': '',
}


def get_db_path():
    """Database path: app config DATABASE, then CULTIVATION_DB_PATH, then data/."""
    if has_app_context() and current_app.config.get('DATABASE'):
        return current_app.config['DATABASE']
    return os.environ.get('CULTIVATION_DB_PATH', DEFAULT_DB_PATH)


def get_db():
    """Get a database connection with WAL mode and foreign keys enabled."""
    db_path = get_db_path()
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create all tables and indexes if they don't exist."""
    conn = get_db()
    cursor = conn.cursor()

    # Table: settings
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)

    # Table: users
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL DEFAULT '',
            role TEXT NOT NULL,
            email TEXT UNIQUE
        )
    """)

    # Table: fields
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS fields (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            user_id INTEGER REFERENCES users(id)
        )
    """)

    # Table: cultivation_seasons
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS cultivation_seasons (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            field_id INTEGER NOT NULL REFERENCES fields(id),
            name TEXT NOT NULL,
            season_number INTEGER NOT NULL,
            planting_date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active','completed')),
            completed_date TEXT,
            notes TEXT,
            created_by TEXT NOT NULL DEFAULT '',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(field_id, season_number)
        )
    """)

    # At most one active season per field
    cursor.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_seasons_one_active
        ON cultivation_seasons(field_id) WHERE status = 'active'
    """)

    # Table: work_orders
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS work_orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            field_id INTEGER REFERENCES fields(id),
            cultivation_season_id INTEGER REFERENCES cultivation_seasons(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            activity_kind TEXT NOT NULL,
            category TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending','in-progress','completed','overdue','cancelled')),
            priority TEXT NOT NULL DEFAULT 'medium' CHECK (priority IN ('low','medium','high')),
            assignee TEXT NOT NULL,
            start_date TEXT,
            end_date TEXT,
            progress INTEGER NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
            description TEXT,
            created_by TEXT NOT NULL DEFAULT '',
            completed_date TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Performance index
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_work_orders_season
        ON work_orders(cultivation_season_id)
    """)

    # Table: templates (serialized Template payloads)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS templates (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            payload TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.commit()
    conn.close()


def seed_defaults():
    """Populate default data if tables are empty. Idempotent — skips if data exists."""
    conn = get_db()
    cursor = conn.cursor()

    # --- Settings ---
    for key, value in DEFAULT_SETTINGS.items():
        cursor.execute(
            "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)", (key, value)
        )

    # --- Users ---
    existing = cursor.execute("SELECT COUNT(*) FROM users").fetchone()[0]
    if existing == 0:
        users = [
            ('Admin', 'Kebun', 'superadmin', 'admin@example.com'),
            ('Budi', 'Santoso', 'Level 3', 'budi@example.com'),
            ('Siti', 'Rahmawati', 'Level 4', 'siti@example.com'),
            ('Andi', 'Pratama', 'Level 1', 'andi@example.com'),
        ]
        cursor.executemany(
            "INSERT INTO users (first_name, last_name, role, email) VALUES (?, ?, ?, ?)",
            users
        )

    # --- Fields ---
    existing = cursor.execute("SELECT COUNT(*) FROM fields").fetchone()[0]
    if existing == 0:
        budi_id = cursor.execute(
            "SELECT id FROM users WHERE email = 'budi@example.com'"
        ).fetchone()
        fields = [
            ('Blok A1', budi_id['id'] if budi_id else None),
            ('Blok A2', None),
            ('Blok B1', None),
        ]
        cursor.executemany("INSERT INTO fields (name, user_id) VALUES (?, ?)", fields)

    conn.commit()
    conn.close()


# ========================================
# Row mapping
# ========================================

def _season_from_row(row):
    return CultivationSeason(
        id=row['id'],
        field_id=row['field_id'],
        name=row['name'],
        season_number=row['season_number'],
        planting_date=parse_optional_date(row['planting_date']),
        status=row['status'],
        completed_date=row['completed_date'],
        notes=row['notes'],
        created_by=row['created_by'],
        created_at=row['created_at'],
    )


def _work_order_from_row(row):
    return WorkOrder(
        id=row['id'],
        field_id=row['field_id'],
        cultivation_season_id=row['cultivation_season_id'],
        title=row['title'],
        activity_kind=row['activity_kind'],
        category=row['category'],
        status=row['status'],
        priority=row['priority'],
        assignee=row['assignee'],
        start_date=parse_optional_date(row['start_date']),
        end_date=parse_optional_date(row['end_date']),
        progress=row['progress'],
        description=row['description'],
        created_by=row['created_by'],
        completed_date=row['completed_date'],
    )


def _iso(value):
    return value.isoformat() if value else None


# ========================================
# Settings
# ========================================

def get_setting(key, default=None):
    """Get a setting value by key."""
    conn = get_db()
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    if row:
        return row['value']
    return default


def update_setting(key, value):
    """Insert or replace a setting value."""
    conn = get_db()
    conn.execute(
        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, str(value))
    )
    conn.commit()
    conn.close()


# ========================================
# Fields & users
# ========================================

def get_fields():
    """Retrieve all fields."""
    conn = get_db()
    rows = conn.execute("SELECT * FROM fields ORDER BY name").fetchall()
    conn.close()
    return [Field(id=r['id'], name=r['name'], user_id=r['user_id']) for r in rows]


def get_field(field_id):
    """Retrieve a single field by ID, or None."""
    conn = get_db()
    row = conn.execute("SELECT * FROM fields WHERE id = ?", (field_id,)).fetchone()
    conn.close()
    if not row:
        return None
    return Field(id=row['id'], name=row['name'], user_id=row['user_id'])


def create_field(name, user_id=None):
    """Insert a field and return it."""
    conn = get_db()
    cursor = conn.execute("INSERT INTO fields (name, user_id) VALUES (?, ?)", (name, user_id))
    conn.commit()
    field_id = cursor.lastrowid
    conn.close()
    return Field(id=field_id, name=name, user_id=user_id)


def _user_from_row(row):
    return User(
        id=row['id'],
        first_name=row['first_name'],
        last_name=row['last_name'],
        role=row['role'],
        email=row['email'] or '',
    )


def get_user(user_id):
    """Retrieve a single user by ID, or None."""
    conn = get_db()
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return _user_from_row(row) if row else None


def list_users_by_role(roles):
    """Retrieve users whose role is in roles, ordered by ID."""
    roles = list(roles)
    if not roles:
        return []
    placeholders = ', '.join('?' for _ in roles)
    conn = get_db()
    rows = conn.execute(
        f"SELECT * FROM users WHERE role IN ({placeholders}) ORDER BY id",
        roles
    ).fetchall()
    conn.close()
    return [_user_from_row(r) for r in rows]


# ========================================
# Cultivation seasons
# ========================================

def list_seasons(field_id, status=None):
    """Retrieve seasons for a field, optionally filtered by status."""
    conn = get_db()
    if status:
        rows = conn.execute(
            "SELECT * FROM cultivation_seasons WHERE field_id = ? AND status = ? ORDER BY season_number",
            (field_id, status)
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM cultivation_seasons WHERE field_id = ? ORDER BY season_number",
            (field_id,)
        ).fetchall()
    conn.close()
    return [_season_from_row(r) for r in rows]


def get_season(season_id):
    """Retrieve a single season by ID, or None."""
    conn = get_db()
    row = conn.execute("SELECT * FROM cultivation_seasons WHERE id = ?", (season_id,)).fetchone()
    conn.close()
    return _season_from_row(row) if row else None


def create_season(season):
    """
    Insert a cultivation season and return the stored record.

    Raises:
        ActiveSeasonConflictError: the field already has an active season.
        SeasonNumberConflictError: the season number is already taken for the field.
    """
    conn = get_db()
    try:
        cursor = conn.execute(
            """INSERT INTO cultivation_seasons
               (field_id, name, season_number, planting_date, status, notes, created_by)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (season.field_id, season.name, season.season_number,
             _iso(season.planting_date), season.status, season.notes, season.created_by)
        )
        conn.commit()
        season_id = cursor.lastrowid
    except sqlite3.IntegrityError as e:
        conn.rollback()
        logger.warning("Season insert rejected for field %s: %s", season.field_id, e)
        if 'season_number' in str(e):
            raise SeasonNumberConflictError(
                f"Season number {season.season_number} already exists for field {season.field_id}."
            ) from e
        raise ActiveSeasonConflictError(
            f"Field {season.field_id} already has an active cultivation season."
        ) from e
    finally:
        conn.close()
    return get_season(season_id)


def update_season(season_id, status=None, completed_date=None, notes=None):
    """Update status, completion date and/or notes of a season."""
    updates = []
    args = []
    if status is not None:
        updates.append("status = ?")
        args.append(status)
    if completed_date is not None:
        updates.append("completed_date = ?")
        args.append(completed_date)
    if notes is not None:
        updates.append("notes = ?")
        args.append(notes)
    if not updates:
        return get_season(season_id)

    args.append(season_id)
    conn = get_db()
    conn.execute(
        f"UPDATE cultivation_seasons SET {', '.join(updates)} WHERE id = ?", args
    )
    conn.commit()
    conn.close()
    return get_season(season_id)


def delete_season(season_id):
    """Delete a season; its work orders go with it (ON DELETE CASCADE)."""
    conn = get_db()
    conn.execute("DELETE FROM cultivation_seasons WHERE id = ?", (season_id,))
    conn.commit()
    conn.close()


# ========================================
# Work orders
# ========================================

def create_work_order(order):
    """Insert a work order and return the stored record."""
    conn = get_db()
    try:
        cursor = conn.execute(
            """INSERT INTO work_orders
               (field_id, cultivation_season_id, title, activity_kind, category,
                status, priority, assignee, start_date, end_date, progress,
                description, created_by)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (order.field_id, order.cultivation_season_id, order.title,
             order.activity_kind, order.category, order.status, order.priority,
             order.assignee, _iso(order.start_date), _iso(order.end_date),
             order.progress, order.description, order.created_by)
        )
        conn.commit()
        order_id = cursor.lastrowid
    finally:
        conn.close()
    return get_work_order(order_id)


def get_work_order(order_id):
    """Retrieve a single work order by ID, or None."""
    conn = get_db()
    row = conn.execute("SELECT * FROM work_orders WHERE id = ?", (order_id,)).fetchone()
    conn.close()
    return _work_order_from_row(row) if row else None


def list_work_orders(field_id=None, season_id=None, status=None):
    """Retrieve work orders in creation order, optionally filtered."""
    query = "SELECT * FROM work_orders WHERE 1=1"
    args = []
    if field_id is not None:
        query += " AND field_id = ?"
        args.append(field_id)
    if season_id is not None:
        query += " AND cultivation_season_id = ?"
        args.append(season_id)
    if status:
        query += " AND status = ?"
        args.append(status)
    query += " ORDER BY id"

    conn = get_db()
    rows = conn.execute(query, args).fetchall()
    conn.close()
    return [_work_order_from_row(r) for r in rows]


def count_work_orders(season_id):
    """Number of work orders attached to a season."""
    conn = get_db()
    count = conn.execute(
        "SELECT COUNT(*) FROM work_orders WHERE cultivation_season_id = ?", (season_id,)
    ).fetchone()[0]
    conn.close()
    return count


def update_work_order(order):
    """Persist status, progress and completion date of a work order."""
    conn = get_db()
    conn.execute(
        """UPDATE work_orders
           SET status = ?, progress = ?, completed_date = ?, updated_at = CURRENT_TIMESTAMP
           WHERE id = ?""",
        (order.status, order.progress, order.completed_date, order.id)
    )
    conn.commit()
    conn.close()
    return get_work_order(order.id)


# ========================================
# Template storage
# ========================================

def save_template(template_id, name, payload):
    """Store a serialized template under its ID (replaces an existing one)."""
    conn = get_db()
    conn.execute(
        "INSERT OR REPLACE INTO templates (id, name, payload, created_at) VALUES (?, ?, ?, ?)",
        (template_id, name, json.dumps(payload, ensure_ascii=False),
         payload.get('created_at') or datetime.now().isoformat(timespec='seconds'))
    )
    conn.commit()
    conn.close()


def load_template(template_id):
    """Return the stored template payload as a dict, or None. The name column wins."""
    conn = get_db()
    row = conn.execute(
        "SELECT name, payload FROM templates WHERE id = ?", (template_id,)
    ).fetchone()
    conn.close()
    if not row:
        return None
    payload = json.loads(row['payload'])
    payload['name'] = row['name']
    return payload


def list_templates():
    """Summaries of stored templates, newest first."""
    conn = get_db()
    rows = conn.execute(
        "SELECT id, name, payload, created_at FROM templates ORDER BY created_at DESC, name"
    ).fetchall()
    conn.close()

    summaries = []
    for row in rows:
        payload = json.loads(row['payload'])
        summaries.append({
            'id': row['id'],
            'name': row['name'],
            'description': payload.get('description'),
            'planting_date': payload.get('planting_date'),
            'activity_count': len(payload.get('activities', [])),
            'created_at': row['created_at'],
        })
    return summaries


def delete_template(template_id):
    """Delete a stored template. Returns True if a row was removed."""
    conn = get_db()
    cursor = conn.execute("DELETE FROM templates WHERE id = ?", (template_id,))
    conn.commit()
    conn.close()
    return cursor.rowcount > 0
