"""
tests/conftest.py — Shared fixtures.

Every test that touches SQLite gets its own temporary database, selected
through CULTIVATION_DB_PATH, with backups and snapshots redirected to
temporary directories.
"""

import os
import tempfile

import pytest

from app import create_app
from database import init_db, seed_defaults


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    """Create and seed a temporary cultivation database."""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')

    monkeypatch.setenv('CULTIVATION_DB_PATH', db_path)
    monkeypatch.setenv('CULTIVATION_BACKUP_DIR', str(tmp_path / 'backups'))
    monkeypatch.setenv('CULTIVATION_HISTORY_DIR', str(tmp_path / 'history'))

    from database import get_db_path
    assert get_db_path() == db_path

    init_db()
    seed_defaults()

    yield db_path

    os.close(db_fd)
    for suffix in ('', '-wal', '-shm'):
        try:
            os.unlink(db_path + suffix)
        except FileNotFoundError:
            pass


@pytest.fixture
def app(temp_db):
    return create_app({
        'TESTING': True,
        'WTF_CSRF_ENABLED': False,
        'SECRET_KEY': 'dev-key-for-testing',
    })


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client
