"""Shared test fixtures"""
import pytest

from signal_scanner.db.database import create_all_tables, drop_all_tables, init_database
from signal_scanner.db.session import get_db_session


@pytest.fixture
def db(tmp_path):
    """
    Fresh SQLite database per test.

    File-backed so that the scheduler's own sessions and the test's session
    each get a connection, as they would against PostgreSQL.
    """
    init_database(f"sqlite:///{tmp_path / 'scanner.db'}")
    create_all_tables()
    try:
        with get_db_session() as session:
            yield session
    finally:
        drop_all_tables()
