"""Database session utilities"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session
from signal_scanner.db.database import get_session


@contextmanager
def get_db_session() -> Iterator[Session]:
    """
    Context manager for database sessions.

    Commits on clean exit, rolls back and re-raises on error.

    Usage:
        with get_db_session() as db:
            settings = get_settings(db)
    """
    session_gen = get_session()
    db = next(session_gen)
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
