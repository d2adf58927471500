"""Fleet-wide single-flight locks for the scan scheduler"""
import logging
import threading
from typing import Dict, Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

SCANNER_LOCK_KEY = 424242


class DistributedLock(Protocol):
    """Non-blocking mutual exclusion shared by every scheduler instance"""

    def try_acquire(self) -> bool:
        """Acquire without waiting; False when another holder has it"""
        ...

    def release(self) -> None:
        """Release if held; a no-op otherwise"""
        ...


class PostgresAdvisoryLock:
    """
    Session-level PostgreSQL advisory lock.

    The lock belongs to the database session that took it, so it is held on
    a dedicated connection kept open until ``release``.
    """

    def __init__(self, engine: Engine, key: int = SCANNER_LOCK_KEY):
        self.engine = engine
        self.key = key
        self._connection: Optional[Connection] = None

    @property
    def held(self) -> bool:
        return self._connection is not None

    def try_acquire(self) -> bool:
        if self._connection is not None:
            return True

        connection = self.engine.connect()
        try:
            acquired = connection.execute(
                text("SELECT pg_try_advisory_lock(:key)"), {"key": self.key}
            ).scalar()
            connection.commit()
        except Exception:
            connection.close()
            raise

        if not acquired:
            connection.close()
            return False

        self._connection = connection
        return True

    def release(self) -> None:
        if self._connection is None:
            return
        try:
            self._connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": self.key})
            self._connection.commit()
        except Exception as e:
            logger.warning(f"Failed to release advisory lock {self.key}: {e}", extra={'component': 'ScanScheduler'})
        finally:
            self._connection.close()
            self._connection = None


class LocalLock:
    """
    In-process lock keyed like the advisory lock, for databases without
    advisory locks (SQLite in tests and local runs).
    """

    _locks: Dict[int, threading.Lock] = {}
    _registry_guard = threading.Lock()

    def __init__(self, key: int = SCANNER_LOCK_KEY):
        self.key = key
        self.held = False
        with self._registry_guard:
            self._lock = self._locks.setdefault(key, threading.Lock())

    def try_acquire(self) -> bool:
        if self.held:
            return True
        self.held = self._lock.acquire(blocking=False)
        return self.held

    def release(self) -> None:
        if self.held:
            self._lock.release()
            self.held = False


def lock_for_engine(engine: Engine, key: int = SCANNER_LOCK_KEY) -> DistributedLock:
    """Advisory lock on PostgreSQL, an in-process lock elsewhere"""
    if engine.dialect.name == "postgresql":
        return PostgresAdvisoryLock(engine, key)
    return LocalLock(key)
