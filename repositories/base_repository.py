"""
Base repository with common database operations.
"""

import logging
import sqlite3
import time
from abc import ABC
from contextlib import contextmanager

from config import LOCK_TIMEOUT_MS
from database import Database
from domain.exceptions import ConflictError, TransientStoreError

logger = logging.getLogger("racebet.repositories")


class BaseRepository(ABC):
    """
    Base class for all repositories.

    Provides common database connection management and utilities.
    """

    # Track DB paths that have already had schema initialization performed
    _schema_initialized_paths = set()

    def __init__(self, db_path: str, lock_timeout_ms: int | None = None):
        """
        Initialize repository with database path.

        Args:
            db_path: Path to SQLite database file
            lock_timeout_ms: Bounded wait for the write lock (defaults to config)
        """
        self.db_path = db_path
        self.lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else LOCK_TIMEOUT_MS
        # Ensure schema is initialized for this database path (idempotent)
        if db_path not in BaseRepository._schema_initialized_paths:
            Database(db_path)
            BaseRepository._schema_initialized_paths.add(db_path)

    @staticmethod
    def now() -> int:
        return int(time.time())

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory enabled."""
        # isolation_level=None: transactions are opened explicitly below
        conn = sqlite3.connect(
            self.db_path,
            isolation_level=None,
            timeout=self.lock_timeout_ms / 1000,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={int(self.lock_timeout_ms)}")
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def connection(self):
        """
        Context manager for database connections.

        Opens a deferred transaction, commits on success, rolls back on
        exception, and always closes the connection.
        """
        with self._transaction("BEGIN") as conn:
            yield conn

    @contextmanager
    def atomic_transaction(self):
        """
        Context manager for atomic transactions with immediate write lock.

        Uses BEGIN IMMEDIATE to acquire the write lock up front, so concurrent
        balance mutations serialize: the second writer waits (bounded by
        busy_timeout) and then sees the first writer's commit.

        Usage:
            with self.atomic_transaction() as conn:
                cursor = conn.cursor()
                cursor.execute(...)

        The transaction commits on success and rolls back on exception.
        A lock timeout surfaces as TransientStoreError.
        """
        with self._transaction("BEGIN IMMEDIATE") as conn:
            yield conn

    @contextmanager
    def _transaction(self, begin_statement: str):
        try:
            conn = self.get_connection()
        except sqlite3.Error as exc:
            raise TransientStoreError(f"Database unavailable: {exc}") from exc
        try:
            conn.execute(begin_statement)
            yield conn
            conn.execute("COMMIT")
        except sqlite3.IntegrityError as exc:
            self._rollback(conn)
            logger.warning(f"Integrity violation rolled back: {exc}")
            raise ConflictError("Conflicting write rejected by the store.") from exc
        except sqlite3.OperationalError as exc:
            self._rollback(conn)
            logger.warning(f"Store operation failed, rolled back: {exc}")
            raise TransientStoreError(f"Temporary store failure: {exc}") from exc
        except Exception:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.rollback()

    @contextmanager
    def cursor(self):
        """
        Context manager that yields a cursor with automatic connection management.
        """
        with self.connection() as conn:
            yield conn.cursor()
