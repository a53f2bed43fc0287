"""Database connection and transaction management."""
import sqlite3
from contextlib import contextmanager
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Manages SQLite connections with WAL, foreign keys and IMMEDIATE transactions."""

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        self._is_configured = False

    def connect(self) -> sqlite3.Connection:
        """Get database connection with SQLite settings applied."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        self._apply_sqlite_settings(conn)
        return conn

    def _apply_sqlite_settings(self, conn: sqlite3.Connection):
        """Apply SQLite settings to a fresh connection."""
        try:
            # WAL is persistent in the database file; set it once per process
            if not self._is_configured:
                conn.execute("PRAGMA journal_mode=WAL")
                self._is_configured = True

            conn.execute("PRAGMA busy_timeout=30000")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA temp_store=MEMORY")

        except sqlite3.Error as e:
            logger.warning(f"Failed to apply SQLite settings: {e}")

    @contextmanager
    def transaction(self):
        """Context manager for a write transaction on a fresh connection."""
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
            logger.debug("Transaction committed successfully")
        except Exception as e:
            conn.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
            raise
        finally:
            conn.close()

    @contextmanager
    def connection(self):
        """Context manager for simple connection (no transaction)."""
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    def current_settings(self) -> dict:
        """Current PRAGMA values, for the health endpoint."""
        with self.connection() as conn:
            settings = {}
            for pragma in ("journal_mode", "busy_timeout", "foreign_keys", "synchronous"):
                try:
                    settings[pragma] = conn.execute(f"PRAGMA {pragma}").fetchone()[0]
                except sqlite3.Error as e:
                    logger.warning(f"Could not read PRAGMA {pragma}: {e}")
                    settings[pragma] = None
            return settings
