"""
Base service class with consistent transaction management.

Nested calls to safe_transaction() reuse the outer connection, so a service
method can call another one without opening a second write transaction.
"""

import sqlite3
import logging
import threading
from contextlib import contextmanager
from typing import Optional
from abc import ABC

from pipeline_tracker.database.connection import DatabaseConnection

logger = logging.getLogger(__name__)


class BaseService(ABC):
    """
    Base service class providing transaction management.

    Usage:
        class MyService(BaseService):
            def do_work(self):
                with self.safe_transaction() as conn:
                    conn.execute("INSERT INTO table VALUES (?)", (value,))
    """

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        # Transaction state is per thread; the service is shared by request threads
        self._local = threading.local()

    @property
    def _current_connection(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "connection", None)

    @_current_connection.setter
    def _current_connection(self, conn: Optional[sqlite3.Connection]):
        self._local.connection = conn

    @property
    def _in_transaction(self) -> bool:
        return getattr(self._local, "in_transaction", False)

    @_in_transaction.setter
    def _in_transaction(self, value: bool):
        self._local.in_transaction = value

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction and self._current_connection is not None

    @contextmanager
    def safe_transaction(self):
        """
        Context manager for a BEGIN IMMEDIATE transaction.

        Commits on success, rolls back and re-raises on any exception.

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        if self.in_transaction:
            logger.debug("Already in transaction, reusing existing connection")
            yield self._current_connection
            return

        conn = self.db.connect()
        self._current_connection = conn
        transaction_id = f"txn_{id(conn)}"
        logger.debug(f"Starting transaction {transaction_id}")

        try:
            conn.execute("BEGIN IMMEDIATE")
            self._in_transaction = True
            yield conn
            conn.commit()
            logger.debug(f"Transaction {transaction_id} committed successfully")

        except Exception as e:
            conn.rollback()
            logger.error(f"Transaction {transaction_id} rolled back due to error: {e}")
            raise

        finally:
            self._current_connection = None
            self._in_transaction = False
            conn.close()

    @contextmanager
    def safe_connection(self):
        """
        Connection for reads; reuses the transaction connection when inside one.

        Yields:
            sqlite3.Connection: Database connection
        """
        if self._current_connection is not None:
            yield self._current_connection
            return

        conn = self.db.connect()
        try:
            yield conn
        finally:
            conn.close()
