"""Pooled SQLite connections for the quiz results store."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator, List

logger = logging.getLogger(__name__)


class SQLiteConnectionPool:
    """Thread-safe pool handing out ``sqlite3.Row`` connections.

    Request handlers run on worker threads, so connections are opened with
    ``check_same_thread=False`` and only ever used by one borrower at a time.
    """

    def __init__(self, database: str, max_connections: int = 5, timeout: float = 5.0):
        self.database = database
        self.max_connections = max_connections
        self.timeout = timeout
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._lock = threading.Lock()
        self._all: List[sqlite3.Connection] = []

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database, timeout=self.timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._all)

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection; uncommitted work is rolled back on return."""
        try:
            connection = self._pool.get(block=False)
        except Empty:
            with self._lock:
                can_create = len(self._all) < self.max_connections
                if can_create:
                    connection = self._create_connection()
                    self._all.append(connection)
                    logger.debug("Opened SQLite connection %d/%d for %s",
                                 len(self._all), self.max_connections, self.database)
            if not can_create:
                connection = self._pool.get(block=True, timeout=self.timeout)

        try:
            yield connection
        finally:
            try:
                connection.rollback()
                self._pool.put(connection)
            except sqlite3.Error as e:
                logger.error("Dropping broken SQLite connection: %s", e)
                with self._lock:
                    if connection in self._all:
                        self._all.remove(connection)
                try:
                    connection.close()
                except sqlite3.Error:
                    logger.debug("Close failed for broken connection", exc_info=True)

    def close_all(self) -> None:
        """Close every connection the pool opened."""
        with self._lock:
            connections, self._all = self._all, []
        while True:
            try:
                self._pool.get(block=False)
            except Empty:
                break
        for connection in connections:
            try:
                connection.close()
            except sqlite3.Error:
                logger.debug("Ignoring close failure", exc_info=True)
