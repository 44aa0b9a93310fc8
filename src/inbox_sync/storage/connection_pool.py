"""
SQLite connection pool.

Account sync threads, ingestion workers and API request handlers all share
one database file. Each borrows a connection for the duration of one store
call and hands it back afterwards; connections are opened once, in WAL mode,
so readers never block the single writer.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from queue import Empty, Queue
from threading import Lock

LOGGER = logging.getLogger(__name__)


class ConnectionPool:
    """Fixed-size, thread-safe pool of connections to one database file."""

    def __init__(
        self, db_path: Path | str, pool_size: int = 5, *, busy_timeout: float = 30.0
    ) -> None:
        """
        Open ``pool_size`` connections up front.

        Args:
            db_path: SQLite database file; parent directories are created
            pool_size: Number of pooled connections (default: 5)
            busy_timeout: Seconds a writer waits for the database lock
        """
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self._busy_timeout = busy_timeout
        # An empty slot (None) is refilled on the next acquire.
        self._idle: Queue[sqlite3.Connection | None] = Queue(maxsize=pool_size)
        self._lock = Lock()
        self._opened = 0
        self._closed = False

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(pool_size):
            self._idle.put(self._open())
        LOGGER.info("Opened %d SQLite connection(s) to %s", pool_size, self.db_path)

    @contextmanager
    def acquire(self, timeout: float = 10.0) -> Iterator[sqlite3.Connection]:
        """
        Borrow a connection until the ``with`` block exits.

        A connection that no longer answers is replaced transparently.

        Raises:
            RuntimeError: The pool has been closed
            TimeoutError: Every connection stayed busy for ``timeout`` seconds
        """
        if self._closed:
            raise RuntimeError("Connection pool is closed")
        try:
            connection = self._idle.get(timeout=timeout)
        except Empty as exc:
            raise TimeoutError(
                f"No SQLite connection became free within {timeout} seconds"
            ) from exc

        if connection is None or not _is_alive(connection):
            if connection is not None:
                LOGGER.warning("Replacing broken SQLite connection")
                connection.close()
            try:
                connection = self._open()
            except Exception:
                self._release(None)
                raise

        try:
            yield connection
        finally:
            self._release(connection)

    def close(self) -> None:
        """Close every idle connection; borrowed ones close on release."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            closed = 0
            while True:
                try:
                    connection = self._idle.get_nowait()
                except Empty:
                    break
                if connection is not None:
                    connection.close()
                    closed += 1
        LOGGER.info("Closed %d SQLite connection(s)", closed)

    def __enter__(self) -> ConnectionPool:
        """Enter context manager scope."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager scope and close pool."""
        self.close()

    @property
    def size(self) -> int:
        """Number of idle slots."""
        return self._idle.qsize()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _open(self) -> sqlite3.Connection:
        with self._lock:
            if self._closed:
                raise RuntimeError("Connection pool is closed")
            connection = sqlite3.connect(
                self.db_path,
                timeout=self._busy_timeout,
                check_same_thread=False,
            )
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA journal_mode = WAL")
            connection.execute("PRAGMA foreign_keys = ON")
            self._opened += 1
            LOGGER.debug("Opened SQLite connection #%d", self._opened)
            return connection

    def _release(self, connection: sqlite3.Connection | None) -> None:
        with self._lock:
            if not self._closed:
                self._idle.put(connection)
                return
        if connection is not None:
            connection.close()


def _is_alive(connection: sqlite3.Connection) -> bool:
    try:
        connection.execute("SELECT 1")
    except sqlite3.Error:
        return False
    return True


__all__ = ["ConnectionPool"]
