"""SQLite-backed record store with create-only writes."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import cast

from ..core.config import StorageSettings
from ..core.datetime_utils import parse_datetime, serialize_datetime
from ..core.interfaces import EmailStore, StoreError
from ..core.models import Category, CreateResult, IndexedEmailRecord, normalize_key
from .connection_pool import ConnectionPool

LOGGER = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent / "schema"

_RECORD_COLUMNS = """
    record_key,
    account,
    folder,
    identifier,
    subject,
    sender,
    recipients,
    sent_at,
    body_text,
    category
"""

_SEARCHABLE_COLUMNS = ("subject", "body_text", "sender", "recipients")


class SqliteEmailStore(EmailStore):
    """Persist indexed email records using SQLite.

    The primary key on ``record_key`` plus ``INSERT ... ON CONFLICT DO
    NOTHING`` is the only concurrency control: any number of threads may
    race to create the same record and exactly one of them wins.
    """

    def __init__(self, settings: StorageSettings) -> None:
        """Open the connection pool and apply the schema."""
        self._settings = settings
        self._pool = ConnectionPool(settings.db_path, pool_size=settings.pool_size)
        self.ensure_schema()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteEmailStore:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure connections are closed when exiting context manager."""
        self.close()

    # EmailStore API ----------------------------------------------------------
    def ensure_schema(self) -> None:
        """Apply every bundled schema script; scripts are idempotent."""
        with self._connection() as connection:
            for migration in sorted(SCHEMA_DIR.glob("*.sql")):
                LOGGER.debug("Applying migration %s", migration.name)
                script = migration.read_text(encoding="utf-8")
                connection.executescript(script)

    def exists(self, key: str) -> bool:
        """Return whether a record with ``key`` is stored."""
        with self._connection() as connection:
            cur = connection.execute(
                "SELECT 1 FROM emails WHERE record_key = ? LIMIT 1", (key,)
            )
            return cur.fetchone() is not None

    def create_if_absent(self, record: IndexedEmailRecord) -> CreateResult:
        """Insert ``record`` unless a record with the same key already exists."""
        LOGGER.debug("Persisting record %s", record.key)
        with self._connection() as connection:
            with connection:
                cur = connection.execute(
                    f"""
                    INSERT INTO emails ({_RECORD_COLUMNS}, folder_key, indexed_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT DO NOTHING
                    """,
                    (
                        record.key,
                        normalize_key(record.account),
                        record.folder,
                        record.identifier,
                        record.subject,
                        record.sender,
                        ",".join(record.recipients),
                        serialize_datetime(record.sent_at),
                        record.body,
                        record.category.value,
                        normalize_key(record.folder),
                        serialize_datetime(datetime.now(tz=UTC)),
                    ),
                )
        if cur.rowcount == 1:
            return CreateResult.CREATED
        return CreateResult.ALREADY_EXISTS

    def max_identifier(self, account: str, folder: str) -> int | None:
        """Return the highest identifier stored for ``(account, folder)``."""
        with self._connection() as connection:
            cur = connection.execute(
                """
                SELECT MAX(identifier) AS last_identifier
                FROM emails
                WHERE account = ? AND folder_key = ?
                """,
                (normalize_key(account), normalize_key(folder)),
            )
            row = cur.fetchone()
        if row is None or row["last_identifier"] is None:
            return None
        return int(row["last_identifier"])

    def fetch(self, key: str) -> IndexedEmailRecord | None:
        """Return the record stored under ``key``."""
        with self._connection() as connection:
            cur = connection.execute(
                f"SELECT {_RECORD_COLUMNS} FROM emails WHERE record_key = ?", (key,)
            )
            row = cur.fetchone()
        return _row_to_record(row) if row is not None else None

    def search(
        self,
        text: str | None = None,
        *,
        account: str | None = None,
        limit: int = 100,
    ) -> list[IndexedEmailRecord]:
        """Return records matching every term of ``text``, newest first."""
        clauses: list[str] = []
        parameters: list[object] = []
        if account:
            clauses.append("account = ?")
            parameters.append(normalize_key(account))
        for term in (text or "").lower().split():
            clauses.append(
                "("
                + " OR ".join(
                    f"instr(lower({column}), ?) > 0" for column in _SEARCHABLE_COLUMNS
                )
                + ")"
            )
            parameters.extend([term] * len(_SEARCHABLE_COLUMNS))
        where_clause = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        parameters.append(limit)
        with self._connection() as connection:
            cur = connection.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM emails
                {where_clause}
                ORDER BY sent_at DESC, identifier DESC
                LIMIT ?
                """,
                tuple(parameters),
            )
            rows = cur.fetchall()
        return [_row_to_record(row) for row in rows]

    def list_accounts(self) -> list[str]:
        """Return distinct normalized accounts in alphabetical order."""
        with self._connection() as connection:
            cur = connection.execute(
                "SELECT DISTINCT account FROM emails ORDER BY account"
            )
            return [row["account"] for row in cur.fetchall()]

    def count(self) -> int:
        """Return the number of stored records."""
        with self._connection() as connection:
            return int(connection.execute("SELECT COUNT(*) FROM emails").fetchone()[0])

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            with self._connection() as connection:
                connection.execute("SELECT 1")
        except StoreError:
            return False
        return True

    def close(self) -> None:
        """Close all pooled connections."""
        self._pool.close()

    # Internal helpers --------------------------------------------------------
    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._pool.acquire() as connection:
                yield connection
        except (sqlite3.Error, TimeoutError, RuntimeError) as exc:
            raise StoreError(str(exc)) from exc


def _row_to_record(row: sqlite3.Row) -> IndexedEmailRecord:
    return IndexedEmailRecord(
        key=row["record_key"],
        account=row["account"],
        folder=row["folder"],
        identifier=row["identifier"],
        subject=row["subject"],
        sender=row["sender"],
        recipients=_split_recipients(row["recipients"]),
        sent_at=cast(datetime, parse_datetime(row["sent_at"], assume_utc=True)),
        body=row["body_text"],
        category=Category(row["category"]),
    )


def _split_recipients(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(
        part for part in (segment.strip() for segment in value.split(",")) if part
    )


__all__ = ["SqliteEmailStore"]
