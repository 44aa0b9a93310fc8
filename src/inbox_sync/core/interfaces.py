"""Protocol interfaces and error types shared between components."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import datetime
from typing import Protocol

from .models import (
    Category,
    CreateResult,
    FolderNode,
    IndexedEmailRecord,
    MessageChunk,
    NotificationEvent,
)


class SessionConnectionError(ConnectionError):
    """The mail session is unusable; the account must reconnect."""


class ProtocolError(RuntimeError):
    """A single protocol operation (list, search, fetch) failed."""


class FolderUnavailable(ProtocolError):
    """A folder could not be opened for reading."""


class MalformedMessageError(ValueError):
    """Raw message bytes lack the fields required for ingestion."""


class StoreError(RuntimeError):
    """The persistent record store failed to complete an operation."""


class NotificationError(RuntimeError):
    """A notification sink failed to deliver an event."""


class NotificationRateLimited(NotificationError):
    """A notification sink asked us to slow down."""


class MailSession(Protocol):
    """One authenticated, stateful connection to an account's mail server."""

    def connect(self) -> None:
        """Open and authenticate the session or raise ``SessionConnectionError``."""
        raise NotImplementedError

    def list_folders(self) -> Sequence[FolderNode]:
        """Return the top-level folder nodes of the account."""
        raise NotImplementedError

    def select_folder(self, path: str) -> None:
        """Open ``path`` for reading or raise ``FolderUnavailable``."""
        raise NotImplementedError

    def search_since(self, folder: str, since: datetime) -> list[int]:
        """Return ascending identifiers of messages that arrived on/after ``since``."""
        raise NotImplementedError

    def fetch_messages(
        self, folder: str, identifiers: Sequence[int]
    ) -> Iterator[MessageChunk]:
        """Yield raw message payloads for ``identifiers``."""
        raise NotImplementedError

    def noop(self) -> None:
        """Send a keepalive command."""
        raise NotImplementedError

    def wait_for_new_mail(self, timeout: float) -> bool:
        """Block until the selected folder reports new mail or ``timeout`` expires."""
        raise NotImplementedError

    def interrupt(self) -> None:
        """Unblock any pending wait from another thread."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the network connection."""
        raise NotImplementedError


class EmailStore(Protocol):
    """Persistent, search-indexed record store with create-only writes."""

    def ensure_schema(self) -> None:
        """Create tables and indexes if missing."""
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        """Return whether a record with ``key`` is stored."""
        raise NotImplementedError

    def create_if_absent(self, record: IndexedEmailRecord) -> CreateResult:
        """Insert ``record`` unless its key already exists."""
        raise NotImplementedError

    def max_identifier(self, account: str, folder: str) -> int | None:
        """Return the highest stored identifier for the account/folder pair."""
        raise NotImplementedError

    def search(
        self,
        text: str | None = None,
        *,
        account: str | None = None,
        limit: int = 100,
    ) -> list[IndexedEmailRecord]:
        """Return matching records, newest first."""
        raise NotImplementedError

    def list_accounts(self) -> list[str]:
        """Return the distinct normalized accounts present in the store."""
        raise NotImplementedError

    def ping(self) -> bool:
        """Return whether the store answers queries."""
        raise NotImplementedError

    def close(self) -> None:
        """Close database connections if necessary."""
        raise NotImplementedError


class Classifier(Protocol):
    """Total function from message text to a category."""

    def classify(self, subject: str, body: str) -> Category:
        """Return exactly one category for the supplied text."""
        raise NotImplementedError


class NotificationSink(Protocol):
    """External destination for actionable-message events."""

    name: str

    def send(self, event: NotificationEvent) -> None:
        """Deliver ``event`` or raise ``NotificationError``."""
        raise NotImplementedError


__all__ = [
    "Classifier",
    "EmailStore",
    "FolderUnavailable",
    "MailSession",
    "MalformedMessageError",
    "NotificationError",
    "NotificationRateLimited",
    "NotificationSink",
    "ProtocolError",
    "SessionConnectionError",
    "StoreError",
]
