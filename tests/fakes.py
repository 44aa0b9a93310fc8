"""In-memory collaborators shared by the sync and ingestion tests."""

from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence
from datetime import UTC, datetime
from email.message import EmailMessage
from email.utils import format_datetime

from inbox_sync.core.interfaces import (
    FolderUnavailable,
    ProtocolError,
)
from inbox_sync.core.models import (
    CreateResult,
    FolderNode,
    IndexedEmailRecord,
    MessageChunk,
    NotificationEvent,
    normalize_key,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def build_raw_email(
    subject: str,
    body: str,
    *,
    sent_at: datetime = NOW,
    sender: str = "lead@prospect.example",
) -> bytes:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = "sales@example.com"
    message["Subject"] = subject
    message["Date"] = format_datetime(sent_at)
    message.set_content(body)
    return message.as_bytes()


class InMemoryStore:
    """Thread-safe store honouring create-only writes."""

    def __init__(self) -> None:
        self.records: dict[str, IndexedEmailRecord] = {}
        self.create_calls = 0
        self._lock = threading.Lock()

    def ensure_schema(self) -> None:
        return None

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self.records

    def create_if_absent(self, record: IndexedEmailRecord) -> CreateResult:
        with self._lock:
            self.create_calls += 1
            if record.key in self.records:
                return CreateResult.ALREADY_EXISTS
            self.records[record.key] = record
            return CreateResult.CREATED

    def max_identifier(self, account: str, folder: str) -> int | None:
        with self._lock:
            identifiers = [
                record.identifier
                for record in self.records.values()
                if record.account == normalize_key(account)
                and normalize_key(record.folder) == normalize_key(folder)
            ]
        return max(identifiers) if identifiers else None

    def search(self, text=None, *, account=None, limit=100):
        with self._lock:
            records = list(self.records.values())
        if account:
            records = [r for r in records if r.account == normalize_key(account)]
        if text:
            needle = text.lower()
            records = [
                r for r in records if needle in f"{r.subject} {r.body}".lower()
            ]
        records.sort(key=lambda r: r.sent_at, reverse=True)
        return records[:limit]

    def list_accounts(self) -> list[str]:
        with self._lock:
            return sorted({record.account for record in self.records.values()})

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        return None


class RecordingDispatcher:
    """Collect dispatched events instead of sending them."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []
        self._lock = threading.Lock()

    def dispatch(self, event: NotificationEvent) -> None:
        with self._lock:
            self.events.append(event)


class FakeSession:
    """Scriptable mail session backed by per-folder message maps.

    ``wait_results`` feeds :meth:`wait_for_new_mail`; each entry is either a
    boolean or a callable run before returning True. When the script runs out
    the session stops ``manager`` (if set) so loops terminate.
    """

    def __init__(
        self,
        folders: Sequence[FolderNode],
        messages: dict[str, dict[int, bytes]] | None = None,
    ) -> None:
        self.folders = list(folders)
        self.messages = messages or {}
        self.unavailable: set[str] = set()
        self.failing_searches: set[str] = set()
        self.list_error: Exception | None = None
        self.connect_errors: list[Exception] = []
        self.noop_error: Exception | None = None
        self.wait_results: list[object] = []
        self.manager = None
        self.connect_count = 0
        self.close_count = 0
        self.noop_count = 0
        self.selected: list[str] = []
        self.searched: list[str] = []
        self.fetched: list[tuple[str, list[int]]] = []
        self.wait_timeouts: list[float] = []
        self.interrupted = threading.Event()

    def connect(self) -> None:
        self.connect_count += 1
        if self.connect_errors:
            raise self.connect_errors.pop(0)

    def list_folders(self) -> list[FolderNode]:
        if self.list_error is not None:
            raise self.list_error
        return self.folders

    def select_folder(self, path: str) -> None:
        if path in self.unavailable:
            raise FolderUnavailable(f"Unable to open folder '{path}'")
        self.selected.append(path)

    def search_since(self, folder: str, since: datetime) -> list[int]:
        if folder in self.failing_searches:
            raise ProtocolError(f"Failed to search folder '{folder}'")
        self.searched.append(folder)
        return sorted(self.messages.get(folder, {}))

    def fetch_messages(
        self, folder: str, identifiers: Sequence[int]
    ) -> Iterator[MessageChunk]:
        self.fetched.append((folder, list(identifiers)))
        for identifier in identifiers:
            yield MessageChunk(uid=identifier, raw=self.messages[folder][identifier])

    def noop(self) -> None:
        self.noop_count += 1
        if self.noop_error is not None:
            raise self.noop_error

    def wait_for_new_mail(self, timeout: float) -> bool:
        self.wait_timeouts.append(timeout)
        if not self.wait_results:
            if self.manager is not None:
                self.manager.stop()
            return False
        result = self.wait_results.pop(0)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            result()
            return True
        return bool(result)

    def interrupt(self) -> None:
        self.interrupted.set()

    def close(self) -> None:
        self.close_count += 1


def folder(name: str, *children: FolderNode, delimiter: str | None = "/") -> FolderNode:
    return FolderNode(name=name, delimiter=delimiter, children=list(children))


__all__ = [
    "NOW",
    "FakeSession",
    "InMemoryStore",
    "RecordingDispatcher",
    "build_raw_email",
    "folder",
]
