"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

KEY_SEPARATOR = "|"


def normalize_key(value: str) -> str:
    """Trim and lower-case an account or folder name for use in record keys."""
    return value.strip().lower()


def compose_record_key(account: str, folder: str, identifier: int) -> str:
    """Return the composite ``account|folder|identifier`` record key."""
    return KEY_SEPARATOR.join(
        (normalize_key(account), normalize_key(folder), str(identifier))
    )


class Category(str, Enum):
    """Classification labels; exactly one is assigned to every message."""

    INTERESTED = "Interested"
    NOT_INTERESTED = "Not Interested"
    MEETING_BOOKED = "Meeting Booked"
    OUT_OF_OFFICE = "Out of Office"
    SPAM = "Spam"
    UNCATEGORIZED = "Uncategorized"


class IngestOutcome(str, Enum):
    """Terminal state of one message in the ingestion pipeline."""

    INDEXED = "indexed"
    MALFORMED = "malformed"
    TOO_OLD = "too_old"
    ALREADY_INDEXED = "already_indexed"
    RACE_LOST = "race_lost"
    FAILED = "failed"


class CreateResult(str, Enum):
    """Result of a create-only store write."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class SyncState(str, Enum):
    """Lifecycle of an account sync manager."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    BACKFILLING = "backfilling"
    STEADY = "steady"
    STOPPED = "stopped"


@dataclass(slots=True)
class FolderNode:
    """Folder as reported by the server, with its own hierarchy delimiter."""

    name: str
    delimiter: str | None
    selectable: bool = True
    children: list[FolderNode] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children


@dataclass(frozen=True, slots=True)
class MailboxFolder:
    """Flattened, selectable folder path."""

    path: str
    is_leaf: bool


@dataclass(slots=True)
class MessageChunk:
    """Raw IMAP payload paired with its UID."""

    uid: int
    raw: bytes


@dataclass(slots=True)
class InboundMessage:
    """Parsed message awaiting deduplication and classification."""

    account: str
    folder: str
    identifier: int
    sender: str
    recipients: tuple[str, ...]
    subject: str
    sent_at: datetime
    body: str

    @property
    def record_key(self) -> str:
        return compose_record_key(self.account, self.folder, self.identifier)


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class IndexedEmailRecord:
    """Durable, searchable form of an accepted message."""

    key: str
    account: str
    folder: str
    identifier: int
    subject: str
    sender: str
    recipients: tuple[str, ...]
    sent_at: datetime
    body: str
    category: Category

    @classmethod
    def from_message(
        cls, message: InboundMessage, category: Category
    ) -> IndexedEmailRecord:
        return cls(
            key=message.record_key,
            account=normalize_key(message.account),
            folder=message.folder,
            identifier=message.identifier,
            subject=message.subject,
            sender=message.sender,
            recipients=message.recipients,
            sent_at=message.sent_at,
            body=message.body,
            category=category,
        )


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """Metadata fanned out to notification sinks."""

    account: str
    folder: str
    identifier: int
    subject: str
    sender: str
    sent_at: datetime
    category: Category

    @classmethod
    def from_record(cls, record: IndexedEmailRecord) -> NotificationEvent:
        return cls(
            account=record.account,
            folder=record.folder,
            identifier=record.identifier,
            subject=record.subject,
            sender=record.sender,
            sent_at=record.sent_at,
            category=record.category,
        )


@dataclass(frozen=True, slots=True)
class IngestResult:
    """Outcome of running one message through the pipeline."""

    identifier: int
    outcome: IngestOutcome
    key: str | None = None
    category: Category | None = None
    notified: bool = False


@dataclass(slots=True)
class FolderReport:
    """Outcome summary for syncing one folder."""

    folder: str
    last_identifier: int = 0
    candidates: int = 0
    results: list[IngestResult] = field(default_factory=list)

    def count(self, outcome: IngestOutcome) -> int:
        return sum(1 for result in self.results if result.outcome is outcome)

    @property
    def indexed(self) -> int:
        return self.count(IngestOutcome.INDEXED)


@dataclass(slots=True)
class BackfillReport:
    """Outcome summary for one backfill pass over an account."""

    account: str
    folders: list[FolderReport] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def indexed(self) -> int:
        return sum(report.indexed for report in self.folders)


__all__ = [
    "BackfillReport",
    "Category",
    "CreateResult",
    "FolderNode",
    "FolderReport",
    "IndexedEmailRecord",
    "InboundMessage",
    "IngestOutcome",
    "IngestResult",
    "MailboxFolder",
    "MessageChunk",
    "NotificationEvent",
    "SyncState",
    "compose_record_key",
    "normalize_key",
]
