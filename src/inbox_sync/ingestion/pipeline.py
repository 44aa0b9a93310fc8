"""Per-message ingestion: parse, filter, deduplicate, classify, persist, notify."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Protocol

from ..core.datetime_utils import retention_cutoff
from ..core.interfaces import (
    Classifier,
    EmailStore,
    MalformedMessageError,
    StoreError,
)
from ..core.models import (
    Category,
    CreateResult,
    IndexedEmailRecord,
    InboundMessage,
    IngestOutcome,
    IngestResult,
    MessageChunk,
    NotificationEvent,
    normalize_key,
)
from .cursor import SyncCursorStore
from .parser import EmailParser

LOGGER = logging.getLogger(__name__)


class EmailParserProtocol(Protocol):
    """Minimal protocol implemented by email parsers."""

    def parse(
        self, uid: int, payload: bytes, *, account: str, folder: str
    ) -> InboundMessage:
        """Convert raw RFC822 payload into an inbound message."""
        raise NotImplementedError


class EventDispatcher(Protocol):
    """Anything that accepts notification events."""

    def dispatch(self, event: NotificationEvent) -> None:
        """Hand ``event`` to the configured sinks."""
        raise NotImplementedError


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class IngestionPipeline:
    """Run fetched messages through the ingestion state machine.

    Deduplication happens before classification or notification, and the
    final write is create-only: a write that loses a race to a concurrent
    ingest of the same key is reported as ``RACE_LOST`` and notifies nobody.
    """

    def __init__(
        self,
        store: EmailStore,
        classifier: Classifier,
        dispatcher: EventDispatcher | None = None,
        *,
        parser: EmailParserProtocol | None = None,
        cursor: SyncCursorStore | None = None,
        retention_days: int = 30,
        actionable_category: Category = Category.INTERESTED,
        concurrency: int = 4,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        # pylint: disable=too-many-arguments
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self._store = store
        self._classifier = classifier
        self._dispatcher = dispatcher
        self._parser = parser or EmailParser()
        self._cursor = cursor
        self._retention_days = retention_days
        self._actionable_category = actionable_category
        self._concurrency = concurrency
        self._clock = clock

    def ingest(self, chunk: MessageChunk, *, account: str, folder: str) -> IngestResult:
        """Process one message; failures are contained to this message."""
        try:
            return self._ingest(chunk, account=account, folder=folder)
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception(
                "[%s] Unexpected error ingesting %s UID %s",
                normalize_key(account),
                folder,
                chunk.uid,
            )
            return IngestResult(identifier=chunk.uid, outcome=IngestOutcome.FAILED)

    def ingest_many(
        self, chunks: Iterable[MessageChunk], *, account: str, folder: str
    ) -> list[IngestResult]:
        """Process a fetched batch with bounded concurrency.

        ``chunks`` is consumed on the calling thread, so a streaming fetch
        stays on the session's thread while parsing and storage run in
        workers.
        """
        if self._concurrency == 1:
            results = [
                self.ingest(chunk, account=account, folder=folder) for chunk in chunks
            ]
        else:
            with ThreadPoolExecutor(
                max_workers=self._concurrency,
                thread_name_prefix=f"ingest-{normalize_key(account)}",
            ) as executor:
                futures = [
                    executor.submit(self.ingest, chunk, account=account, folder=folder)
                    for chunk in chunks
                ]
                results = [future.result() for future in futures]
        return sorted(results, key=lambda result: result.identifier)

    # Internal helpers ---------------------------------------------------------
    def _ingest(self, chunk: MessageChunk, *, account: str, folder: str) -> IngestResult:
        account_key = normalize_key(account)
        try:
            message = self._parser.parse(
                chunk.uid, chunk.raw, account=account, folder=folder
            )
        except MalformedMessageError as exc:
            LOGGER.warning("[%s] Skipping malformed message: %s", account_key, exc)
            return IngestResult(identifier=chunk.uid, outcome=IngestOutcome.MALFORMED)

        cutoff = retention_cutoff(self._clock(), self._retention_days)
        if message.sent_at < cutoff:
            LOGGER.debug(
                "[%s] Skipping old message UID %s from %s",
                account_key,
                chunk.uid,
                message.sent_at.isoformat(),
            )
            return IngestResult(identifier=chunk.uid, outcome=IngestOutcome.TOO_OLD)

        key = message.record_key
        try:
            if self._store.exists(key):
                LOGGER.debug("[%s] %s already indexed", account_key, key)
                return IngestResult(
                    identifier=chunk.uid,
                    outcome=IngestOutcome.ALREADY_INDEXED,
                    key=key,
                )
            category = self._classify(message)
            record = IndexedEmailRecord.from_message(message, category)
            created = self._store.create_if_absent(record)
        except StoreError as exc:
            LOGGER.error(
                "[%s] Failed to persist %s: %s", account_key, key, exc, exc_info=True
            )
            return IngestResult(
                identifier=chunk.uid, outcome=IngestOutcome.FAILED, key=key
            )

        if created is CreateResult.ALREADY_EXISTS:
            LOGGER.debug("[%s] %s was stored concurrently", account_key, key)
            return IngestResult(
                identifier=chunk.uid,
                outcome=IngestOutcome.RACE_LOST,
                key=key,
                category=category,
            )

        if self._cursor is not None:
            self._cursor.advance(account, folder, chunk.uid)
        LOGGER.info(
            '[%s] Indexed "%s" [%s] as %s', account_key, record.subject, category.value, key
        )

        notified = False
        if category is self._actionable_category:
            notified = self._notify(record)
        return IngestResult(
            identifier=chunk.uid,
            outcome=IngestOutcome.INDEXED,
            key=key,
            category=category,
            notified=notified,
        )

    def _classify(self, message: InboundMessage) -> Category:
        try:
            return self._classifier.classify(message.subject, message.body)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning(
                "Classifier failed for %s; using %s: %s",
                message.record_key,
                Category.UNCATEGORIZED.value,
                exc,
            )
            return Category.UNCATEGORIZED

    def _notify(self, record: IndexedEmailRecord) -> bool:
        if self._dispatcher is None:
            return False
        try:
            self._dispatcher.dispatch(NotificationEvent.from_record(record))
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "Notification dispatch failed for %s: %s", record.key, exc, exc_info=True
            )
            return False
        return True


__all__ = ["EmailParserProtocol", "EventDispatcher", "IngestionPipeline"]
