"""Per-account orchestration: connect, backfill, then wait for new mail."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime

from ..core.config import AccountSettings, SyncSettings
from ..core.datetime_utils import retention_cutoff
from ..core.interfaces import (
    Classifier,
    EmailStore,
    FolderUnavailable,
    MailSession,
    ProtocolError,
    SessionConnectionError,
)
from ..core.models import BackfillReport, Category, FolderReport, SyncState
from ..ingestion.cursor import SyncCursorStore
from ..ingestion.folders import resolve_folder_paths
from ..ingestion.pipeline import EmailParserProtocol, EventDispatcher, IngestionPipeline

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class AccountSyncManager:
    """Keep one account's folders mirrored into the store.

    The manager owns its session exclusively. ``run_forever`` cycles
    ``CONNECTING -> BACKFILLING -> STEADY`` and drops back to
    ``DISCONNECTED`` on any session failure, reconnecting after a fixed
    backoff until :meth:`stop` is called. Cursor state is always re-read
    from the store, so stopping mid-pass loses nothing.
    """

    # pylint: disable=too-many-instance-attributes

    def __init__(
        self,
        account: AccountSettings,
        session: MailSession,
        store: EmailStore,
        classifier: Classifier,
        dispatcher: EventDispatcher | None = None,
        settings: SyncSettings | None = None,
        *,
        actionable_category: Category = Category.INTERESTED,
        parser: EmailParserProtocol | None = None,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        # pylint: disable=too-many-arguments
        self._account = account
        self._session = session
        self._settings = settings or SyncSettings()
        self._clock = clock
        self._monotonic = monotonic
        self._cursor = SyncCursorStore(store)
        self._pipeline = IngestionPipeline(
            store,
            classifier,
            dispatcher,
            parser=parser,
            cursor=self._cursor,
            retention_days=self._settings.retention_days,
            actionable_category=actionable_category,
            concurrency=self._settings.ingest_concurrency,
            clock=clock,
        )
        self._stop_event = threading.Event()
        self._state = SyncState.DISCONNECTED

    @property
    def account(self) -> AccountSettings:
        return self._account

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # Lifecycle ---------------------------------------------------------------
    def run_forever(self) -> None:
        """Sync until stopped, reconnecting after every session failure."""
        while not self.stopped:
            self._set_state(SyncState.CONNECTING)
            try:
                self._session.connect()
                self.run_backfill()
                self._run_steady()
            except SessionConnectionError as exc:
                if not self.stopped:
                    LOGGER.warning("[%s] Session failed: %s", self._account.key, exc)
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("[%s] Unexpected error during sync", self._account.key)
            finally:
                self._close_session()
                self._set_state(SyncState.DISCONNECTED)

            if self.stopped:
                break
            backoff = self._settings.reconnect_backoff_seconds
            LOGGER.info("[%s] Reconnecting in %.0fs", self._account.key, backoff)
            self._stop_event.wait(backoff)
        self._set_state(SyncState.STOPPED)

    def run_once(self) -> BackfillReport:
        """Connect, run a single backfill pass and disconnect."""
        self._set_state(SyncState.CONNECTING)
        try:
            self._session.connect()
            return self.run_backfill()
        finally:
            self._close_session()
            self._set_state(SyncState.DISCONNECTED)

    def stop(self) -> None:
        """Ask the manager to exit; unblocks a pending wait on the session."""
        LOGGER.info("[%s] Stop requested", self._account.key)
        self._stop_event.set()
        self._session.interrupt()

    # Sync passes -------------------------------------------------------------
    def run_backfill(self) -> BackfillReport:
        """Sync every resolved folder in order, skipping the ones that fail."""
        self._set_state(SyncState.BACKFILLING)
        self._cursor.reset()
        report = BackfillReport(account=self._account.key)
        folders = self._resolve_folders()
        LOGGER.info(
            "[%s] Backfilling %d folder(s): %s",
            self._account.key,
            len(folders),
            ", ".join(folders),
        )

        for index, folder in enumerate(folders):
            if self.stopped:
                break
            if index and self._settings.folder_delay_seconds:
                if self._stop_event.wait(self._settings.folder_delay_seconds):
                    break
            try:
                report.folders.append(self.sync_folder(folder))
            except ProtocolError as exc:
                LOGGER.warning(
                    "[%s] Skipping folder '%s': %s", self._account.key, folder, exc
                )
                report.skipped.append(folder)

        LOGGER.info(
            "[%s] Backfill complete: %d indexed, %d folder(s) skipped",
            self._account.key,
            report.indexed,
            len(report.skipped),
        )
        return report

    def sync_folder(self, folder: str) -> FolderReport:
        """Ingest every message in ``folder`` newer than its stored cursor."""
        self._session.select_folder(folder)
        last_identifier = self._cursor.last_identifier(self._account.name, folder)
        since = retention_cutoff(self._clock(), self._settings.retention_days)
        identifiers = self._session.search_since(folder, since)
        candidates = sorted(uid for uid in identifiers if uid > last_identifier)
        report = FolderReport(
            folder=folder,
            last_identifier=last_identifier,
            candidates=len(candidates),
        )
        LOGGER.debug(
            "[%s] %s: %d found, %d newer than %d",
            self._account.key,
            folder,
            len(identifiers),
            len(candidates),
            last_identifier,
        )
        if not candidates:
            return report

        chunks = self._session.fetch_messages(folder, candidates)
        report.results = self._pipeline.ingest_many(
            chunks, account=self._account.name, folder=folder
        )
        LOGGER.info(
            "[%s] %s: indexed %d of %d new message(s)",
            self._account.key,
            folder,
            report.indexed,
            len(candidates),
        )
        return report

    def sync_delta(self) -> FolderReport | None:
        """Sync the primary folder after a new-mail signal.

        A search or fetch failure skips this signal; a primary folder that can
        no longer be opened is a session failure.
        """
        folder = self._account.primary_folder
        self._cursor.reset()
        try:
            return self.sync_folder(folder)
        except FolderUnavailable as exc:
            raise SessionConnectionError(
                f"Primary folder '{folder}' is unavailable"
            ) from exc
        except ProtocolError as exc:
            LOGGER.warning(
                "[%s] Delta sync of '%s' failed: %s", self._account.key, folder, exc
            )
            return None

    # Internal helpers --------------------------------------------------------
    def _run_steady(self) -> None:
        if self.stopped:
            return
        self._set_state(SyncState.STEADY)
        # Catch anything that arrived while the backfill was running.
        self.sync_delta()
        self._select_primary()

        interval = self._settings.keepalive_interval_seconds
        next_keepalive = self._monotonic() + interval
        while not self.stopped:
            remaining = next_keepalive - self._monotonic()
            if remaining <= 0:
                self._keepalive()
                next_keepalive = self._monotonic() + interval
                continue
            timeout = min(self._settings.idle_timeout_seconds, remaining)
            if not self._session.wait_for_new_mail(timeout):
                continue
            if self.stopped:
                break
            LOGGER.debug("[%s] New mail signalled", self._account.key)
            self.sync_delta()
            self._select_primary()

    def _resolve_folders(self) -> list[str]:
        try:
            nodes = self._session.list_folders()
        except ProtocolError as exc:
            LOGGER.warning(
                "[%s] Folder listing failed, syncing %s only: %s",
                self._account.key,
                self._account.primary_folder,
                exc,
            )
            return [self._account.primary_folder]
        paths = resolve_folder_paths(
            nodes, include_parents=self._settings.include_parent_folders
        )
        # The primary folder is backfilled even when it only has children.
        primary = self._account.primary_folder
        if primary.strip().lower() not in {path.strip().lower() for path in paths}:
            paths.insert(0, primary)
        return paths

    def _select_primary(self) -> None:
        folder = self._account.primary_folder
        try:
            self._session.select_folder(folder)
        except ProtocolError as exc:
            raise SessionConnectionError(
                f"Primary folder '{folder}' is unavailable"
            ) from exc

    def _keepalive(self) -> None:
        try:
            self._session.noop()
            LOGGER.debug("[%s] Keepalive sent", self._account.key)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("[%s] Keepalive failed: %s", self._account.key, exc)

    def _close_session(self) -> None:
        try:
            self._session.close()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.debug("[%s] Error closing session: %s", self._account.key, exc)

    def _set_state(self, state: SyncState) -> None:
        if state is not self._state:
            LOGGER.debug(
                "[%s] %s -> %s", self._account.key, self._state.value, state.value
            )
            self._state = state


__all__ = ["AccountSyncManager"]
