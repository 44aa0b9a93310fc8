"""Run one independent sync manager per configured account."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from ..core.config import AccountSettings, AppSettings
from ..core.interfaces import Classifier, EmailStore, MailSession
from ..core.models import BackfillReport
from ..ingestion.pipeline import EventDispatcher
from ..intelligence.category import build_classifier
from ..notify.dispatcher import build_dispatcher
from ..transport.imap_client import ImapSession
from .manager import AccountSyncManager

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[AccountSettings], MailSession]
DispatcherFactory = Callable[[], EventDispatcher | None]


class Supervisor:
    """Own the account managers and the threads they run on.

    Managers share nothing but the store: each gets its own session, cursor,
    pipeline and dispatcher. A failure inside one account never reaches the
    others or the supervisor.
    """

    def __init__(
        self,
        settings: AppSettings,
        store: EmailStore,
        *,
        classifier: Classifier | None = None,
        session_factory: SessionFactory | None = None,
        dispatcher_factory: DispatcherFactory | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._classifier = classifier or build_classifier(settings.llm)
        self._session_factory = session_factory or self._default_session
        self._dispatcher_factory = dispatcher_factory or (
            lambda: build_dispatcher(settings.notifications)
        )
        self._managers = self._build_managers(settings.accounts)
        self._threads: list[threading.Thread] = []

    @property
    def managers(self) -> list[AccountSyncManager]:
        return list(self._managers)

    def start(self) -> None:
        """Start one thread per account manager."""
        if self._threads:
            raise RuntimeError("Supervisor already started")
        for manager in self._managers:
            thread = threading.Thread(
                target=manager.run_forever,
                name=f"sync-{manager.account.key}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        LOGGER.info("Started %d account manager(s)", len(self._threads))

    def join(self, timeout: float | None = None) -> bool:
        """Wait for manager threads; return True once all have exited."""
        for thread in self._threads:
            thread.join(timeout)
        return not any(thread.is_alive() for thread in self._threads)

    def stop(self, timeout: float | None = 10.0) -> bool:
        """Stop every manager and wait up to ``timeout`` for each thread."""
        for manager in self._managers:
            manager.stop()
        finished = self.join(timeout)
        if not finished:
            LOGGER.warning("Some account managers did not stop within %ss", timeout)
        return finished

    def backfill_all(self) -> list[BackfillReport]:
        """Run a single backfill pass for every account, in parallel."""
        if not self._managers:
            return []
        with ThreadPoolExecutor(
            max_workers=len(self._managers), thread_name_prefix="backfill"
        ) as executor:
            futures = [
                executor.submit(self._backfill_one, manager)
                for manager in self._managers
            ]
            reports = [future.result() for future in futures]
        return [report for report in reports if report is not None]

    # Internal helpers --------------------------------------------------------
    def _build_managers(
        self, accounts: list[AccountSettings]
    ) -> list[AccountSyncManager]:
        managers: list[AccountSyncManager] = []
        seen: set[str] = set()
        for account in accounts:
            if account.key in seen:
                LOGGER.warning(
                    "Ignoring duplicate account '%s' (key %s)", account.name, account.key
                )
                continue
            seen.add(account.key)
            managers.append(
                AccountSyncManager(
                    account,
                    self._session_factory(account),
                    self._store,
                    self._classifier,
                    self._dispatcher_factory(),
                    self._settings.sync,
                    actionable_category=self._settings.notifications.actionable_category,
                )
            )
        return managers

    def _default_session(self, account: AccountSettings) -> MailSession:
        sync = self._settings.sync
        return ImapSession(
            account,
            connect_timeout=sync.connect_timeout_seconds,
            read_timeout=sync.read_timeout_seconds,
        )

    @staticmethod
    def _backfill_one(manager: AccountSyncManager) -> BackfillReport | None:
        try:
            return manager.run_once()
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("[%s] Backfill failed", manager.account.key)
            return None


__all__ = ["Supervisor"]
