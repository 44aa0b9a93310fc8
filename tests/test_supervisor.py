"""Tests for the multi-account supervisor."""

from __future__ import annotations

from datetime import timedelta

from fakes import NOW, FakeSession, InMemoryStore, RecordingDispatcher, build_raw_email, folder

from inbox_sync.core.config import AppSettings
from inbox_sync.core.interfaces import SessionConnectionError
from inbox_sync.core.models import SyncState
from inbox_sync.intelligence import KeywordClassifier
from inbox_sync.sync import Supervisor


def _settings(*names: str) -> AppSettings:
    return AppSettings.model_validate(
        {
            "accounts": {
                str(index): {"name": name, "host": "imap.test"}
                for index, name in enumerate(names, start=1)
            },
            "sync": {
                "folder_delay_seconds": 0,
                "reconnect_backoff_seconds": 0,
                "ingest_concurrency": 1,
                "retention_days": 36500,
            },
        }
    )


def _email(subject: str) -> bytes:
    return build_raw_email(subject, "Hello there.", sent_at=NOW - timedelta(hours=1))


def test_duplicate_account_keys_get_a_single_manager() -> None:
    sessions: list[FakeSession] = []

    def session_factory(account):
        session = FakeSession([folder("INBOX")])
        sessions.append(session)
        return session

    supervisor = Supervisor(
        _settings("Sales", " sales ", "Support"),
        InMemoryStore(),
        classifier=KeywordClassifier(),
        session_factory=session_factory,
        dispatcher_factory=RecordingDispatcher,
    )

    assert [manager.account.key for manager in supervisor.managers] == [
        "sales",
        "support",
    ]
    assert len(sessions) == 2


def test_each_manager_gets_its_own_session_and_dispatcher() -> None:
    dispatchers: list[RecordingDispatcher] = []

    def dispatcher_factory() -> RecordingDispatcher:
        dispatcher = RecordingDispatcher()
        dispatchers.append(dispatcher)
        return dispatcher

    supervisor = Supervisor(
        _settings("Sales", "Support"),
        InMemoryStore(),
        classifier=KeywordClassifier(),
        session_factory=lambda account: FakeSession([folder("INBOX")]),
        dispatcher_factory=dispatcher_factory,
    )

    sessions = {id(manager._session) for manager in supervisor.managers}  # pylint: disable=protected-access
    assert len(sessions) == 2
    assert len(dispatchers) == 2
    assert dispatchers[0] is not dispatchers[1]


def test_backfill_all_isolates_account_failures() -> None:
    healthy = FakeSession([folder("INBOX")], {"INBOX": {1: _email("Hi")}})
    broken = FakeSession([folder("INBOX")])
    broken.connect_errors = [SessionConnectionError("refused")]
    sessions = {"sales": healthy, "support": broken}
    store = InMemoryStore()

    supervisor = Supervisor(
        _settings("Sales", "Support"),
        store,
        classifier=KeywordClassifier(),
        session_factory=lambda account: sessions[account.key],
        dispatcher_factory=lambda: None,
    )

    reports = supervisor.backfill_all()

    assert [report.account for report in reports] == ["sales"]
    assert list(store.records) == ["sales|inbox|1"]


def test_start_and_stop_run_managers_on_threads() -> None:
    store = InMemoryStore()
    sessions: dict[str, FakeSession] = {}

    def session_factory(account):
        session = FakeSession(
            [folder("INBOX")], {"INBOX": {1: _email(f"Hello {account.key}")}}
        )
        # Keep the steady loop waiting until the supervisor stops it.
        session.wait_for_new_mail = lambda timeout: not session.interrupted.wait(timeout)  # type: ignore[method-assign]
        sessions[account.key] = session
        return session

    supervisor = Supervisor(
        _settings("Sales", "Support"),
        store,
        classifier=KeywordClassifier(),
        session_factory=session_factory,
        dispatcher_factory=lambda: None,
    )

    supervisor.start()
    try:
        for _ in range(200):
            if len(store.records) == 2:
                break
            supervisor.join(timeout=0.01)
    finally:
        assert supervisor.stop(timeout=5.0)

    assert sorted(store.records) == ["sales|inbox|1", "support|inbox|1"]
    assert all(manager.state is SyncState.STOPPED for manager in supervisor.managers)
    assert all(session.close_count == 1 for session in sessions.values())
