"""Integration tests for the FastAPI read API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient

from inbox_sync.core.config import ApiSettings, AppSettings, StorageSettings
from inbox_sync.core.interfaces import StoreError
from inbox_sync.core.models import Category, IndexedEmailRecord, compose_record_key
from inbox_sync.storage import SqliteEmailStore
from inbox_sync.web import create_app

BASE_TIME = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def _seed_data(store: SqliteEmailStore) -> None:
    rows = [
        ("sales", 1, "Re: Pricing", "We are interested", Category.INTERESTED),
        ("sales", 2, "Out of office", "Back Monday", Category.OUT_OF_OFFICE),
        ("support", 3, "Pricing escalation", "Customer asks", Category.UNCATEGORIZED),
    ]
    for account, identifier, subject, body, category in rows:
        store.create_if_absent(
            IndexedEmailRecord(
                key=compose_record_key(account, "INBOX", identifier),
                account=account,
                folder="INBOX",
                identifier=identifier,
                subject=subject,
                sender="lead@prospect.example",
                recipients=(f"{account}@example.com",),
                sent_at=BASE_TIME + timedelta(hours=identifier),
                body=body,
                category=category,
            )
        )


def _client(tmp_path: Path, page_size: int = 100) -> TestClient:
    settings = AppSettings(
        storage=StorageSettings(db_path=tmp_path / "web.db"),
        api=ApiSettings(page_size=page_size),
    )
    with SqliteEmailStore(settings.storage) as store:
        _seed_data(store)
    return TestClient(create_app(settings))


def test_list_emails_returns_records_newest_first(tmp_path: Path) -> None:
    client = _client(tmp_path)

    response = client.get("/api/emails")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert [item["uid"] for item in payload["data"]] == [3, 2, 1]
    assert payload["data"][2]["key"] == "sales|inbox|1"
    assert payload["data"][2]["category"] == "Interested"
    assert payload["metadata"]["total"] == 3
    assert payload["metadata"]["accounts"] == ["sales", "support"]


def test_search_filters_by_query_and_account(tmp_path: Path) -> None:
    client = _client(tmp_path)

    response = client.get("/api/emails/search", params={"q": "pricing", "account": "Sales"})

    payload = response.json()
    assert payload["count"] == 1
    assert payload["data"][0]["subject"] == "Re: Pricing"
    assert payload["filters"] == {"account": "Sales", "query": "pricing"}


def test_results_are_capped_at_page_size(tmp_path: Path) -> None:
    client = _client(tmp_path, page_size=2)

    response = client.get("/api/emails", params={"limit": 50})

    assert len(response.json()["data"]) == 2


def test_accounts_and_health_endpoints(tmp_path: Path) -> None:
    client = _client(tmp_path)

    accounts = client.get("/api/emails/accounts")
    health = client.get("/api/emails/health")

    assert accounts.json() == {"success": True, "accounts": ["sales", "support"]}
    assert health.status_code == 200
    assert health.text == "OK"


class _UnavailableStore:
    def search(self, text=None, *, account=None, limit=100):
        raise StoreError("database is locked")

    def list_accounts(self):
        raise StoreError("database is locked")

    def ping(self) -> bool:
        return False

    def close(self) -> None:
        return None


def test_store_failures_surface_as_service_unavailable() -> None:
    client = TestClient(create_app(AppSettings(), store=_UnavailableStore()))

    assert client.get("/api/emails").status_code == 503
    assert client.get("/api/emails/accounts").json()["success"] is False
    assert client.get("/api/emails/health").status_code == 503
