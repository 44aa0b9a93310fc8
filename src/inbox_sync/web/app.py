"""FastAPI read API over the indexed email store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import Depends, FastAPI, Query, Request, status as http_status
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.routing import APIRoute

from inbox_sync.core import AppSettings, load_app_settings
from inbox_sync.core.datetime_utils import serialize_datetime
from inbox_sync.core.interfaces import EmailStore, StoreError
from inbox_sync.core.models import IndexedEmailRecord
from inbox_sync.storage import SqliteEmailStore

LOGGER = logging.getLogger(__name__)


def create_app(
    settings: AppSettings | None = None, store: EmailStore | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    When ``store`` is supplied the caller keeps ownership of it; otherwise the
    app opens its own SQLite store and closes it on shutdown.
    """
    app_settings = settings or load_app_settings(env_file=".env")
    owns_store = store is None
    email_store: EmailStore = store or SqliteEmailStore(app_settings.storage)
    page_size = app_settings.api.page_size

    app = FastAPI(title="Inbox Sync API")
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    def get_store() -> EmailStore:
        return email_store

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Close the store on app shutdown if the app opened it."""
        if owns_store:
            email_store.close()
            LOGGER.info("Email store closed")

    @app.exception_handler(StoreError)
    async def store_error_handler(_: Request, exc: StoreError) -> JSONResponse:
        LOGGER.error("Store query failed: %s", exc)
        return JSONResponse(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "error": "store unavailable"},
        )

    @app.get("/api/emails")
    def list_emails(
        q: str | None = Query(default=None),  # noqa: B008
        account: str | None = Query(default=None),  # noqa: B008
        limit: int | None = Query(default=None),  # noqa: B008
        repository: EmailStore = Depends(get_store),  # noqa: B008
    ) -> dict[str, Any]:
        records = repository.search(
            q, account=account, limit=_parse_limit(limit, page_size)
        )
        return {
            "success": True,
            "data": [_serialize_record(record) for record in records],
            "filters": {"account": account, "query": q},
            "metadata": {
                "total": len(records),
                "accounts": sorted({record.account for record in records}),
                "lastUpdated": serialize_datetime(datetime.now(tz=UTC)),
            },
        }

    @app.get("/api/emails/search")
    def search_emails(
        q: str | None = Query(default=None),  # noqa: B008
        account: str | None = Query(default=None),  # noqa: B008
        limit: int | None = Query(default=None),  # noqa: B008
        repository: EmailStore = Depends(get_store),  # noqa: B008
    ) -> dict[str, Any]:
        records = repository.search(
            q, account=account, limit=_parse_limit(limit, page_size)
        )
        return {
            "success": True,
            "data": [_serialize_record(record) for record in records],
            "filters": {"account": account, "query": q},
            "count": len(records),
        }

    @app.get("/api/emails/accounts")
    def list_accounts(
        repository: EmailStore = Depends(get_store),  # noqa: B008
    ) -> dict[str, Any]:
        return {"success": True, "accounts": repository.list_accounts()}

    @app.get("/api/emails/health", response_class=PlainTextResponse)
    def health(
        repository: EmailStore = Depends(get_store),  # noqa: B008
    ) -> PlainTextResponse:
        if repository.ping():
            return PlainTextResponse("OK")
        return PlainTextResponse(
            "UNAVAILABLE", status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE
        )

    _ensure_route_names(app)
    return app


def _ensure_route_names(app: FastAPI) -> None:
    """Assign names to routes if absent for better URL reversing."""
    for route in app.router.routes:
        if isinstance(route, APIRoute) and route.name is None:
            route.name = route.path_format.replace("/", ":") or "root"


def _serialize_record(record: IndexedEmailRecord) -> dict[str, Any]:
    return {
        "key": record.key,
        "account": record.account,
        "folder": record.folder,
        "uid": record.identifier,
        "subject": record.subject,
        "from": record.sender,
        "to": list(record.recipients),
        "date": serialize_datetime(record.sent_at),
        "body": record.body,
        "category": record.category.value,
    }


def _parse_limit(raw: int | None, page_size: int) -> int:
    if raw is None or raw <= 0:
        return page_size
    return min(raw, page_size)


__all__ = ["create_app"]
