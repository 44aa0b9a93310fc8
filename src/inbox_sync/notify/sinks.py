"""HTTP notification sinks for actionable messages."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.datetime_utils import serialize_datetime
from ..core.interfaces import (
    NotificationError,
    NotificationRateLimited,
    NotificationSink,
)
from ..core.models import NotificationEvent

LOGGER = logging.getLogger(__name__)

EVENT_TYPE = "new_interested_email"


class _HttpSink(NotificationSink):
    """POST a JSON payload per event to a fixed URL."""

    name = "http"

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    def send(self, event: NotificationEvent) -> None:
        payload = self.build_payload(event)
        try:
            if self._client is not None:
                response = self._client.post(self._url, json=payload, timeout=self._timeout)
            else:
                response = httpx.post(self._url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise NotificationError(f"{self.name} request failed: {exc}") from exc

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            retry_after = response.headers.get("Retry-After")
            raise NotificationRateLimited(
                f"{self.name} rate limited (Retry-After: {retry_after or 'unset'})"
            )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationError(
                f"{self.name} returned HTTP {response.status_code}"
            ) from exc
        LOGGER.info("%s notification sent: %s", self.name, event.subject)

    def build_payload(self, event: NotificationEvent) -> dict[str, Any]:
        raise NotImplementedError


class WebhookSink(_HttpSink):
    """Generic webhook receiving structured event metadata."""

    name = "webhook"

    def build_payload(self, event: NotificationEvent) -> dict[str, Any]:
        return {
            "type": EVENT_TYPE,
            "email": {
                "account": event.account,
                "folder": event.folder,
                "uid": event.identifier,
                "subject": event.subject,
                "from": event.sender,
                "date": serialize_datetime(event.sent_at),
                "category": event.category.value,
            },
        }


class SlackSink(_HttpSink):
    """Slack incoming webhook receiving a short formatted message."""

    name = "slack"

    def build_payload(self, event: NotificationEvent) -> dict[str, Any]:
        return {
            "text": (
                "*New Interested Email!*\n\n"
                f"*Account:* {event.account}\n"
                f"*From:* {event.sender}\n"
                f"*Subject:* {event.subject}\n"
                f"*Date:* {serialize_datetime(event.sent_at)}"
            )
        }


__all__ = ["EVENT_TYPE", "SlackSink", "WebhookSink"]
