"""Best-effort, rate-limited fan-out of notification events."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence

from ..core.config import NotificationSettings
from ..core.interfaces import (
    NotificationError,
    NotificationRateLimited,
    NotificationSink,
)
from ..core.models import NotificationEvent
from .sinks import SlackSink, WebhookSink

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Enforce a minimum interval since the last successful send."""

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_success: float | None = None

    def wait(self) -> None:
        """Sleep out whatever remains of the interval."""
        if self._last_success is None:
            return
        remaining = self._min_interval - (self._clock() - self._last_success)
        if remaining > 0:
            LOGGER.debug("Rate limiter waiting %.3fs", remaining)
            self._sleep(remaining)

    def record_success(self) -> None:
        self._last_success = self._clock()


class NotificationDispatcher:
    """Send events to every sink, never raising to the caller.

    There is no retry queue: a failed send is logged and the next event is
    the retry.
    """

    def __init__(
        self,
        sinks: Sequence[NotificationSink],
        *,
        min_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._sinks = tuple(sinks)
        self._limiters = {
            id(sink): RateLimiter(min_interval_seconds, clock=clock, sleep=sleep)
            for sink in self._sinks
        }
        self._locks = {id(sink): threading.Lock() for sink in self._sinks}

    @property
    def sinks(self) -> tuple[NotificationSink, ...]:
        return self._sinks

    def dispatch(self, event: NotificationEvent) -> None:
        """Deliver ``event`` to each sink in turn."""
        for sink in self._sinks:
            self._send(sink, event)

    def _send(self, sink: NotificationSink, event: NotificationEvent) -> None:
        limiter = self._limiters[id(sink)]
        with self._locks[id(sink)]:
            limiter.wait()
            try:
                sink.send(event)
            except NotificationRateLimited as exc:
                LOGGER.warning("Sink %s is rate limiting us: %s", sink.name, exc)
                return
            except NotificationError as exc:
                LOGGER.error("Sink %s failed: %s", sink.name, exc)
                return
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("Sink %s raised unexpectedly", sink.name)
                return
            limiter.record_success()


def build_dispatcher(settings: NotificationSettings) -> NotificationDispatcher:
    """Create a dispatcher for the sinks present in ``settings``."""
    sinks: list[NotificationSink] = []
    if settings.webhook_url:
        sinks.append(WebhookSink(settings.webhook_url, timeout=settings.timeout_seconds))
    if settings.slack_webhook_url:
        sinks.append(
            SlackSink(settings.slack_webhook_url, timeout=settings.timeout_seconds)
        )
    if not sinks:
        LOGGER.debug("No notification sinks configured")
    return NotificationDispatcher(
        sinks, min_interval_seconds=settings.min_interval_ms / 1000.0
    )


__all__ = ["NotificationDispatcher", "RateLimiter", "build_dispatcher"]
