"""Notification fan-out for actionable messages."""

from .dispatcher import NotificationDispatcher, RateLimiter, build_dispatcher
from .sinks import SlackSink, WebhookSink

__all__ = [
    "NotificationDispatcher",
    "RateLimiter",
    "SlackSink",
    "WebhookSink",
    "build_dispatcher",
]
