"""Core utilities for configuration, logging, and shared models."""

from .config import (
    AccountSettings,
    AppSettings,
    NotificationSettings,
    SyncSettings,
    load_app_settings,
)
from .logging import configure_logging

__all__ = [
    "AccountSettings",
    "AppSettings",
    "NotificationSettings",
    "SyncSettings",
    "configure_logging",
    "load_app_settings",
]
