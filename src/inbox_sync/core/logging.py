"""Logging configuration helpers."""

from __future__ import annotations

import logging.config
from typing import Any

from .config import LoggingSettings

# Account threads are named ``sync-<account>``, so the thread name tells
# interleaved account logs apart.
_PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(message)s"
_KEY_VALUE_FORMAT = (
    "time={asctime} level={levelname} thread={threadName} logger={name} msg={message}"
)

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def build_logging_config(settings: LoggingSettings) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for ``settings``."""
    if settings.structured:
        formatter: dict[str, Any] = {"format": _KEY_VALUE_FORMAT, "style": "{"}
    else:
        formatter = {"format": _PLAIN_FORMAT}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": settings.level,
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {"handlers": ["console"], "level": settings.level},
    }


def configure_logging(settings: LoggingSettings) -> None:
    """Configure application logging according to provided settings."""
    logging.config.dictConfig(build_logging_config(settings))


__all__ = ["build_logging_config", "configure_logging"]
