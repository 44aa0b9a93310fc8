"""Persistence for indexed email records."""

from .connection_pool import ConnectionPool
from .sqlite import SqliteEmailStore

__all__ = ["ConnectionPool", "SqliteEmailStore"]
