"""Derive per-folder sync cursors from the persistent store."""

from __future__ import annotations

import logging
import threading

from ..core.interfaces import EmailStore
from ..core.models import normalize_key

LOGGER = logging.getLogger(__name__)


class SyncCursorStore:
    """Read-only view answering "highest identifier already ingested".

    Nothing is written by this class: the cursor is the maximum identifier
    stored for an (account, folder) pair, so a restart with an intact store
    resumes where it left off. Values are memoised only until :meth:`reset`,
    which callers invoke at the start of every sync pass.
    """

    def __init__(self, store: EmailStore) -> None:
        self._store = store
        self._memo: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def last_identifier(self, account: str, folder: str) -> int:
        """Return the cursor for ``(account, folder)``; 0 means full backfill."""
        pair = (normalize_key(account), normalize_key(folder))
        with self._lock:
            if pair in self._memo:
                return self._memo[pair]
        value = self._store.max_identifier(*pair) or 0
        LOGGER.debug("Cursor for %s/%s is %s", pair[0], pair[1], value)
        with self._lock:
            self._memo[pair] = max(value, self._memo.get(pair, 0))
            return self._memo[pair]

    def advance(self, account: str, folder: str, identifier: int) -> None:
        """Raise the memoised cursor after ``identifier`` was stored."""
        pair = (normalize_key(account), normalize_key(folder))
        with self._lock:
            if pair in self._memo and identifier > self._memo[pair]:
                self._memo[pair] = identifier

    def reset(self) -> None:
        """Forget memoised values so the next read queries the store."""
        with self._lock:
            self._memo.clear()


__all__ = ["SyncCursorStore"]
