"""Account synchronization orchestration."""

from .manager import AccountSyncManager
from .supervisor import Supervisor

__all__ = ["AccountSyncManager", "Supervisor"]
