"""Transport adapters for external mailbox providers."""

from .imap_client import ImapSession

__all__ = ["ImapSession"]
