"""IMAP transport adapter providing one long-lived mailbox session."""

from __future__ import annotations

import logging
import socket
import ssl
import threading
from collections.abc import Iterator, Sequence
from datetime import datetime
from types import TracebackType

from imapclient import IMAPClient, SocketTimeout
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from ..core.config import AccountSettings
from ..core.datetime_utils import format_imap_date
from ..core.interfaces import (
    FolderUnavailable,
    MailSession,
    ProtocolError,
    SessionConnectionError,
)
from ..core.models import FolderNode, MessageChunk

LOGGER = logging.getLogger(__name__)

_NEW_MAIL_RESPONSES = (b"EXISTS", b"RECENT")


class ImapSession(MailSession):
    """Thin wrapper around ``IMAPClient`` for a single account.

    Commands other than IDLE are bounded by ``read_timeout``, so a half-open
    connection surfaces as :class:`SessionConnectionError` instead of hanging
    the account thread.
    """

    def __init__(
        self,
        account: AccountSettings,
        *,
        connect_timeout: float = 30.0,
        read_timeout: float = 120.0,
    ) -> None:
        """Initialise the session with account settings; no I/O happens here."""
        self._account = account
        self._timeout = SocketTimeout(connect=connect_timeout, read=read_timeout)
        self._client: IMAPClient | None = None
        self._selected: str | None = None
        self._supports_idle = False
        self._interrupted = threading.Event()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> ImapSession:
        """Connect on entering a context manager scope."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure resources are released on context exit."""
        self.close()

    # Public API ---------------------------------------------------------------
    def connect(self) -> None:
        """Establish and authenticate the IMAP connection."""
        if self._client is not None:
            return

        username = self._account.username
        password = self._account.password
        if username is None or password is None:
            raise SessionConnectionError(
                f"IMAP credentials are not configured for account '{self._account.name}'"
            )

        self._interrupted.clear()
        host, port = self._account.host, self._account.port
        LOGGER.debug(
            "Connecting to IMAP host %s:%s (%s)",
            host,
            port,
            "SSL" if self._account.use_ssl else "plain",
        )
        try:
            client = IMAPClient(
                host,
                port=port,
                ssl=self._account.use_ssl,
                ssl_context=self._ssl_context(),
                timeout=self._timeout,
            )
        except (IMAPClientError, OSError) as exc:
            raise SessionConnectionError(
                f"Failed to connect to IMAP server {host}:{port}"
            ) from exc

        try:
            LOGGER.debug("Authenticating as %s", username)
            client.login(username, password)
            self._supports_idle = client.has_capability("IDLE")
        except (IMAPClientError, OSError) as exc:
            _shutdown_quietly(client)
            raise SessionConnectionError(
                f"Failed to authenticate with IMAP server {host}:{port}"
            ) from exc
        self._client = client
        self._selected = None

    def list_folders(self) -> list[FolderNode]:
        """Return the account folder hierarchy as a tree of nodes."""
        client = self._require_connection()
        entries = [
            _folder_entry(flags, delimiter, name)
            for flags, delimiter, name in self._call(client.list_folders)
        ]
        return _build_folder_tree(entries)

    def select_folder(self, path: str) -> None:
        """Open ``path`` read-only so the session can search and fetch it."""
        client = self._require_connection()
        LOGGER.debug("Selecting folder '%s'", path)
        self._selected = None
        try:
            self._call(client.select_folder, path, readonly=True)
        except ProtocolError as exc:
            raise FolderUnavailable(f"Unable to open folder '{path}'") from exc
        self._selected = path

    def search_since(self, folder: str, since: datetime) -> list[int]:
        """Return ascending UIDs of messages received on or after ``since``."""
        client = self._ensure_selected(folder)
        criterion = format_imap_date(since)
        LOGGER.debug("Searching '%s' for messages since %s", folder, criterion)
        identifiers = self._call(client.search, ["SINCE", criterion])
        return sorted(int(uid) for uid in identifiers)

    def fetch_messages(
        self, folder: str, identifiers: Sequence[int]
    ) -> Iterator[MessageChunk]:
        """Yield RFC822 payloads for ``identifiers`` in the order supplied."""
        client = self._ensure_selected(folder)
        for identifier in identifiers:
            LOGGER.debug("Fetching RFC822 payload for UID %s", identifier)
            response = self._call(client.fetch, [identifier], ["RFC822"])
            payload = (response.get(identifier) or {}).get(b"RFC822")
            if payload is None:
                LOGGER.warning("No RFC822 payload returned for UID %s", identifier)
                continue
            yield MessageChunk(uid=identifier, raw=payload)

    def noop(self) -> None:
        """Send NOOP so idle connections are not dropped by the server."""
        client = self._require_connection()
        self._call(client.noop)

    def wait_for_new_mail(self, timeout: float) -> bool:
        """Wait in IDLE on the selected folder; return True when mail arrives."""
        client = self._require_connection()
        if self._selected is None:
            raise ProtocolError("No folder selected for IDLE")
        if not self._supports_idle:
            # Without IDLE every wait ends in a poll of the folder.
            return not self._interrupted.wait(timeout)

        trailing: list = []
        try:
            client.idle()
            responses = client.idle_check(timeout=timeout)
            if not self._interrupted.is_set():
                _, trailing = client.idle_done()
        except (IMAPClientError, OSError) as exc:
            if self._interrupted.is_set():
                raise SessionConnectionError("Session interrupted") from exc
            raise SessionConnectionError("IDLE failed") from exc
        if self._interrupted.is_set():
            raise SessionConnectionError("Session interrupted")
        LOGGER.debug("IDLE responses: %r %r", responses, trailing)
        return _signals_new_mail(responses) or _signals_new_mail(trailing)

    def interrupt(self) -> None:
        """Wake a blocked wait; safe to call from another thread."""
        self._interrupted.set()
        client = self._client
        if client is None:
            return
        try:
            client.socket().shutdown(socket.SHUT_RDWR)
        except OSError:
            LOGGER.debug("Socket already closed while interrupting session")

    def close(self) -> None:
        """Terminate the IMAP session cleanly."""
        if self._client is None:
            return
        client = self._client
        self._client = None
        self._selected = None
        try:
            LOGGER.debug("Logging out of IMAP session")
            client.logout()
        except (IMAPClientError, OSError):  # pragma: no cover - server state
            LOGGER.debug("IMAP logout raised; closing socket instead")
            _shutdown_quietly(client)

    # Internal helpers ---------------------------------------------------------
    def _ssl_context(self) -> ssl.SSLContext | None:
        if not self._account.use_ssl:
            return None
        context = ssl.create_default_context()
        if not self._account.verify_certificates:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _require_connection(self) -> IMAPClient:
        if self._client is None:
            raise SessionConnectionError("IMAP connection has not been established")
        return self._client

    def _ensure_selected(self, folder: str) -> IMAPClient:
        if self._selected != folder:
            self.select_folder(folder)
        return self._require_connection()

    def _call(self, command, *args, **kwargs):
        """Run an IMAPClient command, mapping its failures onto our taxonomy."""
        try:
            return command(*args, **kwargs)
        except IMAPClientAbortError as exc:
            raise SessionConnectionError("IMAP connection aborted") from exc
        except IMAPClientError as exc:
            raise ProtocolError(str(exc)) from exc
        except OSError as exc:
            raise SessionConnectionError("IMAP socket error") from exc


def _shutdown_quietly(client: IMAPClient) -> None:
    try:
        client.shutdown()
    except (IMAPClientError, OSError):
        LOGGER.debug("IMAP socket shutdown raised; ignoring")


def _signals_new_mail(responses) -> bool:
    """Return True when untagged responses announce new messages."""
    return any(
        isinstance(response, tuple)
        and len(response) >= 2
        and response[1] in _NEW_MAIL_RESPONSES
        for response in responses or ()
    )


def _folder_entry(
    flags: Sequence[bytes], delimiter: bytes | str | None, name: str | bytes
) -> tuple[str, str | None, bool]:
    """Normalise one ``list_folders`` row into ``(name, delimiter, selectable)``."""
    if isinstance(delimiter, bytes):
        delimiter = delimiter.decode("ascii", "replace")
    if isinstance(name, bytes):
        name = name.decode("utf-8", "replace")
    lowered = {
        flag.decode("ascii", "replace").lower() if isinstance(flag, bytes) else flag.lower()
        for flag in flags
    }
    selectable = "\\noselect" not in lowered and "\\nonexistent" not in lowered
    return name, delimiter or None, selectable


def _build_folder_tree(
    entries: Sequence[tuple[str, str | None, bool]],
) -> list[FolderNode]:
    """Nest flat LIST entries, splitting each name on its own delimiter."""
    roots: list[FolderNode] = []
    index: dict[tuple[str, ...], FolderNode] = {}
    for name, delimiter, selectable in entries:
        segments = tuple(name.split(delimiter)) if delimiter else (name,)
        siblings = roots
        for depth in range(1, len(segments) + 1):
            path = segments[:depth]
            node = index.get(path)
            if node is None:
                is_target = depth == len(segments)
                node = FolderNode(
                    name=path[-1],
                    delimiter=delimiter,
                    selectable=selectable if is_target else False,
                )
                index[path] = node
                siblings.append(node)
            elif depth == len(segments):
                node.selectable = selectable
                node.delimiter = delimiter
            siblings = node.children
    return roots


__all__ = [
    "ImapSession",
]
