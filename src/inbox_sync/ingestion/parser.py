"""Utilities for parsing raw RFC822 messages into structured models."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.errors import MessageError
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import formataddr, getaddresses, parsedate_to_datetime

from ..core.datetime_utils import ensure_utc
from ..core.interfaces import MalformedMessageError
from ..core.models import InboundMessage


class EmailParser:
    """Convert raw email payloads into inbound messages."""

    def __init__(self) -> None:
        """Prepare internal parser instance."""
        self._parser = BytesParser(policy=policy.default)

    def parse(
        self, uid: int, payload: bytes, *, account: str, folder: str
    ) -> InboundMessage:
        """Parse raw RFC822 bytes into an :class:`InboundMessage`.

        Raises :class:`MalformedMessageError` when the payload is empty or has
        no usable sender or date.
        """
        if not payload or not payload.strip():
            raise MalformedMessageError(f"UID {uid} has an empty payload")
        try:
            message = self._parser.parsebytes(payload)
            sender = _format_sender(message.get("From"))
            sent_at = _try_parse_datetime(message.get("Date"))
            subject = message.get("Subject")
            recipients = tuple(
                _extract_addresses(
                    [*message.get_all("To", []), *message.get_all("Cc", [])]
                )
            )
            body_text = _extract_plain_text(message)
        except (MessageError, TypeError, ValueError, LookupError) as exc:
            raise MalformedMessageError(f"UID {uid} could not be parsed") from exc

        if not sender:
            raise MalformedMessageError(f"UID {uid} has no sender")
        if sent_at is None:
            raise MalformedMessageError(f"UID {uid} has no valid date")

        return InboundMessage(
            account=account,
            folder=folder,
            identifier=uid,
            sender=sender,
            recipients=recipients,
            subject=str(subject or ""),
            sent_at=sent_at,
            body=body_text or "",
        )


def _extract_addresses(headers: Iterable[str]) -> Iterable[str]:
    for _, email_address in getaddresses([str(header) for header in headers]):
        if email_address:
            yield email_address


def _format_sender(header_value: str | None) -> str | None:
    """Return the first From address with its display name, if any."""
    if header_value is None:
        return None
    for name, email_address in getaddresses([str(header_value)]):
        if email_address:
            return formataddr((name, email_address))
    return None


def _collapse_chunks(chunks: Iterable[str], separator: str) -> str | None:
    filtered_chunks = [chunk for chunk in chunks if chunk]
    if not filtered_chunks:
        return None
    return separator.join(filtered_chunks)


def _extract_plain_text(message: EmailMessage) -> str | None:
    plain_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        if part.get_content_type() != "text/plain":
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            continue
        if isinstance(content_obj, str):
            plain_chunks.append(content_obj.strip())

    return _collapse_chunks(plain_chunks, "\n\n")


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(str(header_value)))
    except (TypeError, ValueError, IndexError):
        return None


__all__ = ["EmailParser"]
