"""Tests for RFC822 parsing into inbound messages."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from inbox_sync.core.interfaces import MalformedMessageError
from inbox_sync.ingestion import EmailParser

FIXTURE_PATH = Path(__file__).parent / "fixtures" / "sample_email.eml"


def test_email_parser_extracts_headers_and_plain_text_body() -> None:
    payload = FIXTURE_PATH.read_bytes()
    parser = EmailParser()

    message = parser.parse(101, payload, account="Sales", folder="INBOX")

    assert message.identifier == 101
    assert message.record_key == "sales|inbox|101"
    assert message.subject == "Re: Pricing"
    assert message.sender == "Jane Prospect <jane@prospect.example>"
    assert message.recipients == ("sales@example.com", "manager@example.com")
    assert message.sent_at == datetime(2025, 10, 24, 13, 0, tzinfo=timezone.utc)
    assert message.body == "Thanks for the details, we are interested in a demo."


@pytest.mark.parametrize(
    "payload",
    [
        b"",
        b"   \r\n",
        b"Subject: No sender\r\nDate: Fri, 24 Oct 2025 15:00:00 +0000\r\n\r\nBody",
        b"From: someone@example.com\r\nSubject: No date\r\n\r\nBody",
        b"From: someone@example.com\r\nDate: not a date\r\n\r\nBody",
    ],
)
def test_payloads_without_sender_or_date_are_malformed(payload: bytes) -> None:
    with pytest.raises(MalformedMessageError):
        EmailParser().parse(7, payload, account="Sales", folder="INBOX")


def test_missing_subject_and_body_default_to_empty_strings() -> None:
    payload = b"From: someone@example.com\r\nDate: Fri, 24 Oct 2025 15:00:00 +0000\r\n\r\n"

    message = EmailParser().parse(8, payload, account="Sales", folder="INBOX")

    assert message.subject == ""
    assert message.body == ""


def test_sender_without_display_name_is_the_bare_address() -> None:
    payload = (
        b"From: <someone@example.com>, other@example.com\r\n"
        b"Date: Fri, 24 Oct 2025 15:00:00 +0000\r\n\r\nBody"
    )

    message = EmailParser().parse(9, payload, account="Sales", folder="INBOX")

    assert message.sender == "someone@example.com"
