"""Shared fixtures for demail tests."""

from collections.abc import Callable
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import format_datetime

import pytest

from demail.mail.config import IMAPConfig
from demail.mail.models import Message, RawMailMessage

Attachment = tuple[str, bytes, str]  # filename, content, disposition


def build_raw_message(
    subject: str = "Quarterly report",
    sender: str = "Alice <alice@example.com>",
    to: str = "Bob <bob@example.com>",
    sent: datetime = datetime(2023, 1, 15, 9, 30, 0, tzinfo=timezone.utc),
    message_id: str | None = "<report-1@example.com>",
    body: str = "Please find the report attached.\n",
    attachments: list[Attachment] | None = None,
) -> bytes:
    """Build an RFC 822 message, multipart when attachments are given."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    msg["Date"] = format_datetime(sent)
    if message_id is not None:
        msg["Message-ID"] = message_id
    msg.set_content(body)

    for filename, content, disposition in attachments or []:
        msg.add_attachment(
            content,
            maintype="application",
            subtype="octet-stream",
            filename=filename,
            disposition=disposition,
        )
    return msg.as_bytes()


def to_message(raw: bytes, uid: str | None = None, folder: str = "INBOX") -> Message:
    """Wrap raw bytes the way the repository wraps fetched mail."""
    if uid is None:
        return Message(RawMailMessage.from_bytes(raw), folder=folder)
    # Same shape as an imaplib FETCH response item
    header = f"1 (UID {uid} FLAGS () RFC822.SIZE {len(raw)} BODY[] {{{len(raw)}}}".encode()
    return Message(RawMailMessage([(header, raw), b")"]), folder=folder)


@pytest.fixture
def imap_config() -> IMAPConfig:
    return IMAPConfig(
        host="imap.example.com",
        username="user",
        password="secret",
    )


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Factory building a Message from build_raw_message keyword arguments."""

    def _make(uid: str | None = None, folder: str = "INBOX", **kwargs) -> Message:
        return to_message(build_raw_message(**kwargs), uid=uid, folder=folder)

    return _make


@pytest.fixture
def build_raw() -> Callable[..., bytes]:
    """Factory building raw message bytes."""
    return build_raw_message
