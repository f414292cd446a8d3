"""Mail data models."""

from datetime import date, datetime
from email.message import Message as EmailMessage
from email.utils import parsedate_to_datetime
from enum import Enum

from imap_tools import EmailAddress as IMAPEmailAddress
from imap_tools import MailMessage
from pydantic import BaseModel, model_validator


class EmailAddress(BaseModel):
    """Parsed email address with optional display name."""

    name: str | None = None
    address: str

    def __str__(self) -> str:
        if self.name:
            return f"{self.name} <{self.address}>"
        return self.address


def _convert_addresses(addrs: tuple[IMAPEmailAddress, ...]) -> list[EmailAddress]:
    """Convert tuple of imap-tools EmailAddress to list of our EmailAddress model."""
    return [
        EmailAddress(name=addr.name or None, address=addr.email) for addr in addrs if addr.email
    ]


class Folder(BaseModel):
    """IMAP folder/mailbox as reported by the server."""

    name: str
    delimiter: str = "/"
    flags: list[str] = []


class FolderMode(str, Enum):
    """Mode a folder is opened in."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


class FolderHandle(BaseModel):
    """An opened (or since closed) folder on the server.

    Whoever opens a handle is responsible for closing it exactly once.
    """

    name: str
    mode: FolderMode
    is_open: bool = True

    @property
    def writable(self) -> bool:
        return self.mode is FolderMode.READ_WRITE


class DateRange(BaseModel):
    """Inclusive calendar-date bounds on a message's sent date."""

    since: date | None = None
    until: date | None = None

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.since and self.until and self.since > self.until:
            raise ValueError(f"since ({self.since}) must not be after until ({self.until})")
        return self

    @property
    def is_unbounded(self) -> bool:
        return self.since is None and self.until is None


class RawMailMessage(MailMessage):
    """MailMessage that keeps the RFC 822 bytes exactly as the server sent them.

    The parsed ``obj`` cannot reproduce them: serializing it again normalizes
    line endings and re-folds long headers.
    """

    def __init__(self, fetch_data: list) -> None:
        super().__init__(fetch_data)
        self.raw_message_data = b""
        for item in fetch_data:
            if isinstance(item, tuple):
                self.raw_message_data = item[1]


class AttachmentPart(BaseModel):
    """A body part explicitly marked as an attachment."""

    filename: str | None = None
    content_type: str = "application/octet-stream"
    content: bytes = b""

    @property
    def size(self) -> int:
        return len(self.content)


class Message:
    """A message fetched from an open folder.

    Read-only view over a ``RawMailMessage``; only the deletion
    flag changes, when the message is moved away.
    """

    def __init__(self, mail: RawMailMessage, folder: str | None = None) -> None:
        self._mail = mail
        self.folder = folder
        self.deleted = False

    def __repr__(self) -> str:
        return f"Message(uid={self.uid!r}, subject={self.subject!r})"

    @property
    def uid(self) -> str | None:
        return self._mail.uid

    @property
    def obj(self) -> EmailMessage:
        """Underlying parsed ``email.message.Message``."""
        return self._mail.obj

    @property
    def subject(self) -> str:
        return self._mail.subject

    @property
    def senders(self) -> list[EmailAddress]:
        sender = self._mail.from_values
        if sender is None or not sender.email:
            return []
        return [EmailAddress(name=sender.name or None, address=sender.email)]

    @property
    def recipients(self) -> list[EmailAddress]:
        return (
            _convert_addresses(self._mail.to_values)
            + _convert_addresses(self._mail.cc_values)
            + _convert_addresses(self._mail.bcc_values)
        )

    @property
    def sent(self) -> datetime:
        """Sent timestamp taken from the Date header."""
        return self._mail.date

    @property
    def received(self) -> datetime | None:
        """Timestamp of the most recent Received header, if any."""
        for header in self.obj.get_all("Received") or []:
            _, _, stamp = str(header).rpartition(";")
            try:
                return parsedate_to_datetime(stamp.strip())
            except (TypeError, ValueError):
                continue
        return None

    @property
    def size(self) -> int:
        return self._mail.size_rfc822 or len(self.raw())

    @property
    def message_id(self) -> str | None:
        value = self.obj.get("Message-ID")
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def content_type(self) -> str:
        return self.obj.get_content_type()

    @property
    def is_multipart(self) -> bool:
        return self.content_type.startswith("multipart/")

    def parts(self) -> list[EmailMessage]:
        """Top-level body parts, in their original order."""
        if not self.obj.is_multipart():
            return []
        return list(self.obj.get_payload())

    def raw(self) -> bytes:
        """Full message as fetched: headers and body in their wire encoding."""
        return self._mail.raw_message_data
