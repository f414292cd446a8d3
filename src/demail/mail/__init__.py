"""IMAP repository, models and extraction for demail."""

from demail.mail.config import IMAPConfig
from demail.mail.extractor import MessageExtractor, extract_attachment_parts
from demail.mail.models import (
    AttachmentPart,
    DateRange,
    EmailAddress,
    Folder,
    FolderHandle,
    FolderMode,
    Message,
)
from demail.mail.repository import MailRepository

__all__ = [
    "AttachmentPart",
    "DateRange",
    "EmailAddress",
    "Folder",
    "FolderHandle",
    "FolderMode",
    "IMAPConfig",
    "MailRepository",
    "Message",
    "MessageExtractor",
    "extract_attachment_parts",
]
