"""Attachment and message extraction to local disk.

Every artifact is first written under a hidden temporary name in the target
directory and then renamed into place, so a partially written file is never
visible under its final name.
"""

import contextlib
import logging
import os
from collections.abc import Callable
from pathlib import Path

from imap_tools import MailAttachment
from tnefparse import TNEF

from demail.exceptions import DownloadError, ExtractionError
from demail.mail.models import AttachmentPart, Message
from demail.mail.naming import (
    attachment_filename,
    file_hash,
    message_filename,
    safe_filename,
    temp_filename,
)

logger = logging.getLogger(__name__)

# Outlook wraps attachments in this TNEF container when sending rich text mail
TNEF_CONTAINER_NAME = "winmail.dat"
TNEF_DIR_SUFFIX = "_d"


def extract_attachment_parts(message: Message) -> list[AttachmentPart]:
    """Return the top-level parts explicitly marked as attachments.

    Messages that are not multipart have none. Parts keep their original
    order; inline parts and parts without a disposition are skipped.
    """
    if not message.is_multipart:
        return []

    attachments = []
    for part in message.parts():
        disposition = part.get_content_disposition()
        if disposition is None or disposition.lower() != "attachment":
            continue
        attachment = MailAttachment(part)
        attachments.append(
            AttachmentPart(
                filename=attachment.filename or None,
                content_type=attachment.content_type,
                content=attachment.payload,
            )
        )
    return attachments


def _tnef_name(value: str | bytes | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").rstrip("\x00")
    return value


class MessageExtractor:
    """Downloads messages and their attachments into a local directory."""

    def __init__(
        self,
        directory: Path,
        on_warning: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the extractor.

        Args:
            directory: Existing directory downloads are written into.
            on_warning: Called with a description of every non-fatal failure,
                such as a TNEF container that could not be unpacked.
        """
        self.directory = directory
        self._on_warning = on_warning

    def _write(self, data: bytes, name_for: Callable[[str], str], directory: Path) -> Path:
        """Write data to a temp file in directory, then rename it to name_for(md5).

        Raises:
            DownloadError: If writing, hashing or renaming fails.
        """
        temp_path = directory / temp_filename()
        final_path: Path | None = None
        try:
            with open(temp_path, "wb") as f:
                f.write(data)
            final_path = directory / name_for(file_hash(temp_path))
            os.replace(temp_path, final_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise DownloadError(final_path or temp_path, e.strerror or str(e)) from e
        return final_path

    def download_part(self, part: AttachmentPart, message: Message) -> Path:
        """Save an attachment part and return the path it was saved to.

        A ``winmail.dat`` attachment is additionally unpacked into a sibling
        ``<name>_d`` directory. Failing to unpack it is only a warning.
        """
        path = self._write(
            part.content,
            lambda digest: attachment_filename(
                message.sent, message.message_id, digest, part.filename
            ),
            self.directory,
        )
        logger.debug(
            "Saved attachment %r (%d bytes) as %s", part.filename, part.size, path.name
        )

        if safe_filename(part.filename).lower() == TNEF_CONTAINER_NAME:
            try:
                self.unpack_tnef(path)
            except ExtractionError as e:
                logger.warning("%s", e)
                if self._on_warning:
                    self._on_warning(str(e))
        return path

    def download_attachments(self, message: Message) -> list[Path]:
        """Save every attachment of the message, in part order."""
        return [self.download_part(part, message) for part in extract_attachment_parts(message)]

    def download_message(self, message: Message) -> Path:
        """Save the full raw message as an ``.eml`` file."""
        path = self._write(
            message.raw(),
            lambda digest: message_filename(message.sent, message.message_id, digest),
            self.directory,
        )
        logger.debug("Saved message %r as %s", message.subject, path.name)
        return path

    def unpack_tnef(self, path: Path) -> list[Path]:
        """Unpack the attachments embedded in a TNEF container file.

        Files go into ``<path>_d``, which is created if missing.

        Raises:
            ExtractionError: If the container cannot be parsed or written out.
        """
        target = path.with_name(path.name + TNEF_DIR_SUFFIX)
        try:
            container = TNEF(path.read_bytes())
        except Exception as e:
            raise ExtractionError(path.name, str(e) or type(e).__name__) from e

        written = []
        try:
            target.mkdir(exist_ok=True)
            for attachment in container.attachments:
                name = safe_filename(
                    _tnef_name(attachment.long_filename()) or _tnef_name(attachment.name)
                )
                written.append(self._write(attachment.data or b"", lambda _, n=name: n, target))
        except (OSError, DownloadError) as e:
            raise ExtractionError(path.name, str(e)) from e

        logger.info("Unpacked %d file(s) from %s", len(written), path.name)
        return written
