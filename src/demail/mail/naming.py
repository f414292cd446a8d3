"""Hashing and timestamp helpers used to name downloaded artifacts.

Final names follow ``{timestamp}_{identity}_{digest}[_{filename}|.eml]`` where
``digest`` is the MD5 of the bytes written to disk and ``identity`` is the MD5
of the message's Message-ID header, or ``digest`` itself when the header is
missing. Re-downloading the same message yields the same names.
"""

import hashlib
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath, PureWindowsPath

_CHUNK_SIZE = 64 * 1024

DEFAULT_ATTACHMENT_NAME = "attachment"


def content_hash(data: bytes) -> str:
    """Return the uppercase MD5 hex digest of ``data``."""
    return hashlib.md5(data).hexdigest().upper()


def text_hash(text: str) -> str:
    """Return the uppercase MD5 hex digest of the UTF-8 encoded ``text``."""
    return content_hash(text.encode("utf-8"))


def file_hash(path: Path) -> str:
    """Return the uppercase MD5 hex digest of the file at ``path``."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest().upper()


def format_timestamp(dt: datetime) -> str:
    """Format ``dt`` as an ISO 8601 UTC timestamp with a trailing ``Z``.

    Naive datetimes are assumed to already be in UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def temp_filename() -> str:
    """Return a unique, hidden file name for an in-progress download."""
    return f"._{uuid.uuid4()}.download"


def safe_filename(name: str | None) -> str:
    """Strip any directory components from a sender-supplied file name."""
    if not name:
        return DEFAULT_ATTACHMENT_NAME
    # Senders may use either separator
    base = PureWindowsPath(PurePosixPath(name).name).name.strip()
    if base in ("", ".", ".."):
        return DEFAULT_ATTACHMENT_NAME
    return base


def message_identity(message_id: str | None, digest: str) -> str:
    """Return the identity component for a message's artifacts."""
    if message_id:
        return text_hash(message_id)
    return digest


def attachment_filename(
    sent: datetime, message_id: str | None, digest: str, original_name: str | None
) -> str:
    """Build the final file name for a downloaded attachment."""
    identity = message_identity(message_id, digest)
    return f"{format_timestamp(sent)}_{identity}_{digest}_{safe_filename(original_name)}"


def message_filename(sent: datetime, message_id: str | None, digest: str) -> str:
    """Build the final file name for a downloaded message."""
    identity = message_identity(message_id, digest)
    return f"{format_timestamp(sent)}_{identity}_{digest}.eml"
