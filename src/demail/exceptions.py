"""Custom exceptions for demail."""

from enum import Enum
from pathlib import Path


class DemailError(Exception):
    """Base exception for demail."""


class ConfigError(DemailError):
    """Raised when there is a configuration error."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        line: int | None = None,
        col: int | None = None,
    ) -> None:
        self.file_path = file_path
        self.line = line
        self.col = col
        full_message = message
        if file_path:
            location = f" in {file_path}"
            if line is not None:
                location += f" at line {line}"
                if col is not None:
                    location += f", column {col}"
            full_message = f"Configuration error{location}: {message}"
        super().__init__(full_message)


class MailConnectionError(DemailError):
    """Raised when the IMAP session cannot be established.

    Covers authentication, network and TLS negotiation failures. The
    original exception is always available as ``__cause__``.
    """

    def __init__(self, host: str, port: int, reason: str) -> None:
        self.host = host
        self.port = port
        super().__init__(f"Could not connect to {host}:{port}: {reason}")


class FolderErrorReason(str, Enum):
    """Why a folder could not be opened."""

    NOT_CONNECTED = "not_connected"
    NOT_FOUND = "not_found"


class FolderError(DemailError):
    """Raised when a folder cannot be listed or opened."""

    def __init__(self, name: str, reason: FolderErrorReason) -> None:
        self.name = name
        self.reason = reason
        if reason is FolderErrorReason.NOT_CONNECTED:
            message = f"Cannot open folder '{name}': the connection is not established yet"
        else:
            message = f"Folder does not exist: {name}"
        super().__init__(message)


class DownloadError(DemailError):
    """Raised when a downloaded artifact cannot be written or renamed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Failed to write {path}: {reason}")


class ExtractionError(DemailError):
    """Raised when a legacy TNEF container cannot be unpacked."""

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        super().__init__(f"Failed to unpack {filename}: {reason}")
