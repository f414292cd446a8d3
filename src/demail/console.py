"""Console reporting of run events."""

from pathlib import Path

from rich.console import Console
from rich.markup import escape

from demail.mail.models import Folder, Message

_BYTES_PER_MB = 1024 * 1024


def format_size(size: int) -> str:
    """Format a byte count as megabytes with two decimals."""
    return f"{size / _BYTES_PER_MB:.2f} MB"


class ConsoleReporter:
    """Renders run events for humans.

    The runner only emits events; all formatting and coloring lives here.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)

    def _print(self, style: str, text: str) -> None:
        self.console.print(f"[{style}]{escape(text)}[/{style}]")

    def folder(self, folder: Folder) -> None:
        self._print("blue", folder.name)

    def message(self, message: Message) -> None:
        received = message.received
        lines = [
            f"Subject    : {message.subject}",
            f"From       : {', '.join(str(s) for s in message.senders)}",
            f"Recipients : {', '.join(str(r) for r in message.recipients)}",
            f"Sent       : {message.sent}",
            f"Received   : {received if received is not None else '-'}",
            f"Size       : {format_size(message.size)}",
        ]
        for line in lines:
            self._print("cyan", line)
        self.console.print()

    def info(self, text: str) -> None:
        self._print("yellow", f"    {text}")

    def downloaded(self, path: Path) -> None:
        self._print("green", f"    Downloaded: {path}")

    def no_attachments(self) -> None:
        self._print("red", "    No attachments found to be downloaded...")

    def skip_archive(self) -> None:
        self._print("bright_red", "Skipping archive operation...")

    def archived(self, count: int, folder: str) -> None:
        self._print("green", f"Archived {count} message(s) to {folder}")

    def warning(self, text: str) -> None:
        self._print("yellow", f"Warning: {text}")

    def error(self, text: str) -> None:
        self._print("bold red", f"Error: {text}")
