"""IMAP mail repository using imap-tools."""

import imaplib
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, timedelta
from types import TracebackType

from imap_tools import AND, ImapToolsError, MailBox, MailBoxUnencrypted, MailMessageFlags

from demail.exceptions import FolderError, FolderErrorReason, MailConnectionError
from demail.mail.config import IMAPConfig
from demail.mail.models import (
    DateRange,
    Folder,
    FolderHandle,
    FolderMode,
    Message,
    RawMailMessage,
)

logger = logging.getLogger(__name__)


def build_criteria(dates: DateRange) -> str | AND:
    """Build the IMAP search criteria for an inclusive sent-date range.

    SENTBEFORE is exclusive, so the upper bound is pushed to the next day.
    """
    if dates.is_unbounded:
        return "ALL"
    bounds = {}
    if dates.since is not None:
        bounds["sent_date_gte"] = dates.since
    if dates.until is not None:
        bounds["sent_date_lt"] = dates.until + timedelta(days=1)
    return AND(**bounds)


class MailRepository:
    """Owns a single IMAP session and the folders opened through it.

    A repository is built for one run and never shared. IMAP only has one
    selected folder per session, so operations on a handle re-select its
    folder when another one was selected in between.
    """

    def __init__(self, config: IMAPConfig) -> None:
        """Initialize the repository.

        Args:
            config: IMAP server configuration.
        """
        self.config = config
        self._mailbox: MailBox | MailBoxUnencrypted | None = None
        self._selected: FolderHandle | None = None

    def is_connected(self) -> bool:
        """Check whether the session is established."""
        return self._mailbox is not None

    def connect(self) -> None:
        """Establish connection to the IMAP server.

        Does nothing when already connected.

        Raises:
            MailConnectionError: On authentication, network or TLS failure.
        """
        if self.is_connected():
            return

        host, port = self.config.host, self.config.port
        logger.info("Connecting to %s:%d (ssl=%s)", host, port, self.config.ssl)
        mailbox: MailBox | MailBoxUnencrypted | None = None
        try:
            if self.config.ssl:
                mailbox = MailBox(host, port, timeout=self.config.timeout)
            else:
                mailbox = MailBoxUnencrypted(host, port, timeout=self.config.timeout)
            mailbox.email_message_class = RawMailMessage

            mailbox.login(
                self.config.username,
                self.config.password.get_secret_value(),
                initial_folder=None,
            )
        except (OSError, imaplib.IMAP4.error, ImapToolsError) as e:
            if mailbox is not None:
                # The socket is already open when login fails
                self._close_quietly(mailbox)
            raise MailConnectionError(host, port, str(e) or type(e).__name__) from e

        self._mailbox = mailbox

    def disconnect(self) -> None:
        """Close the IMAP session. Does nothing when not connected."""
        if not self._mailbox:
            return
        self._close_quietly(self._mailbox)
        self._mailbox = None
        self._selected = None

    @staticmethod
    def _close_quietly(mailbox: MailBox | MailBoxUnencrypted) -> None:
        try:
            mailbox.logout()
        except Exception:
            logger.debug("IMAP logout failed (connection may already be closed)")

    def _require_mailbox(self) -> MailBox | MailBoxUnencrypted:
        if not self._mailbox:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._mailbox

    def list_folders(self) -> list[Folder]:
        """List all folders at any depth, in server order."""
        if not self._mailbox:
            raise FolderError("*", FolderErrorReason.NOT_CONNECTED)

        folders = []
        for folder_info in self._mailbox.folder.list(search_args="*"):
            folders.append(
                Folder(
                    name=folder_info.name,
                    delimiter=folder_info.delim or "/",
                    flags=list(folder_info.flags),
                )
            )
        return folders

    def open_folder(self, name: str, writable: bool) -> FolderHandle:
        """Open the folder with exactly the given name.

        Args:
            name: Folder name as reported by list_folders().
            writable: Open read-write (SELECT) instead of read-only (EXAMINE).

        Raises:
            FolderError: If not connected or the folder does not exist.
        """
        if not self._mailbox:
            raise FolderError(name, FolderErrorReason.NOT_CONNECTED)
        if not self._mailbox.folder.exists(name):
            raise FolderError(name, FolderErrorReason.NOT_FOUND)

        handle = FolderHandle(
            name=name,
            mode=FolderMode.READ_WRITE if writable else FolderMode.READ_ONLY,
        )
        self._select(handle)
        logger.debug("Opened folder %s (%s)", name, handle.mode.value)
        return handle

    def _select(self, handle: FolderHandle) -> None:
        if self._selected is handle:
            return
        mailbox = self._require_mailbox()
        mailbox.folder.set(handle.name, readonly=not handle.writable)
        self._selected = handle

    @contextmanager
    def folder(self, name: str, writable: bool) -> Iterator[FolderHandle]:
        """Open a folder for the duration of a with-block, closing it on exit."""
        handle = self.open_folder(name, writable)
        try:
            yield handle
        finally:
            self.close_folder(handle)

    def close_folder(self, handle: FolderHandle) -> None:
        """Close the folder without expunging. Does nothing if already closed."""
        if not handle.is_open:
            return
        handle.is_open = False
        if self._selected is not handle:
            return
        self._selected = None
        if self._mailbox:
            # UNSELECT leaves \Deleted messages in place, unlike CLOSE
            try:
                self._mailbox.client.unselect()
            except (OSError, imaplib.IMAP4.error) as e:
                # Selecting another folder or logging out deselects it anyway
                logger.warning("Could not unselect folder %s: %s", handle.name, e)
        logger.debug("Closed folder %s", handle.name)

    def search_messages(
        self,
        handle: FolderHandle,
        since: date | None = None,
        until: date | None = None,
    ) -> list[Message]:
        """Return the messages in the folder sent within [since, until].

        Filtering happens server-side. A closed handle yields no messages.

        Args:
            handle: An open folder.
            since: Inclusive lower bound on the sent date.
            until: Inclusive upper bound on the sent date.

        Returns:
            List of Message, in server order.
        """
        if not handle.is_open:
            return []
        self._select(handle)

        criteria = build_criteria(DateRange(since=since, until=until))
        mailbox = self._require_mailbox()
        messages = [
            Message(mail, folder=handle.name)
            for mail in mailbox.fetch(criteria, mark_seen=False, bulk=True)
        ]
        logger.info("Found %d message(s) in %s", len(messages), handle.name)
        return messages

    def move(
        self,
        messages: Sequence[Message],
        source: FolderHandle,
        destination: FolderHandle,
    ) -> None:
        """Copy messages to destination, flag the originals deleted, expunge source.

        The three steps are not atomic and nothing is rolled back: a failure
        part way through can leave messages in both folders. Expunging
        removes every message flagged deleted in source, not only these.
        """
        if not messages:
            return
        if not source.is_open or not destination.is_open:
            raise RuntimeError("Both folders must be open to move messages.")

        uids = [m.uid for m in messages if m.uid]
        self._select(source)
        mailbox = self._require_mailbox()

        mailbox.copy(uids, destination.name)
        mailbox.flag(uids, MailMessageFlags.DELETED, True)
        for message in messages:
            message.deleted = True
        mailbox.expunge()
        logger.info(
            "Moved %d message(s) from %s to %s", len(uids), source.name, destination.name
        )

    def __enter__(self) -> "MailRepository":
        """Context manager entry - connect to server."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - disconnect from server."""
        self.disconnect()
