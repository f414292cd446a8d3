"""Runs one demail operation end to end.

Each run connects, does its work in the source folder (optionally moving
processed messages to an archive folder) and disconnects. Folders and the
connection are released on every exit path; the first fatal error aborts
the run and is reported.
"""

import imaplib
from contextlib import ExitStack

import structlog
from imap_tools import ImapToolsError

from demail.config import RunMode, RunOptions
from demail.console import ConsoleReporter
from demail.exceptions import DemailError
from demail.mail.extractor import MessageExtractor
from demail.mail.models import FolderHandle, Message
from demail.mail.repository import MailRepository

logger = structlog.get_logger()

# Errors that end a run with a non-zero exit code
FATAL_ERRORS = (DemailError, ImapToolsError, imaplib.IMAP4.error, OSError)


class Runner:
    """Executes the operation described by a RunOptions."""

    def __init__(
        self,
        options: RunOptions,
        reporter: ConsoleReporter | None = None,
        repository: MailRepository | None = None,
        extractor: MessageExtractor | None = None,
    ) -> None:
        self.options = options
        self.reporter = reporter or ConsoleReporter()
        self.repository = repository or MailRepository(options.imap)
        if extractor is None and options.directory is not None:
            extractor = MessageExtractor(options.directory, on_warning=self.reporter.warning)
        self.extractor = extractor

    def run(self) -> int:
        """Run the operation. Returns 0 on success and 1 on failure."""
        mode = self.options.mode
        handlers = {
            RunMode.LIST_FOLDERS: self._list_folders,
            RunMode.LIST_MESSAGES: self._list_messages,
            RunMode.DOWNLOAD_ATTACHMENTS: self._download,
            RunMode.DOWNLOAD_MESSAGES: self._download,
        }
        log = logger.bind(mode=mode.value, host=self.options.imap.host, folder=self.options.folder)
        log.info("run_started")

        try:
            with self.repository as repo:
                handlers[mode](repo)
        except FATAL_ERRORS as e:
            log.error("run_failed", error=str(e), error_type=type(e).__name__)
            self.reporter.error(str(e))
            return 1

        log.info("run_finished")
        return 0

    def _list_folders(self, repo: MailRepository) -> None:
        for folder in repo.list_folders():
            self.reporter.folder(folder)

    def _source_folder(self) -> str:
        if not self.options.folder:
            raise RuntimeError(f"{self.options.mode.value} needs a source folder.")
        return self.options.folder

    def _require_extractor(self) -> MessageExtractor:
        if self.extractor is None:
            raise RuntimeError("No download directory configured.")
        return self.extractor

    def _search(self, repo: MailRepository, source: FolderHandle) -> list[Message]:
        dates = self.options.dates
        return repo.search_messages(source, since=dates.since, until=dates.until)

    def _list_messages(self, repo: MailRepository) -> None:
        with repo.folder(self._source_folder(), writable=False) as source:
            for message in self._search(repo, source):
                self.reporter.message(message)

    def _download(self, repo: MailRepository) -> None:
        folder_name = self._source_folder()
        archive_name = self.options.archive

        with ExitStack() as stack:
            source = stack.enter_context(
                repo.folder(folder_name, writable=archive_name is not None)
            )
            archive = None
            if archive_name is not None:
                archive = stack.enter_context(repo.folder(archive_name, writable=True))

            messages = self._search(repo, source)
            processed = [message for message in messages if self._process(message)]
            logger.info("messages_processed", found=len(messages), processed=len(processed))

            if archive is None:
                self.reporter.skip_archive()
                return

            repo.move(processed, source, archive)
            logger.info("archive_moved", count=len(processed), archive=archive.name)
            self.reporter.archived(len(processed), archive.name)

    def _process(self, message: Message) -> bool:
        """Download what the mode asks for. Returns whether to archive the message."""
        extractor = self._require_extractor()
        self.reporter.message(message)

        if self.options.mode is RunMode.DOWNLOAD_MESSAGES:
            self._download_message(message)
            return True

        if self.options.include_message:
            self._download_message(message)

        self.reporter.info("Attempting to download attachments...")
        paths = extractor.download_attachments(message)
        if not paths:
            self.reporter.no_attachments()
            return False
        for path in paths:
            self.reporter.downloaded(path)
        return True

    def _download_message(self, message: Message) -> None:
        extractor = self._require_extractor()
        self.reporter.info("Attempting to download mail...")
        self.reporter.downloaded(extractor.download_message(message))


def run(options: RunOptions, reporter: ConsoleReporter | None = None) -> int:
    """Run the operation described by options and return the exit code."""
    return Runner(options, reporter).run()
