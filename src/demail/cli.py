"""CLI entry point for demail."""

import argparse
import sys
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from demail import __version__
from demail.config import RunMode, RunOptions, Settings
from demail.console import ConsoleReporter
from demail.exceptions import ConfigError
from demail.logging import setup_logging
from demail.mail.config import IMAPConfig
from demail.mail.models import DateRange
from demail.runner import run

DEFAULT_PORT = 993

_DESCRIPTIONS = {
    RunMode.LIST_FOLDERS: "List remote folders",
    RunMode.LIST_MESSAGES: "Tabulate emails stored in the remote folder",
    RunMode.DOWNLOAD_ATTACHMENTS: "Download attachments (and optionally archive emails)",
    RunMode.DOWNLOAD_MESSAGES: "Download emails (and optionally archive emails)",
}


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date (YYYY-MM-DD): {value!r}") from None


def _existing_dir(value: str) -> Path:
    path = Path(value)
    if not path.is_dir():
        raise argparse.ArgumentTypeError(f"not an existing directory: {value!r}")
    return path


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per run mode."""
    parser = argparse.ArgumentParser(
        prog="demail",
        description="Download emails and attachments from an IMAP server",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for diagnostics on stderr (default: WARNING)",
    )

    connection = argparse.ArgumentParser(add_help=False)
    connection.add_argument("--host", help="IMAP server host")
    connection.add_argument("--port", type=int, help=f"IMAP server port (default: {DEFAULT_PORT})")
    connection.add_argument(
        "--ssl",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Use SSL (default: no)",
    )
    connection.add_argument("--user", help="IMAP server username")
    connection.add_argument("--pass", dest="password", help="IMAP server password")
    connection.add_argument("--timeout", type=float, help="Socket timeout in seconds")

    folder = argparse.ArgumentParser(add_help=False)
    folder.add_argument("--folder", required=True, help="Folder on IMAP server")
    folder.add_argument("--since", type=_iso_date, help="Date since (inclusive)")
    folder.add_argument("--until", type=_iso_date, help="Date until (inclusive)")

    download = argparse.ArgumentParser(add_help=False)
    download.add_argument("--archive", help="Archive folder on IMAP server (if to archive)")
    download.add_argument(
        "--directory", required=True, type=_existing_dir, help="Local directory"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    for mode in RunMode:
        parents = [connection]
        if mode.needs_folder:
            parents.append(folder)
        if mode.downloads:
            parents.append(download)
        sub = subparsers.add_parser(
            mode.value,
            parents=parents,
            help=_DESCRIPTIONS[mode],
            description=_DESCRIPTIONS[mode],
        )
        if mode is RunMode.DOWNLOAD_ATTACHMENTS:
            sub.add_argument(
                "--mail",
                action=argparse.BooleanOptionalAction,
                default=False,
                help="Download the mail itself, too",
            )

    return parser


def build_options(args: argparse.Namespace, settings: Settings) -> RunOptions:
    """Merge command line arguments over settings into validated RunOptions.

    Raises:
        ConfigError: If a required connection value is missing or invalid.
    """
    host = args.host or settings.host
    username = args.user or settings.username
    password = args.password or (
        settings.password.get_secret_value() if settings.password else None
    )
    missing = [
        flag
        for flag, value in (("--host", host), ("--user", username), ("--pass", password))
        if not value
    ]
    if missing:
        raise ConfigError(f"Missing required option(s): {', '.join(missing)}")

    ssl = args.ssl if args.ssl is not None else settings.ssl
    try:
        return RunOptions(
            mode=RunMode(args.command),
            imap=IMAPConfig(
                host=host,
                port=args.port or settings.port or DEFAULT_PORT,
                username=username,
                password=password,
                ssl=bool(ssl),
                timeout=args.timeout if args.timeout is not None else settings.timeout,
            ),
            folder=getattr(args, "folder", None),
            archive=getattr(args, "archive", None),
            dates=DateRange(
                since=getattr(args, "since", None),
                until=getattr(args, "until", None),
            ),
            directory=getattr(args, "directory", None),
            include_message=getattr(args, "mail", False),
        )
    except ValidationError as e:
        details = "; ".join(err["msg"] for err in e.errors())
        raise ConfigError(details) from e


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    reporter = ConsoleReporter()
    try:
        settings = Settings()
        setup_logging(level=args.log_level or settings.log_level)
        options = build_options(args, settings)
    except (ConfigError, ValueError) as e:
        reporter.error(str(e))
        return 2

    return run(options, reporter)


if __name__ == "__main__":
    sys.exit(main())
