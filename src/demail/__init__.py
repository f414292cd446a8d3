"""Download emails and attachments from an IMAP server."""

__version__ = "0.1.0"
