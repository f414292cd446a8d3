"""Tests for attachment and message extraction."""

from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from demail.exceptions import DownloadError
from demail.mail.extractor import MessageExtractor, extract_attachment_parts
from demail.mail.models import AttachmentPart, Message, RawMailMessage
from demail.mail.naming import content_hash, text_hash

TIMESTAMP = "2023-01-15T09:30:00Z"


def _visible_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.iterdir() if p.is_file())


class TestExtractAttachmentParts:
    def test_inline_and_attachment(self, make_message: Callable[..., Message]) -> None:
        message = make_message(
            attachments=[
                ("logo.png", b"\x89PNG", "inline"),
                ("report.pdf", b"%PDF-1.4 report", "attachment"),
            ]
        )

        parts = extract_attachment_parts(message)

        assert len(parts) == 1
        assert parts[0].filename == "report.pdf"
        assert parts[0].content == b"%PDF-1.4 report"

    def test_not_multipart(self, make_message: Callable[..., Message]) -> None:
        assert extract_attachment_parts(make_message()) == []

    def test_keeps_part_order(self, make_message: Callable[..., Message]) -> None:
        message = make_message(
            attachments=[
                ("b.txt", b"second", "attachment"),
                ("a.txt", b"first", "attachment"),
            ]
        )

        assert [p.filename for p in extract_attachment_parts(message)] == ["b.txt", "a.txt"]

    def test_disposition_is_case_insensitive(self, build_raw: Callable[..., bytes]) -> None:
        raw = build_raw(attachments=[("report.pdf", b"data", "attachment")])
        raw = raw.replace(b"Content-Disposition: attachment", b"Content-Disposition: ATTACHMENT")

        parts = extract_attachment_parts(Message(RawMailMessage.from_bytes(raw)))

        assert [p.filename for p in parts] == ["report.pdf"]

    def test_encoded_filename(self, make_message: Callable[..., Message]) -> None:
        message = make_message(attachments=[("Übersicht.pdf", b"data", "attachment")])

        assert extract_attachment_parts(message)[0].filename == "Übersicht.pdf"

    def test_undecodable_filename(self, build_raw: Callable[..., bytes]) -> None:
        raw = build_raw(attachments=[("placeholder.bin", b"data", "attachment")])
        raw = raw.replace(b"placeholder.bin", b"=?utf-8?B?/w==?=")

        parts = extract_attachment_parts(Message(RawMailMessage.from_bytes(raw)))

        assert len(parts) == 1
        assert parts[0].content == b"data"
        assert not parts[0].filename


class TestDownloadPart:
    def test_final_name(self, tmp_path: Path, make_message: Callable[..., Message]) -> None:
        message = make_message()
        part = AttachmentPart(filename="report.pdf", content=b"%PDF-1.4 report")

        path = MessageExtractor(tmp_path).download_part(part, message)

        digest = content_hash(b"%PDF-1.4 report")
        identity = text_hash("<report-1@example.com>")
        assert path == tmp_path / f"{TIMESTAMP}_{identity}_{digest}_report.pdf"
        assert path.read_bytes() == b"%PDF-1.4 report"

    def test_no_temp_files_left(self, tmp_path: Path, make_message: Callable[..., Message]) -> None:
        part = AttachmentPart(filename="report.pdf", content=b"data")

        MessageExtractor(tmp_path).download_part(part, make_message())

        assert [p.name for p in tmp_path.iterdir() if p.name.startswith("._")] == []

    def test_missing_message_id_uses_content_hash(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        part = AttachmentPart(filename="report.pdf", content=b"data")

        path = MessageExtractor(tmp_path).download_part(part, make_message(message_id=None))

        digest = content_hash(b"data")
        assert path.name == f"{TIMESTAMP}_{digest}_{digest}_report.pdf"

    def test_name_stable_for_same_content(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        extractor = MessageExtractor(tmp_path)
        part = AttachmentPart(filename="report.pdf", content=b"data")

        first = extractor.download_part(part, make_message())
        second = extractor.download_part(part, make_message())
        changed = extractor.download_part(
            AttachmentPart(filename="report.pdf", content=b"other data"), make_message()
        )

        assert first == second
        assert changed != first
        assert len(_visible_files(tmp_path)) == 2

    def test_write_failure(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        part = AttachmentPart(filename="report.pdf", content=b"data")

        with (
            patch("demail.mail.extractor.os.replace", side_effect=OSError(28, "No space left")),
            pytest.raises(DownloadError, match="No space left") as exc_info,
        ):
            MessageExtractor(tmp_path).download_part(part, make_message())

        assert isinstance(exc_info.value.__cause__, OSError)
        assert list(tmp_path.iterdir()) == []

    def test_missing_directory(self, tmp_path: Path, make_message: Callable[..., Message]) -> None:
        part = AttachmentPart(filename="report.pdf", content=b"data")

        with pytest.raises(DownloadError):
            MessageExtractor(tmp_path / "gone").download_part(part, make_message())

    def test_unsafe_filename_stays_in_directory(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        part = AttachmentPart(filename="../../evil.sh", content=b"data")

        path = MessageExtractor(tmp_path).download_part(part, make_message())

        assert path.parent == tmp_path
        assert path.name.endswith("_evil.sh")


class TestTnefContainer:
    def test_unpacks_into_sibling_directory(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        embedded = [
            SimpleNamespace(long_filename=lambda: "budget.xlsx", name="BUDGET~1.XLS", data=b"xls"),
            SimpleNamespace(long_filename=lambda: None, name=b"notes.txt\x00", data=b"txt"),
        ]
        part = AttachmentPart(filename="WINMAIL.DAT", content=b"tnef bytes")

        with patch("demail.mail.extractor.TNEF", return_value=SimpleNamespace(attachments=embedded)):
            path = MessageExtractor(tmp_path).download_part(part, make_message())

        unpacked = path.with_name(path.name + "_d")
        assert unpacked.is_dir()
        assert (unpacked / "budget.xlsx").read_bytes() == b"xls"
        assert (unpacked / "notes.txt").read_bytes() == b"txt"

    def test_unpack_failure_is_not_fatal(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        warnings: list[str] = []
        part = AttachmentPart(filename="winmail.dat", content=b"not a tnef stream")

        path = MessageExtractor(tmp_path, on_warning=warnings.append).download_part(
            part, make_message()
        )

        assert path.read_bytes() == b"not a tnef stream"
        assert len(warnings) == 1
        assert "winmail.dat" in warnings[0]

    def test_other_names_are_not_unpacked(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        part = AttachmentPart(filename="winmail.dat.pdf", content=b"data")

        with patch("demail.mail.extractor.TNEF") as mock_tnef:
            MessageExtractor(tmp_path).download_part(part, make_message())

        mock_tnef.assert_not_called()


class TestDownloadAttachments:
    def test_downloads_each_attachment(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        message = make_message(
            attachments=[
                ("a.txt", b"first", "attachment"),
                ("b.txt", b"second", "attachment"),
            ]
        )

        paths = MessageExtractor(tmp_path).download_attachments(message)

        assert [p.name.rsplit("_", 1)[-1] for p in paths] == ["a.txt", "b.txt"]
        assert [p.read_bytes() for p in paths] == [b"first", b"second"]

    def test_no_attachments(self, tmp_path: Path, make_message: Callable[..., Message]) -> None:
        assert MessageExtractor(tmp_path).download_attachments(make_message()) == []
        assert list(tmp_path.iterdir()) == []


class TestDownloadMessage:
    def test_keeps_server_bytes(self, tmp_path: Path) -> None:
        raw = (
            b"Subject: Minutes of the meeting held on Monday about the quarterly figures\r\n"
            b" and the budget for the next year\r\n"
            b"From: Alice <alice@example.com>\r\n"
            b"Date: Sun, 15 Jan 2023 09:30:00 +0000\r\n"
            b"Message-ID: <minutes-1@example.com>\r\n"
            b"\r\n"
            b"First line\r\nSecond line\r\n"
        )
        message = Message(RawMailMessage.from_bytes(raw))

        path = MessageExtractor(tmp_path).download_message(message)

        assert path.read_bytes() == raw
        assert path.name.endswith(f"_{content_hash(raw)}.eml")

    def test_writes_raw_message(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        message = make_message(attachments=[("report.pdf", b"%PDF", "attachment")])

        path = MessageExtractor(tmp_path).download_message(message)

        raw = message.raw()
        digest = content_hash(raw)
        assert path.name == f"{TIMESTAMP}_{text_hash('<report-1@example.com>')}_{digest}.eml"
        assert path.read_bytes() == raw

    def test_round_trip(self, tmp_path: Path, make_message: Callable[..., Message]) -> None:
        message = make_message(subject="Überweisung März")

        path = MessageExtractor(tmp_path).download_message(message)
        reparsed = Message(RawMailMessage.from_bytes(path.read_bytes()))

        assert reparsed.subject == message.subject
        assert reparsed.senders == message.senders
        assert reparsed.sent == message.sent

    def test_without_message_id(self, tmp_path: Path, make_message: Callable[..., Message]) -> None:
        path = MessageExtractor(tmp_path).download_message(make_message(message_id=None))

        _, identity, digest = path.stem.split("_")
        assert identity == digest

    def test_write_failure_raises(
        self, tmp_path: Path, make_message: Callable[..., Message]
    ) -> None:
        with (
            patch("builtins.open", MagicMock(side_effect=PermissionError(13, "Permission denied"))),
            pytest.raises(DownloadError, match="Permission denied"),
        ):
            MessageExtractor(tmp_path).download_message(make_message())
