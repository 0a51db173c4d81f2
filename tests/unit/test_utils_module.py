from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

import sharefiles.utils as utils


def test_format_size_and_rate() -> None:
    assert utils.format_size(0) == "0 B"
    assert utils.format_size(1536) == "1.50 KB"
    assert utils.format_size(-5) == "0 B"
    assert utils.format_rate(0) == "0 B"
    assert utils.format_rate(2048) == "2.00 KB"


def test_timestamp_has_millisecond_precision() -> None:
    moment = datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)

    assert utils.timestamp(moment) == "03:04:05.678"


def test_guess_mime_type(tmp_path: Path) -> None:
    assert utils.guess_mime_type(tmp_path / "notes.txt") == "text/plain"
    assert utils.guess_mime_type(tmp_path / "blob.unknownext") == utils.DEFAULT_MIME_TYPE


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("photo.jpg", "photo.jpg"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\doc.txt", "doc.txt"),
        ("dir/", utils.FALLBACK_FILENAME),
        ("..", utils.FALLBACK_FILENAME),
        ("   ", utils.FALLBACK_FILENAME),
    ],
)
def test_safe_filename(raw: str, expected: str) -> None:
    assert utils.safe_filename(raw) == expected


def test_unique_destination_appends_counter(tmp_path: Path) -> None:
    assert utils.unique_destination(tmp_path, "a.txt") == tmp_path / "a.txt"

    (tmp_path / "a.txt").write_text("x", encoding="utf-8")
    (tmp_path / "a(1).txt").write_text("x", encoding="utf-8")

    assert utils.unique_destination(tmp_path, "a.txt") == tmp_path / "a(2).txt"
