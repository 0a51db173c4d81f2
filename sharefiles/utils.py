"""
Utility helpers for share-files.
"""

from __future__ import annotations

import mimetypes
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

SIZE_SUFFIXES = ["B", "KB", "MB", "GB", "TB", "PB"]
DEFAULT_MIME_TYPE = "application/octet-stream"
FALLBACK_FILENAME = "received.bin"


def timestamp(now: Optional[datetime] = None) -> str:
    """Return an ``HH:MM:SS.mmm`` UTC timestamp for event log lines."""

    current = now or datetime.now(timezone.utc)
    return current.strftime("%H:%M:%S.") + f"{current.microsecond // 1000:03d}"


def format_size(num_bytes: int) -> str:
    """
    Convert a byte count into a human-friendly string, e.g. 1.25 MB.
    """

    value = float(max(0, num_bytes))
    for suffix in SIZE_SUFFIXES:
        if value < 1024.0 or suffix == SIZE_SUFFIXES[-1]:
            if suffix == "B":
                return f"{int(value)} {suffix}"
            return f"{value:.2f} {suffix}"
        value /= 1024.0


def format_rate(num_bytes_per_second: float) -> str:
    """
    Convert a transfer rate (bytes per second) into a readable string, e.g. 2.4 MB/s.
    """

    if num_bytes_per_second <= 0:
        return "0 B"
    value = float(num_bytes_per_second)
    for suffix in SIZE_SUFFIXES:
        if value < 1024.0 or suffix == SIZE_SUFFIXES[-1]:
            if suffix == "B":
                return f"{int(value)} {suffix}"
            return f"{value:.2f} {suffix}"
        value /= 1024.0


def guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or DEFAULT_MIME_TYPE


def safe_filename(name: str) -> str:
    """Reduce a peer-declared file name to a bare file name.

    Both separators are honoured so a name sent from another platform cannot
    climb out of the output directory.
    """

    candidate = os.path.basename(name.replace("\\", "/")).strip()
    if candidate in {"", ".", ".."}:
        return FALLBACK_FILENAME
    return candidate


def unique_destination(directory: Path, filename: str) -> Path:
    """Return a path in `directory` that does not exist yet, e.g. ``file(1).txt``."""

    target = directory / filename
    if not target.exists():
        return target
    stem = target.stem
    suffix = target.suffix
    counter = 1
    while True:
        candidate = directory / f"{stem}({counter}){suffix}"
        if not candidate.exists():
            return candidate
        counter += 1
