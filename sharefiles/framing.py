"""
File framing carried over an open data channel.

A transfer is one textual ``meta`` frame, the file body as binary frames of at
most `CHUNK_SIZE` bytes, and a textual ``done`` frame. The channel preserves
message boundaries, so binary frames carry no length prefix.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, List, Optional, Union

from .ui import EventLog
from .utils import DEFAULT_MIME_TYPE, guess_mime_type, safe_filename, unique_destination

CHUNK_SIZE = 64 * 1024
# Pause the sender while more than this is queued on the channel...
BUFFERED_HIGH_WATER = 8 * 1024 * 1024
# ...until the queue drains below this.
BUFFERED_LOW_WATER = 4 * 1024 * 1024

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class FileDescriptor:
    """The file being shared; computed once and reused for every peer."""

    path: Path
    name: str
    size: int
    mime: str


def load_file_descriptor(path: Path) -> FileDescriptor:
    if not path.exists():
        raise FileNotFoundError(f"path does not exist: {path}")
    if not path.is_file():
        raise ValueError(f"path must be a regular file: {path}")
    return FileDescriptor(
        path=path,
        name=path.name,
        size=path.stat().st_size,
        mime=guess_mime_type(path),
    )


@dataclass(frozen=True)
class MetaFrame:
    name: str
    size: int
    mime: str = DEFAULT_MIME_TYPE
    encrypted: bool = False

    def encode(self) -> str:
        return json.dumps(
            {
                "type": "meta",
                "name": self.name,
                "size": self.size,
                "mime": self.mime,
                "encrypted": self.encrypted,
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )


@dataclass(frozen=True)
class DoneFrame:
    def encode(self) -> str:
        return '{"type":"done"}'


DataFrame = Union[MetaFrame, DoneFrame]


def parse_data_frame(text: str) -> Optional[DataFrame]:
    """Decode a textual control frame; None when it is not one we understand."""

    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    kind = data.get("type")
    if kind == "done":
        return DoneFrame()
    if kind != "meta":
        return None
    name = data.get("name")
    size = data.get("size")
    mime = data.get("mime", DEFAULT_MIME_TYPE)
    encrypted = data.get("encrypted", False)
    if not isinstance(name, str):
        return None
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        return None
    if not isinstance(mime, str) or not isinstance(encrypted, bool):
        return None
    return MetaFrame(name=name, size=size, mime=mime or DEFAULT_MIME_TYPE, encrypted=encrypted)


async def wait_for_drain(channel: Any) -> None:
    """Block while the channel's send queue is above the high-water mark."""

    if channel.bufferedAmount <= BUFFERED_HIGH_WATER:
        return
    drained = asyncio.Event()

    def _wake(*_args: object) -> None:
        drained.set()

    channel.bufferedAmountLowThreshold = BUFFERED_LOW_WATER
    channel.on("bufferedamountlow", _wake)
    channel.on("close", _wake)
    try:
        await drained.wait()
    finally:
        channel.remove_listener("bufferedamountlow", _wake)
        channel.remove_listener("close", _wake)


async def send_file(
    channel: Any,
    descriptor: FileDescriptor,
    progress_cb: Optional[ProgressCallback] = None,
) -> int:
    """Stream `descriptor` over `channel`; returns the number of body bytes sent."""

    loop = asyncio.get_running_loop()
    meta = MetaFrame(name=descriptor.name, size=descriptor.size, mime=descriptor.mime)
    channel.send(meta.encode())
    bytes_sent = 0
    if progress_cb:
        progress_cb(bytes_sent, descriptor.size)
    with descriptor.path.open("rb") as file_handle:
        while True:
            chunk = await loop.run_in_executor(None, file_handle.read, CHUNK_SIZE)
            if not chunk:
                break
            channel.send(chunk)
            bytes_sent += len(chunk)
            if progress_cb:
                progress_cb(bytes_sent, descriptor.size)
            await wait_for_drain(channel)
    channel.send(DoneFrame().encode())
    return bytes_sent


@dataclass
class TransferProgress:
    """State of the single incoming file on the receiving side."""

    output_dir: Path
    current_file: Optional[Path] = None
    handle: Optional[BinaryIO] = None
    expected_size: int = 0
    received: int = 0
    rejected: bool = False


@dataclass(frozen=True)
class CompletedTransfer:
    path: Path
    expected_size: int
    received: int
    mime: str


class FileReceiver:
    """Writes the frames of one data channel into `output_dir`."""

    def __init__(
        self,
        output_dir: Path,
        log: EventLog,
        *,
        progress_cb: Optional[ProgressCallback] = None,
        on_complete: Optional[Callable[[CompletedTransfer], None]] = None,
    ) -> None:
        self._progress = TransferProgress(output_dir=output_dir)
        self._lock = asyncio.Lock()
        self._log = log
        self._progress_cb = progress_cb
        self._on_complete = on_complete
        self._mime = DEFAULT_MIME_TYPE
        self.completed: List[CompletedTransfer] = []

    @property
    def progress(self) -> TransferProgress:
        return self._progress

    def attach(self, channel: Any) -> None:
        channel.on("message", self.handle_message)

    async def handle_message(self, message: Union[str, bytes]) -> None:
        async with self._lock:
            if isinstance(message, str):
                frame = parse_data_frame(message)
                if isinstance(frame, MetaFrame):
                    self._start_file(frame)
                elif isinstance(frame, DoneFrame):
                    self._finish_file()
            else:
                await self._write_chunk(bytes(message))

    async def close(self) -> None:
        async with self._lock:
            self._abandon_current()

    def _start_file(self, meta: MetaFrame) -> None:
        progress = self._progress
        self._abandon_current()
        progress.rejected = False
        if meta.encrypted:
            self._log.event("log_recv_encrypted", error=True)
            progress.rejected = True
            return
        destination = unique_destination(progress.output_dir, safe_filename(meta.name))
        try:
            handle = destination.open("wb")
        except OSError as exc:
            self._log.event("log_recv_error", error=True, reason=exc)
            return
        progress.current_file = destination
        progress.handle = handle
        progress.expected_size = meta.size
        progress.received = 0
        self._mime = meta.mime
        self._log.event("log_recv_meta", name=destination.name, mime=meta.mime, size=meta.size)
        if self._progress_cb:
            self._progress_cb(0, meta.size)

    async def _write_chunk(self, data: bytes) -> None:
        progress = self._progress
        if progress.handle is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, progress.handle.write, data)
        except OSError as exc:
            self._log.event("log_recv_error", error=True, reason=exc)
            return
        progress.received += len(data)
        if self._progress_cb:
            self._progress_cb(progress.received, progress.expected_size)

    def _finish_file(self) -> None:
        progress = self._progress
        if progress.rejected:
            progress.rejected = False
            return
        if progress.handle is None or progress.current_file is None:
            return
        try:
            progress.handle.close()
        except OSError as exc:
            self._log.event("log_recv_error", error=True, reason=exc)
        record = CompletedTransfer(
            path=progress.current_file,
            expected_size=progress.expected_size,
            received=progress.received,
            mime=self._mime,
        )
        progress.handle = None
        progress.current_file = None
        self.completed.append(record)
        self._log.event("log_recv_completed", path=str(record.path))
        if record.received != record.expected_size:
            self._log.event(
                "log_recv_size_mismatch",
                path=str(record.path),
                received=record.received,
                expected=record.expected_size,
            )
        if self._on_complete:
            self._on_complete(record)

    def _abandon_current(self) -> None:
        """Close and delete a file whose done frame never arrived."""

        progress = self._progress
        if progress.handle is None or progress.current_file is None:
            return
        with contextlib.suppress(OSError):
            progress.handle.close()
        with contextlib.suppress(OSError):
            progress.current_file.unlink()
        self._log.event(
            "log_recv_abandoned",
            path=str(progress.current_file),
            received=progress.received,
            expected=progress.expected_size,
        )
        progress.handle = None
        progress.current_file = None
