"""
Shared test doubles: a recording event log, an in-memory data channel and a
fake transport session with the same surface as `sharefiles.rtc.TransportSession`.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional

import pytest

from sharefiles.signaling import IceCandidateInit, SessionDescription


class RecordingLog:
    def __init__(self) -> None:
        self.language = "en"
        self.events: List[tuple] = []

    def event(self, key: str, *, error: bool = False, **kwargs: object) -> None:
        self.events.append((key, kwargs))

    def keys(self) -> List[str]:
        return [key for key, _ in self.events]

    def find(self, key: str) -> List[Dict[str, object]]:
        return [kwargs for name, kwargs in self.events if name == key]


class FakeChannel:
    """Message-framed channel; when linked, `send` delivers to the other end."""

    def __init__(self, label: str = "file") -> None:
        self.label = label
        self.readyState = "connecting"
        self.bufferedAmount = 0
        self.bufferedAmountLowThreshold = 0
        self.sent: List[Any] = []
        self.peer: Optional["FakeChannel"] = None
        self.fail_sends = False
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event: str, handler: Callable) -> Callable:
        self._handlers.setdefault(event, []).append(handler)
        return handler

    def remove_listener(self, event: str, handler: Callable) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                asyncio.ensure_future(result)

    def open(self) -> None:
        self.readyState = "open"
        self.emit("open")

    def send(self, data: Any) -> None:
        if self.fail_sends or self.readyState != "open":
            raise ConnectionError(f"channel is {self.readyState}")
        self.sent.append(data)
        if self.peer is not None:
            self.peer.emit("message", data)

    def close(self) -> None:
        if self.readyState == "closed":
            return
        self.readyState = "closed"
        self.emit("close")


def link_channels(left: FakeChannel, right: FakeChannel) -> None:
    left.peer = right
    right.peer = left
    left.readyState = "open"
    right.readyState = "open"


class FakeTransportSession:
    def __init__(self) -> None:
        self.remote: Optional[SessionDescription] = None
        self.local: Optional[SessionDescription] = None
        self.applied: List[str] = []
        self.channels: List[FakeChannel] = []
        self.closed = False
        self.offers = 0
        self.fail_offer = False
        self._candidate_handler: Optional[Callable] = None
        self._state_handler: Optional[Callable] = None
        self._channel_handler: Optional[Callable] = None

    @property
    def local_description(self) -> Optional[SessionDescription]:
        return self.local

    def on_local_candidate(self, handler: Callable) -> None:
        self._candidate_handler = handler

    def on_connection_state_change(self, handler: Callable) -> None:
        self._state_handler = handler

    def on_data_channel(self, handler: Callable) -> None:
        self._channel_handler = handler

    def create_data_channel(self, label: str = "file") -> FakeChannel:
        channel = FakeChannel(label)
        self.channels.append(channel)
        return channel

    async def create_offer(self) -> SessionDescription:
        if self.fail_offer:
            raise RuntimeError("offer failed")
        self.offers += 1
        return SessionDescription(sdp=f"offer-{self.offers}", type="offer")

    async def create_answer(self) -> SessionDescription:
        return SessionDescription(sdp="answer", type="answer")

    async def set_local_description(self, description: SessionDescription) -> None:
        self.local = description

    async def set_remote_description(self, description: SessionDescription) -> None:
        self.remote = description

    async def add_remote_candidate(self, candidate: IceCandidateInit) -> None:
        assert self.remote is not None, "candidate applied before remote description"
        self.applied.append(candidate.candidate)

    async def close(self) -> None:
        self.closed = True
        for channel in self.channels:
            channel.close()

    async def emit_local_candidate(self, candidate: IceCandidateInit) -> None:
        assert self._candidate_handler is not None
        await self._candidate_handler(candidate)

    def emit_state(self, state: str) -> None:
        assert self._state_handler is not None
        self._state_handler(state)

    def announce_channel(self, channel: FakeChannel) -> None:
        assert self._channel_handler is not None
        self._channel_handler(channel)


class SessionPool:
    """Session factory that remembers what it built."""

    def __init__(self) -> None:
        self.created: List[FakeTransportSession] = []

    def __call__(self) -> FakeTransportSession:
        session = FakeTransportSession()
        self.created.append(session)
        return session


async def settle(orchestrator: Any) -> None:
    """Wait until every task the orchestrator has spawned so far, and their children, has finished."""

    while True:
        pending = [task for task in orchestrator._tasks if not task.done()]
        if not pending:
            return
        await asyncio.wait(pending)


def candidate(name: str) -> IceCandidateInit:
    return IceCandidateInit(candidate=f"candidate:{name}", sdp_mid="0", sdp_mline_index=0)


@pytest.fixture()
def recording_log() -> RecordingLog:
    return RecordingLog()


@pytest.fixture()
def transport_sessions() -> SessionPool:
    return SessionPool()


@pytest.fixture()
def make_candidate() -> Callable[[str], IceCandidateInit]:
    return candidate


@pytest.fixture()
def channel_pair():
    def _build(label: str = "file"):
        left, right = FakeChannel(label), FakeChannel(label)
        link_channels(left, right)
        return left, right

    return _build


@pytest.fixture()
def settle_tasks() -> Callable[[Any], Any]:
    return settle


@pytest.fixture()
def fake_channel() -> Callable[..., FakeChannel]:
    return FakeChannel
