"""
Sending side: one negotiation state machine per connected receiver.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .candidates import CandidateBuffer, CandidateDecision
from .framing import FileDescriptor, send_file
from .session import Outbox, SessionFactory, SessionOrchestrator
from .signaling import (
    ROLE_INITIATOR,
    IceCandidateInit,
    LocalCandidate,
    LocalOffer,
    PeerLeft,
    RemoteAnswer,
    RemoteCandidate,
    SessionStart,
    TransferDone,
)
from .ui import EventLog
from .utils import format_size

PeerProgressCallback = Callable[[str, int, int], None]


@dataclass
class PeerState:
    """Mutable negotiation state of one peer; only touched under `InitiatorPeer.lock`."""

    signal_sid: int = 0
    active_sid: Optional[int] = None
    remote_desc_set: bool = False
    pending: CandidateBuffer = field(default_factory=CandidateBuffer)
    sending: bool = False
    channel_open: bool = False


@dataclass
class InitiatorPeer:
    peer_id: str
    session: Any
    state: PeerState = field(default_factory=PeerState)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    channel: Any = None
    watchdog: Optional[asyncio.Task] = None


class InitiatorOrchestrator(SessionOrchestrator):
    """
    Offers the shared file to every peer the relay pairs us with.

    Each `start` notice creates a transport session and an ordered ``file``
    data channel, then sends an offer tagged with a fresh sid. Answers and
    candidates are matched against that sid; once the channel opens the file
    is streamed exactly once and a ``transfer-done`` notice goes back out.
    """

    expected_role = ROLE_INITIATOR

    def __init__(
        self,
        descriptor: FileDescriptor,
        outbox: Outbox,
        log: EventLog,
        session_factory: SessionFactory,
        *,
        negotiation_timeout: Optional[float] = None,
        progress_cb: Optional[PeerProgressCallback] = None,
    ) -> None:
        super().__init__(outbox, log)
        self._descriptor = descriptor
        self._session_factory = session_factory
        self._negotiation_timeout = negotiation_timeout
        self._progress_cb = progress_cb
        self._peers: Dict[str, InitiatorPeer] = {}
        self._peers_lock = asyncio.Lock()

    async def peer_ids(self) -> List[str]:
        async with self._peers_lock:
            return list(self._peers)

    async def get_peer(self, peer_id: str) -> Optional[InitiatorPeer]:
        async with self._peers_lock:
            return self._peers.get(peer_id)

    async def on_start(self, message: SessionStart) -> None:
        peer_id = message.peer_id
        if peer_id is None:
            return
        self._log.event("log_peer_start", peer=peer_id)
        peer = InitiatorPeer(peer_id=peer_id, session=self._session_factory())
        async with self._peers_lock:
            previous = self._peers.get(peer_id)
            self._peers[peer_id] = peer
        if previous is not None:
            await self._discard(previous)

        self._wire_session(peer)
        peer.channel = peer.session.create_data_channel()
        self._wire_channel(peer)
        await self._send_offer(peer)
        if self._negotiation_timeout is not None:
            peer.watchdog = self.spawn(self._watch_negotiation(peer, self._negotiation_timeout))

    async def on_answer(self, message: RemoteAnswer) -> None:
        peer = await self.get_peer(message.sender)
        if peer is None:
            return
        async with peer.lock:
            stale = message.sid != peer.state.active_sid or peer.state.remote_desc_set
        if stale:
            self._log.event("log_answer_stale", peer=peer.peer_id, sid=message.sid)
            return

        await peer.session.set_remote_description(message.sdp)
        async with peer.lock:
            if message.sid != peer.state.active_sid:
                ready: List[IceCandidateInit] = []
                stale = True
            else:
                peer.state.remote_desc_set = True
                ready = peer.state.pending.drain(message.sid)
        if stale:
            self._log.event("log_answer_stale", peer=peer.peer_id, sid=message.sid)
            return
        for candidate in ready:
            await peer.session.add_remote_candidate(candidate)
        self._log.event("log_answer_applied", peer=peer.peer_id, sid=message.sid)

    async def on_candidate(self, message: RemoteCandidate) -> None:
        peer = await self.get_peer(message.sender)
        if peer is None:
            return
        async with peer.lock:
            decision = peer.state.pending.route(
                message.sid,
                message.candidate,
                active_sid=peer.state.active_sid,
                remote_desc_set=peer.state.remote_desc_set,
            )
        if decision is CandidateDecision.APPLY:
            await peer.session.add_remote_candidate(message.candidate)
        elif decision is CandidateDecision.DROP:
            self._log.event("log_candidate_dropped", peer=peer.peer_id, sid=message.sid)

    async def on_peer_left(self, message: PeerLeft) -> None:
        async with self._peers_lock:
            peer = self._peers.pop(message.peer_id, None)
        if peer is None:
            return
        await self._discard(peer)

    async def renegotiate(self, peer_id: str) -> bool:
        """Send a fresh offer to `peer_id`, invalidating every candidate of the previous sid."""

        peer = await self.get_peer(peer_id)
        if peer is None:
            return False
        await self._send_offer(peer)
        return True

    async def close_sessions(self) -> None:
        async with self._peers_lock:
            peers = list(self._peers.values())
            self._peers.clear()
        for peer in peers:
            await self._discard(peer)

    async def _send_offer(self, peer: InitiatorPeer) -> None:
        async with peer.lock:
            peer.state.signal_sid += 1
            sid = peer.state.signal_sid
            peer.state.active_sid = sid
            peer.state.remote_desc_set = False
        offer = await peer.session.create_offer()
        await peer.session.set_local_description(offer)
        # The applied description carries the gathered candidates.
        description = peer.session.local_description or offer
        self.send(LocalOffer(to=peer.peer_id, sid=sid, sdp=description))
        self._log.event("log_offer_sent", peer=peer.peer_id, sid=sid)

    def _wire_session(self, peer: InitiatorPeer) -> None:
        async def _on_local_candidate(candidate: IceCandidateInit) -> None:
            async with peer.lock:
                sid = peer.state.active_sid
            if sid is None:
                return
            self.send(LocalCandidate(to=peer.peer_id, sid=sid, candidate=candidate))

        def _on_state(state: str) -> None:
            self._log.event("log_rtc_state", peer=peer.peer_id, state=state)

        peer.session.on_local_candidate(_on_local_candidate)
        peer.session.on_connection_state_change(_on_state)

    def _wire_channel(self, peer: InitiatorPeer) -> None:
        channel = peer.channel

        def _on_open() -> None:
            self.spawn(self._on_channel_open(peer))

        def _on_close() -> None:
            self._log.event("log_channel_closed", peer=peer.peer_id)

        channel.on("open", _on_open)
        channel.on("close", _on_close)

    async def _on_channel_open(self, peer: InitiatorPeer) -> None:
        async with peer.lock:
            if peer.state.sending:
                return
            peer.state.sending = True
            peer.state.channel_open = True
        self._log.event("log_channel_open", peer=peer.peer_id)
        if peer.watchdog is not None:
            peer.watchdog.cancel()
        await self._transfer(peer)

    async def _transfer(self, peer: InitiatorPeer) -> None:
        descriptor = self._descriptor
        self._log.event(
            "log_send_start",
            peer=peer.peer_id,
            name=descriptor.name,
            size=format_size(descriptor.size),
        )
        progress_cb = None
        if self._progress_cb is not None:
            report = self._progress_cb

            def progress_cb(sent: int, total: int) -> None:
                report(peer.peer_id, sent, total)

        try:
            await send_file(peer.channel, descriptor, progress_cb)
        except Exception as exc:  # noqa: BLE001
            self._log.event("log_send_error", error=True, peer=peer.peer_id, reason=exc)
            return
        self._log.event("log_send_done", peer=peer.peer_id)
        self.send(TransferDone(peer_id=peer.peer_id))

    async def _watch_negotiation(self, peer: InitiatorPeer, timeout: float) -> None:
        await asyncio.sleep(timeout)
        async with peer.lock:
            if peer.state.channel_open:
                return
        async with self._peers_lock:
            if self._peers.get(peer.peer_id) is not peer:
                return
            del self._peers[peer.peer_id]
        self._log.event("log_negotiation_timeout", seconds=timeout, peer=peer.peer_id)
        await self._discard(peer)

    async def _discard(self, peer: InitiatorPeer) -> None:
        watchdog = peer.watchdog
        if watchdog is not None and watchdog is not asyncio.current_task():
            watchdog.cancel()
        async with peer.lock:
            peer.state.pending.clear()
            peer.state.active_sid = None
        await peer.session.close()
