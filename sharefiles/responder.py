"""
Receiving side: a single negotiation state machine bound to one sender.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

from .candidates import CandidateBuffer, CandidateDecision
from .framing import CompletedTransfer, FileReceiver, ProgressCallback
from .session import Outbox, SessionError, SessionFactory, SessionOrchestrator
from .signaling import (
    ROLE_RESPONDER,
    IceCandidateInit,
    LocalAnswer,
    LocalCandidate,
    PeerLeft,
    RemoteCandidate,
    RemoteOffer,
    SessionStart,
)
from .ui import EventLog


@dataclass
class ResponderState:
    """The single session; fields other than `session` stay empty until an offer arrives."""

    session: Any = None
    peer_id: Optional[str] = None
    active_sid: Optional[int] = None
    remote_desc_set: bool = False
    pending: CandidateBuffer = field(default_factory=CandidateBuffer)
    channel_open: bool = False
    # Set when the watchdog discarded the session; late messages are dropped.
    timed_out: bool = False


class ResponderOrchestrator(SessionOrchestrator):
    """
    Answers the sender's offer and saves whatever arrives on its data channel.

    A `start` notice prepares a fresh transport session (closing any previous
    one); the peer and sid are bound only when the offer arrives. All data
    channels feed one `FileReceiver`, so at most one incoming file is open at
    any time.
    """

    expected_role = ROLE_RESPONDER

    def __init__(
        self,
        output_dir: Path,
        outbox: Outbox,
        log: EventLog,
        session_factory: SessionFactory,
        *,
        negotiation_timeout: Optional[float] = None,
        progress_cb: Optional[ProgressCallback] = None,
        on_complete: Optional[Callable[[CompletedTransfer], None]] = None,
    ) -> None:
        super().__init__(outbox, log)
        self._session_factory = session_factory
        self._negotiation_timeout = negotiation_timeout
        self._state = ResponderState()
        self._lock = asyncio.Lock()
        self._watchdog: Optional[asyncio.Task] = None
        self.receiver = FileReceiver(output_dir, log, progress_cb=progress_cb, on_complete=on_complete)

    @property
    def state(self) -> ResponderState:
        return self._state

    @property
    def completed(self) -> List[CompletedTransfer]:
        return self.receiver.completed

    async def on_start(self, message: SessionStart) -> None:
        session = self._session_factory()
        async with self._lock:
            previous = self._state.session
            self._state = ResponderState(session=session)
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        if previous is not None:
            await previous.close()
        self._log.event("log_peer_start", peer=message.peer_id or "-")
        self._wire_session(session)
        if self._negotiation_timeout is not None:
            self._watchdog = self.spawn(self._watch_negotiation(session, self._negotiation_timeout))

    async def on_offer(self, message: RemoteOffer) -> None:
        async with self._lock:
            state = self._state
            session = state.session
            if session is None:
                if state.timed_out:
                    self._log.event("log_offer_late", peer=message.sender, sid=message.sid)
                    return
                raise SessionError("offer received before the session was started")
            state.peer_id = message.sender
            state.active_sid = message.sid
            state.remote_desc_set = False
        self._log.event("log_offer_received", peer=message.sender, sid=message.sid)

        await session.set_remote_description(message.sdp)
        async with self._lock:
            if self._state is not state or state.active_sid != message.sid:
                return
            state.remote_desc_set = True
            ready = state.pending.drain(message.sid)
        for candidate in ready:
            await session.add_remote_candidate(candidate)

        answer = await session.create_answer()
        await session.set_local_description(answer)
        description = session.local_description or answer
        self.send(LocalAnswer(to=message.sender, sid=message.sid, sdp=description))
        self._log.event("log_answer_sent", peer=message.sender, sid=message.sid)

    async def on_candidate(self, message: RemoteCandidate) -> None:
        async with self._lock:
            state = self._state
            session = state.session
            if session is None:
                return
            bound = state.peer_id
            decision = state.pending.route(
                message.sid,
                message.candidate,
                active_sid=state.active_sid,
                remote_desc_set=state.remote_desc_set,
            )
        # The sender id is not checked against the bound peer; the relay
        # pairs a responder with exactly one initiator.
        if bound is not None and message.sender != bound:
            self._log.event("log_candidate_foreign", peer=message.sender, bound=bound)
        if decision is CandidateDecision.APPLY:
            await session.add_remote_candidate(message.candidate)
        elif decision is CandidateDecision.DROP:
            self._log.event("log_candidate_dropped", peer=message.sender, sid=message.sid)

    async def on_peer_left(self, message: PeerLeft) -> None:
        # A later start replaces the session; nothing to tear down yet.
        return None

    async def close_sessions(self) -> None:
        async with self._lock:
            session = self._state.session
            self._state = ResponderState()
        if session is not None:
            await session.close()
        await self.receiver.close()

    def _wire_session(self, session: Any) -> None:
        async def _on_local_candidate(candidate: IceCandidateInit) -> None:
            async with self._lock:
                state = self._state
                if state.session is not session:
                    return
                peer_id, sid = state.peer_id, state.active_sid
            if peer_id is None or sid is None:
                return
            self.send(LocalCandidate(to=peer_id, sid=sid, candidate=candidate))

        def _on_state(state: str) -> None:
            self._log.event("log_rtc_state", peer=self._state.peer_id or "-", state=state)

        def _on_data_channel(channel: Any) -> None:
            self.receiver.attach(channel)

            def _on_close() -> None:
                self._log.event("log_channel_closed", peer=self._state.peer_id or "-")

            channel.on("close", _on_close)
            self.spawn(self._mark_channel_open(session))

        session.on_local_candidate(_on_local_candidate)
        session.on_connection_state_change(_on_state)
        session.on_data_channel(_on_data_channel)

    async def _mark_channel_open(self, session: Any) -> None:
        async with self._lock:
            state = self._state
            if state.session is not session:
                return
            state.channel_open = True
            peer_id = state.peer_id
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        self._log.event("log_channel_open", peer=peer_id or "-")

    async def _watch_negotiation(self, session: Any, timeout: float) -> None:
        await asyncio.sleep(timeout)
        async with self._lock:
            state = self._state
            if state.session is not session or state.channel_open:
                return
            self._state = ResponderState(timed_out=True)
        self._watchdog = None
        self._log.event("log_negotiation_timeout", seconds=timeout, peer=state.peer_id or "-")
        await session.close()
