from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from sharefiles.responder import ResponderOrchestrator
from sharefiles.session import RoleMismatchError, SessionError
from sharefiles.signaling import (
    LocalAnswer,
    LocalCandidate,
    PeerLeft,
    RemoteAnswer,
    RemoteCandidate,
    RemoteOffer,
    RoleAssigned,
    SessionDescription,
    SessionStart,
)

OFFER = SessionDescription(sdp="offer", type="offer")


def _orchestrator(tmp_path: Path, outbox, log, sessions, **kwargs) -> ResponderOrchestrator:
    return ResponderOrchestrator(tmp_path, outbox.append, log, sessions, **kwargs)


def test_role_initiator_is_fatal_before_any_exchange(tmp_path: Path, recording_log, transport_sessions) -> None:
    outbox: list = []

    async def scenario():
        orchestrator = _orchestrator(tmp_path, outbox, recording_log, transport_sessions)
        await orchestrator.handle(RoleAssigned(role="initiator", cid="me"))

    with pytest.raises(RoleMismatchError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.role == "initiator"
    assert outbox == []
    assert transport_sessions.created == []


def test_offer_before_start_is_fatal(tmp_path: Path, recording_log, transport_sessions) -> None:
    async def scenario():
        orchestrator = _orchestrator(tmp_path, [], recording_log, transport_sessions)
        await orchestrator.handle(RemoteOffer(sender="p1", sid=1, sdp=OFFER))

    with pytest.raises(SessionError):
        asyncio.run(scenario())


def test_offer_is_answered_with_same_sid(tmp_path: Path, recording_log, transport_sessions, make_candidate) -> None:
    outbox: list = []

    async def scenario():
        orchestrator = _orchestrator(tmp_path, outbox, recording_log, transport_sessions)
        await orchestrator.handle(RoleAssigned(role="responder", cid="me"))
        await orchestrator.handle(SessionStart(peer_id=None))
        await orchestrator.handle(RemoteCandidate(sender="sender", sid=5, candidate=make_candidate("early")))
        await orchestrator.handle(RemoteCandidate(sender="sender", sid=4, candidate=make_candidate("stale")))
        await orchestrator.handle(RemoteOffer(sender="sender", sid=5, sdp=OFFER))
        await orchestrator.handle(RemoteCandidate(sender="sender", sid=5, candidate=make_candidate("late")))
        await orchestrator.handle(RemoteCandidate(sender="sender", sid=4, candidate=make_candidate("old")))
        return orchestrator.state

    state = asyncio.run(scenario())
    session = transport_sessions.created[0]

    assert session.remote == OFFER
    assert session.applied == ["candidate:early", "candidate:late"]
    assert outbox == [LocalAnswer(to="sender", sid=5, sdp=SessionDescription(sdp="answer", type="answer"))]
    assert state.peer_id == "sender" and state.active_sid == 5 and state.remote_desc_set is True
    assert recording_log.find("log_candidate_dropped") == [{"peer": "sender", "sid": 4}]


def test_foreign_sender_candidate_is_routed_and_flagged(
    tmp_path: Path, recording_log, transport_sessions, make_candidate
) -> None:
    async def scenario():
        orchestrator = _orchestrator(tmp_path, [], recording_log, transport_sessions)
        await orchestrator.handle(SessionStart(peer_id="sender"))
        await orchestrator.handle(RemoteOffer(sender="sender", sid=1, sdp=OFFER))
        await orchestrator.handle(RemoteCandidate(sender="intruder", sid=1, candidate=make_candidate("x")))

    asyncio.run(scenario())

    assert transport_sessions.created[0].applied == ["candidate:x"]
    assert recording_log.find("log_candidate_foreign") == [{"peer": "intruder", "bound": "sender"}]


def test_local_candidates_wait_for_bound_peer(tmp_path: Path, recording_log, transport_sessions, make_candidate) -> None:
    outbox: list = []

    async def scenario():
        orchestrator = _orchestrator(tmp_path, outbox, recording_log, transport_sessions)
        await orchestrator.handle(SessionStart(peer_id="sender"))
        session = transport_sessions.created[0]
        await session.emit_local_candidate(make_candidate("too-early"))
        await orchestrator.handle(RemoteOffer(sender="sender", sid=3, sdp=OFFER))
        await session.emit_local_candidate(make_candidate("mine"))

    asyncio.run(scenario())

    candidates = [m for m in outbox if isinstance(m, LocalCandidate)]
    assert [(m.to, m.sid, m.candidate.candidate) for m in candidates] == [("sender", 3, "candidate:mine")]


def test_data_channel_feeds_receiver(
    tmp_path: Path, recording_log, transport_sessions, fake_channel, settle_tasks
) -> None:
    completed: list = []

    async def scenario():
        finished = asyncio.Event()

        def on_complete(record) -> None:
            completed.append(record)
            finished.set()

        orchestrator = _orchestrator(tmp_path, [], recording_log, transport_sessions, on_complete=on_complete)
        await orchestrator.handle(SessionStart(peer_id="sender"))
        await orchestrator.handle(RemoteOffer(sender="sender", sid=1, sdp=OFFER))
        channel = fake_channel()
        channel.readyState = "open"
        transport_sessions.created[0].announce_channel(channel)
        channel.emit("message", '{"type":"meta","name":"hello.txt","size":13,"mime":"text/plain"}')
        channel.emit("message", b"Hello, world!")
        channel.emit("message", '{"type":"done"}')
        await settle_tasks(orchestrator)
        await asyncio.wait_for(finished.wait(), timeout=5)
        return orchestrator

    orchestrator = asyncio.run(scenario())

    assert (tmp_path / "hello.txt").read_bytes() == b"Hello, world!"
    assert orchestrator.state.channel_open is True
    assert [record.received for record in orchestrator.completed] == [13]
    assert completed == orchestrator.completed
    assert "log_channel_open" in recording_log.keys()


def test_new_start_replaces_previous_session(tmp_path: Path, recording_log, transport_sessions) -> None:
    async def scenario():
        orchestrator = _orchestrator(tmp_path, [], recording_log, transport_sessions)
        await orchestrator.handle(SessionStart(peer_id="a"))
        await orchestrator.handle(RemoteOffer(sender="a", sid=1, sdp=OFFER))
        await orchestrator.handle(SessionStart(peer_id="b"))
        return orchestrator.state

    state = asyncio.run(scenario())

    first, second = transport_sessions.created
    assert first.closed is True
    assert state.session is second
    assert state.peer_id is None and state.active_sid is None and state.remote_desc_set is False


def test_peer_left_keeps_session(tmp_path: Path, recording_log, transport_sessions) -> None:
    async def scenario():
        orchestrator = _orchestrator(tmp_path, [], recording_log, transport_sessions)
        await orchestrator.handle(SessionStart(peer_id="a"))
        await orchestrator.handle(PeerLeft(peer_id="a"))
        await orchestrator.handle(PeerLeft(peer_id="a"))
        await orchestrator.handle(RemoteAnswer(sender="a", sid=1, sdp=OFFER))
        return orchestrator.state

    state = asyncio.run(scenario())

    assert state.session is transport_sessions.created[0]
    assert transport_sessions.created[0].closed is False
    assert recording_log.find("log_ws_peer_left") == [{"peer": "a"}, {"peer": "a"}]


def test_candidates_without_session_are_ignored(tmp_path: Path, recording_log, transport_sessions, make_candidate) -> None:
    async def scenario():
        orchestrator = _orchestrator(tmp_path, [], recording_log, transport_sessions)
        await orchestrator.handle(RemoteCandidate(sender="a", sid=1, candidate=make_candidate("x")))
        return orchestrator.state

    state = asyncio.run(scenario())

    assert len(state.pending) == 0


def test_negotiation_timeout_drops_session(
    tmp_path: Path, recording_log, transport_sessions, settle_tasks
) -> None:
    async def scenario():
        orchestrator = _orchestrator(
            tmp_path, [], recording_log, transport_sessions, negotiation_timeout=0.01
        )
        await orchestrator.handle(SessionStart(peer_id="a"))
        await settle_tasks(orchestrator)
        return orchestrator.state

    state = asyncio.run(scenario())

    assert state.session is None
    assert transport_sessions.created[0].closed is True
    assert recording_log.find("log_negotiation_timeout") == [{"seconds": 0.01, "peer": "-"}]


def test_offer_after_timeout_is_dropped(tmp_path: Path, recording_log, transport_sessions) -> None:
    outbox: list = []

    async def scenario():
        orchestrator = _orchestrator(
            tmp_path, outbox, recording_log, transport_sessions, negotiation_timeout=0.01
        )
        await orchestrator.handle(RoleAssigned(role="responder"))
        await orchestrator.handle(SessionStart(peer_id=None))
        await asyncio.sleep(0.05)
        await orchestrator.handle(RemoteOffer(sender="p1", sid=1, sdp=OFFER))
        return orchestrator.state

    state = asyncio.run(scenario())

    assert state.session is None and state.timed_out is True
    assert outbox == []
    assert recording_log.find("log_offer_late") == [{"peer": "p1", "sid": 1}]


def test_close_discards_partial_file_and_session(
    tmp_path: Path, recording_log, transport_sessions, fake_channel
) -> None:
    async def scenario():
        orchestrator = _orchestrator(tmp_path, [], recording_log, transport_sessions)
        await orchestrator.handle(SessionStart(peer_id="a"))
        await orchestrator.receiver.handle_message('{"type":"meta","name":"big.bin","size":100}')
        await orchestrator.receiver.handle_message(b"partial")
        await orchestrator.close()

    asyncio.run(scenario())

    assert transport_sessions.created[0].closed is True
    assert list(tmp_path.iterdir()) == []
