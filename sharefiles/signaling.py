"""
Control-plane messages exchanged with the signaling relay.

Inbound frames are JSON objects discriminated by their ``type`` field. Anything
that does not decode into one of the known shapes is reported as ``None`` so the
receive loop can skip it and keep reading.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

ROLE_INITIATOR = "initiator"
ROLE_RESPONDER = "responder"

# The relay names the two sides after the WebRTC offer/answer roles.
ROLE_ALIASES = {
    "offerer": ROLE_INITIATOR,
    "answerer": ROLE_RESPONDER,
    ROLE_INITIATOR: ROLE_INITIATOR,
    ROLE_RESPONDER: ROLE_RESPONDER,
}


@dataclass(frozen=True)
class SessionDescription:
    """An SDP offer or answer as carried on the wire."""

    sdp: str
    type: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "sdp": self.sdp}

    @classmethod
    def from_dict(cls, data: Any) -> "SessionDescription":
        if not isinstance(data, dict):
            raise ValueError("session description must be an object")
        sdp = data.get("sdp")
        kind = data.get("type")
        if not isinstance(sdp, str) or kind not in {"offer", "answer", "pranswer", "rollback"}:
            raise ValueError("invalid session description")
        return cls(sdp=sdp, type=kind)


@dataclass(frozen=True)
class IceCandidateInit:
    """A trickled ICE candidate in the browser's ``RTCIceCandidateInit`` shape."""

    candidate: str
    sdp_mid: Optional[str] = None
    sdp_mline_index: Optional[int] = None
    username_fragment: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "candidate": self.candidate,
            "sdpMid": self.sdp_mid,
            "sdpMLineIndex": self.sdp_mline_index,
        }
        if self.username_fragment is not None:
            payload["usernameFragment"] = self.username_fragment
        return payload

    @classmethod
    def from_dict(cls, data: Any) -> "IceCandidateInit":
        if not isinstance(data, dict):
            raise ValueError("candidate must be an object")
        candidate = data.get("candidate")
        sdp_mid = data.get("sdpMid")
        sdp_mline_index = data.get("sdpMLineIndex")
        username_fragment = data.get("usernameFragment")
        if not isinstance(candidate, str):
            raise ValueError("candidate string missing")
        if sdp_mid is not None and not isinstance(sdp_mid, str):
            raise ValueError("invalid sdpMid")
        if sdp_mline_index is not None and (
            isinstance(sdp_mline_index, bool) or not isinstance(sdp_mline_index, int)
        ):
            raise ValueError("invalid sdpMLineIndex")
        if sdp_mid is None and sdp_mline_index is None:
            raise ValueError("candidate needs sdpMid or sdpMLineIndex")
        if username_fragment is not None and not isinstance(username_fragment, str):
            raise ValueError("invalid usernameFragment")
        return cls(
            candidate=candidate,
            sdp_mid=sdp_mid,
            sdp_mline_index=sdp_mline_index,
            username_fragment=username_fragment,
        )


# Inbound -----------------------------------------------------------------


@dataclass(frozen=True)
class RoleAssigned:
    role: str
    cid: Optional[str] = None


@dataclass(frozen=True)
class PeerCount:
    count: int


@dataclass(frozen=True)
class QueuePosition:
    position: Optional[int] = None


@dataclass(frozen=True)
class SessionStart:
    peer_id: Optional[str] = None


@dataclass(frozen=True)
class PeerLeft:
    peer_id: str


@dataclass(frozen=True)
class RemoteOffer:
    sender: str
    sid: int
    sdp: SessionDescription


@dataclass(frozen=True)
class RemoteAnswer:
    sender: str
    sid: int
    sdp: SessionDescription


@dataclass(frozen=True)
class RemoteCandidate:
    sender: str
    sid: int
    candidate: IceCandidateInit


InboundMessage = Union[
    RoleAssigned,
    PeerCount,
    QueuePosition,
    SessionStart,
    PeerLeft,
    RemoteOffer,
    RemoteAnswer,
    RemoteCandidate,
]


# Outbound ----------------------------------------------------------------


@dataclass(frozen=True)
class LocalOffer:
    to: str
    sid: int
    sdp: SessionDescription

    def to_payload(self) -> Dict[str, object]:
        return {"type": "offer", "to": self.to, "sid": self.sid, "sdp": self.sdp.to_dict()}


@dataclass(frozen=True)
class LocalAnswer:
    to: str
    sid: int
    sdp: SessionDescription

    def to_payload(self) -> Dict[str, object]:
        return {"type": "answer", "to": self.to, "sid": self.sid, "sdp": self.sdp.to_dict()}


@dataclass(frozen=True)
class LocalCandidate:
    to: str
    sid: int
    candidate: IceCandidateInit

    def to_payload(self) -> Dict[str, object]:
        return {
            "type": "candidate",
            "to": self.to,
            "sid": self.sid,
            "candidate": self.candidate.to_dict(),
        }


@dataclass(frozen=True)
class TransferDone:
    peer_id: str

    def to_payload(self) -> Dict[str, object]:
        return {"type": "transfer-done", "peerId": self.peer_id}


OutboundMessage = Union[LocalOffer, LocalAnswer, LocalCandidate, TransferDone]


def encode_client_message(message: OutboundMessage) -> str:
    return json.dumps(message.to_payload(), ensure_ascii=False, separators=(",", ":"))


def normalize_role(role: str) -> str:
    """Map relay role names onto initiator/responder; unknown names pass through."""

    return ROLE_ALIASES.get(role.strip().lower(), role)


def parse_server_message(text: Union[str, bytes]) -> Optional[InboundMessage]:
    """Decode one inbound frame, or return None when it is unknown or malformed."""

    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    kind = data.get("type")
    parser = _PARSERS.get(kind) if isinstance(kind, str) else None
    if parser is None:
        return None
    try:
        return parser(data)
    except (KeyError, TypeError, ValueError):
        return None


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _count(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer")
    return value


def _parse_role(data: Dict[str, Any]) -> RoleAssigned:
    return RoleAssigned(role=normalize_role(_require_str(data, "role")), cid=_optional_str(data, "cid"))


def _parse_peers(data: Dict[str, Any]) -> PeerCount:
    return PeerCount(count=_count(data["count"], "count"))


def _parse_wait(data: Dict[str, Any]) -> QueuePosition:
    position = data.get("position")
    return QueuePosition(position=None if position is None else _count(position, "position"))


def _parse_start(data: Dict[str, Any]) -> SessionStart:
    return SessionStart(peer_id=_optional_str(data, "peerId"))


def _parse_peer_left(data: Dict[str, Any]) -> PeerLeft:
    return PeerLeft(peer_id=_require_str(data, "peerId"))


def _parse_offer(data: Dict[str, Any]) -> RemoteOffer:
    return RemoteOffer(
        sender=_require_str(data, "from"),
        sid=_count(data["sid"], "sid"),
        sdp=SessionDescription.from_dict(data["sdp"]),
    )


def _parse_answer(data: Dict[str, Any]) -> RemoteAnswer:
    return RemoteAnswer(
        sender=_require_str(data, "from"),
        sid=_count(data["sid"], "sid"),
        sdp=SessionDescription.from_dict(data["sdp"]),
    )


def _parse_candidate(data: Dict[str, Any]) -> RemoteCandidate:
    return RemoteCandidate(
        sender=_require_str(data, "from"),
        sid=_count(data["sid"], "sid"),
        candidate=IceCandidateInit.from_dict(data["candidate"]),
    )


_PARSERS: Dict[str, Callable[[Dict[str, Any]], InboundMessage]] = {
    "role": _parse_role,
    "peers": _parse_peers,
    "wait": _parse_wait,
    "start": _parse_start,
    "peer-left": _parse_peer_left,
    "offer": _parse_offer,
    "answer": _parse_answer,
    "candidate": _parse_candidate,
}
