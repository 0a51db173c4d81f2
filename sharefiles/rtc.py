"""
Transport session lifecycle on top of aiortc.

`TransportSession` is the only place that touches `RTCPeerConnection`. The
orchestrators drive it (offer/answer, descriptions, remote candidates, data
channel) and subscribe to its events; tests substitute a fake with the same
surface.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Sequence

from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from .config import DEFAULT_ICE_SERVERS
from .signaling import IceCandidateInit, SessionDescription

FILE_CHANNEL_LABEL = "file"

LocalCandidateHandler = Callable[[IceCandidateInit], Awaitable[None]]
StateChangeHandler = Callable[[str], None]
DataChannelHandler = Callable[[RTCDataChannel], None]


def candidate_from_init(init: IceCandidateInit) -> Optional[RTCIceCandidate]:
    """Build an aiortc candidate, or None for an end-of-candidates marker."""

    text = init.candidate.strip()
    if text.startswith("candidate:"):
        text = text.split(":", 1)[1]
    if not text:
        return None
    candidate = candidate_from_sdp(text)
    candidate.sdpMid = init.sdp_mid
    candidate.sdpMLineIndex = init.sdp_mline_index
    return candidate


def candidate_to_init(candidate: RTCIceCandidate) -> IceCandidateInit:
    return IceCandidateInit(
        candidate="candidate:" + candidate_to_sdp(candidate),
        sdp_mid=candidate.sdpMid,
        sdp_mline_index=candidate.sdpMLineIndex,
    )


def _to_wire(description: RTCSessionDescription) -> SessionDescription:
    return SessionDescription(sdp=description.sdp, type=description.type)


def _from_wire(description: SessionDescription) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=description.sdp, type=description.type)


class TransportSession:
    """One peer connection, exposed in the terms the orchestrators speak."""

    def __init__(self, ice_servers: Sequence[str] = DEFAULT_ICE_SERVERS) -> None:
        configuration = RTCConfiguration(
            iceServers=[RTCIceServer(urls=url) for url in ice_servers]
        )
        self._pc = RTCPeerConnection(configuration=configuration)

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState

    @property
    def local_description(self) -> Optional[SessionDescription]:
        description = self._pc.localDescription
        if description is None:
            return None
        return _to_wire(description)

    def on_local_candidate(self, handler: LocalCandidateHandler) -> None:
        # aiortc gathers before setLocalDescription returns and embeds the
        # candidates in the description, so this only fires for trickling stacks.
        async def _forward(candidate: Optional[RTCIceCandidate]) -> None:
            if candidate is None:
                return
            await handler(candidate_to_init(candidate))

        self._pc.on("icecandidate", _forward)

    def on_connection_state_change(self, handler: StateChangeHandler) -> None:
        def _forward() -> None:
            handler(self._pc.connectionState)

        self._pc.on("connectionstatechange", _forward)

    def on_data_channel(self, handler: DataChannelHandler) -> None:
        self._pc.on("datachannel", handler)

    def create_data_channel(self, label: str = FILE_CHANNEL_LABEL) -> RTCDataChannel:
        return self._pc.createDataChannel(label, ordered=True)

    async def create_offer(self) -> SessionDescription:
        return _to_wire(await self._pc.createOffer())

    async def create_answer(self) -> SessionDescription:
        return _to_wire(await self._pc.createAnswer())

    async def set_local_description(self, description: SessionDescription) -> None:
        await self._pc.setLocalDescription(_from_wire(description))

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(_from_wire(description))

    async def add_remote_candidate(self, init: IceCandidateInit) -> None:
        candidate = candidate_from_init(init)
        if candidate is None:
            return
        await self._pc.addIceCandidate(candidate)

    async def close(self) -> None:
        await self._pc.close()
