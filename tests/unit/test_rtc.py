from __future__ import annotations

import asyncio

from sharefiles.rtc import TransportSession, candidate_from_init, candidate_to_init
from sharefiles.signaling import IceCandidateInit

HOST_CANDIDATE = "candidate:842163049 1 udp 1677729535 192.168.1.20 54321 typ host"


def test_candidate_conversion_keeps_media_fields() -> None:
    init = IceCandidateInit(candidate=HOST_CANDIDATE, sdp_mid="0", sdp_mline_index=0)

    candidate = candidate_from_init(init)

    assert candidate is not None
    assert candidate.ip == "192.168.1.20"
    assert candidate.port == 54321
    assert candidate.type == "host"
    assert candidate.sdpMid == "0" and candidate.sdpMLineIndex == 0
    back = candidate_to_init(candidate)
    assert back.candidate.startswith("candidate:842163049 1 udp")
    assert back.sdp_mid == "0" and back.sdp_mline_index == 0


def test_end_of_candidates_marker_is_ignored() -> None:
    assert candidate_from_init(IceCandidateInit(candidate="", sdp_mid="0", sdp_mline_index=0)) is None


def test_offer_carries_file_channel() -> None:
    async def scenario():
        session = TransportSession([])
        try:
            channel = session.create_data_channel()
            offer = await session.create_offer()
            return channel.label, channel.ordered, offer
        finally:
            await session.close()

    label, ordered, offer = asyncio.run(scenario())

    assert label == "file"
    assert ordered is True
    assert offer.type == "offer"
    assert "m=application" in offer.sdp
