"""
Buffering of remote ICE candidates against the session they were issued for.

Candidates can reach us before the remote description they belong to has been
applied. They are held here, tagged with the session id (sid) the remote side
attached, and released only for the sid that is active when the description
lands. The buffer itself is not synchronized: callers hold their own per-peer
lock around `route` and `drain`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional

from .signaling import IceCandidateInit


class CandidateDecision(enum.Enum):
    APPLY = "apply"
    QUEUED = "queued"
    DROP = "drop"


@dataclass(frozen=True)
class PendingCandidate:
    sid: int
    candidate: IceCandidateInit


class CandidateBuffer:
    """Arrival-ordered queue of (sid, candidate) pairs for one peer."""

    def __init__(self) -> None:
        self._pending: List[PendingCandidate] = []

    def __len__(self) -> int:
        return len(self._pending)

    def route(
        self,
        sid: int,
        candidate: IceCandidateInit,
        *,
        active_sid: Optional[int],
        remote_desc_set: bool,
    ) -> CandidateDecision:
        """
        Decide what to do with a candidate that just arrived.

        Before the remote description is set everything is queued, whatever its
        sid; staleness is settled at drain time. Afterwards only candidates for
        the active sid are applied and the rest are dropped for good.
        """

        if not remote_desc_set:
            self._pending.append(PendingCandidate(sid, candidate))
            return CandidateDecision.QUEUED
        if active_sid is not None and sid == active_sid:
            return CandidateDecision.APPLY
        return CandidateDecision.DROP

    def drain(self, active_sid: Optional[int]) -> List[IceCandidateInit]:
        """Empty the queue, returning the candidates for `active_sid` in arrival order."""

        pending, self._pending = self._pending, []
        if active_sid is None:
            return []
        return [item.candidate for item in pending if item.sid == active_sid]

    def clear(self) -> None:
        self._pending.clear()
