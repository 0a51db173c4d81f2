"""
Shared plumbing for the initiator and responder orchestrators.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set

from .signaling import (
    InboundMessage,
    OutboundMessage,
    PeerCount,
    PeerLeft,
    QueuePosition,
    RemoteAnswer,
    RemoteCandidate,
    RemoteOffer,
    RoleAssigned,
    SessionStart,
)
from .ui import EventLog

Outbox = Callable[[OutboundMessage], None]
SessionFactory = Callable[[], Any]


class SessionError(RuntimeError):
    """Raised when negotiation cannot continue; ends the whole run."""


class RoleMismatchError(SessionError):
    """Raised when the relay assigns the opposite side of the exchange."""

    def __init__(self, role: str, expected: str) -> None:
        super().__init__(f"assigned role '{role}', expected '{expected}'")
        self.role = role
        self.expected = expected


class SessionOrchestrator:
    """
    Dispatches decoded signaling messages to per-role handlers.

    `handle` is only ever called from the signaling receive loop, one message
    at a time, so the loop is the single driver of state transitions. Work
    triggered from transport callbacks runs in tasks started with `spawn`;
    `close` cancels whatever is still running.
    """

    expected_role = ""

    def __init__(self, outbox: Outbox, log: EventLog) -> None:
        self._outbox = outbox
        self._log = log
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self.role: Optional[str] = None
        self.client_id: Optional[str] = None

    async def handle(self, message: InboundMessage) -> None:
        if isinstance(message, RoleAssigned):
            self._assign_role(message)
        elif isinstance(message, PeerCount):
            self._log.event("log_ws_peers", count=message.count)
        elif isinstance(message, QueuePosition):
            if message.position is None:
                self._log.event("log_ws_queue_waiting")
            else:
                self._log.event("log_ws_queue", position=message.position)
        elif isinstance(message, SessionStart):
            await self.on_start(message)
        elif isinstance(message, PeerLeft):
            self._log.event("log_ws_peer_left", peer=message.peer_id)
            await self.on_peer_left(message)
        elif isinstance(message, RemoteOffer):
            await self.on_offer(message)
        elif isinstance(message, RemoteAnswer):
            await self.on_answer(message)
        elif isinstance(message, RemoteCandidate):
            await self.on_candidate(message)

    def _assign_role(self, message: RoleAssigned) -> None:
        self._log.event("log_ws_role", role=message.role, cid=message.cid or "-")
        if message.role != self.expected_role:
            raise RoleMismatchError(message.role, self.expected_role)
        self.role = message.role
        self.client_id = message.cid

    async def on_start(self, message: SessionStart) -> None:
        return None

    async def on_peer_left(self, message: PeerLeft) -> None:
        return None

    async def on_offer(self, message: RemoteOffer) -> None:
        return None

    async def on_answer(self, message: RemoteAnswer) -> None:
        return None

    async def on_candidate(self, message: RemoteCandidate) -> None:
        return None

    def send(self, message: OutboundMessage) -> None:
        if self._closed:
            return
        self._outbox(message)

    def spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.event("log_task_failed", error=True, reason=exc)

    async def close(self) -> None:
        self._closed = True
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        await self.close_sessions()

    async def close_sessions(self) -> None:
        return None
