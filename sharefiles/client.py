"""
Signaling stream client and room allocation.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import aiohttp
import websockets

from .config import build_rooms_api_url
from .session import Outbox, SessionOrchestrator
from .signaling import InboundMessage, OutboundMessage, encode_client_message, parse_server_message
from .ui import EventLog

OrchestratorBuilder = Callable[[Outbox], SessionOrchestrator]
Connector = Callable[[str], Awaitable[Any]]

ROOM_REQUEST_TIMEOUT = 15.0


class SignalingError(RuntimeError):
    """Raised when the signaling stream or the room API fails."""


async def create_room(base_url: str, *, timeout: float = ROOM_REQUEST_TIMEOUT) -> str:
    """Ask the service for a new room and return its id."""

    url = build_rooms_api_url(base_url)
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as http:
            async with http.post(url, json={}) as response:
                response.raise_for_status()
                payload = await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        raise SignalingError(f"create room request failed: {exc}") from exc
    room_id = payload.get("roomId") if isinstance(payload, dict) else None
    if not isinstance(room_id, str) or not room_id:
        raise SignalingError("create room response has no roomId")
    return room_id


class SignalingConnection:
    """
    Wraps one websocket: a queue-fed writer and a parsed inbound stream.

    Producers call `send` from anywhere on the loop; `run_writer` serializes the
    queue onto the socket in enqueue order and returns once `close_outbox` has
    been called and everything before it was written.
    """

    def __init__(self, websocket: Any) -> None:
        self._websocket = websocket
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._outbox_closed = False

    def send(self, message: OutboundMessage) -> None:
        if self._outbox_closed:
            return
        self._queue.put_nowait(encode_client_message(message))

    def close_outbox(self) -> None:
        if self._outbox_closed:
            return
        self._outbox_closed = True
        self._queue.put_nowait(None)

    async def run_writer(self) -> None:
        while True:
            text = await self._queue.get()
            if text is None:
                return
            try:
                await self._websocket.send(text)
            except websockets.exceptions.WebSocketException as exc:
                raise SignalingError(f"websocket write failed: {exc}") from exc

    async def messages(self) -> AsyncIterator[InboundMessage]:
        try:
            async for raw in self._websocket:
                if not isinstance(raw, str):
                    continue
                message = parse_server_message(raw)
                if message is None:
                    continue
                yield message
        except websockets.exceptions.ConnectionClosedError as exc:
            raise SignalingError(f"websocket read failed: {exc}") from exc


async def run_signaling(
    ws_url: str,
    build_orchestrator: OrchestratorBuilder,
    log: EventLog,
    *,
    connect: Optional[Connector] = None,
) -> None:
    """
    Connect to the relay and feed every inbound message to one orchestrator.

    Returns when the relay closes the stream. Connection failures, writer
    failures and anything the orchestrator raises end the run; in every case
    the orchestrator's sessions, the writer and the socket are closed first.
    """

    connector = connect or websockets.connect
    log.event("log_ws_connecting", url=ws_url)
    try:
        websocket = await connector(ws_url)
    except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as exc:
        raise SignalingError(f"connect signaling websocket: {exc}") from exc

    connection = SignalingConnection(websocket)
    orchestrator = build_orchestrator(connection.send)
    inbound = connection.messages()
    writer = asyncio.ensure_future(connection.run_writer())
    reader: Optional[asyncio.Future] = None
    try:
        while True:
            reader = asyncio.ensure_future(inbound.__anext__())
            await asyncio.wait([reader, writer], return_when=asyncio.FIRST_COMPLETED)
            if not reader.done():
                # The writer ended before the relay sent anything else.
                break
            try:
                message = reader.result()
            except StopAsyncIteration:
                break
            await orchestrator.handle(message)
    finally:
        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.wait([reader])
        await inbound.aclose()
        await orchestrator.close()
        connection.close_outbox()
        await asyncio.wait([writer])
        await websocket.close()
        writer_error = None if writer.cancelled() else writer.exception()
    if writer_error is not None:
        raise writer_error
    log.event("log_ws_closed")
