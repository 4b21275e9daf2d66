"""A single live transport session and its lifecycle state."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Protocol
from uuid import UUID

from chat_realtime.application.ports.clock import Clock, system_clock
from chat_realtime.domain.value_objects.enums import ConnectionState
from chat_realtime.infrastructure.ws.protocol import WirePayload, frame

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.AUTHENTICATED, ConnectionState.CLOSED, ConnectionState.FAILED}
    ),
    ConnectionState.AUTHENTICATED: frozenset(
        {ConnectionState.ACTIVE, ConnectionState.CLOSED, ConnectionState.FAILED}
    ),
    ConnectionState.ACTIVE: frozenset(
        {ConnectionState.DRAINING, ConnectionState.CLOSED, ConnectionState.FAILED}
    ),
    ConnectionState.DRAINING: frozenset({ConnectionState.CLOSED, ConnectionState.FAILED}),
    ConnectionState.CLOSED: frozenset(),
    ConnectionState.FAILED: frozenset(),
}

_DELIVERABLE = frozenset({ConnectionState.AUTHENTICATED, ConnectionState.ACTIVE})


class InvalidStateTransition(RuntimeError):
    pass


class Transport(Protocol):
    """What a connection needs from the socket; Starlette's WebSocket satisfies it."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class Connection:
    """One socket: identity, lifecycle state and a bounded outbound queue.

    Outbound frames are queued and written by a single writer task, so
    enqueueing never waits on the network. When the queue overflows the
    connection is closed with 1013 and the client catches up on reconnect.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        queue_size: int = 256,
        clock: Clock = system_clock,
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.user_id: UUID | None = None
        self.state = ConnectionState.CONNECTING
        self.established_at = clock.now()
        self.last_activity_at = self.established_at
        self._clock = clock
        self._transport = transport
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task[None] | None = None
        self._overflow_close: asyncio.Task[None] | None = None
        self._broken = False
        self._closing = False

    def __repr__(self) -> str:
        return f"<Connection {self.id} user={self.user_id} state={self.state}>"

    @property
    def is_terminal(self) -> bool:
        return self.state in (ConnectionState.CLOSED, ConnectionState.FAILED)

    @property
    def is_deliverable(self) -> bool:
        """Whether fan-out should target this connection."""
        return self.state in _DELIVERABLE and not self._broken and not self._closing

    def transition_to(self, new_state: ConnectionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(f"{self.state} -> {new_state}")
        logger.debug("Connection %s: %s -> %s", self.id, self.state, new_state)
        self.state = new_state

    def touch(self) -> None:
        self.last_activity_at = self._clock.now()

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop(), name=f"ws-writer-{self.id}")

    def send(
        self,
        event_type: str,
        data: WirePayload | dict[str, Any] | list[Any] | None = None,
    ) -> bool:
        return self.send_raw(frame(event_type, data))

    def send_raw(self, raw: str) -> bool:
        """Queue a rendered frame. Returns False if the frame was dropped."""
        if self._broken or self._closing:
            return False
        try:
            self._queue.put_nowait(raw)
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full on connection %s (user=%s), closing",
                self.id,
                self.user_id,
            )
            self._broken = True
            self._overflow_close = asyncio.get_running_loop().create_task(
                self.close(code=1013, reason="Outbound queue overflow"),
            )
            return False
        return True

    async def flush(self, timeout: float | None = None) -> bool:
        """Wait until queued frames are written. False on timeout."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except TimeoutError:
            return False
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closing:
            return
        self._closing = True
        writer = self._writer
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
        self._discard_pending()
        try:
            await self._transport.close(code=code, reason=reason)
        except Exception:  # noqa: BLE001
            logger.debug("Transport close failed on connection %s", self.id, exc_info=True)

    async def _write_loop(self) -> None:
        while True:
            raw = await self._queue.get()
            try:
                await self._transport.send_text(raw)
            except Exception:  # noqa: BLE001
                logger.debug("Send failed on connection %s, dropping queue", self.id, exc_info=True)
                self._broken = True
                self._queue.task_done()
                self._discard_pending()
                return
            self._queue.task_done()

    def _discard_pending(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()
