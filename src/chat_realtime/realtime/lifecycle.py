"""Per-connection protocol handling: authentication, dispatch, drain and close."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from uuid import UUID

from pydantic import ValidationError

from chat_realtime.application.dto.message import SendMessageDTO
from chat_realtime.application.exceptions import (
    AppError,
    AuthenticationFailedError,
    InvalidRequestError,
)
from chat_realtime.domain.value_objects.enums import ConnectionState
from chat_realtime.infrastructure.ws.protocol import (
    AuthenticatePayload,
    ErrorPayload,
    MarkReadPayload,
    PresenceSnapshot,
    SendMessagePayload,
    ServerDrainingPayload,
    SessionReadyPayload,
    TypingPayload,
    WsInbound,
)
from chat_realtime.realtime.connection import Connection

if TYPE_CHECKING:
    from chat_realtime.realtime.hub import RealtimeHub

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_SERVICE_RESTART = 1012
CLOSE_AUTH_FAILED = 4001
CLOSE_AUTH_TIMEOUT = 4008

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class ConnectionLifecycle:
    """Drives one connection from ``connecting`` to ``closed``/``failed``.

    Inbound frames are handled one at a time in arrival order. Application
    errors become an ``error`` frame on this connection only; they never
    close it.
    """

    def __init__(self, connection: Connection, hub: RealtimeHub) -> None:
        self.connection = connection
        self._hub = hub
        self._auth_timer: asyncio.TimerHandle | None = None
        self._auth_timeout_task: asyncio.Task[None] | None = None
        self._closed = False
        self._handlers: dict[str, Handler] = {
            "send_message": self._on_send_message,
            "start_typing": self._on_start_typing,
            "stop_typing": self._on_stop_typing,
            "mark_read": self._on_mark_read,
            "get_online_users": self._on_get_online_users,
        }

    async def open(self, token: str | None = None) -> None:
        self.connection.start()
        loop = asyncio.get_running_loop()
        self._auth_timer = loop.call_later(self._hub.auth_grace_seconds, self._on_auth_timeout)
        if token:
            await self.authenticate(token)

    async def authenticate(self, token: str) -> bool:
        conn = self.connection
        if conn.state is not ConnectionState.CONNECTING:
            raise InvalidRequestError("Connection is already authenticated")

        try:
            principal = await self._hub.verifier.verify(token)
        except Exception as exc:  # noqa: BLE001
            logger.info("Authentication failed on connection %s: %s", conn.id, exc)
            await self._fail(AuthenticationFailedError("Invalid or expired token"), CLOSE_AUTH_FAILED)
            return False

        if conn.state is not ConnectionState.CONNECTING:
            # Timed out or closed while the token was being verified.
            return False
        self._cancel_auth_timer()
        conn.transition_to(ConnectionState.AUTHENTICATED)

        await self._hub.registry.register(principal.user_id, conn)
        if conn.state is not ConnectionState.AUTHENTICATED:
            await self._hub.registry.unregister(conn.id)
            return False
        conn.transition_to(ConnectionState.ACTIVE)

        conn.send(
            "session.ready",
            SessionReadyPayload(
                connection_id=conn.id,
                user_id=principal.user_id,
                reconnect=self._hub.reconnect_hint,
            ),
        )
        await self._on_get_online_users({})
        logger.info("Connection %s active for user %s", conn.id, principal.user_id)
        return True

    async def handle_text(self, raw: str) -> None:
        conn = self.connection
        if conn.is_terminal:
            return
        conn.touch()

        try:
            event = WsInbound.model_validate_json(raw)
        except ValidationError:
            self._send_error("invalid_payload", "Frame is not a valid event envelope")
            return

        if event.type == "ping":
            conn.send("pong")
            return
        if conn.state is ConnectionState.DRAINING:
            logger.debug("Ignoring %s on draining connection %s", event.type, conn.id)
            return

        client_msg_id = event.data.get("clientMsgId") if event.type == "send_message" else None
        try:
            await self._dispatch(event)
        except ValidationError as exc:
            self._send_error(
                "invalid_payload",
                f"Invalid {event.type} payload: {exc.errors()[0]['msg']}",
                client_msg_id=_as_uuid(client_msg_id),
            )
        except AppError as exc:
            self._send_error(exc.code, exc.detail, client_msg_id=_as_uuid(client_msg_id))

    async def drain(self, reason: str = "Server is shutting down") -> None:
        conn = self.connection
        if conn.state is ConnectionState.ACTIVE:
            conn.transition_to(ConnectionState.DRAINING)
            conn.send(
                "server_draining",
                ServerDrainingPayload(reason=reason, reconnect=self._hub.reconnect_hint),
            )
            if not await conn.flush(self._hub.drain_timeout_seconds):
                logger.warning("Drain of connection %s timed out", conn.id)
        await self.close(CLOSE_SERVICE_RESTART, reason)

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel_auth_timer()
        conn = self.connection
        await self._hub.registry.unregister(conn.id)
        if not conn.is_terminal:
            conn.transition_to(ConnectionState.CLOSED)
        await conn.close(code=code, reason=reason)
        self._hub.forget(self)
        logger.info("Connection %s closed (%d %s)", conn.id, code, reason)

    # -- dispatch -------------------------------------------------------------

    async def _dispatch(self, event: WsInbound) -> None:
        if event.type == "authenticate":
            await self.authenticate(AuthenticatePayload.model_validate(event.data).token)
            return

        handler = self._handlers.get(event.type)
        if handler is None:
            self._send_error("unknown_type", f"Unknown event type: {event.type}")
            return
        if self.connection.state is not ConnectionState.ACTIVE:
            raise InvalidRequestError("Authenticate before sending events")
        await handler(event.data)

    async def _on_send_message(self, data: dict[str, Any]) -> None:
        payload = SendMessagePayload.model_validate(data)
        dto = SendMessageDTO(
            recipient_id=payload.recipient_id,
            content=payload.content,
            message_type=payload.message_type,
            attachments=tuple(payload.attachments),
            reply_to_id=payload.reply_to_id,
            client_msg_id=payload.client_msg_id,
        )
        await self._hub.pipeline.send(self._user_id, dto)

    async def _on_start_typing(self, data: dict[str, Any]) -> None:
        payload = TypingPayload.model_validate(data)
        self._hub.typing.signal_typing(self._user_id, payload.recipient_id)

    async def _on_stop_typing(self, data: dict[str, Any]) -> None:
        payload = TypingPayload.model_validate(data)
        self._hub.typing.stop_typing(self._user_id, payload.recipient_id)

    async def _on_mark_read(self, data: dict[str, Any]) -> None:
        payload = MarkReadPayload.model_validate(data)
        await self._hub.reconciler.mark_read(self._user_id, payload.message_id)

    async def _on_get_online_users(self, data: dict[str, Any]) -> None:
        records = self._hub.presence.online_snapshots(exclude=self._user_id)
        self.connection.send("online_users", [PresenceSnapshot.from_record(r) for r in records])

    # -- helpers --------------------------------------------------------------

    @property
    def _user_id(self) -> UUID:
        assert self.connection.user_id is not None
        return self.connection.user_id

    def _send_error(self, code: str, detail: str, *, client_msg_id: UUID | None = None) -> None:
        self.connection.send(
            "error", ErrorPayload(code=code, detail=detail, client_msg_id=client_msg_id),
        )

    async def _fail(self, error: AppError, close_code: int) -> None:
        conn = self.connection
        if conn.is_terminal:
            return
        self._send_error(error.code, error.detail)
        await conn.flush(self._hub.drain_timeout_seconds)
        if not conn.is_terminal:
            conn.transition_to(ConnectionState.FAILED)
        await self.close(close_code, error.detail)

    def _on_auth_timeout(self) -> None:
        self._auth_timer = None
        if self.connection.state is not ConnectionState.CONNECTING:
            return
        logger.info("Connection %s did not authenticate in time", self.connection.id)
        self._auth_timeout_task = asyncio.get_running_loop().create_task(
            self._fail(AuthenticationFailedError("Authentication timed out"), CLOSE_AUTH_TIMEOUT),
        )

    def _cancel_auth_timer(self) -> None:
        if self._auth_timer is not None:
            self._auth_timer.cancel()
            self._auth_timer = None


def _as_uuid(value: Any) -> UUID | None:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None
