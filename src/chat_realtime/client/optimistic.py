"""Client-side two-phase send: show a message at once, reconcile on server echo.

A send is staged locally as ``pending`` with a fresh ``clientMsgId``. The
server's ``message_sent`` echo (matched on that id) confirms it and replaces
the local copy with the persisted message; an ``error`` frame carrying the
same id marks it ``failed`` so the UI can offer a retry.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from uuid import UUID

from chat_realtime.domain.value_objects.enums import MessageType
from chat_realtime.infrastructure.ws.protocol import (
    ErrorPayload,
    MessagePayload,
    SendMessagePayload,
    WsInbound,
    WsOutbound,
)

logger = logging.getLogger(__name__)


class SendState(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(slots=True)
class PendingSend:
    client_msg_id: UUID
    recipient_id: UUID
    content: str
    message_type: MessageType = MessageType.TEXT
    attachments: list[str] = field(default_factory=list)
    reply_to_id: int | None = None
    state: SendState = SendState.PENDING
    staged_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message: MessagePayload | None = None
    error: str | None = None

    def to_frame(self) -> WsInbound:
        payload = SendMessagePayload(
            recipient_id=self.recipient_id,
            content=self.content,
            message_type=self.message_type,
            attachments=self.attachments,
            reply_to_id=self.reply_to_id,
            client_msg_id=self.client_msg_id,
        )
        return WsInbound(type="send_message", data=payload.to_wire())


class OptimisticOutbox:
    def __init__(self) -> None:
        self._sends: dict[UUID, PendingSend] = {}

    def __len__(self) -> int:
        return len(self._sends)

    def get(self, client_msg_id: UUID) -> PendingSend | None:
        return self._sends.get(client_msg_id)

    def stage(
        self,
        recipient_id: UUID,
        content: str,
        *,
        message_type: MessageType = MessageType.TEXT,
        attachments: list[str] | None = None,
        reply_to_id: int | None = None,
    ) -> tuple[PendingSend, WsInbound]:
        send = PendingSend(
            client_msg_id=uuid.uuid4(),
            recipient_id=recipient_id,
            content=content,
            message_type=message_type,
            attachments=list(attachments or []),
            reply_to_id=reply_to_id,
        )
        self._sends[send.client_msg_id] = send
        return send, send.to_frame()

    def apply(self, event: WsOutbound) -> PendingSend | None:
        """Reconcile a server frame. Returns the affected send, if any."""
        if event.type == "message_sent":
            message = MessagePayload.model_validate(event.data)
            send = self._sends.get(message.client_msg_id) if message.client_msg_id else None
            if send is None:
                # Sent from another device of the same user.
                return None
            send.state = SendState.CONFIRMED
            send.message = message
            send.error = None
            return send

        if event.type == "error":
            error = ErrorPayload.model_validate(event.data)
            send = self._sends.get(error.client_msg_id) if error.client_msg_id else None
            if send is None or send.state is SendState.CONFIRMED:
                return None
            send.state = SendState.FAILED
            send.error = error.detail or error.code
            logger.debug("Send %s failed: %s", send.client_msg_id, send.error)
            return send

        return None

    def retry(self, client_msg_id: UUID) -> tuple[PendingSend, WsInbound]:
        """Re-stage a failed send under a new clientMsgId."""
        send = self._sends.get(client_msg_id)
        if send is None or send.state is not SendState.FAILED:
            raise KeyError(client_msg_id)
        del self._sends[client_msg_id]
        return self.stage(
            send.recipient_id,
            send.content,
            message_type=send.message_type,
            attachments=send.attachments,
            reply_to_id=send.reply_to_id,
        )

    def pending(self) -> list[PendingSend]:
        return sorted(
            (s for s in self._sends.values() if s.state is SendState.PENDING),
            key=lambda s: s.staged_at,
        )

    def discard_confirmed(self) -> int:
        confirmed = [k for k, s in self._sends.items() if s.state is SendState.CONFIRMED]
        for key in confirmed:
            del self._sends[key]
        return len(confirmed)
