"""WebSocket message envelope and payload models.

Every frame is a JSON text frame ``{"type": ..., "data": {...}}``; payload keys
are camelCase on the wire.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chat_realtime.domain.entities.message import Message
from chat_realtime.domain.entities.presence import PresenceRecord
from chat_realtime.domain.value_objects.enums import MessageType


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # authenticate | send_message | start_typing | stop_typing | mark_read | get_online_users | ping
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # session.ready | message_sent | new_message | message_read | user_typing | user_status | ...
    data: dict[str, Any] = {}


class WirePayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# -- inbound payloads ---------------------------------------------------------


class AuthenticatePayload(WirePayload):
    token: str = Field(min_length=1)


class SendMessagePayload(WirePayload):
    recipient_id: UUID
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    attachments: list[str] = []
    reply_to_id: int | None = None
    client_msg_id: UUID | None = None


class TypingPayload(WirePayload):
    recipient_id: UUID


class MarkReadPayload(WirePayload):
    message_id: int


# -- outbound payloads --------------------------------------------------------


class MessagePayload(WirePayload):
    id: int
    sender_id: UUID
    recipient_id: UUID
    content: str
    message_type: str
    attachments: list[str]
    reply_to_id: int | None
    is_read: bool
    client_msg_id: UUID | None
    created_at: datetime | None

    @classmethod
    def from_entity(cls, message: Message) -> MessagePayload:
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            content=message.content,
            message_type=message.message_type,
            attachments=list(message.attachments),
            reply_to_id=message.reply_to_id,
            is_read=message.is_read,
            client_msg_id=message.client_msg_id,
            created_at=message.created_at,
        )


class MessageReadPayload(WirePayload):
    message_id: int
    read_at: datetime


class UserTypingPayload(WirePayload):
    user_id: UUID
    is_typing: bool


class UserStatusPayload(WirePayload):
    user_id: UUID
    is_online: bool
    last_seen_at: datetime | None


class PresenceSnapshot(WirePayload):
    user_id: UUID
    is_online: bool
    last_seen_at: datetime | None
    active_connection_count: int

    @classmethod
    def from_record(cls, record: PresenceRecord) -> PresenceSnapshot:
        return cls(
            user_id=record.user_id,
            is_online=record.is_online,
            last_seen_at=record.last_seen_at,
            active_connection_count=record.active_connection_count,
        )


class ReconnectHint(WirePayload):
    """Backoff guidance for clients; the server keeps no resumption state."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    multiplier: float = 2.0
    max_attempts: int = 5

    def delay_ms(self, attempt: int) -> int | None:
        """Delay before reconnect attempt `attempt` (1-based), or None once attempts run out."""
        if attempt < 1 or attempt > self.max_attempts:
            return None
        delay = self.base_delay_ms * (self.multiplier ** (attempt - 1))
        return int(min(delay, self.max_delay_ms))


class SessionReadyPayload(WirePayload):
    connection_id: str
    user_id: UUID
    reconnect: ReconnectHint


class ServerDrainingPayload(WirePayload):
    reason: str
    reconnect: ReconnectHint


class ErrorPayload(WirePayload):
    code: str
    detail: str = ""
    client_msg_id: UUID | None = None


def frame(event_type: str, data: WirePayload | dict[str, Any] | list[Any] | None = None) -> str:
    """Render one outbound frame as JSON text."""
    if isinstance(data, WirePayload):
        body: Any = data.to_wire()
    elif isinstance(data, list):
        body = {"items": [d.to_wire() if isinstance(d, WirePayload) else d for d in data]}
    else:
        body = data or {}
    return WsOutbound(type=event_type, data=body).model_dump_json()
