from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chat_realtime.domain.value_objects.enums import MessageType


class SendMessageRequest(BaseModel):
    recipient_id: UUID
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    attachments: list[str] = Field(default_factory=list)
    reply_to_id: int | None = None
    client_msg_id: UUID | None = None


class MessageResponse(BaseModel):
    id: int
    sender_id: UUID
    recipient_id: UUID
    content: str
    message_type: str
    attachments: list[str]
    reply_to_id: int | None
    is_read: bool
    read_at: datetime | None
    client_msg_id: UUID | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResponse(BaseModel):
    message_id: int
    changed: bool
