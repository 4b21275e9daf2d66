from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from chat_realtime.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    recipient_id: UUID
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    attachments: tuple[str, ...] = ()
    reply_to_id: int | None = None
    client_msg_id: UUID | None = None
