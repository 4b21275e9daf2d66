from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message_id: int
    sender_id: UUID
    recipient_id: UUID
    message_type: str
    created_at: datetime | None

    event_type = "chat.message_created"
