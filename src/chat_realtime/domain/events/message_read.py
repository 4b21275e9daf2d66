from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessageRead:
    message_id: int
    sender_id: UUID
    reader_id: UUID
    read_at: datetime

    event_type = "chat.message_read"
