from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessageDraft:
    """A message as submitted by its sender, before the store assigns id/timestamp."""

    sender_id: UUID
    recipient_id: UUID
    content: str
    message_type: str
    attachments: tuple[str, ...] = ()
    reply_to_id: int | None = None
    client_msg_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class Message:
    id: int
    sender_id: UUID
    recipient_id: UUID
    content: str
    message_type: str
    attachments: tuple[str, ...] = field(default_factory=tuple)
    reply_to_id: int | None = None
    is_read: bool = False
    read_at: datetime | None = None
    client_msg_id: UUID | None = None
    created_at: datetime | None = None

    def is_between(self, user_a: UUID, user_b: UUID) -> bool:
        return {self.sender_id, self.recipient_id} == {user_a, user_b}
